"""Data models used by the ingestion pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from ..config import LOW_CONFIDENCE_THRESHOLD
from ..errors import InvalidTransitionError


class ChunkSource(str, Enum):
    """Provenance of a chunk's text."""

    STRUCTURAL_PARSE = "structural_parse"
    OCR_IMAGE = "ocr_image"
    OCR_PDF_PAGE = "ocr_pdf_page"
    PDF_TEXT = "pdf_text"
    DOCUMENT_TEXT = "document_text"


class ExtractionStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"


_TRANSITIONS: dict[ExtractionStatus, frozenset[ExtractionStatus]] = {
    ExtractionStatus.PENDING: frozenset({ExtractionStatus.PROCESSING, ExtractionStatus.ERROR}),
    ExtractionStatus.PROCESSING: frozenset({ExtractionStatus.COMPLETE, ExtractionStatus.ERROR}),
    ExtractionStatus.COMPLETE: frozenset(),
    ExtractionStatus.ERROR: frozenset(),
}


def is_low_confidence(confidence: float) -> bool:
    return confidence < LOW_CONFIDENCE_THRESHOLD


def make_chunk_id(file_id: str, source: ChunkSource, index: int, section: Optional[str] = None) -> str:
    """Return the stable identifier of one extracted unit."""

    parts = [file_id, source.value, str(index)]
    if section:
        parts.append(section)
    return "-".join(parts)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class ReferenceChunk:
    """One normalized, provenance-tagged unit of extracted text."""

    chunk_id: str
    file_id: str
    lesson_id: str
    page_or_slide: int
    source: ChunkSource
    text: str
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "chunkId": self.chunk_id,
            "fileId": self.file_id,
            "lessonId": self.lesson_id,
            "pageOrSlide": self.page_or_slide,
            "source": self.source.value,
            "text": self.text,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ReferenceChunk":
        return cls(
            chunk_id=data["chunkId"],
            file_id=data["fileId"],
            lesson_id=data["lessonId"],
            page_or_slide=int(data["pageOrSlide"]),
            source=ChunkSource(data["source"]),
            text=data["text"],
            metadata=data.get("metadata") or {},
        )


@dataclass(slots=True)
class ExtractionUnit:
    """Raw text produced by an extractor before normalization."""

    index: int
    text: str
    source: ChunkSource
    section: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ExtractionOutcome:
    """Everything an extractor strategy yields for one file."""

    units: list[ExtractionUnit]
    confidence: float = 1.0
    total_pages: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def low_confidence(self) -> bool:
        return is_low_confidence(self.confidence)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """Extraction output remembered for one content hash."""

    chunks: tuple[ReferenceChunk, ...]
    confidence: float
    low_confidence: bool
    process_time_ms: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "chunks": [chunk.to_dict() for chunk in self.chunks],
            "confidence": self.confidence,
            "lowConfidence": self.low_confidence,
            "processTimeMs": self.process_time_ms,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CacheEntry":
        return cls(
            chunks=tuple(ReferenceChunk.from_dict(item) for item in data.get("chunks", [])),
            confidence=float(data["confidence"]),
            low_confidence=bool(data["lowConfidence"]),
            process_time_ms=float(data.get("processTimeMs", 0.0)),
        )


@dataclass(slots=True)
class ExtractionResult:
    """Aggregates the chunks produced for one file and tracks its lifecycle."""

    file_id: str
    lesson_id: str
    status: ExtractionStatus = ExtractionStatus.PENDING
    chunks: tuple[ReferenceChunk, ...] = ()
    extracted_at: Optional[str] = None
    extraction_time_ms: float = 0.0
    error: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def chunk_count(self) -> int:
        return len(self.chunks)

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self.status]

    def _move_to(self, status: ExtractionStatus) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Cannot move extraction {self.file_id} from {self.status.value} to {status.value}"
            )
        self.status = status

    def start(self) -> None:
        self._move_to(ExtractionStatus.PROCESSING)

    def complete(
        self,
        chunks: Iterable[ReferenceChunk],
        *,
        extraction_time_ms: float,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._move_to(ExtractionStatus.COMPLETE)
        self.chunks = tuple(chunks)
        self.extraction_time_ms = extraction_time_ms
        self.extracted_at = _utc_now()
        if metadata:
            self.metadata.update(metadata)

    def fail(self, error: str, *, extraction_time_ms: float = 0.0) -> None:
        self._move_to(ExtractionStatus.ERROR)
        self.error = error
        self.extraction_time_ms = extraction_time_ms
        self.extracted_at = _utc_now()

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "fileId": self.file_id,
            "lessonId": self.lesson_id,
            "chunks": [chunk.to_dict() for chunk in self.chunks],
            "chunkCount": self.chunk_count,
            "extractedAt": self.extracted_at,
            "status": self.status.value,
            "extractionTimeMs": self.extraction_time_ms,
            "metadata": dict(self.metadata),
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload
