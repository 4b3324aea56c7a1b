"""Text normalisation and conversion of extracted units into chunks."""
from __future__ import annotations

import re
import unicodedata
from typing import Any, Iterable, Optional

from ..errors import ExtractionError
from .language import LanguageDetector
from .models import ChunkSource, ExtractionUnit, ReferenceChunk, make_chunk_id

_WHITESPACE_RE = re.compile(r"[ \t]+")
_MULTIPLE_NEWLINES_RE = re.compile(r"\n{3,}")
_TRAILING_SPACE_RE = re.compile(r"[ \t]+\n")


def normalize_text(text: str) -> str:
    """Normalise whitespace and Unicode representation."""

    normalized = unicodedata.normalize("NFC", text)
    normalized = normalized.replace("\r\n", "\n").replace("\r", "\n")
    normalized = _WHITESPACE_RE.sub(" ", normalized)
    normalized = _TRAILING_SPACE_RE.sub("\n", normalized)
    normalized = _MULTIPLE_NEWLINES_RE.sub("\n\n", normalized)
    return normalized.strip()


_LABELS = {
    ChunkSource.STRUCTURAL_PARSE: "Slide",
    ChunkSource.OCR_IMAGE: "Image",
}


class ChunkNormalizer:
    """Turns raw extractor units into immutable, provenance-tagged chunks."""

    def __init__(self, language_detector: Optional[LanguageDetector] = None) -> None:
        self.language_detector = language_detector or LanguageDetector()

    def build_chunks(
        self,
        units: Iterable[ExtractionUnit],
        *,
        file_id: str,
        lesson_id: str,
        total_pages: Optional[int] = None,
    ) -> list[ReferenceChunk]:
        chunks: list[ReferenceChunk] = []
        seen: set[str] = set()
        for unit in units:
            text = normalize_text(unit.text)
            if not text:
                continue
            chunk_id = make_chunk_id(file_id, unit.source, unit.index, unit.section)
            if chunk_id in seen:
                raise ExtractionError(f"Duplicate chunk id {chunk_id}")
            seen.add(chunk_id)
            chunks.append(
                ReferenceChunk(
                    chunk_id=chunk_id,
                    file_id=file_id,
                    lesson_id=lesson_id,
                    page_or_slide=unit.index,
                    source=unit.source,
                    text=text,
                    metadata=self._metadata(unit, text, total_pages),
                )
            )
        return chunks

    def _metadata(self, unit: ExtractionUnit, text: str, total_pages: Optional[int]) -> dict[str, Any]:
        metadata: dict[str, Any] = {}
        if unit.source is ChunkSource.STRUCTURAL_PARSE:
            metadata["slideLabel"] = f"Slide {unit.index}"
        else:
            metadata["pageLabel"] = f"{_LABELS.get(unit.source, 'Page')} {unit.index}"
        if unit.section:
            metadata["section"] = unit.section
        if total_pages is not None:
            metadata["totalPages"] = total_pages
        metadata["language"] = self.language_detector.detect(text)
        metadata.update(unit.metadata)
        return metadata
