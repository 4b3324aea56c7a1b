"""High level ingestion entry point: cache, classify, extract, normalise, persist."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Mapping, Optional

from ..config import PipelineConfig
from ..errors import IngestError, PersistenceError
from ..telemetry import emit_exception, emit_extraction_event, traced_duration
from .archive import ArchiveExpander
from .cache import CacheStore, InMemoryCacheStore, content_hash
from .extractors import Extractor, build_extractors
from .format_detection import DocumentFormat, DocumentFormatDetector
from .models import CacheEntry, ExtractionResult, is_low_confidence
from .normalization import ChunkNormalizer
from .persistence import ExtractionStore, InMemoryExtractionStore
from .recognition import ProgressCallback, RecognitionOrchestrator, TesseractEngine, report_progress

LOGGER = logging.getLogger(__name__)


def default_file_id(digest: str) -> str:
    return f"file-{digest[:16]}"


@dataclass(slots=True)
class IngestReport:
    """Results for one upload; archives yield one result per member."""

    results: list[ExtractionResult] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "results": [result.to_dict() for result in self.results],
            "skipped": list(self.skipped),
            "errors": list(self.errors),
        }


class IngestionRouter:
    """Routes uploaded bytes to the matching extractor strategy.

    A content-hash cache lookup always precedes classification and
    extraction. Archives are expanded and every member goes through the same
    path on its own, so one broken member never affects its siblings.
    """

    def __init__(
        self,
        *,
        config: Optional[PipelineConfig] = None,
        cache: Optional[CacheStore] = None,
        store: Optional[ExtractionStore] = None,
        orchestrator: Optional[RecognitionOrchestrator] = None,
        extractors: Optional[Mapping[DocumentFormat, Extractor]] = None,
        normalizer: Optional[ChunkNormalizer] = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.cache = cache if cache is not None else InMemoryCacheStore()
        self.store = store if store is not None else InMemoryExtractionStore()
        self.orchestrator = orchestrator or RecognitionOrchestrator(
            lambda: TesseractEngine(language=self.config.ocr_language)
        )
        self.extractors = dict(extractors) if extractors is not None else build_extractors(self.config, self.orchestrator)
        self.normalizer = normalizer or ChunkNormalizer()
        self.archive_expander = ArchiveExpander(
            max_members=self.config.archive_max_members,
            max_total_bytes=self.config.archive_max_total_bytes,
        )

    def ingest(
        self,
        data: bytes,
        file_name: str,
        *,
        lesson_id: str,
        category: str = "reference",
        mime_type: Optional[str] = None,
        file_id: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> IngestReport:
        """Process one upload and return the extraction results it produced."""

        report = IngestReport()
        if self._is_archive(file_name, mime_type, data):
            self._ingest_archive(
                report, data, file_name, lesson_id=lesson_id, category=category, file_id=file_id, progress=progress
            )
            return report

        report.results.append(
            self.ingest_file(
                data,
                file_name,
                lesson_id=lesson_id,
                category=category,
                mime_type=mime_type,
                file_id=file_id,
                progress=progress,
            )
        )
        return report

    def _is_archive(self, file_name: str, mime_type: Optional[str], data: bytes) -> bool:
        try:
            return DocumentFormatDetector.detect(file_name, mime_type, data) is DocumentFormat.ZIP
        except IngestError:
            return False

    def _ingest_archive(
        self,
        report: IngestReport,
        data: bytes,
        file_name: str,
        *,
        lesson_id: str,
        category: str,
        file_id: Optional[str],
        progress: Optional[ProgressCallback],
    ) -> None:
        try:
            with traced_duration("archive.expand", logger=LOGGER, file=file_name, lesson_id=lesson_id):
                expanded = self.archive_expander.expand(data)
        except IngestError as error:
            emit_exception(module=__name__, error=error, lesson_id=lesson_id, suggestion="Re-create the ZIP archive")
            result = ExtractionResult(
                file_id=file_id or default_file_id(content_hash(data)),
                lesson_id=lesson_id,
                metadata={"fileName": file_name, "category": category},
            )
            result.fail(str(error))
            self._save(result)
            report.results.append(result)
            report.errors.append(str(error))
            return

        report.skipped.extend(expanded.skipped)
        report.errors.extend(expanded.errors)
        for position, member in enumerate(expanded.members, start=1):
            member_file_id = f"{file_id}-{position}" if file_id else None
            if member.error is not None:
                result = ExtractionResult(
                    file_id=member_file_id or f"{default_file_id(content_hash(data))}-{position}",
                    lesson_id=lesson_id,
                    metadata={"fileName": member.name, "category": category, "archive": file_name},
                )
                result.fail(member.error)
                self._save(result)
                self._emit(result, member.name, None, 0, cache_hit=False)
                report.results.append(result)
                continue
            report.results.append(
                self.ingest_file(
                    member.data,
                    member.name,
                    lesson_id=lesson_id,
                    category=category,
                    mime_type=member.mime_type,
                    file_id=member_file_id,
                    progress=progress,
                    archive_name=file_name,
                )
            )

    def ingest_file(
        self,
        data: bytes,
        file_name: str,
        *,
        lesson_id: str,
        category: str = "reference",
        mime_type: Optional[str] = None,
        file_id: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
        archive_name: Optional[str] = None,
    ) -> ExtractionResult:
        """Extract a single, non-archive file.

        Cache hits return the cached chunks unchanged: when identical bytes
        were first ingested for another lesson, the chunks keep that lesson's
        ``lessonId`` and chunk ids even though the result belongs to
        ``lesson_id``. Consumers should key on the result, not the chunks.
        """

        started = time.perf_counter()
        digest = content_hash(data)
        metadata = {"fileName": file_name, "contentHash": digest, "category": category}
        if archive_name:
            metadata["archive"] = archive_name
        result = ExtractionResult(
            file_id=file_id or default_file_id(digest),
            lesson_id=lesson_id,
            metadata=metadata,
        )

        cached = self._cache_get(digest)
        if cached is not None:
            result.start()
            result.complete(
                cached.chunks,
                extraction_time_ms=_elapsed_ms(started),
                metadata={
                    "ocrConfidence": cached.confidence,
                    "lowConfidence": cached.low_confidence,
                    "cacheHit": True,
                },
            )
            report_progress(progress, file_name, 100)
            self._save(result)
            self._emit(result, file_name, None, len(data), cache_hit=True)
            return result

        try:
            document_format = DocumentFormatDetector.detect(file_name, mime_type, data)
        except IngestError as error:
            LOGGER.warning("Rejected %s: %s", file_name, error)
            result.fail(str(error), extraction_time_ms=_elapsed_ms(started))
            self._save(result)
            self._emit(result, file_name, None, len(data), cache_hit=False)
            return result

        extractor = self.extractors.get(document_format)
        result.start()
        try:
            if extractor is None:
                raise IngestError(f"No extractor registered for {document_format.value}")
            outcome = extractor.extract(data, item_name=file_name, progress=progress)
            chunks = self.normalizer.build_chunks(
                outcome.units,
                file_id=result.file_id,
                lesson_id=lesson_id,
                total_pages=outcome.total_pages if document_format is not DocumentFormat.PPTX else None,
            )
        except Exception as error:
            emit_exception(module=__name__, error=error, lesson_id=lesson_id, file_id=result.file_id)
            result.fail(str(error) or error.__class__.__name__, extraction_time_ms=_elapsed_ms(started))
            self._save(result)
            self._emit(result, file_name, document_format, len(data), cache_hit=False)
            return result

        elapsed = _elapsed_ms(started)
        low_confidence = is_low_confidence(outcome.confidence)
        result.complete(
            chunks,
            extraction_time_ms=elapsed,
            metadata={
                "format": document_format.value,
                "ocrConfidence": outcome.confidence,
                "lowConfidence": low_confidence,
                "totalPages": outcome.total_pages,
                "cacheHit": False,
                **outcome.metadata,
            },
        )
        self._cache_put(
            digest,
            CacheEntry(
                chunks=result.chunks,
                confidence=outcome.confidence,
                low_confidence=low_confidence,
                process_time_ms=elapsed,
            ),
        )
        self._save(result)
        self._emit(result, file_name, document_format, len(data), cache_hit=False)
        return result

    def _cache_get(self, digest: str) -> Optional[CacheEntry]:
        try:
            return self.cache.get(digest)
        except Exception as error:
            LOGGER.warning("Cache lookup failed for %s: %s", digest[:16], error)
            return None

    def _cache_put(self, digest: str, entry: CacheEntry) -> None:
        try:
            self.cache.put(digest, entry)
        except Exception as error:
            LOGGER.warning("Cache write failed for %s: %s", digest[:16], error)

    def _save(self, result: ExtractionResult) -> None:
        try:
            self.store.save(result)
        except PersistenceError:
            raise
        except Exception as error:
            raise PersistenceError(f"Failed to save extraction result: {error}", cause=error) from error

    @staticmethod
    def _emit(
        result: ExtractionResult,
        file_name: str,
        document_format: Optional[DocumentFormat],
        size_bytes: int,
        *,
        cache_hit: bool,
    ) -> None:
        emit_extraction_event(
            "extraction.finished",
            file_name=file_name,
            lesson_id=result.lesson_id,
            file_id=result.file_id,
            format=document_format.value if document_format else None,
            size_bytes=size_bytes,
            duration_ms=result.extraction_time_ms,
            status=result.status.value,
            chunks=result.chunk_count,
            confidence=result.metadata.get("ocrConfidence"),
            cache_hit=cache_hit,
        )


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0
