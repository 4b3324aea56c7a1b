from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional

from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool

from lesson_ingest.config import PipelineConfig
from lesson_ingest.ingest.cache import CacheStore, FileCacheStore, InMemoryCacheStore
from lesson_ingest.ingest.models import ExtractionResult
from lesson_ingest.ingest.persistence import ExtractionStore, InMemoryExtractionStore
from lesson_ingest.ingest.pipeline import IngestionRouter
from lesson_ingest.logging_config import AUDIT_LOGGER_NAME
from lesson_ingest.telemetry import emit_exception, log_event
from lesson_ingest.validation import (
    AssemblyResult,
    SlidePlanAssembler,
    StructuredOutputValidator,
    ValidationResult,
)

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)


@dataclass(slots=True)
class LessonIngestResult:
    """Structured result returned from :meth:`ExtractionService.ingest`."""

    lesson_id: str
    results: list[ExtractionResult] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def chunk_count(self) -> int:
        return sum(result.chunk_count for result in self.results)


def _default_cache(config: PipelineConfig) -> CacheStore:
    if config.cache_dir:
        return FileCacheStore(Path(config.cache_dir))
    return InMemoryCacheStore()


class ExtractionService:
    """Lesson-level facade over ingestion, validation and slide plan assembly."""

    def __init__(
        self,
        *,
        router: Optional[IngestionRouter] = None,
        store: Optional[ExtractionStore] = None,
        validator: Optional[StructuredOutputValidator] = None,
        config: Optional[PipelineConfig] = None,
    ) -> None:
        if router is None:
            config = config or PipelineConfig.from_env()
            router = IngestionRouter(
                config=config,
                cache=_default_cache(config),
                store=store if store is not None else InMemoryExtractionStore(),
            )
        self.router = router
        self.validator = validator or StructuredOutputValidator()
        self.assembler = SlidePlanAssembler(self.validator)

    async def ingest(
        self, lesson_id: str, files: Iterable[UploadFile], *, category: str = "reference"
    ) -> LessonIngestResult:
        start_time = time.perf_counter()
        outcome = LessonIngestResult(lesson_id=lesson_id)

        for upload in files:
            if upload is None:
                continue
            file_name = Path(upload.filename or "upload").name
            data = await upload.read()
            log_event(LOGGER, "ingest.file.start", lesson_id=lesson_id, file=file_name, size_bytes=len(data))
            try:
                report = await run_in_threadpool(
                    self.router.ingest,
                    data,
                    file_name,
                    lesson_id=lesson_id,
                    category=category,
                    mime_type=upload.content_type,
                )
            except Exception as error:
                emit_exception(module=f"{__name__}.ingest", error=error, lesson_id=lesson_id)
                raise

            outcome.results.extend(report.results)
            outcome.skipped.extend(report.skipped)
            outcome.errors.extend(report.errors)
            for result in report.results:
                AUDIT_LOGGER.info(
                    {
                        "event": "extraction",
                        "lesson_id": lesson_id,
                        "file_id": result.file_id,
                        "file_name": result.metadata.get("fileName"),
                        "status": result.status.value,
                        "chunk_count": result.chunk_count,
                        "cache_hit": result.metadata.get("cacheHit", False),
                    }
                )

        outcome.duration_seconds = time.perf_counter() - start_time
        LOGGER.info(
            "Ingested %s results (%s chunks) for lesson %s in %.3fs",
            len(outcome.results),
            outcome.chunk_count,
            lesson_id,
            outcome.duration_seconds,
        )
        return outcome

    def list_extractions(self, lesson_id: str) -> list[ExtractionResult]:
        return self.router.store.list_for_lesson(lesson_id)

    def validate(
        self,
        call_type: str,
        payload: Any,
        *,
        allowed_standards: Optional[list[Any]] = None,
        allowed_slide_types: Optional[list[str]] = None,
        repair_of: Optional[str] = None,
    ) -> ValidationResult:
        return self.validator.validate(
            call_type,
            payload,
            allowed_standards=allowed_standards,
            allowed_slide_types=allowed_slide_types,
            repair_of=repair_of,
        )

    def assemble_slide_plan(self, payload: Any, *, allowed_slide_types: Optional[list[str]] = None) -> AssemblyResult:
        return self.assembler.assemble(payload, allowed_slide_types=allowed_slide_types)

    def ocr_status(self) -> dict[str, object]:
        orchestrator = self.router.orchestrator
        return {"engine_initialized": orchestrator.is_initialized, "active_jobs": orchestrator.active_jobs}

    def close(self) -> None:
        self.router.orchestrator.close()


_extraction_service = ExtractionService()


def get_extraction_service() -> ExtractionService:
    """FastAPI dependency returning the shared :class:`ExtractionService` instance."""

    return _extraction_service
