"""Optical character recognition adapter and the orchestrator that owns it."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, TypeVar

import pytesseract
from PIL import Image

from ..errors import RecognitionError
from .models import is_low_confidence
from .rasterizer import RasterDocument

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int], None]
T = TypeVar("T")


@dataclass(slots=True)
class Recognition:
    """Text recognised on one image and its confidence in ``[0, 1]``."""

    text: str
    confidence: float


class RecognitionEngine(Protocol):
    def recognize(self, image: Image.Image) -> Recognition:
        ...


class TesseractEngine:
    """Recognition engine backed by the Tesseract binary via pytesseract."""

    def __init__(self, language: str = "eng", config: str = "") -> None:
        self.language = language
        self.config = config

    def recognize(self, image: Image.Image) -> Recognition:
        try:
            text = pytesseract.image_to_string(image, lang=self.language, config=self.config)
            data = pytesseract.image_to_data(
                image,
                lang=self.language,
                config=self.config,
                output_type=pytesseract.Output.DICT,
            )
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError) as error:
            raise RecognitionError(f"Tesseract failed: {error}", cause=error) from error
        return Recognition(text=(text or "").strip(), confidence=mean_word_confidence(data))


def mean_word_confidence(data: dict) -> float:
    """Average the per-word confidences reported by Tesseract, scaled to ``[0, 1]``.

    Entries reported as ``-1`` (non-word layout boxes) and blank tokens are
    ignored. Returns ``0.0`` when no word was recognised.
    """

    samples = []
    for token, raw_conf in zip(data.get("text", []), data.get("conf", [])):
        if not (token or "").strip():
            continue
        try:
            confidence = float(raw_conf)
        except (TypeError, ValueError):
            continue
        if confidence < 0:
            continue
        samples.append(max(0.0, min(1.0, confidence / 100.0)))
    if not samples:
        return 0.0
    return sum(samples) / len(samples)


@dataclass(slots=True)
class PageRecognition:
    page_number: int
    text: str
    confidence: float
    failed: bool = False


@dataclass(slots=True)
class RecognitionSummary:
    """Per-page recognition output for one file."""

    total_pages: int
    pages: list[PageRecognition] = field(default_factory=list)

    @property
    def average_confidence(self) -> float:
        if not self.pages:
            return 0.0
        return sum(page.confidence for page in self.pages) / len(self.pages)

    @property
    def low_confidence(self) -> bool:
        return is_low_confidence(self.average_confidence)

    @property
    def failed_pages(self) -> list[int]:
        return [page.page_number for page in self.pages if page.failed]


def report_progress(progress: Optional[ProgressCallback], item_name: str, percent: int) -> None:
    if progress is not None:
        progress(item_name, percent)


class RecognitionOrchestrator:
    """Owns a single lazily created engine and serialises access to it."""

    def __init__(self, engine_factory: Callable[[], RecognitionEngine]) -> None:
        self._engine_factory = engine_factory
        self._engine: Optional[RecognitionEngine] = None
        self._engine_lock = threading.Lock()
        self._jobs_lock = threading.Lock()
        self._active_jobs = 0

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    @property
    def active_jobs(self) -> int:
        return self._active_jobs

    def with_engine(self, fn: Callable[[RecognitionEngine], T]) -> T:
        """Run ``fn`` with exclusive access to the engine, creating it on first use."""

        with self._engine_lock:
            if self._engine is None:
                LOGGER.info("Initialising recognition engine")
                self._engine = self._engine_factory()
            return fn(self._engine)

    def close(self) -> None:
        with self._engine_lock:
            engine, self._engine = self._engine, None
        if engine is not None:
            closer = getattr(engine, "close", None)
            if callable(closer):
                closer()
            LOGGER.info("Recognition engine released")

    def _begin_job(self) -> None:
        with self._jobs_lock:
            self._active_jobs += 1

    def _end_job(self) -> None:
        with self._jobs_lock:
            self._active_jobs -= 1

    def recognize_image(
        self,
        image: Image.Image,
        *,
        item_name: str = "",
        progress: Optional[ProgressCallback] = None,
    ) -> RecognitionSummary:
        self._begin_job()
        try:
            report_progress(progress, item_name, 50)
            result = self.with_engine(lambda engine: engine.recognize(image))
            report_progress(progress, item_name, 100)
            return RecognitionSummary(
                total_pages=1,
                pages=[PageRecognition(page_number=1, text=result.text.strip(), confidence=result.confidence)],
            )
        finally:
            self._end_job()

    def recognize_pdf(
        self,
        document: RasterDocument,
        *,
        item_name: str = "",
        progress: Optional[ProgressCallback] = None,
    ) -> RecognitionSummary:
        """Recognise every page of ``document`` strictly in order.

        A page that cannot be rendered or recognised contributes a ``0.0``
        confidence sample and is listed in ``failed_pages``; the remaining
        pages are still processed.
        """

        self._begin_job()
        try:
            total = document.page_count
            summary = RecognitionSummary(total_pages=total)
            LOGGER.info("Starting recognition for %s (%s pages)", item_name or "pdf", total)
            for page_number in range(1, total + 1):
                try:
                    image = document.render(page_number)
                    result = self.with_engine(lambda engine: engine.recognize(image))
                    page = PageRecognition(
                        page_number=page_number, text=result.text.strip(), confidence=result.confidence
                    )
                except (RuntimeError, ValueError, OSError) as error:
                    LOGGER.warning("Recognition failed for %s page %s: %s", item_name, page_number, error)
                    page = PageRecognition(page_number=page_number, text="", confidence=0.0, failed=True)
                summary.pages.append(page)
                LOGGER.debug(
                    "Recognised page %s/%s: %s chars, confidence %.2f",
                    page_number,
                    total,
                    len(page.text),
                    page.confidence,
                )
                report_progress(progress, item_name, round(page_number / total * 100))
            LOGGER.info(
                "Recognition complete for %s: average confidence %.2f",
                item_name or "pdf",
                summary.average_confidence,
            )
            return summary
        finally:
            self._end_job()
