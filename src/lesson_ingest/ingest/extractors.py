"""Extractor strategies for the supported reference formats."""
from __future__ import annotations

import io
import logging
import zipfile
from typing import Optional, Protocol

from docx import Document as DocxDocument
from docx.opc.exceptions import PackageNotFoundError
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from ..config import PipelineConfig
from ..errors import ExtractionError
from .format_detection import DocumentFormat
from .models import ChunkSource, ExtractionOutcome, ExtractionUnit
from .rasterizer import PdfRasterizer, load_image
from .recognition import ProgressCallback, RecognitionOrchestrator, report_progress
from .slide_deck import SlideDeckParser

LOGGER = logging.getLogger(__name__)

SPEAKER_NOTES_PREFIX = "[Speaker Notes]\n"
LINKS_PREFIX = "[Links]\n"


class Extractor(Protocol):
    def extract(
        self, data: bytes, *, item_name: str = "", progress: Optional[ProgressCallback] = None
    ) -> ExtractionOutcome:
        ...


class DeckExtractor:
    """Structural extraction of slide text, speaker notes and hyperlinks."""

    def __init__(self, parser: Optional[SlideDeckParser] = None) -> None:
        self.parser = parser or SlideDeckParser()

    def extract(
        self, data: bytes, *, item_name: str = "", progress: Optional[ProgressCallback] = None
    ) -> ExtractionOutcome:
        analysis = self.parser.parse(data)
        units: list[ExtractionUnit] = []
        for slide in analysis.slides:
            number = slide.slide_number
            if slide.text.strip():
                units.append(ExtractionUnit(number, slide.text, ChunkSource.STRUCTURAL_PARSE, "slide_text"))
            if slide.notes.strip():
                units.append(
                    ExtractionUnit(
                        number,
                        SPEAKER_NOTES_PREFIX + slide.notes.strip(),
                        ChunkSource.STRUCTURAL_PARSE,
                        "speaker_notes",
                    )
                )
            if slide.hyperlinks:
                units.append(
                    ExtractionUnit(
                        number,
                        LINKS_PREFIX + "\n".join(slide.hyperlinks),
                        ChunkSource.STRUCTURAL_PARSE,
                        "hyperlinks",
                    )
                )
        report_progress(progress, item_name, 100)
        LOGGER.info("Parsed %s slides from %s", analysis.total_slides, item_name or "deck")

        summary = analysis.to_dict()
        summary.pop("slides")
        return ExtractionOutcome(
            units=units,
            confidence=1.0,
            total_pages=analysis.total_slides,
            metadata={"slideCount": analysis.total_slides, "deck": summary},
        )


class PdfExtractor:
    """Recognises rendered PDF pages, optionally trying the native text layer first."""

    def __init__(
        self,
        orchestrator: RecognitionOrchestrator,
        rasterizer: Optional[PdfRasterizer] = None,
        text_layer: bool = False,
        min_chars_per_page: int = 50,
    ) -> None:
        self.orchestrator = orchestrator
        self.rasterizer = rasterizer or PdfRasterizer()
        self.text_layer = text_layer
        self.min_chars_per_page = min_chars_per_page

    def extract(
        self, data: bytes, *, item_name: str = "", progress: Optional[ProgressCallback] = None
    ) -> ExtractionOutcome:
        if self.text_layer:
            outcome = self._extract_text_layer(data)
            if outcome is not None:
                report_progress(progress, item_name, 100)
                return outcome
            LOGGER.info("PDF text layer too small for %s, running recognition", item_name or "pdf")

        with self.rasterizer.open(data) as document:
            summary = self.orchestrator.recognize_pdf(document, item_name=item_name, progress=progress)

        units = [
            ExtractionUnit(
                page.page_number,
                page.text,
                ChunkSource.OCR_PDF_PAGE,
                metadata={"confidence": page.confidence},
            )
            for page in summary.pages
            if page.text
        ]
        return ExtractionOutcome(
            units=units,
            confidence=summary.average_confidence,
            total_pages=summary.total_pages,
            metadata={"failedPages": summary.failed_pages},
        )

    def _extract_text_layer(self, data: bytes) -> Optional[ExtractionOutcome]:
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = list(reader.pages)
        except (PdfReadError, ValueError, OSError) as error:
            LOGGER.warning("PyPDF2 could not read PDF: %s", error)
            return None
        if not pages:
            return None

        texts = []
        for index, page in enumerate(pages, start=1):
            try:
                texts.append(page.extract_text() or "")
            except (PdfReadError, ValueError, KeyError) as error:
                LOGGER.warning("Failed to extract text from PDF page %s: %s", index, error)
                texts.append("")

        total_chars = sum(len(text.strip()) for text in texts)
        if total_chars / len(pages) < self.min_chars_per_page:
            return None

        units = [
            ExtractionUnit(index, text, ChunkSource.PDF_TEXT)
            for index, text in enumerate(texts, start=1)
            if text.strip()
        ]
        return ExtractionOutcome(units=units, confidence=1.0, total_pages=len(pages), metadata={"failedPages": []})


class ImageExtractor:
    """Recognises a single raster image; tiny files are skipped as decorative."""

    def __init__(
        self,
        orchestrator: RecognitionOrchestrator,
        min_bytes: int = 20 * 1024,
        max_dimension: int = 2000,
    ) -> None:
        self.orchestrator = orchestrator
        self.min_bytes = min_bytes
        self.max_dimension = max_dimension

    def extract(
        self, data: bytes, *, item_name: str = "", progress: Optional[ProgressCallback] = None
    ) -> ExtractionOutcome:
        if len(data) < self.min_bytes:
            LOGGER.info("Skipping %s (%s bytes): likely decorative", item_name or "image", len(data))
            report_progress(progress, item_name, 100)
            return ExtractionOutcome(units=[], confidence=0.0, total_pages=0, metadata={"skipped": "likely decorative"})

        image = load_image(data, self.max_dimension)
        summary = self.orchestrator.recognize_image(image, item_name=item_name, progress=progress)
        page = summary.pages[0]
        units = []
        if page.text:
            units.append(ExtractionUnit(1, page.text, ChunkSource.OCR_IMAGE, metadata={"confidence": page.confidence}))
        return ExtractionOutcome(units=units, confidence=summary.average_confidence, total_pages=1)


class DocxExtractor:
    """Extract paragraph text from word-processor documents."""

    def extract(
        self, data: bytes, *, item_name: str = "", progress: Optional[ProgressCallback] = None
    ) -> ExtractionOutcome:
        try:
            document = DocxDocument(io.BytesIO(data))
        except (PackageNotFoundError, zipfile.BadZipFile, ValueError, KeyError) as error:
            raise ExtractionError(f"Failed to parse DOCX content: {error}", cause=error) from error

        parts = [paragraph.text for paragraph in document.paragraphs if paragraph.text.strip()]
        for table in document.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if cells:
                    parts.append(" | ".join(cells))
        text = "\n\n".join(parts)
        report_progress(progress, item_name, 100)

        counts = {"wordCount": len(text.split()), "characterCount": len(text)}
        units = [ExtractionUnit(1, text, ChunkSource.DOCUMENT_TEXT, metadata=dict(counts))] if text else []
        return ExtractionOutcome(units=units, confidence=1.0, total_pages=1, metadata=counts)


class TextExtractor:
    """Extract text from plaintext documents."""

    def extract(
        self, data: bytes, *, item_name: str = "", progress: Optional[ProgressCallback] = None
    ) -> ExtractionOutcome:
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError:
            text = data.decode("latin-1")
        report_progress(progress, item_name, 100)
        units = [ExtractionUnit(1, text, ChunkSource.DOCUMENT_TEXT)] if text.strip() else []
        return ExtractionOutcome(units=units, confidence=1.0, total_pages=1)


def build_extractors(config: PipelineConfig, orchestrator: RecognitionOrchestrator) -> dict[DocumentFormat, Extractor]:
    """Return the extractor strategy for every non-archive format."""

    return {
        DocumentFormat.PPTX: DeckExtractor(),
        DocumentFormat.PDF: PdfExtractor(
            orchestrator,
            PdfRasterizer(config.max_dimension, config.max_scale),
            text_layer=config.pdf_text_layer,
            min_chars_per_page=config.pdf_min_chars_per_page,
        ),
        DocumentFormat.IMAGE: ImageExtractor(orchestrator, config.min_image_bytes, config.max_dimension),
        DocumentFormat.DOCX: DocxExtractor(),
        DocumentFormat.TXT: TextExtractor(),
    }
