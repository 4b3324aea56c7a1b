"""Shared fixtures: a scripted recognition engine and in-test document builders."""
from __future__ import annotations

import io
import os
import zipfile
from typing import Callable, Iterable, Optional, Sequence, Union

import fitz
import pytest
from docx import Document
from PIL import Image
from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.opc.constants import RELATIONSHIP_TYPE as RT
from pptx.util import Inches

from lesson_ingest.config import PipelineConfig
from lesson_ingest.ingest.cache import InMemoryCacheStore
from lesson_ingest.ingest.persistence import InMemoryExtractionStore
from lesson_ingest.ingest.pipeline import IngestionRouter
from lesson_ingest.ingest.recognition import Recognition, RecognitionOrchestrator

ScriptItem = Union[Recognition, Exception]


class FakeEngine:
    """Returns scripted recognitions in order; the last entry repeats."""

    def __init__(self, script: Optional[Sequence[ScriptItem]] = None) -> None:
        self.script = list(script or [Recognition("Recognised text", 0.9)])
        self.calls = 0
        self.closed = False

    def recognize(self, image: Image.Image) -> Recognition:
        item = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def make_router() -> Callable[..., IngestionRouter]:
    def factory(
        engine: Optional[FakeEngine] = None,
        *,
        config: Optional[PipelineConfig] = None,
        cache=None,
        store=None,
    ) -> IngestionRouter:
        engine = engine or FakeEngine()
        return IngestionRouter(
            config=config or PipelineConfig(),
            cache=cache if cache is not None else InMemoryCacheStore(),
            store=store if store is not None else InMemoryExtractionStore(),
            orchestrator=RecognitionOrchestrator(lambda: engine),
        )

    return factory


LESSON_THEME = (
    '<a:theme xmlns:a="http://schemas.openxmlformats.org/drawingml/2006/main" name="Lesson"><a:themeElements>'
    '<a:clrScheme name="Lesson"><a:dk1><a:sysClr val="windowText" lastClr="000000"/></a:dk1>'
    '<a:accent1><a:srgbClr val="4472C4"/></a:accent1></a:clrScheme>'
    '<a:fontScheme name="Lesson"><a:majorFont><a:latin typeface="Calibri Light"/></a:majorFont>'
    '<a:minorFont><a:latin typeface="Calibri"/></a:minorFont></a:fontScheme>'
    "</a:themeElements></a:theme>"
)


def _add_text(shapes, text: str, top: int):
    box = shapes.add_textbox(Inches(0.5), top, Inches(8), Inches(0.5))
    box.text_frame.text = text
    return box


def build_pptx(
    slides: Iterable[dict],
    *,
    title: str = "Deck",
    theme: Optional[str] = None,
    replace: Optional[dict[str, bytes]] = None,
) -> bytes:
    """Write a slide deck with python-pptx.

    Each slide dict accepts ``texts``, ``group`` (texts inside a group shape),
    ``table`` (rows of cell texts), ``notes``, ``link`` (url), ``image``
    (bytes) and ``background`` (hex colour). ``theme`` swaps the master's
    theme XML and ``replace`` overwrites package members after saving.
    """

    presentation = Presentation()
    blank = presentation.slide_layouts[6]
    for content in slides:
        slide = presentation.slides.add_slide(blank)
        top = Inches(0.5)
        for text in content.get("texts", []):
            _add_text(slide.shapes, text, top)
            top += Inches(0.6)
        if content.get("group"):
            group = slide.shapes.add_group_shape()
            for text in content["group"]:
                _add_text(group.shapes, text, top)
                top += Inches(0.6)
        if content.get("table"):
            rows = content["table"]
            frame = slide.shapes.add_table(len(rows), len(rows[0]), Inches(0.5), top, Inches(8), Inches(1.5))
            for row_index, row in enumerate(rows):
                for col_index, value in enumerate(row):
                    frame.table.cell(row_index, col_index).text = value
            top += Inches(1.6)
        if content.get("link"):
            box = slide.shapes.add_textbox(Inches(0.5), top, Inches(8), Inches(0.5))
            run = box.text_frame.paragraphs[0].add_run()
            run.text = "More resources"
            run.hyperlink.address = content["link"]
        if content.get("image") is not None:
            slide.shapes.add_picture(io.BytesIO(content["image"]), Inches(6), Inches(4))
        if content.get("background"):
            fill = slide.background.fill
            fill.solid()
            fill.fore_color.rgb = RGBColor.from_string(content["background"])
        if content.get("notes"):
            slide.notes_slide.notes_text_frame.text = content["notes"]

    presentation.core_properties.title = title
    presentation.core_properties.author = "Ms. Rivera"

    replacements = dict(replace or {})
    if theme is not None:
        theme_part = presentation.slide_masters[0].part.part_related_by(RT.THEME)
        replacements[theme_part.partname.lstrip("/")] = theme.encode("utf-8")

    buffer = io.BytesIO()
    presentation.save(buffer)
    return rewrite_zip(buffer.getvalue(), replacements) if replacements else buffer.getvalue()


def rewrite_zip(data: bytes, replacements: dict[str, bytes], *, stored: Iterable[str] = ()) -> bytes:
    """Copy a zip, swapping member payloads; members named in ``stored`` are written uncompressed."""

    stored = set(stored)
    buffer = io.BytesIO()
    with zipfile.ZipFile(io.BytesIO(data)) as source, zipfile.ZipFile(buffer, "w") as target:
        for info in source.infolist():
            payload = replacements.get(info.filename)
            if payload is None:
                payload = source.read(info)
            if info.filename in stored:
                info.compress_type = zipfile.ZIP_STORED
            target.writestr(info, payload)
    return buffer.getvalue()


def corrupt_zip_member(data: bytes, *names: str) -> bytes:
    """Flip one byte inside each named member so reading it fails the CRC check."""

    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        payloads = [archive.read(name) for name in names]
    data = rewrite_zip(data, {}, stored=names)
    for payload in payloads:
        offset = data.index(payload) + len(payload) // 2
        data = data[:offset] + bytes([data[offset] ^ 0xFF]) + data[offset + 1 :]
    return data


def master_theme_member(data: bytes) -> str:
    presentation = Presentation(io.BytesIO(data))
    return presentation.slide_masters[0].part.part_related_by(RT.THEME).partname.lstrip("/")


def build_pdf(pages: Sequence[str]) -> bytes:
    """Write a PDF with one page per entry; empty strings produce blank pages."""

    document = fitz.open()
    for text in pages:
        page = document.new_page()
        if text:
            page.insert_text((72, 72), text)
    data = document.tobytes()
    document.close()
    return data


def build_docx(paragraphs: Sequence[str], table: Optional[Sequence[Sequence[str]]] = None) -> bytes:
    document = Document()
    for paragraph in paragraphs:
        document.add_paragraph(paragraph)
    if table:
        grid = document.add_table(rows=len(table), cols=len(table[0]))
        for row_index, row in enumerate(table):
            for col_index, value in enumerate(row):
                grid.cell(row_index, col_index).text = value
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def build_png(width: int = 200, height: int = 200, *, noisy: bool = True) -> bytes:
    """Noisy images compress poorly, which keeps them above the decorative threshold."""

    if noisy:
        image = Image.frombytes("RGB", (width, height), os.urandom(width * height * 3))
    else:
        image = Image.new("RGB", (width, height), "white")
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def build_zip(members: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, payload in members.items():
            archive.writestr(name, payload)
    return buffer.getvalue()
