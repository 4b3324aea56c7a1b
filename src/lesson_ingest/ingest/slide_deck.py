"""Structural parsing of slide-deck (.pptx) containers with python-pptx."""
from __future__ import annotations

import base64
import io
import logging
import re
import xml.etree.ElementTree as ET
import zipfile
import zlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterator, Optional

from lxml import etree
from pptx import Presentation
from pptx.exc import PackageNotFoundError
from pptx.opc.constants import RELATIONSHIP_TYPE as RT
from pptx.shapes.group import GroupShape
from pptx.shapes.picture import Picture

from ..errors import ExtractionError

LOGGER = logging.getLogger(__name__)

NS = {"a": "http://schemas.openxmlformats.org/drawingml/2006/main"}

_PML_DECL = (
    'xmlns:a="http://schemas.openxmlformats.org/drawingml/2006/main" '
    'xmlns:p="http://schemas.openxmlformats.org/presentationml/2006/main"'
)

# Unreadable parts are swapped for these before the package is opened.
_STAND_INS: tuple[tuple[re.Pattern[str], bytes], ...] = (
    (
        re.compile(r"^ppt/slides/slide\d+\.xml$"),
        f"<p:sld {_PML_DECL}><p:cSld><p:spTree/></p:cSld></p:sld>".encode(),
    ),
    (
        re.compile(r"^ppt/notesSlides/notesSlide\d+\.xml$"),
        f"<p:notes {_PML_DECL}><p:cSld><p:spTree/></p:cSld></p:notes>".encode(),
    ),
    (
        re.compile(r"^ppt/theme/theme\d+\.xml$"),
        f'<a:theme xmlns:a="{NS["a"]}" name=""/>'.encode(),
    ),
    (
        re.compile(r"^docProps/core\.xml$"),
        b'<cp:coreProperties xmlns:cp="http://schemas.openxmlformats.org/package/2006/metadata/core-properties"/>',
    ),
)

_COLOR_MAP = {
    "dk1": "background1",
    "lt1": "background2",
    "dk2": "text1",
    "lt2": "text2",
    "accent1": "accent1",
    "accent2": "accent2",
    "accent3": "accent3",
    "accent4": "accent4",
    "accent5": "accent5",
    "accent6": "accent6",
}

_SECTION_PATTERNS: tuple[tuple[str, str, re.Pattern[str]], ...] = (
    ("intro", "Introduction", re.compile(r"welcome|introduction|agenda|objectives|learning goals|today we will")),
    ("content", "UFLI Phonics", re.compile(r"ufli|phonics|phonemic awareness|visual drill|auditory drill|blending|sound")),
    ("content", "Sight Words", re.compile(r"sight word|high frequency|tricky word")),
    ("content", "Reading", re.compile(r"savvas|reading|story|vocabulary|comprehension|book")),
    ("summary", "Celebration", re.compile(r"celebration|summary|review|great job|you did it|wonderful work")),
)

_QUESTION_RE = re.compile(r"question|discuss|think about|what do you think")
_STORY_RE = re.compile(r"story|page|chapter")

TITLE_MIN_LENGTH = 5


@dataclass(slots=True)
class SlideImage:
    id: str
    data_url: str
    type: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "dataUrl": self.data_url, "type": self.type}


@dataclass(slots=True)
class Slide:
    slide_number: int
    title: Optional[str] = None
    content: list[str] = field(default_factory=list)
    images: list[SlideImage] = field(default_factory=list)
    background_color: Optional[str] = None
    notes: str = ""
    hyperlinks: list[str] = field(default_factory=list)
    raw_xml: Optional[str] = None

    @property
    def text(self) -> str:
        parts = [self.title] if self.title else []
        parts.extend(self.content)
        return "\n".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "slideNumber": self.slide_number,
            "title": self.title,
            "content": list(self.content),
            "images": [image.to_dict() for image in self.images],
            "backgroundColor": self.background_color,
            "notes": self.notes,
            "hyperlinks": list(self.hyperlinks),
            "rawXml": self.raw_xml,
        }


@dataclass(slots=True)
class DeckTheme:
    color_scheme: dict[str, str] = field(default_factory=dict)
    font_scheme: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"colorScheme": dict(self.color_scheme), "fontScheme": dict(self.font_scheme)}


@dataclass(slots=True)
class DeckStructure:
    has_intro_slides: bool = False
    has_content_slides: bool = False
    has_summary_slides: bool = False
    estimated_sections: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "hasIntroSlides": self.has_intro_slides,
            "hasContentSlides": self.has_content_slides,
            "hasSummarySlides": self.has_summary_slides,
            "estimatedSections": list(self.estimated_sections),
        }


@dataclass(slots=True)
class StoryPage:
    page_number: int
    text: str
    has_image: bool

    def to_dict(self) -> dict[str, Any]:
        return {"pageNumber": self.page_number, "text": self.text, "hasImage": self.has_image}


@dataclass(slots=True)
class ExtractedContent:
    discussion_questions: list[str] = field(default_factory=list)
    story_pages: list[StoryPage] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "discussionQuestions": list(self.discussion_questions),
            "storyPages": [page.to_dict() for page in self.story_pages],
        }


@dataclass(slots=True)
class SlideDeckAnalysis:
    """Everything recovered from one slide-deck container."""

    slides: list[Slide]
    theme: DeckTheme
    metadata: dict[str, str]
    structure: DeckStructure
    extracted_content: ExtractedContent

    @property
    def total_slides(self) -> int:
        return len(self.slides)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalSlides": self.total_slides,
            "slides": [slide.to_dict() for slide in self.slides],
            "theme": self.theme.to_dict(),
            "metadata": dict(self.metadata),
            "structure": self.structure.to_dict(),
            "extractedContent": self.extracted_content.to_dict(),
        }


def _stand_in_for(name: str) -> Optional[bytes]:
    for pattern, stand_in in _STAND_INS:
        if pattern.match(name):
            return stand_in
    return None


def _screen_parts(data: bytes) -> tuple[bytes, set[str]]:
    """Replace unreadable slide, notes, theme and metadata parts with empty stand-ins.

    python-pptx parses every part when the package is opened, so a single
    broken slide would otherwise abort the whole deck. Returns the container
    to open and the member names that were replaced.
    """

    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as error:
        raise ExtractionError("Failed to parse PowerPoint file", cause=error) from error

    with archive:
        replaced: dict[str, bytes] = {}
        for name in archive.namelist():
            stand_in = _stand_in_for(name)
            if stand_in is None:
                continue
            try:
                ET.fromstring(archive.read(name))
            except (ET.ParseError, zipfile.BadZipFile, zlib.error) as error:
                LOGGER.warning("Replacing unreadable deck part %s: %s", name, error)
                replaced[name] = stand_in

        if not replaced:
            return data, set()

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as target:
            for info in archive.infolist():
                payload = replaced.get(info.filename)
                target.writestr(info.filename, payload if payload is not None else archive.read(info))
    return buffer.getvalue(), set(replaced)


def _shape_texts(shapes) -> Iterator[str]:
    """Yield one text block per text-bearing shape, descending into groups; tables yield one line per row."""

    for shape in shapes:
        if isinstance(shape, GroupShape):
            yield from _shape_texts(shape.shapes)
        elif shape.has_table:
            for row in shape.table.rows:
                cells = (" ".join(cell.text_frame.text.split()) for cell in row.cells)
                line = " | ".join(cell for cell in cells if cell)
                if line:
                    yield line
        elif shape.has_text_frame:
            text = " ".join(shape.text_frame.text.split())
            if text:
                yield text


def _pictures(shapes) -> Iterator[Picture]:
    for shape in shapes:
        if isinstance(shape, GroupShape):
            yield from _pictures(shape.shapes)
        elif isinstance(shape, Picture):
            yield shape


def _hyperlinks(pptx_slide) -> list[str]:
    referenced = set(pptx_slide.element.xpath(".//@r:id"))
    links = []
    for rel_id, rel in pptx_slide.part.rels.items():
        if rel.reltype != RT.HYPERLINK or not rel.is_external or rel_id not in referenced:
            continue
        if rel.target_ref.startswith(("http://", "https://")):
            links.append(rel.target_ref)
    return links


class SlideDeckParser:
    """Parses a slide deck into a :class:`SlideDeckAnalysis`.

    A slide that cannot be read is logged and skipped; unreadable theme or
    metadata parts fall back to empty values.
    """

    def parse(self, data: bytes) -> SlideDeckAnalysis:
        data, replaced = _screen_parts(data)
        try:
            presentation = Presentation(io.BytesIO(data))
        except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError, etree.XMLSyntaxError) as error:
            raise ExtractionError("Failed to parse PowerPoint file", cause=error) from error

        slides = self._read_slides(presentation, replaced)
        return SlideDeckAnalysis(
            slides=slides,
            theme=self._read_theme(presentation),
            metadata=self._read_metadata(presentation),
            structure=analyze_structure(slides),
            extracted_content=extract_content(slides),
        )

    def _read_metadata(self, presentation) -> dict[str, str]:
        try:
            properties = presentation.core_properties
            values = {
                "title": properties.title,
                "author": properties.author,
                "created": properties.created,
                "modified": properties.modified,
            }
        except (KeyError, ValueError) as error:
            LOGGER.warning("Could not extract deck metadata: %s", error)
            return {}

        metadata = {}
        for key, value in values.items():
            if isinstance(value, datetime):
                value = value.isoformat()
            if value and str(value).strip():
                metadata[key] = str(value).strip()
        return metadata

    def _read_theme(self, presentation) -> DeckTheme:
        try:
            theme_part = presentation.slide_masters[0].part.part_related_by(RT.THEME)
            root = ET.fromstring(theme_part.blob)
        except (IndexError, KeyError, ET.ParseError) as error:
            LOGGER.warning("Could not extract deck theme: %s", error)
            return DeckTheme()

        theme = DeckTheme()
        scheme = root.find(".//a:clrScheme", NS)
        if scheme is not None:
            for xml_key, color_key in _COLOR_MAP.items():
                element = scheme.find(f"a:{xml_key}", NS)
                if element is None:
                    continue
                srgb = element.find(".//a:srgbClr", NS)
                if srgb is not None and srgb.get("val"):
                    theme.color_scheme[color_key] = f"#{srgb.get('val')}"
                    continue
                system = element.find(".//a:sysClr", NS)
                if system is not None and system.get("lastClr"):
                    theme.color_scheme[color_key] = f"#{system.get('lastClr')}"

        fonts = root.find(".//a:fontScheme", NS)
        if fonts is not None:
            for key in ("majorFont", "minorFont"):
                latin = fonts.find(f"a:{key}/a:latin", NS)
                if latin is not None and latin.get("typeface"):
                    theme.font_scheme[key] = latin.get("typeface")
        return theme

    def _read_slides(self, presentation, replaced: set[str]) -> list[Slide]:
        slides = []
        for position, pptx_slide in enumerate(presentation.slides, start=1):
            part_name = pptx_slide.part.partname.lstrip("/")
            if part_name in replaced:
                LOGGER.warning("Skipping unreadable slide %s (%s)", position, part_name)
                continue
            try:
                slides.append(self._read_slide(pptx_slide, position))
            except (KeyError, ValueError) as error:
                LOGGER.warning("Could not parse slide %s (%s): %s", position, part_name, error)
        return slides

    def _read_slide(self, pptx_slide, slide_number: int) -> Slide:
        slide = Slide(slide_number=slide_number, raw_xml=pptx_slide.part.blob.decode("utf-8", errors="replace"))

        for text in _shape_texts(pptx_slide.shapes):
            if slide.title is None and len(text) > TITLE_MIN_LENGTH:
                slide.title = text
            else:
                slide.content.append(text)

        for picture in _pictures(pptx_slide.shapes):
            try:
                image = picture.image
            except (KeyError, ValueError) as error:
                LOGGER.debug("Skipping unresolved picture on slide %s: %s", slide_number, error)
                continue
            encoded = base64.b64encode(image.blob).decode("ascii")
            slide.images.append(
                SlideImage(
                    id=picture.element.blip_rId,
                    data_url=f"data:{image.content_type};base64,{encoded}",
                    type=image.ext,
                )
            )

        slide.hyperlinks = _hyperlinks(pptx_slide)

        fills = pptx_slide.element.xpath(".//a:solidFill/a:srgbClr/@val")
        if fills:
            slide.background_color = f"#{fills[0]}"

        if pptx_slide.has_notes_slide:
            frame = pptx_slide.notes_slide.notes_text_frame
            if frame is not None:
                slide.notes = "\n".join(line.strip() for line in frame.text.splitlines() if line.strip())
        return slide


def analyze_structure(slides: list[Slide]) -> DeckStructure:
    """Classify slides into coarse lesson sections using keyword patterns."""

    structure = DeckStructure()
    for slide in slides:
        text = f"{slide.title or ''} {' '.join(slide.content)}".lower()
        for role, section, pattern in _SECTION_PATTERNS:
            if not pattern.search(text):
                continue
            if role == "intro":
                structure.has_intro_slides = True
            elif role == "content":
                structure.has_content_slides = True
            else:
                structure.has_summary_slides = True
            if section not in structure.estimated_sections:
                structure.estimated_sections.append(section)
    return structure


def extract_content(slides: list[Slide]) -> ExtractedContent:
    content = ExtractedContent()
    for slide in slides:
        text = f"{slide.title or ''} {' '.join(slide.content)}".lower()
        if _QUESTION_RE.search(text):
            content.discussion_questions.extend(slide.content)
        if _STORY_RE.search(text):
            content.story_pages.append(
                StoryPage(page_number=slide.slide_number, text=" ".join(slide.content), has_image=bool(slide.images))
            )
    return content
