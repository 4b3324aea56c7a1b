from __future__ import annotations

import pytest

from conftest import LESSON_THEME, build_png, build_pptx, corrupt_zip_member, master_theme_member
from lesson_ingest.errors import ExtractionError
from lesson_ingest.ingest.extractors import DeckExtractor
from lesson_ingest.ingest.models import ChunkSource
from lesson_ingest.ingest.slide_deck import SlideDeckParser


@pytest.fixture
def deck_bytes() -> bytes:
    return build_pptx(
        [
            {
                "texts": ["Welcome to Reading Time", "Today we will read a story"],
                "notes": "Greet the class warmly.",
                "background": "FFEECC",
            },
            {
                "texts": ["Sight Words", "the", "said"],
                "link": "https://example.com/sight-words",
                "image": build_png(8, 8, noisy=False),
            },
            {"texts": ["Great job everyone!"]},
        ],
        title="Unit 3 Lesson 2",
        theme=LESSON_THEME,
    )


def test_parse_recovers_slide_text_notes_and_links(deck_bytes: bytes) -> None:
    analysis = SlideDeckParser().parse(deck_bytes)

    assert analysis.total_slides == 3
    first, second, third = analysis.slides
    assert first.slide_number == 1
    assert first.title == "Welcome to Reading Time"
    assert first.content == ["Today we will read a story"]
    assert first.notes == "Greet the class warmly."
    assert first.background_color == "#FFEECC"

    assert second.title == "Sight Words"
    assert second.content == ["the", "said", "More resources"]
    assert second.hyperlinks == ["https://example.com/sight-words"]
    assert len(second.images) == 1
    assert second.images[0].id.startswith("rId")
    assert second.images[0].type == "png"
    assert second.images[0].data_url.startswith("data:image/png;base64,")

    assert third.notes == ""
    assert third.hyperlinks == []


def test_parse_reads_theme_and_metadata(deck_bytes: bytes) -> None:
    analysis = SlideDeckParser().parse(deck_bytes)

    assert analysis.metadata["title"] == "Unit 3 Lesson 2"
    assert analysis.metadata["author"] == "Ms. Rivera"
    assert analysis.theme.color_scheme == {"background1": "#000000", "accent1": "#4472C4"}
    assert analysis.theme.font_scheme == {"majorFont": "Calibri Light", "minorFont": "Calibri"}


def test_parse_estimates_lesson_sections(deck_bytes: bytes) -> None:
    analysis = SlideDeckParser().parse(deck_bytes)

    assert analysis.structure.has_intro_slides
    assert analysis.structure.has_content_slides
    assert analysis.structure.has_summary_slides
    assert analysis.structure.estimated_sections == ["Introduction", "Reading", "Sight Words", "Celebration"]
    assert [page.page_number for page in analysis.extracted_content.story_pages] == [1]


def test_slides_follow_deck_order_past_nine() -> None:
    data = build_pptx([{"texts": [f"Slide number {number}"]} for number in range(1, 12)])

    analysis = SlideDeckParser().parse(data)

    assert [slide.title for slide in analysis.slides][8:] == ["Slide number 9", "Slide number 10", "Slide number 11"]
    assert [slide.slide_number for slide in analysis.slides] == list(range(1, 12))


def test_parse_reads_text_inside_tables_and_groups() -> None:
    data = build_pptx(
        [
            {"table": [["Sight words: said was"]]},
            {"texts": ["Word Practice"], "table": [["cat", "", "mat"], ["", ""]], "group": ["Blend each word"]},
        ]
    )

    first, second = SlideDeckParser().parse(data).slides

    assert first.text == "Sight words: said was"
    assert second.title == "Word Practice"
    assert second.content == ["Blend each word", "cat | mat"]


def test_unreadable_slide_is_skipped_and_the_rest_survive() -> None:
    data = build_pptx(
        [{"texts": ["First slide text"]}, {"texts": ["Second slide text"]}, {"texts": ["Third slide text"]}],
        replace={"ppt/slides/slide2.xml": b"<p:sld><p:cSld>"},
    )

    analysis = SlideDeckParser().parse(data)

    assert [(slide.slide_number, slide.title) for slide in analysis.slides] == [
        (1, "First slide text"),
        (3, "Third slide text"),
    ]


def test_malformed_theme_falls_back_to_empty_schemes() -> None:
    data = build_pptx([{"texts": ["Welcome friends"]}], theme="<a:theme><a:themeElements>")

    analysis = SlideDeckParser().parse(data)

    assert analysis.theme.to_dict() == {"colorScheme": {}, "fontScheme": {}}
    assert analysis.slides[0].title == "Welcome friends"


def test_corrupted_metadata_and_theme_parts_fall_back_to_empty_values() -> None:
    data = build_pptx([{"texts": ["Welcome friends"]}], title="Unit 4", theme=LESSON_THEME)
    data = corrupt_zip_member(data, "docProps/core.xml", master_theme_member(data))

    analysis = SlideDeckParser().parse(data)

    assert analysis.metadata == {}
    assert analysis.theme.to_dict() == {"colorScheme": {}, "fontScheme": {}}
    assert analysis.slides[0].title == "Welcome friends"


def test_parse_rejects_non_zip_payloads() -> None:
    with pytest.raises(ExtractionError, match="Failed to parse PowerPoint file"):
        SlideDeckParser().parse(b"not a deck")


def test_deck_extractor_emits_one_unit_per_section(deck_bytes: bytes) -> None:
    progress: list[tuple[str, int]] = []

    outcome = DeckExtractor().extract(deck_bytes, item_name="deck.pptx", progress=lambda *args: progress.append(args))

    sections = [(unit.index, unit.section) for unit in outcome.units]
    assert sections == [
        (1, "slide_text"),
        (1, "speaker_notes"),
        (2, "slide_text"),
        (2, "hyperlinks"),
        (3, "slide_text"),
    ]
    assert all(unit.source is ChunkSource.STRUCTURAL_PARSE for unit in outcome.units)
    assert outcome.units[1].text == "[Speaker Notes]\nGreet the class warmly."
    assert outcome.units[3].text == "[Links]\nhttps://example.com/sight-words"
    assert outcome.confidence == 1.0
    assert outcome.total_pages == 3
    assert outcome.metadata["slideCount"] == 3
    assert "slides" not in outcome.metadata["deck"]
    assert progress == [("deck.pptx", 100)]
