from __future__ import annotations

import pytest

from lesson_ingest.errors import InvalidTransitionError
from lesson_ingest.ingest.models import (
    ChunkSource,
    ExtractionResult,
    ExtractionStatus,
    ReferenceChunk,
    is_low_confidence,
    make_chunk_id,
)


def _chunk(index: int) -> ReferenceChunk:
    return ReferenceChunk(
        chunk_id=make_chunk_id("file-a", ChunkSource.PDF_TEXT, index),
        file_id="file-a",
        lesson_id="lesson-1",
        page_or_slide=index,
        source=ChunkSource.PDF_TEXT,
        text=f"page {index}",
    )


def test_result_moves_through_lifecycle() -> None:
    result = ExtractionResult(file_id="file-a", lesson_id="lesson-1")
    assert result.status is ExtractionStatus.PENDING
    assert not result.is_terminal

    result.start()
    result.complete([_chunk(1), _chunk(2)], extraction_time_ms=12.5, metadata={"format": "pdf"})

    assert result.status is ExtractionStatus.COMPLETE
    assert result.is_terminal
    assert result.chunk_count == 2
    assert result.extracted_at is not None and result.extracted_at.endswith("Z")
    assert result.metadata == {"format": "pdf"}


def test_pending_result_can_fail_directly() -> None:
    result = ExtractionResult(file_id="file-a", lesson_id="lesson-1")

    result.fail("Unsupported file format: a.xyz")

    assert result.status is ExtractionStatus.ERROR
    assert result.to_dict()["error"] == "Unsupported file format: a.xyz"
    assert result.chunk_count == 0


@pytest.mark.parametrize(
    "steps",
    [
        ("complete",),
        ("start", "start"),
        ("start", "complete", "fail"),
        ("fail", "start"),
    ],
)
def test_invalid_transitions_raise(steps: tuple[str, ...]) -> None:
    result = ExtractionResult(file_id="file-a", lesson_id="lesson-1")
    actions = {
        "start": result.start,
        "complete": lambda: result.complete([], extraction_time_ms=0.0),
        "fail": lambda: result.fail("boom"),
    }

    with pytest.raises(InvalidTransitionError):
        for step in steps:
            actions[step]()


def test_to_dict_uses_camel_case_keys() -> None:
    result = ExtractionResult(file_id="file-a", lesson_id="lesson-1")
    result.start()
    result.complete([_chunk(1)], extraction_time_ms=1.0)

    payload = result.to_dict()

    assert payload["chunkCount"] == len(payload["chunks"]) == 1
    assert payload["chunks"][0] == {
        "chunkId": "file-a-pdf_text-1",
        "fileId": "file-a",
        "lessonId": "lesson-1",
        "pageOrSlide": 1,
        "source": "pdf_text",
        "text": "page 1",
        "metadata": {},
    }
    assert "error" not in payload


def test_chunk_round_trips_through_dict() -> None:
    chunk = _chunk(3)

    assert ReferenceChunk.from_dict(chunk.to_dict()) == chunk


@pytest.mark.parametrize(("confidence", "expected"), [(0.69, True), (0.7, False), (1.0, False), (0.0, True)])
def test_low_confidence_threshold(confidence: float, expected: bool) -> None:
    assert is_low_confidence(confidence) is expected
