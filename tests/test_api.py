from __future__ import annotations

from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from conftest import FakeEngine, build_pptx
from lesson_ingest.errors import PersistenceError
from lesson_ingest.main import app
from lesson_ingest.services.extraction import ExtractionService, get_extraction_service

META = {"request_id": "req-1", "model_version": "planner-2024-06"}


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def service(make_router, engine: FakeEngine) -> ExtractionService:
    return ExtractionService(router=make_router(engine))


@pytest.fixture
def client(service: ExtractionService) -> Iterator[TestClient]:
    app.dependency_overrides[get_extraction_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_read_root_returns_ok(client: TestClient) -> None:
    response = client.get("/")

    assert response.status_code == 200
    assert response.text == "ok"


def test_healthz_returns_ok(client: TestClient) -> None:
    assert client.get("/healthz").text == "ok"


def test_ocr_health_reports_engine_state(client: TestClient) -> None:
    response = client.get("/healthz/ocr")

    assert response.status_code == 200
    assert response.json() == {"engine_initialized": False, "active_jobs": 0}


def test_upload_references_returns_chunks(client: TestClient) -> None:
    deck = build_pptx([{"texts": ["Learning Targets", "I can blend sounds"]}])
    files = [
        ("files", ("deck.pptx", deck, "application/vnd.openxmlformats-officedocument.presentationml.presentation")),
        ("files", ("notes.txt", b"Remember to model each sound.", "text/plain")),
    ]

    response = client.post("/lessons/lesson-1/references", files=files, data={"category": "phonics"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["lessonId"] == "lesson-1"
    assert payload["chunkCount"] == 2
    assert [result["status"] for result in payload["results"]] == ["complete", "complete"]
    first = payload["results"][0]
    assert first["chunkCount"] == len(first["chunks"]) == 1
    assert first["chunks"][0]["source"] == "structural_parse"
    assert first["chunks"][0]["pageOrSlide"] == 1
    assert first["metadata"]["category"] == "phonics"

    listed = client.get("/lessons/lesson-1/extractions").json()
    assert listed["lessonId"] == "lesson-1"
    assert len(listed["results"]) == 2


def test_upload_reports_rejected_files_per_result(client: TestClient) -> None:
    files = {"files": ("lesson.doc", b"\xd0\xcf\x11\xe0", "application/msword")}

    response = client.post("/lessons/lesson-1/references", files=files)

    assert response.status_code == 200
    (result,) = response.json()["results"]
    assert result["status"] == "error"
    assert "convert to .docx" in result["error"]


def test_upload_without_files_is_rejected(client: TestClient) -> None:
    response = client.post("/lessons/lesson-1/references", data={"category": "reference"})

    assert response.status_code in (400, 422)


def test_persistence_failure_returns_503(client: TestClient, service: ExtractionService, monkeypatch) -> None:
    def fail(result) -> None:
        raise PersistenceError("store offline")

    monkeypatch.setattr(service.router.store, "save", fail)

    response = client.post("/lessons/lesson-1/references", files={"files": ("a.txt", b"text", "text/plain")})

    assert response.status_code == 503
    assert response.json()["detail"] == "store offline"


def test_validate_endpoint_returns_errors_and_warnings(client: TestClient) -> None:
    body = {
        "payload": {"meta": META, "cleanText": "A cat", "confidence": 0.5, "notes": []},
    }

    response = client.post("/validate/ocr_normalizer", json=body)

    assert response.status_code == 200
    assert response.json() == {"valid": True, "errors": [], "warnings": ["Low OCR confidence: 0.5"]}


def test_validate_endpoint_uses_allowed_standards(client: TestClient) -> None:
    body = {
        "payload": {"meta": META, "candidates": [{"code": "X.1", "suggestedICan": ["I can"], "confidence": 0.9}]},
        "allowedStandards": [{"code": "RF.1.2", "description": "Phonological awareness"}],
    }

    response = client.post("/validate/standards_candidates", json=body)

    assert response.json()["errors"] == ["Invalid standards code at candidates[0]: X.1"]


def test_validate_unknown_call_type_returns_404(client: TestClient) -> None:
    response = client.post("/validate/poem_writer", json={"payload": {}})

    assert response.status_code == 404


def test_slide_plan_endpoint(client: TestClient) -> None:
    slides = [{"type": "welcome", "content": {}, "confidence": 0.9}]
    body = {"payload": {"meta": META, "deckPlan": {"templateId": "t", "themeId": "th", "slides": slides}}}

    accepted = client.post("/slide-plans", json=body)
    slides.append({"type": "unknown_type", "content": {}, "confidence": 0.9})
    rejected = client.post("/slide-plans", json=body)

    assert accepted.status_code == 200
    assert accepted.json()["plan"]["slides"][0]["type"] == "welcome"
    assert rejected.status_code == 422
    assert rejected.json()["plan"] is None
    assert rejected.json()["validation"]["errors"] == ["Invalid slide type at slides[1]: unknown_type"]
