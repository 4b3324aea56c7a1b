"""API router exposing reference ingestion and structured-output validation."""
from __future__ import annotations

from typing import Any, Optional, Union

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from lesson_ingest.errors import PersistenceError
from lesson_ingest.ingest.models import ExtractionResult
from lesson_ingest.services.extraction import ExtractionService, LessonIngestResult, get_extraction_service
from lesson_ingest.validation import CallType

router = APIRouter(tags=["extraction"])


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChunkModel(CamelModel):
    chunk_id: str
    file_id: str
    lesson_id: str
    page_or_slide: int
    source: str
    text: str
    metadata: dict[str, Any]


class ExtractionResultModel(CamelModel):
    file_id: str
    lesson_id: str
    chunks: list[ChunkModel]
    chunk_count: int
    extracted_at: Optional[str]
    status: str
    extraction_time_ms: float
    error: Optional[str] = None
    metadata: dict[str, Any]


class IngestResponse(CamelModel):
    """Response body returned from the reference upload endpoint."""

    lesson_id: str
    results: list[ExtractionResultModel]
    chunk_count: int
    skipped: list[str]
    errors: list[str]
    duration_seconds: float


class ExtractionListResponse(CamelModel):
    lesson_id: str
    results: list[ExtractionResultModel]


class ValidateRequest(CamelModel):
    """Request body accepted by the validation endpoint."""

    payload: Any = Field(..., description="Decoded structured output or its raw JSON text.")
    allowed_standards: Optional[list[Union[str, dict[str, Any]]]] = None
    allowed_slide_types: Optional[list[str]] = None
    repair_of: Optional[str] = Field(None, description="Call type whose contract a json_repair payload must satisfy.")


class ValidationResponse(BaseModel):
    valid: bool
    errors: list[str]
    warnings: list[str]


class SlidePlanRequest(CamelModel):
    payload: Any
    allowed_slide_types: Optional[list[str]] = None


class SlidePlanResponse(BaseModel):
    plan: Optional[dict[str, Any]]
    validation: ValidationResponse


def _serialise_result(result: ExtractionResult) -> ExtractionResultModel:
    return ExtractionResultModel.model_validate(result.to_dict())


def _serialise_ingest(outcome: LessonIngestResult) -> IngestResponse:
    return IngestResponse(
        lesson_id=outcome.lesson_id,
        results=[_serialise_result(result) for result in outcome.results],
        chunk_count=outcome.chunk_count,
        skipped=outcome.skipped,
        errors=outcome.errors,
        duration_seconds=outcome.duration_seconds,
    )


@router.post("/lessons/{lesson_id}/references", response_model=IngestResponse, response_model_by_alias=True)
async def upload_references(
    lesson_id: str,
    files: list[UploadFile] = File(...),
    category: str = Form("reference"),
    service: ExtractionService = Depends(get_extraction_service),
) -> IngestResponse:
    """Extract reference chunks from one or more uploaded files."""

    if not files:
        raise HTTPException(status_code=400, detail="At least one file must be provided")

    try:
        outcome = await service.ingest(lesson_id, files, category=category)
    except PersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return _serialise_ingest(outcome)


@router.get("/lessons/{lesson_id}/extractions", response_model=ExtractionListResponse, response_model_by_alias=True)
def list_extractions(
    lesson_id: str,
    service: ExtractionService = Depends(get_extraction_service),
) -> ExtractionListResponse:
    results = service.list_extractions(lesson_id)
    return ExtractionListResponse(lesson_id=lesson_id, results=[_serialise_result(result) for result in results])


@router.post("/validate/{call_type}", response_model=ValidationResponse)
def validate_output(
    call_type: str,
    request: ValidateRequest,
    service: ExtractionService = Depends(get_extraction_service),
) -> ValidationResponse:
    """Validate a structured output against the contract of ``call_type``."""

    if call_type not in {item.value for item in CallType}:
        raise HTTPException(status_code=404, detail=f"Unknown LLM call type: {call_type}")

    result = service.validate(
        call_type,
        request.payload,
        allowed_standards=request.allowed_standards,
        allowed_slide_types=request.allowed_slide_types,
        repair_of=request.repair_of,
    )
    return ValidationResponse(**result.to_dict())


@router.post("/slide-plans", response_model=SlidePlanResponse)
def assemble_slide_plan(
    request: SlidePlanRequest,
    service: ExtractionService = Depends(get_extraction_service),
) -> Any:
    """Assemble a deck plan; invalid payloads are rejected with their validation errors."""

    outcome = service.assemble_slide_plan(request.payload, allowed_slide_types=request.allowed_slide_types)
    if outcome.plan is None:
        return JSONResponse(status_code=422, content=outcome.to_dict())
    return SlidePlanResponse(**outcome.to_dict())
