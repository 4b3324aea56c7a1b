"""Closed-world validation of structured (LLM) outputs."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from ..config import LOW_CONFIDENCE_THRESHOLD
from .contracts import (
    ALLOWED_SLIDE_TYPES,
    CONTRACTS,
    CallType,
    ChunkClassifierOutput,
    ContractModel,
    LessonFocusExtractorOutput,
    OcrNormalizerOutput,
    SlidePlanOutput,
    StandardBenchmark,
    StandardsAlignedQuestionsOutput,
    StandardsCandidatesOutput,
)

LOGGER = logging.getLogger(__name__)

StandardsInput = Iterable[Union[str, StandardBenchmark, Mapping[str, Any]]]


@dataclass(slots=True)
class ValidationResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    @classmethod
    def failure(cls, *errors: str) -> "ValidationResult":
        return cls(errors=list(errors))

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "errors": list(self.errors), "warnings": list(self.warnings)}


@dataclass(slots=True)
class ValidationContext:
    """Caller-supplied allow-lists for one validation call."""

    slide_types: frozenset[str]
    standards: Optional[frozenset[str]] = None


def _format_location(location: Sequence[Union[str, int]]) -> str:
    path = ""
    for part in location:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path


def format_validation_errors(error: ValidationError) -> list[str]:
    """Render pydantic errors as ``path.to[3].field: message`` strings."""

    messages = []
    for item in error.errors():
        location = _format_location(item.get("loc", ()))
        messages.append(f"{location}: {item['msg']}" if location else item["msg"])
    return messages


def decode_payload(payload: Any) -> tuple[Any, Optional[str]]:
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8", errors="replace")
    if isinstance(payload, str):
        try:
            return json.loads(payload), None
        except json.JSONDecodeError as error:
            return None, f"Invalid JSON: {error}"
    return payload, None


def validate_envelope(data: Any) -> list[str]:
    if not isinstance(data, Mapping):
        return ["Response must be an object"]
    meta = data.get("meta")
    if not isinstance(meta, Mapping):
        return ["Missing required field: meta"]
    errors = []
    if not meta.get("request_id"):
        errors.append("Missing meta.request_id")
    if not meta.get("model_version"):
        errors.append("Missing meta.model_version")
    return errors


def confidence_note_warnings(data: Mapping[str, Any]) -> list[str]:
    """Warn for every ``confidenceNotes`` entry below the low-confidence threshold."""

    notes = data.get("confidenceNotes")
    if not isinstance(notes, list):
        return []
    warnings = []
    for note in notes:
        if not isinstance(note, Mapping):
            continue
        confidence = note.get("confidence")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            continue
        if _is_low(confidence):
            warnings.append(
                f"Low confidence ({confidence}) for field: {note.get('field')} - {note.get('reason', '')}"
            )
    return warnings


def _is_low(confidence: float) -> bool:
    return confidence < LOW_CONFIDENCE_THRESHOLD


def _parse(model: type[ContractModel], data: Mapping[str, Any]) -> tuple[Optional[ContractModel], list[str]]:
    try:
        return model.model_validate(data), []
    except ValidationError as error:
        return None, format_validation_errors(error)


def _check_ocr_normalizer(output: OcrNormalizerOutput, context: ValidationContext, result: ValidationResult) -> None:
    if _is_low(output.confidence):
        result.warnings.append(f"Low OCR confidence: {output.confidence}")


def _check_chunk_classifier(output: ChunkClassifierOutput, context: ValidationContext, result: ValidationResult) -> None:
    for idx, chunk in enumerate(output.chunk_classifications):
        for hint_idx, hint in enumerate(chunk.slide_type_hints):
            if hint.type not in context.slide_types:
                result.errors.append(
                    f"Invalid slide type at chunkClassifications[{idx}].slideTypeHints[{hint_idx}]: {hint.type}"
                )
        if _is_low(chunk.confidence):
            result.warnings.append(f"Low confidence for chunk {chunk.chunk_id}: {chunk.confidence}")


def _check_lesson_focus(output: LessonFocusExtractorOutput, context: ValidationContext, result: ValidationResult) -> None:
    if not output.lesson_focus:
        result.errors.append("Missing lessonFocus")


def _check_standards_candidates(
    output: StandardsCandidatesOutput, context: ValidationContext, result: ValidationResult
) -> None:
    allowed = context.standards or frozenset()
    if not 1 <= len(output.candidates) <= 3:
        result.errors.append("Must have 1-3 candidates")
    for idx, candidate in enumerate(output.candidates):
        if candidate.code not in allowed:
            result.errors.append(f"Invalid standards code at candidates[{idx}]: {candidate.code}")
        if not candidate.suggested_i_can:
            result.errors.append(f"candidates[{idx}] must have at least one suggestedICan statement")
        if _is_low(candidate.confidence):
            result.warnings.append(f"Low confidence for standard {candidate.code}: {candidate.confidence}")


def _check_aligned_questions(
    output: StandardsAlignedQuestionsOutput, context: ValidationContext, result: ValidationResult
) -> None:
    for idx, question in enumerate(output.questions):
        if _is_low(question.confidence):
            result.warnings.append(f"Low confidence for question {idx} ({question.skill_tag}): {question.confidence}")


def _check_slide_plan(output: SlidePlanOutput, context: ValidationContext, result: ValidationResult) -> None:
    slides = output.deck_plan.slides
    if len(slides) < 10:
        result.warnings.append("Deck has fewer than 10 slides")
    for idx, slide in enumerate(slides):
        if slide.type not in context.slide_types:
            result.errors.append(f"Invalid slide type at slides[{idx}]: {slide.type}")
        if _is_low(slide.confidence):
            result.warnings.append(f"Low confidence for slide {idx} ({slide.type}): {slide.confidence}")


def _check_nothing(output: ContractModel, context: ValidationContext, result: ValidationResult) -> None:
    return None


_CHECKS: dict[CallType, Callable[[Any, ValidationContext, ValidationResult], None]] = {
    CallType.OCR_NORMALIZER: _check_ocr_normalizer,
    CallType.CHUNK_CLASSIFIER: _check_chunk_classifier,
    CallType.LESSON_FOCUS_EXTRACTOR: _check_lesson_focus,
    CallType.MERGE_OVERRIDE: _check_nothing,
    CallType.STANDARDS_CANDIDATES: _check_standards_candidates,
    CallType.STANDARDS_ALIGNED_QUESTIONS: _check_aligned_questions,
    CallType.SLIDE_PLAN: _check_slide_plan,
    CallType.JSON_REPAIR: _check_nothing,
}


def standard_codes(allowed_standards: StandardsInput) -> frozenset[str]:
    codes = set()
    for item in allowed_standards:
        if isinstance(item, str):
            codes.add(item)
        elif isinstance(item, StandardBenchmark):
            codes.add(item.code)
        elif isinstance(item, Mapping) and item.get("code"):
            codes.add(str(item["code"]))
    return frozenset(codes)


class StructuredOutputValidator:
    """Dispatches a payload to the contract registered for its call type.

    Checks run in a fixed order: call preconditions, the shared ``meta``
    envelope, the per-type schema, closed vocabularies and finally the
    confidence warnings. ``validate`` never raises.
    """

    def __init__(self, allowed_slide_types: Optional[Iterable[str]] = None) -> None:
        if allowed_slide_types is None:
            allowed_slide_types = ALLOWED_SLIDE_TYPES
        self.allowed_slide_types = frozenset(allowed_slide_types)

    def validate(
        self,
        call_type: Union[CallType, str],
        payload: Any,
        *,
        allowed_standards: Optional[StandardsInput] = None,
        allowed_slide_types: Optional[Iterable[str]] = None,
        repair_of: Union[CallType, str, None] = None,
    ) -> ValidationResult:
        try:
            kind = CallType(call_type)
        except ValueError:
            return ValidationResult.failure(f"Unknown LLM call type: {call_type}")

        context = ValidationContext(
            slide_types=frozenset(allowed_slide_types) if allowed_slide_types is not None else self.allowed_slide_types,
            standards=standard_codes(allowed_standards) if allowed_standards is not None else None,
        )

        target = kind
        if kind is CallType.JSON_REPAIR and repair_of is not None:
            try:
                target = CallType(repair_of)
            except ValueError:
                return ValidationResult.failure(f"Unknown LLM call type: {repair_of}")

        if target is CallType.STANDARDS_CANDIDATES and context.standards is None:
            return ValidationResult.failure("allowedStandards required for validation")

        data, decode_error = decode_payload(payload)
        if decode_error:
            return ValidationResult.failure(decode_error)

        envelope_errors = validate_envelope(data)
        if envelope_errors:
            return ValidationResult(errors=envelope_errors)

        output, schema_errors = _parse(CONTRACTS[target], data)
        if output is None:
            return ValidationResult(errors=schema_errors)

        result = ValidationResult()
        _CHECKS[target](output, context, result)
        result.warnings.extend(confidence_note_warnings(data))
        LOGGER.debug(
            "Validated %s output: %s errors, %s warnings", target.value, len(result.errors), len(result.warnings)
        )
        return result


def validate_llm_response(
    call_type: Union[CallType, str],
    payload: Any,
    *,
    allowed_standards: Optional[StandardsInput] = None,
    allowed_slide_types: Optional[Iterable[str]] = None,
    repair_of: Union[CallType, str, None] = None,
) -> ValidationResult:
    return StructuredOutputValidator().validate(
        call_type,
        payload,
        allowed_standards=allowed_standards,
        allowed_slide_types=allowed_slide_types,
        repair_of=repair_of,
    )
