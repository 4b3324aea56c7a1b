"""Structured-output validation and slide plan assembly."""

from .contracts import ALLOWED_SLIDE_TYPES, CallType, StandardBenchmark
from .slide_plan import AssemblyResult, DeckPlan, PlannedSlide, SlidePlanAssembler
from .validators import StructuredOutputValidator, ValidationResult, validate_llm_response

__all__ = [
    "ALLOWED_SLIDE_TYPES",
    "AssemblyResult",
    "CallType",
    "DeckPlan",
    "PlannedSlide",
    "SlidePlanAssembler",
    "StandardBenchmark",
    "StructuredOutputValidator",
    "ValidationResult",
    "validate_llm_response",
]
