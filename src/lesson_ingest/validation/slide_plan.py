"""Assembly of validated slide plans."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from ..config import LOW_CONFIDENCE_THRESHOLD
from .contracts import CallType, SlidePlanOutput
from .validators import StructuredOutputValidator, ValidationResult, decode_payload

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PlannedSlide:
    index: int
    type: str
    content: dict[str, Any]
    confidence: float
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "type": self.type,
            "content": self.content,
            "confidence": self.confidence,
            "warnings": list(self.warnings),
        }


@dataclass(slots=True)
class DeckPlan:
    template_id: str
    theme_id: str
    slides: list[PlannedSlide]

    def to_dict(self) -> dict[str, Any]:
        return {
            "templateId": self.template_id,
            "themeId": self.theme_id,
            "slides": [slide.to_dict() for slide in self.slides],
        }


@dataclass(slots=True)
class AssemblyResult:
    plan: Optional[DeckPlan]
    validation: ValidationResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan": self.plan.to_dict() if self.plan else None,
            "validation": self.validation.to_dict(),
        }


class SlidePlanAssembler:
    """Builds an ordered deck plan from a ``slide_plan`` payload.

    Invalid payloads are never repaired; the caller gets no plan and the
    validation errors instead.
    """

    def __init__(self, validator: Optional[StructuredOutputValidator] = None) -> None:
        self.validator = validator or StructuredOutputValidator()

    def assemble(self, payload: Any, *, allowed_slide_types: Optional[Iterable[str]] = None) -> AssemblyResult:
        validation = self.validator.validate(
            CallType.SLIDE_PLAN, payload, allowed_slide_types=allowed_slide_types
        )
        if not validation.valid:
            LOGGER.info("Rejected slide plan with %s errors", len(validation.errors))
            return AssemblyResult(plan=None, validation=validation)

        data, _ = decode_payload(payload)
        output = SlidePlanOutput.model_validate(data)
        slides = []
        for index, slide in enumerate(output.deck_plan.slides):
            warnings = []
            if slide.confidence < LOW_CONFIDENCE_THRESHOLD:
                warnings.append(f"Low confidence ({slide.confidence}) for slide {index} ({slide.type})")
            slides.append(
                PlannedSlide(
                    index=index,
                    type=slide.type,
                    content=dict(slide.content),
                    confidence=slide.confidence,
                    warnings=warnings,
                )
            )
        plan = DeckPlan(
            template_id=output.deck_plan.template_id,
            theme_id=output.deck_plan.theme_id,
            slides=slides,
        )
        LOGGER.info("Assembled slide plan with %s slides", len(slides))
        return AssemblyResult(plan=plan, validation=validation)
