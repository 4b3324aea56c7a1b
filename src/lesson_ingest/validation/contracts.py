"""Pydantic contracts for the structured outputs feeding slide-plan synthesis."""
from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CallType(str, Enum):
    OCR_NORMALIZER = "ocr_normalizer"
    CHUNK_CLASSIFIER = "chunk_classifier"
    LESSON_FOCUS_EXTRACTOR = "lesson_focus_extractor"
    MERGE_OVERRIDE = "merge_override"
    STANDARDS_CANDIDATES = "standards_candidates"
    STANDARDS_ALIGNED_QUESTIONS = "standards_aligned_questions"
    SLIDE_PLAN = "slide_plan"
    JSON_REPAIR = "json_repair"


ALLOWED_SLIDE_TYPES: tuple[str, ...] = (
    "welcome",
    "learning_targets",
    "journey_nav",
    "songs_roadmap",
    "song",
    "ufli_intro",
    "lesson_day",
    "schedule",
    "phonemic_awareness",
    "phonemic_awareness_check",
    "visual_drill_intro",
    "visual_drill_check",
    "letter_drill",
    "auditory_drill",
    "auditory_drill_check",
    "blending_drill",
    "blending_board",
    "blending_check",
    "new_concept",
    "concept_contrast",
    "pattern_slide",
    "sound_card",
    "word_practice",
    "watch_me_read",
    "read_together",
    "spelling_routine",
    "show_what_you_know",
    "discussion_prompt",
    "turn_and_talk",
    "authors_purpose",
    "authors_purpose_review",
    "vocab_intro",
    "vocab_word",
    "book_cover",
    "story_page",
    "review_exit",
    "celebration",
    "reflection_checkoff",
)

Confidence = Annotated[float, Field(ge=0.0, le=1.0, strict=True)]
NonEmptyStr = Annotated[str, Field(min_length=1)]


class ContractModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class StandardBenchmark(ContractModel):
    """A standard the caller allows candidates to reference."""

    code: NonEmptyStr
    strand: Optional[str] = None
    description: Optional[str] = None
    grade_level: Optional[str] = None
    category: Optional[str] = None


class ConfidenceNote(ContractModel):
    field: str
    confidence: float
    reason: str = ""


class OcrNormalizerOutput(ContractModel):
    clean_text: str
    confidence: Confidence
    notes: list[str]


class SlideTypeHint(ContractModel):
    type: NonEmptyStr
    confidence: Optional[Confidence] = None


class ChunkClassification(ContractModel):
    chunk_id: NonEmptyStr
    tags: list[str]
    slide_type_hints: list[SlideTypeHint]
    confidence: Confidence


class ChunkClassifierOutput(ContractModel):
    chunk_classifications: list[ChunkClassification]


class LessonFocusExtractorOutput(ContractModel):
    lesson_focus: dict[str, Any]
    confidence_notes: list[ConfidenceNote]
    warnings: list[str]


class MergeOverrideOutput(ContractModel):
    normalized_lesson_inputs: dict[str, Any]
    confidence_notes: list[ConfidenceNote] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class StandardsCandidate(ContractModel):
    code: NonEmptyStr
    suggested_i_can: list[str] = Field(alias="suggestedICan")
    confidence: Confidence
    rationale: str = ""
    evidence: list[Any] = Field(default_factory=list)


class StandardsCandidatesOutput(ContractModel):
    candidates: list[StandardsCandidate]
    confidence_notes: list[ConfidenceNote] = Field(default_factory=list)


class AlignedQuestion(ContractModel):
    text: NonEmptyStr
    skill_tag: NonEmptyStr
    confidence: Confidence


class StandardsAlignedQuestionsOutput(ContractModel):
    questions: list[AlignedQuestion]
    confidence_notes: list[ConfidenceNote] = Field(default_factory=list)


class PlannedSlideContract(ContractModel):
    type: NonEmptyStr
    content: dict[str, Any]
    confidence: Confidence


class DeckPlanContract(ContractModel):
    template_id: NonEmptyStr
    theme_id: NonEmptyStr
    slides: list[PlannedSlideContract]


class SlidePlanOutput(ContractModel):
    deck_plan: DeckPlanContract
    confidence_notes: list[ConfidenceNote] = Field(default_factory=list)


class JsonRepairOutput(ContractModel):
    """Repaired payloads only share the envelope; the body is free-form."""


CONTRACTS: dict[CallType, type[ContractModel]] = {
    CallType.OCR_NORMALIZER: OcrNormalizerOutput,
    CallType.CHUNK_CLASSIFIER: ChunkClassifierOutput,
    CallType.LESSON_FOCUS_EXTRACTOR: LessonFocusExtractorOutput,
    CallType.MERGE_OVERRIDE: MergeOverrideOutput,
    CallType.STANDARDS_CANDIDATES: StandardsCandidatesOutput,
    CallType.STANDARDS_ALIGNED_QUESTIONS: StandardsAlignedQuestionsOutput,
    CallType.SLIDE_PLAN: SlidePlanOutput,
    CallType.JSON_REPAIR: JsonRepairOutput,
}
