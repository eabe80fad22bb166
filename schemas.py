"""
Validation schemas for every payload that crosses the service boundary:
AI service responses, the onboarding form, and admin question submissions.

Nothing downstream reads external JSON that has not passed through here.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional, Type, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from errors import ValidationError
from models import (
    AnalysisReport,
    Gender,
    OPTION_LABELS,
    Question,
    QuestionCategory,
    TraitScore,
    UserProfile,
)

SchemaT = TypeVar('SchemaT', bound=BaseModel)


def _non_blank(value: str) -> str:
    value = value.strip() if isinstance(value, str) else value
    if not value:
        raise ValueError('must not be blank')
    return value


# ============================================================================
# QUESTIONS
# ============================================================================

class OptionsPayload(BaseModel):
    A: str
    B: str
    C: str
    D: str
    E: Optional[str] = None

    check_not_blank = field_validator('A', 'B', 'C', 'D')(_non_blank)

    def as_mapping(self) -> Dict[str, str]:
        data = self.model_dump()
        return {label: data[label] for label in OPTION_LABELS if data.get(label)}


class GeneratedQuestionPayload(BaseModel):
    """One question as returned by the generation model (no id)"""
    text: str
    options: OptionsPayload

    check_text = field_validator('text')(_non_blank)


class GeneratedQuestionsPayload(BaseModel):
    questions: List[GeneratedQuestionPayload]


class QuestionPayload(GeneratedQuestionPayload):
    """Question submitted to the custom bank"""
    category: str

    @field_validator('category')
    @classmethod
    def _known_category(cls, value: str) -> str:
        return QuestionCategory.parse(value).value


# ============================================================================
# SPEECH
# ============================================================================

class SpokenSelectionPayload(BaseModel):
    selection: str

    @field_validator('selection')
    @classmethod
    def _known_selection(cls, value: str) -> str:
        value = value.strip().upper()
        if value not in OPTION_LABELS and value != 'UNKNOWN':
            raise ValueError(f"unexpected selection {value!r}")
        return value


# ============================================================================
# ANALYSIS REPORT
# ============================================================================

class TraitPayload(BaseModel):
    trait: str
    score: float = Field(ge=0, le=100)
    description: str = ''

    check_trait = field_validator('trait')(_non_blank)


class AnalysisReportPayload(BaseModel):
    summary: str
    traits: List[TraitPayload]
    psychologicalArchetype: str
    strengths: List[str]
    weaknesses: List[str]
    relationshipStyle: str
    careerFit: str
    visualCorrelation: str

    check_narrative = field_validator('summary', 'psychologicalArchetype')(_non_blank)

    def to_report(self) -> AnalysisReport:
        return AnalysisReport(
            summary=self.summary,
            traits=[TraitScore(t.trait, t.score, t.description) for t in self.traits],
            psychological_archetype=self.psychologicalArchetype,
            strengths=list(self.strengths),
            weaknesses=list(self.weaknesses),
            relationship_style=self.relationshipStyle,
            career_fit=self.careerFit,
            visual_correlation=self.visualCorrelation,
        )


# ============================================================================
# ONBOARDING
# ============================================================================

class OnboardingPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    birth_date: date = Field(alias='birthDate')
    gender: Gender = Gender.PREFER_NOT_TO_SAY
    nationality: str
    photo_base64: Optional[str] = Field(default=None, alias='photoBase64')

    check_not_blank = field_validator('name', 'nationality')(_non_blank)

    def to_profile(self) -> UserProfile:
        return UserProfile(
            name=self.name,
            birth_date=self.birth_date,
            gender=self.gender,
            nationality=self.nationality,
            photo_base64=self.photo_base64 or None,
        )


# ============================================================================
# HELPERS
# ============================================================================

def validate_payload(schema: Type[SchemaT], data: Any) -> SchemaT:
    """Validate ``data`` against ``schema`` or raise our ValidationError"""
    try:
        return schema.model_validate(data)
    except pydantic.ValidationError as exc:
        fields = sorted({'.'.join(str(p) for p in err['loc']) or '<root>' for err in exc.errors()})
        raise ValidationError(
            f"Invalid {schema.__name__}: {', '.join(fields)}",
            cause=exc,
        ) from exc


def parse_profile(data: Dict, require_photo: bool = True) -> UserProfile:
    """Validate the onboarding form; every field is mandatory, photo included
    unless ``require_photo`` is off"""
    payload = validate_payload(OnboardingPayload, data or {})
    if require_photo and not payload.photo_base64:
        raise ValidationError('Invalid OnboardingPayload: photoBase64')
    return payload.to_profile()


def parse_question(data: Dict) -> Question:
    payload = validate_payload(QuestionPayload, data or {})
    return Question.generated(
        QuestionCategory.parse(payload.category),
        payload.text,
        payload.options.as_mapping(),
    )
