"""
PsychoMetric AI - Domain data structures
Questions, profiles, answers and analysis reports shared across the service
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Tuple

OPTION_LABELS: Tuple[str, ...] = ('A', 'B', 'C', 'D', 'E')
REQUIRED_LABELS: Tuple[str, ...] = ('A', 'B', 'C', 'D')

VOICES: Tuple[str, ...] = ('Puck', 'Charon', 'Kore', 'Fenrir', 'Zephyr')

# ============================================================================
# ENUMS
# ============================================================================


class QuestionCategory(str, Enum):
    BEHAVIORAL = 'Behavioral Characteristics'
    PREFERENCES = 'Preferences (Food, Movies, etc.)'
    DAILY_ROUTINE = 'Daily Routine'
    PROFESSION = 'Profession & Work Behavior'
    INTERACTIONS = 'Social Interactions'

    @classmethod
    def parse(cls, raw: str) -> 'QuestionCategory':
        """Accept a display label, a member name, or the short names
        (Behavioral, Preferences, DailyRoutine, Profession, Interactions)."""
        if isinstance(raw, cls):
            return raw
        text = str(raw or '').strip()
        for member in cls:
            if text == member.value:
                return member
        key = text.replace(' ', '').replace('_', '').lower()
        for member in cls:
            if key == member.name.replace('_', '').lower():
                return member
        raise ValueError(f"Unknown question category: {raw!r}")


class Gender(str, Enum):
    MALE = 'Male'
    FEMALE = 'Female'
    NON_BINARY = 'Non-Binary'
    PREFER_NOT_TO_SAY = 'Prefer Not to Say'


class AppView(str, Enum):
    ONBOARDING = 'ONBOARDING'
    QUESTIONNAIRE = 'QUESTIONNAIRE'
    REPORT = 'REPORT'


# ============================================================================
# QUESTIONS & ANSWERS
# ============================================================================


@dataclass(frozen=True)
class Question:
    """Multiple-choice question; options keyed A-E, E optional"""
    id: str
    category: QuestionCategory
    text: str
    options: Dict[str, str]

    @property
    def labels(self) -> List[str]:
        """Labels actually present on this question, in A-E order"""
        return [label for label in OPTION_LABELS if self.options.get(label)]

    def has_option(self, label: str) -> bool:
        return label in self.labels

    def read_aloud_text(self) -> str:
        parts = [f"{self.text}."]
        for label in self.labels:
            parts.append(f"Option {label}: {self.options[label]}.")
        return ' '.join(parts)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'category': self.category.value,
            'text': self.text,
            'options': {label: self.options[label] for label in self.labels},
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Question':
        return cls(
            id=str(data['id']),
            category=QuestionCategory.parse(data['category']),
            text=data['text'],
            options={
                label: data['options'][label]
                for label in OPTION_LABELS
                if data['options'].get(label)
            },
        )

    @classmethod
    def generated(cls, category: QuestionCategory, text: str, options: Dict[str, str]) -> 'Question':
        """Build an AI-generated question with a fresh local id"""
        return cls(
            id=f"gen-{uuid.uuid4().hex[:12]}",
            category=category,
            text=text,
            options=dict(options),
        )


@dataclass(frozen=True)
class Answer:
    question_id: str
    selected_option: str
    timestamp: int  # epoch milliseconds

    @classmethod
    def now(cls, question_id: str, selected_option: str) -> 'Answer':
        return cls(question_id, selected_option, int(time.time() * 1000))

    def to_dict(self) -> Dict:
        return {
            'questionId': self.question_id,
            'selectedOption': self.selected_option,
            'timestamp': self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Answer':
        return cls(data['questionId'], data['selectedOption'], int(data['timestamp']))


# ============================================================================
# USER PROFILE
# ============================================================================


@dataclass(frozen=True)
class UserProfile:
    name: str
    birth_date: date
    gender: Gender
    nationality: str
    photo_base64: Optional[str] = None

    def age(self, today: Optional[date] = None) -> int:
        """Year difference only, the way the report header shows it"""
        today = today or date.today()
        return today.year - self.birth_date.year

    @property
    def photo_data_url(self) -> Optional[str]:
        if not self.photo_base64:
            return None
        if self.photo_base64.startswith('data:'):
            return self.photo_base64
        return f"data:image/jpeg;base64,{self.photo_base64}"

    def to_dict(self) -> Dict:
        return {
            'name': self.name,
            'birthDate': self.birth_date.isoformat(),
            'gender': self.gender.value,
            'nationality': self.nationality,
            'photoBase64': self.photo_base64,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'UserProfile':
        return cls(
            name=data['name'],
            birth_date=date.fromisoformat(data['birthDate']),
            gender=Gender(data.get('gender') or Gender.PREFER_NOT_TO_SAY.value),
            nationality=data['nationality'],
            photo_base64=data.get('photoBase64'),
        )


# ============================================================================
# ANALYSIS REPORT
# ============================================================================


@dataclass(frozen=True)
class TraitScore:
    trait: str
    score: float  # 0-100
    description: str = ''

    def to_dict(self) -> Dict:
        return {'trait': self.trait, 'score': self.score, 'description': self.description}


@dataclass(frozen=True)
class AnalysisReport:
    summary: str
    traits: List[TraitScore]
    psychological_archetype: str
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    relationship_style: str = ''
    career_fit: str = ''
    visual_correlation: str = ''

    def to_dict(self) -> Dict:
        return {
            'summary': self.summary,
            'traits': [trait.to_dict() for trait in self.traits],
            'psychologicalArchetype': self.psychological_archetype,
            'strengths': list(self.strengths),
            'weaknesses': list(self.weaknesses),
            'relationshipStyle': self.relationship_style,
            'careerFit': self.career_fit,
            'visualCorrelation': self.visual_correlation,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'AnalysisReport':
        return cls(
            summary=data['summary'],
            traits=[
                TraitScore(item['trait'], float(item['score']), item.get('description', ''))
                for item in data.get('traits', [])
            ],
            psychological_archetype=data['psychologicalArchetype'],
            strengths=list(data.get('strengths', [])),
            weaknesses=list(data.get('weaknesses', [])),
            relationship_style=data.get('relationshipStyle', ''),
            career_fit=data.get('careerFit', ''),
            visual_correlation=data.get('visualCorrelation', ''),
        )
