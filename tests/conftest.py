import os
from datetime import date

import pytest

os.environ.setdefault("CACHE_TYPE", "SimpleCache")
os.environ.pop("GROQ_API_KEY", None)

from cachelib import SimpleCache

from models import AnalysisReport, Gender, Question, QuestionCategory, TraitScore, UserProfile
from session_manager import SessionController
from storage_service import PersistenceAdapter

PHOTO = "data:image/jpeg;base64,/9j/4AAQSkZJRgABAQAAAQABAAD/2wBDAAgGBgcGBQgHBwcJCQgKDBQNDAsLDBkSEw8U"

STUB_CATEGORIES = [
    QuestionCategory.BEHAVIORAL,
    QuestionCategory.PREFERENCES,
    QuestionCategory.DAILY_ROUTINE,
    QuestionCategory.PROFESSION,
    QuestionCategory.INTERACTIONS,
]


def make_question(qid, category=QuestionCategory.BEHAVIORAL, with_e=False):
    options = {
        "A": f"{qid} first",
        "B": f"{qid} second",
        "C": f"{qid} third",
        "D": f"{qid} fourth",
    }
    if with_e:
        options["E"] = f"{qid} fifth"
    return Question(id=qid, category=category, text=f"Question {qid}?", options=options)


def make_report():
    return AnalysisReport(
        summary="Measured and curious.",
        traits=[
            TraitScore("Openness", 80, "Seeks novelty"),
            TraitScore("Conscientiousness", 65, "Plans ahead"),
            TraitScore("Extraversion", 40, "Recharges alone"),
            TraitScore("Agreeableness", 70, "Cooperative"),
            TraitScore("Neuroticism", 30, "Steady"),
        ],
        psychological_archetype="The Sage",
        strengths=["Analytical", "Calm"],
        weaknesses=["Overthinks"],
        relationship_style="Loyal and reserved.",
        career_fit="Research, strategy.",
        visual_correlation="Composed expression.",
    )


class FakeAI:
    """Stands in for GroqAssessmentClient and records every call"""

    def __init__(self):
        self.generate_calls = []
        self.speech_calls = []
        self.interpret_calls = []
        self.analyze_calls = []
        self.generate_result = None
        self.generate_error = None
        self.speech_error = None
        self.selection = "A"
        self.interpret_error = None
        self.analyze_error = None
        self.report = make_report()
        self.during_call = None

    def _hook(self):
        if self.during_call is not None:
            hook, self.during_call = self.during_call, None
            hook()

    def generate_questions(self, category, count=1):
        self.generate_calls.append((category, count))
        self._hook()
        if self.generate_error:
            raise self.generate_error
        if self.generate_result is not None:
            return self.generate_result
        return [
            Question.generated(
                category,
                f"Generated {category.name} question {len(self.generate_calls)}",
                {"A": "One", "B": "Two", "C": "Three", "D": "Four"},
            )
            for _ in range(count)
        ]

    def synthesize_speech(self, text, voice):
        self.speech_calls.append((text, voice))
        self._hook()
        if self.speech_error:
            raise self.speech_error
        return b"RIFF-audio"

    def audio_data_url(self, audio):
        return "data:audio/wav;base64,UklGRi1hdWRpbw=="

    def interpret_spoken_answer(self, audio, mime_type="audio/webm", question=None):
        self.interpret_calls.append((audio, mime_type, question.id if question else None))
        self._hook()
        if self.interpret_error:
            raise self.interpret_error
        return self.selection

    def analyze_profile(self, profile, answers, questions):
        self.analyze_calls.append((profile, list(answers), list(questions)))
        if self.analyze_error:
            raise self.analyze_error
        return self.report


@pytest.fixture
def stub_questions():
    return [make_question(f"q-{i}", category) for i, category in enumerate(STUB_CATEGORIES, start=1)]


@pytest.fixture
def profile():
    return UserProfile(
        name="Ana",
        birth_date=date(1990, 1, 1),
        gender=Gender.FEMALE,
        nationality="Spain",
        photo_base64=PHOTO,
    )


@pytest.fixture
def fake_ai():
    return FakeAI()


@pytest.fixture
def store():
    return SimpleCache()


@pytest.fixture
def storage(store):
    return PersistenceAdapter(store, "ana_test")


@pytest.fixture
def events():
    return []


@pytest.fixture
def controller(stub_questions, profile, storage, fake_ai, events):
    return SessionController.start(
        "ana_test",
        profile,
        stub_questions,
        5,
        storage,
        fake_ai,
        on_change=lambda event, payload: events.append((event, payload)),
    )


@pytest.fixture
def flask_app(fake_ai, stub_questions):
    from app import create_app

    return create_app(
        ai=fake_ai,
        cache_config={"CACHE_TYPE": "SimpleCache", "CACHE_DEFAULT_TIMEOUT": 0},
        seed_questions=stub_questions,
        queue_size=5,
        require_photo=True,
    )


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()

