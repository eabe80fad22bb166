"""
PsychoMetric AI - Session persistence
JSON records over a durable key-value cache (Flask-Caching / cachelib backends)
"""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional

from models import AnalysisReport, Answer, AppView, Question, UserProfile

logger = logging.getLogger(__name__)

KEYS = {
    'USER_PROFILE': 'psy_user_profile',
    'ANSWERS': 'psy_answers',
    'REPORT': 'psy_report',
    'CUSTOM_QUESTIONS': 'psy_custom_questions',
}

SESSION_KEYS = (KEYS['USER_PROFILE'], KEYS['ANSWERS'], KEYS['REPORT'])

NO_EXPIRY = 0


class PersistenceAdapter:
    """Save/load JSON values under stable keys for one session lineage.

    ``store`` is anything with the cachelib interface (``get``, ``set``,
    ``delete``): a flask_caching ``Cache`` in the app, a cachelib cache in
    tests.
    """

    def __init__(self, store, namespace: str = 'default'):
        self.store = store
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def save(self, key: str, value: Any):
        self.store.set(self._key(key), json.dumps(value), timeout=NO_EXPIRY)

    def load(self, key: str) -> Optional[Any]:
        """Return the saved value, or None when nothing was saved"""
        raw = self.store.get(self._key(key))
        if raw is None:
            return None
        return json.loads(raw)

    def clear(self):
        for key in SESSION_KEYS:
            self.store.delete(self._key(key))
        logger.info(f"✓ Cleared stored session records for {self.namespace}")

    # ------------------------------------------------------------------
    # Typed records
    # ------------------------------------------------------------------

    def save_profile(self, profile: UserProfile):
        self.save(KEYS['USER_PROFILE'], profile.to_dict())

    def load_profile(self) -> Optional[UserProfile]:
        data = self.load(KEYS['USER_PROFILE'])
        return UserProfile.from_dict(data) if data else None

    def save_answers(self, answers: List[Answer]):
        self.save(KEYS['ANSWERS'], [answer.to_dict() for answer in answers])

    def load_answers(self) -> List[Answer]:
        data = self.load(KEYS['ANSWERS']) or []
        return [Answer.from_dict(item) for item in data]

    def save_report(self, report: AnalysisReport):
        self.save(KEYS['REPORT'], report.to_dict())

    def load_report(self) -> Optional[AnalysisReport]:
        data = self.load(KEYS['REPORT'])
        return AnalysisReport.from_dict(data) if data else None

    def resume_view(self) -> AppView:
        """Which screen a returning user should land on"""
        has_profile = self.load(KEYS['USER_PROFILE']) is not None
        has_report = self.load(KEYS['REPORT']) is not None
        if has_profile and has_report:
            return AppView.REPORT
        if has_profile:
            return AppView.QUESTIONNAIRE
        return AppView.ONBOARDING


class QuestionBank:
    """Shared bank of AI-generated and admin-added questions"""

    NAMESPACE = 'bank'

    def __init__(self, store):
        self.records = PersistenceAdapter(store, self.NAMESPACE)

    def all(self) -> List[Question]:
        data = self.records.load(KEYS['CUSTOM_QUESTIONS']) or []
        return [Question.from_dict(item) for item in data]

    def add(self, questions: List[Question]) -> int:
        """Append questions whose ids are not already banked; return how many"""
        existing = self.all()
        known = {q.id for q in existing}
        fresh = [q for q in questions if q.id not in known]
        if fresh:
            self.records.save(
                KEYS['CUSTOM_QUESTIONS'],
                [q.to_dict() for q in existing + fresh],
            )
            logger.info(f"✓ Banked {len(fresh)} custom question(s)")
        return len(fresh)
