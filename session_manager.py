"""Assessment session state and the controller that drives it."""

from __future__ import annotations

import functools
import logging
import random
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from errors import (
    AssessmentError,
    DeviceAccessError,
    InterpretationError,
    SessionStateError,
    StaleResponseError,
    ValidationError,
)
from models import AnalysisReport, Answer, Question, QuestionCategory, UserProfile, VOICES
from question_pool import QuestionPoolManager
from storage_service import PersistenceAdapter

logger = logging.getLogger(__name__)

ACTIONS = ('answer', 'skip', 'replace', 'insert', 'speech', 'voice', 'finish')

RETRY_VOICE_MESSAGE = 'Could not understand your selection. Please try again or click an option.'


class SessionState(str, Enum):
    AWAITING_ANSWER = 'awaiting_answer'
    COMPLETE = 'complete'


class Outcome(str, Enum):
    SUCCESS = 'success'
    RETRY = 'retry'
    DEVICE_DENIED = 'device_denied'
    FAILED = 'failed'
    STALE = 'stale'
    BUSY = 'busy'


@dataclass
class ActionResult:
    """What one user action produced; the UI layer decides how to show it"""
    outcome: Outcome
    message: str = ''
    error_type: Optional[str] = None
    http_status: int = 200
    data: Dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.outcome == Outcome.SUCCESS

    @classmethod
    def success(cls, message: str = '', **data) -> 'ActionResult':
        return cls(Outcome.SUCCESS, message, data=data)

    @classmethod
    def from_error(cls, error: AssessmentError, outcome: Outcome = Outcome.FAILED) -> 'ActionResult':
        return cls(outcome, error.message, type(error).__name__, error.http_status)

    def to_dict(self) -> Dict:
        payload = {
            'status': 'success' if self.ok else 'error',
            'outcome': self.outcome.value,
            'message': self.message,
        }
        if self.error_type:
            payload['error'] = self.error_type
        payload.update(self.data)
        return payload


@dataclass
class SessionContext:
    """Everything one assessment session owns"""
    session_id: str
    profile: UserProfile
    pool: QuestionPoolManager
    storage: PersistenceAdapter
    answers: List[Answer] = field(default_factory=list)
    current_index: int = 0
    report: Optional[AnalysisReport] = None
    epoch: int = 0
    busy: Dict[str, bool] = field(default_factory=lambda: {action: False for action in ACTIONS})
    started_at: float = field(default_factory=time.time)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def queue(self) -> List[Question]:
        return self.pool.queue

    @property
    def state(self) -> SessionState:
        if len(self.answers) == len(self.queue):
            return SessionState.COMPLETE
        return SessionState.AWAITING_ANSWER

    @property
    def current_question(self) -> Optional[Question]:
        if self.state == SessionState.COMPLETE:
            return None
        return self.pool.question_at(self.current_index)

    def bump(self):
        """Mark a change to the queue or the answers"""
        self.epoch += 1

    def to_dict(self) -> Dict:
        question = self.current_question
        return {
            'session_id': self.session_id,
            'user': self.profile.name,
            'state': self.state.value,
            'current_index': self.current_index,
            'current_question': question.to_dict() if question else None,
            'answered': len(self.answers),
            'total_questions': len(self.queue),
            'progress': round(len(self.answers) / len(self.queue) * 100, 1) if self.queue else 0,
            'queue': self.pool.queue_ids,
            'busy': dict(self.busy),
            'epoch': self.epoch,
            'has_report': self.report is not None,
        }


class EpochGuard:
    """Question generator that drops its result if the session moved on
    while the request was in flight"""

    def __init__(self, ai, context: SessionContext):
        self.ai = ai
        self.context = context

    def generate_questions(self, category: QuestionCategory, count: int = 1) -> List[Question]:
        issued_at = self.context.epoch
        questions = self.ai.generate_questions(category, count)
        if self.context.epoch != issued_at:
            raise StaleResponseError('Generated question arrived after the session moved on')
        return questions


def action(name: str):
    """Run a controller method under the busy flag for ``name`` and fold any
    assessment error into an ActionResult"""

    def decorator(method):
        @functools.wraps(method)
        def wrapper(self, *args, **kwargs) -> ActionResult:
            ctx = self.context
            with ctx.lock:
                if ctx.busy.get(name):
                    return ActionResult(Outcome.BUSY, f"{name} already in progress", http_status=409)
                ctx.busy[name] = True
            try:
                return method(self, *args, **kwargs)
            except StaleResponseError as e:
                logger.warning(f"⚠ Discarded stale {name} response for {ctx.session_id}")
                return ActionResult.from_error(e, Outcome.STALE)
            except AssessmentError as e:
                logger.warning(f"⚠ {name} failed for {ctx.session_id}: {type(e).__name__}: {e.message}")
                return ActionResult.from_error(e)
            finally:
                ctx.busy[name] = False

        return wrapper

    return decorator


class SessionController:
    """Drives one session: answers, speech, voice, queue edits and the final
    analysis hand-off.

    Each public action runs under its own busy flag. Actions that wait on the
    AI service capture ``context.epoch`` first and discard the response if
    the queue or the answers changed before it came back.
    """

    def __init__(self, context: SessionContext, ai, on_change: Optional[Callable[[str, Dict], None]] = None):
        self.context = context
        self.ai = ai
        self.on_change = on_change
        context.pool.generator = EpochGuard(ai, context)

    @classmethod
    def start(
        cls,
        session_id: str,
        profile: UserProfile,
        seed_questions: Iterable[Question],
        queue_size: int,
        storage: PersistenceAdapter,
        ai,
        on_change: Optional[Callable[[str, Dict], None]] = None,
    ) -> 'SessionController':
        pool = QuestionPoolManager()
        pool.initialize(seed_questions, queue_size)
        storage.save_profile(profile)
        storage.save_answers([])
        context = SessionContext(session_id=session_id, profile=profile, pool=pool, storage=storage)
        logger.info(f"✓ Session {session_id} started for {profile.name} ({len(pool.queue)} questions)")
        return cls(context, ai, on_change)

    @property
    def state(self) -> SessionState:
        return self.context.state

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------

    @action('answer')
    def submit_answer(self, label: str) -> ActionResult:
        return self._record_answer(label)

    def _record_answer(self, label: str) -> ActionResult:
        ctx = self.context
        if ctx.state == SessionState.COMPLETE:
            raise SessionStateError('Assessment already complete')

        question = ctx.current_question
        label = (label or '').strip().upper()
        if question is None or not question.has_option(label):
            raise ValidationError(f"Option {label or '?'} is not available on this question")

        answer = Answer.now(question.id, label)
        ctx.answers.append(answer)
        ctx.storage.save_answers(ctx.answers)
        ctx.bump()

        if ctx.state != SessionState.COMPLETE:
            ctx.current_index += 1
            self._notify('session_update')
            return ActionResult.success('Answer recorded', answer=answer.to_dict(), session=ctx.to_dict())

        logger.info(f"✓ Session {ctx.session_id} complete, requesting analysis")
        self._notify('session_update')
        analysis = self.finish()
        if analysis.ok:
            return ActionResult.success(
                'Assessment complete',
                answer=answer.to_dict(),
                report=analysis.data['report'],
                session=ctx.to_dict(),
            )
        return ActionResult.success(
            'Answer recorded; report synthesis failed, retry finish',
            answer=answer.to_dict(),
            analysis=analysis.to_dict(),
            session=ctx.to_dict(),
        )

    # ------------------------------------------------------------------
    # Queue edits
    # ------------------------------------------------------------------

    @action('skip')
    def skip(self) -> ActionResult:
        ctx = self.context
        self._require_open()
        ctx.current_index = ctx.pool.skip(ctx.current_index)
        ctx.bump()
        self._notify('session_update')
        return ActionResult.success('Question skipped', session=ctx.to_dict())

    @action('replace')
    def replace(self) -> ActionResult:
        ctx = self.context
        question = self._require_open()
        replacement = ctx.pool.replace(ctx.current_index, question.category)
        ctx.bump()
        self._notify('session_update')
        return ActionResult.success('Question replaced', question=replacement.to_dict(), session=ctx.to_dict())

    @action('insert')
    def insert_question(self, category) -> ActionResult:
        ctx = self.context
        self._require_open()
        try:
            category = QuestionCategory.parse(category)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        question = ctx.pool.insert_after(ctx.current_index, category)
        ctx.bump()
        self._notify('session_update')
        return ActionResult.success('Question added', question=question.to_dict(), session=ctx.to_dict())

    # ------------------------------------------------------------------
    # Speech
    # ------------------------------------------------------------------

    @action('speech')
    def request_speech(self, voice: str) -> ActionResult:
        if voice not in VOICES:
            raise ValidationError(f"Unknown voice {voice!r}; choose one of {', '.join(VOICES)}")
        question = self._require_open()
        issued_at = self.context.epoch
        audio = self.ai.synthesize_speech(question.read_aloud_text(), voice)
        self._check_epoch(issued_at)
        return ActionResult.success(
            'Speech ready',
            audio_url=self.ai.audio_data_url(audio),
            question_id=question.id,
            voice=voice,
        )

    @action('voice')
    def submit_voice_recording(
        self,
        audio: Optional[bytes],
        mime_type: str = 'audio/webm',
        device_error: Optional[str] = None,
    ) -> ActionResult:
        """Interpret a spoken answer: success, retry, or device denied"""
        if device_error:
            error = DeviceAccessError(f"Microphone access denied: {device_error}")
            return ActionResult.from_error(error, Outcome.DEVICE_DENIED)
        question = self._require_open()
        if not audio:
            raise ValidationError('No audio recording received')

        issued_at = self.context.epoch
        try:
            label = self.ai.interpret_spoken_answer(audio, mime_type, question)
        except InterpretationError as e:
            logger.warning(f"⚠ Voice answer not processed: {e.message}")
            result = ActionResult.from_error(e, Outcome.RETRY)
            result.message = 'Error processing voice answer. Please try again or click an option.'
            return result
        self._check_epoch(issued_at)

        if label is None or not question.has_option(label):
            return ActionResult(Outcome.RETRY, RETRY_VOICE_MESSAGE, http_status=422)

        recorded = self._record_answer(label)
        recorded.data['selection'] = label
        return recorded

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    @action('finish')
    def finish(self) -> ActionResult:
        ctx = self.context
        if ctx.state != SessionState.COMPLETE:
            raise SessionStateError(
                f"Assessment not complete ({len(ctx.answers)}/{len(ctx.queue)} answered)"
            )
        if ctx.report is None:
            report = self.ai.analyze_profile(ctx.profile, list(ctx.answers), list(ctx.queue))
            ctx.storage.save_report(report)
            ctx.report = report
            logger.info(f"✓ Report stored for session {ctx.session_id}")
            self._notify('report_ready')
        return ActionResult.success('Report ready', report=ctx.report.to_dict())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_open(self) -> Question:
        question = self.context.current_question
        if question is None:
            raise SessionStateError('Assessment already complete')
        return question

    def _check_epoch(self, issued_at: int):
        if self.context.epoch != issued_at:
            raise StaleResponseError('Response arrived after the session moved on')

    def _notify(self, event: str):
        if self.on_change is None:
            return
        payload = self.context.to_dict()
        if event == 'report_ready' and self.context.report is not None:
            payload['report'] = self.context.report.to_dict()
        self.on_change(event, payload)


class SessionRegistry:
    """Live sessions keyed by session id"""

    def __init__(self):
        self._sessions: Dict[str, SessionController] = {}

    def new_session_id(self, name: str) -> str:
        base = ''.join(ch for ch in name.lower() if ch.isalnum())[:16] or 'user'
        session_id = f"{base}_{int(time.time())}_{random.randint(1000, 9999)}"
        # Avoid collisions when a user restarts quickly
        while session_id in self._sessions:
            session_id = f"{base}_{int(time.time())}_{random.randint(1000, 9999)}"
        return session_id

    def add(self, controller: SessionController):
        self._sessions[controller.context.session_id] = controller

    def get(self, session_id: str) -> Optional[SessionController]:
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> Optional[SessionController]:
        return self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)
