"""Shuffled question pool and the active queue presented to the user."""

from __future__ import annotations

import json
import logging
import random
from typing import Iterable, List, Optional, Protocol

from errors import AssessmentError, GenerationError, ValidationError
from models import Question, QuestionCategory

logger = logging.getLogger(__name__)


class QuestionGenerator(Protocol):
    def generate_questions(self, category: QuestionCategory, count: int = 1) -> List[Question]:
        ...


def load_seed_questions(file_path: str) -> List[Question]:
    """Load the seed question set from a JSON file"""
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.error(f"❌ Seed questions file not found: {file_path}")
        return []
    except json.JSONDecodeError:
        logger.error(f"❌ Invalid JSON in {file_path}")
        return []

    questions = [Question.from_dict(item) for item in data.get('questions', [])]
    logger.info(f"✓ Loaded {len(questions)} seed questions from {file_path}")
    return questions


class QuestionPoolManager:
    """Holds the pool of known questions and the queue being asked.

    The queue only changes length through ``insert_after``; ``skip`` rotates
    and ``replace`` substitutes in place.
    """

    def __init__(self, generator: Optional[QuestionGenerator] = None):
        self.generator = generator
        self.pool: List[Question] = []
        self.queue: List[Question] = []
        self.generated: List[Question] = []

    def initialize(self, seed_questions: Iterable[Question], queue_size: int) -> List[Question]:
        seeds = list(seed_questions)
        if not seeds:
            raise ValidationError('No seed questions available')
        ids = [q.id for q in seeds]
        if len(ids) != len(set(ids)):
            raise ValidationError('Seed questions must have unique ids')
        if queue_size < 1:
            raise ValidationError(f"Queue size must be positive, got {queue_size}")

        random.shuffle(seeds)
        self.pool = seeds
        self.queue = seeds[:min(queue_size, len(seeds))]
        self.generated = []
        logger.info(f"✓ Question pool ready: {len(self.queue)} queued from {len(self.pool)}")
        return list(self.queue)

    @property
    def queue_ids(self) -> List[str]:
        return [q.id for q in self.queue]

    def question_at(self, index: int) -> Optional[Question]:
        if 0 <= index < len(self.queue):
            return self.queue[index]
        return None

    def skip(self, current_index: int) -> int:
        """Defer the question at ``current_index`` to the end of the queue.

        Returns the cursor to use afterwards.
        """
        self._check_index(current_index)
        item = self.queue.pop(current_index)
        self.queue.append(item)
        if current_index >= len(self.queue):
            return 0
        return current_index

    def replace(self, current_index: int, current_category: QuestionCategory) -> Question:
        """Swap the current question for an unused pool question, generating
        one in the same category when the pool is exhausted."""
        self._check_index(current_index)
        used_ids = set(self.queue_ids)
        available = next((q for q in self.pool if q.id not in used_ids), None)

        if available is None:
            available = self._generate_one(current_category)
            self._add_to_pool(available)
            logger.info(f"✓ Generated replacement {available.id} ({current_category.name})")

        self.queue[current_index] = available
        return available

    def insert_after(self, current_index: int, category: QuestionCategory) -> Question:
        self._check_index(current_index)
        question = self._generate_one(category)
        self._add_to_pool(question)
        self.queue.insert(current_index + 1, question)
        logger.info(f"✓ Inserted generated question {question.id} after position {current_index}")
        return question

    def _generate_one(self, category: QuestionCategory) -> Question:
        if self.generator is None:
            raise GenerationError('No question generator configured')
        try:
            questions = self.generator.generate_questions(category, 1)
        except AssessmentError:
            raise
        except Exception as e:
            raise GenerationError(f"Question generation failed: {e}", cause=e) from e
        if not questions:
            raise GenerationError('Question generation returned no questions')
        return questions[0]

    def _add_to_pool(self, question: Question):
        if any(q.id == question.id for q in self.pool):
            raise GenerationError(f"Generated question id {question.id} already in pool")
        self.pool.append(question)
        self.generated.append(question)

    def _check_index(self, index: int):
        if not 0 <= index < len(self.queue):
            raise IndexError(f"Queue position {index} out of range (0..{len(self.queue) - 1})")
