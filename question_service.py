"""
PsychoMetric AI - Question queue routes
Skip / replace / AI-add against the active queue, and the shared custom question bank
"""

from flask import Blueprint, current_app, jsonify, request
from typing import Dict, List, Optional
import logging

from errors import ValidationError
from models import Question, QuestionCategory
from schemas import parse_question
from session_manager import ActionResult, SessionController

logger = logging.getLogger(__name__)

# Create Blueprint
question_bp = Blueprint('questions', __name__, url_prefix='/api/questions')

# ============================================================================
# QUESTION FORMATTER
# ============================================================================

class QuestionFormatter:
    """Formats questions into frontend-ready payloads"""

    @staticmethod
    def format_question(question: Optional[Question], question_index: int = 0, total: int = 0) -> Optional[Dict]:
        """
        Format a question for display

        Args:
            question: Question to format (None once the queue is exhausted)
            question_index: Position in the active queue (0-indexed)
            total: Active queue length

        Returns:
            Formatted question data
        """
        if question is None:
            return None
        return {
            'question_id': question.id,
            'question_index': question_index + 1,
            'total_questions': total,
            'category': question.category.value,
            'category_key': question.category.name,
            'text': question.text,
            'options': [
                {'label': label, 'text': question.options[label]}
                for label in question.labels
            ],
            'generated': question.id.startswith('gen-'),
        }

    @staticmethod
    def format_current(controller: SessionController) -> Optional[Dict]:
        ctx = controller.context
        return QuestionFormatter.format_question(
            ctx.current_question,
            ctx.current_index,
            len(ctx.queue),
        )

    @staticmethod
    def format_bank(questions: List[Question]) -> List[Dict]:
        return [q.to_dict() for q in questions]

# ============================================================================
# HELPERS
# ============================================================================

def get_services():
    return current_app.extensions['psychometric']


def action_response(result: ActionResult, controller: Optional[SessionController] = None):
    """Turn an ActionResult into a JSON response with its status code"""
    payload = result.to_dict()
    if controller is not None:
        payload['question'] = QuestionFormatter.format_current(controller)
    return jsonify(payload), result.http_status


def session_not_found(session_id: str):
    return jsonify({
        'status': 'error',
        'error': 'Invalid session',
        'message': f'Session {session_id} not found'
    }), 404


def bank_generated(controller: SessionController):
    """Keep AI-generated questions for future sessions"""
    generated = controller.context.pool.generated
    if generated:
        get_services().bank.add(generated)

# ============================================================================
# ROUTE HANDLERS
# ============================================================================

@question_bp.route('/<session_id>/skip', methods=['POST'])
def skip_question(session_id: str):
    """Defer the current question to the end of the queue"""
    controller = get_services().sessions.get(session_id)
    if not controller:
        return session_not_found(session_id)
    return action_response(controller.skip(), controller)


@question_bp.route('/<session_id>/replace', methods=['POST'])
def replace_question(session_id: str):
    """
    Swap the current question for an unused one

    Falls back to AI generation in the same category when the pool is exhausted.
    """
    controller = get_services().sessions.get(session_id)
    if not controller:
        return session_not_found(session_id)

    result = controller.replace()
    if result.ok:
        bank_generated(controller)
    return action_response(result, controller)


@question_bp.route('/<session_id>/insert', methods=['POST'])
def insert_question(session_id: str):
    """
    Generate one question and insert it right after the current one

    Request body:
        {
            "category": "Behavioral" | "Behavioral Characteristics" | ...
        }
    """
    controller = get_services().sessions.get(session_id)
    if not controller:
        return session_not_found(session_id)

    data = request.get_json(silent=True) or {}
    category = data.get('category')
    if not category:
        return jsonify({
            'status': 'error',
            'error': 'ValidationError',
            'message': 'category is required'
        }), 400

    result = controller.insert_question(category)
    if result.ok:
        bank_generated(controller)
    return action_response(result, controller)


@question_bp.route('/categories', methods=['GET'])
def list_categories():
    return jsonify({
        'categories': [
            {'key': category.name, 'label': category.value}
            for category in QuestionCategory
        ]
    })


@question_bp.route('/bank', methods=['GET'])
def list_bank():
    """Questions added on top of the built-in seed set"""
    questions = get_services().bank.all()
    return jsonify({
        'status': 'success',
        'questions': QuestionFormatter.format_bank(questions),
        'total': len(questions)
    })


@question_bp.route('/bank', methods=['POST'])
def add_to_bank():
    """
    Add a custom question to the bank used by new sessions

    Request body:
        {
            "category": "Daily Routine",
            "text": "...",
            "options": {"A": "...", "B": "...", "C": "...", "D": "...", "E": "..."}
        }
    """
    try:
        question = parse_question(request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({'status': 'error', 'error': 'ValidationError', 'message': e.message}), 400

    get_services().bank.add([question])
    logger.info(f"✓ Custom question {question.id} added to bank")
    return jsonify({'status': 'success', 'question': question.to_dict()}), 201

# ============================================================================
# INTEGRATION WITH MAIN APP
# ============================================================================

def init_question_service(app):
    """Register question routes with the Flask app"""
    app.register_blueprint(question_bp)
    logger.info("✓ Question service initialized")
