"""
PsychoMetric AI - Personality Assessment Service
Flask Backend with Real-time WebSocket, Groq Integration and Durable Session Storage
"""

from flask import Flask, jsonify, request
from flask_caching import Cache
from flask_socketio import SocketIO, emit, join_room, leave_room
from werkzeug.exceptions import HTTPException
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import logging

import config
from errors import ValidationError
from groq_generator import GroqAssessmentClient
from models import Question, QuestionCategory, VOICES
from question_pool import load_seed_questions
from question_service import (
    QuestionFormatter,
    action_response,
    get_services,
    init_question_service,
    session_not_found,
)
from radar_chart import project_radar
from schemas import parse_profile
from session_manager import SessionController, SessionRegistry
from storage_service import PersistenceAdapter, QuestionBank

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

VERSION = '1.0.0'

socketio = SocketIO(cors_allowed_origins="*")

# ============================================================================
# SERVICES
# ============================================================================

@dataclass
class AssessmentServices:
    ai: Any
    cache: Cache
    sessions: SessionRegistry
    bank: QuestionBank
    seed_questions: List[Question]
    queue_size: int
    require_photo: bool

    def storage_for(self, session_id: str) -> PersistenceAdapter:
        return PersistenceAdapter(self.cache, session_id)


def build_ai_client():
    if not config.GROQ_API_KEY:
        logger.warning("⚠ GROQ_API_KEY not set; AI features will report errors")
    return GroqAssessmentClient(
        config.GROQ_API_KEY,
        model=config.GROQ_MODEL,
        vision_model=config.GROQ_VISION_MODEL,
        tts_model=config.GROQ_TTS_MODEL,
        tts_format=config.GROQ_TTS_FORMAT,
        stt_model=config.GROQ_STT_MODEL,
        voice_presets=config.VOICE_PRESETS,
        timeout=config.AI_TIMEOUT_SECONDS,
    )


def broadcast(event: str, payload: Dict):
    """Push session events to clients that joined the session room"""
    socketio.emit(event, payload, to=payload.get('session_id'))


def session_listener(services: AssessmentServices):
    """Broadcast session events; a session leaves the registry once its
    report is stored, later reads come from storage"""

    def on_change(event: str, payload: Dict):
        broadcast(event, payload)
        if event == 'report_ready':
            services.sessions.remove(payload['session_id'])
            logger.info(f"✓ Session {payload['session_id']} finished, released from memory")

    return on_change

# ============================================================================
# APP FACTORY
# ============================================================================

def create_app(
    ai=None,
    cache_config: Optional[Dict] = None,
    seed_questions: Optional[List[Question]] = None,
    queue_size: Optional[int] = None,
    require_photo: Optional[bool] = None,
) -> Flask:
    app = Flask(__name__)
    app.config['SECRET_KEY'] = config.SECRET_KEY

    cache = Cache(app, config=cache_config or config.CACHE_CONFIG)
    services = AssessmentServices(
        ai=ai if ai is not None else build_ai_client(),
        cache=cache,
        sessions=SessionRegistry(),
        bank=QuestionBank(cache),
        seed_questions=seed_questions if seed_questions is not None else load_seed_questions(config.SEED_QUESTIONS_PATH),
        queue_size=queue_size or config.QUESTION_COUNT,
        require_photo=config.REQUIRE_PHOTO if require_photo is None else require_photo,
    )
    app.extensions['psychometric'] = services

    register_routes(app)
    register_error_handlers(app)
    init_question_service(app)
    socketio.init_app(app)
    logger.info(f"✓ PsychoMetric AI ready ({len(services.seed_questions)} seed questions)")
    return app

# ============================================================================
# ROUTES
# ============================================================================

def register_routes(app: Flask):

    @app.route('/api/config', methods=['GET'])
    def get_config():
        """Get frontend configuration"""
        services = get_services()
        return jsonify({
            'version': VERSION,
            'question_count': services.queue_size,
            'voices': list(VOICES),
            'default_voice': config.DEFAULT_VOICE,
            'categories': [
                {'key': category.name, 'label': category.value}
                for category in QuestionCategory
            ],
            'require_photo': services.require_photo,
            'chart': {
                'radius': config.CHART_RADIUS,
                'label_offset': config.CHART_LABEL_OFFSET
            }
        })

    @app.route('/api/health', methods=['GET'])
    def health():
        """Health check endpoint"""
        services = get_services()
        return jsonify({
            'status': 'healthy',
            'version': VERSION,
            'active_sessions': len(services.sessions),
            'ai_configured': getattr(services.ai, 'client', True) is not None,
            'seed_questions': len(services.seed_questions)
        })

    @app.route('/api/onboarding', methods=['POST'])
    def onboarding():
        """
        Validate the identity form and start an assessment session

        Request body:
            {
                "name": "...", "birthDate": "YYYY-MM-DD", "gender": "Female",
                "nationality": "...", "photoBase64": "data:image/jpeg;base64,...",
                "question_count": 5
            }
        """
        services = get_services()
        data = request.get_json(silent=True) or {}
        try:
            profile = parse_profile(data, require_photo=services.require_photo)
        except ValidationError as e:
            return jsonify({
                'status': 'error',
                'error': 'ValidationError',
                'message': 'Please fill in all fields and upload a photo.',
                'detail': e.message
            }), 400

        try:
            queue_size = int(data.get('question_count') or services.queue_size)
        except (TypeError, ValueError):
            return jsonify({'status': 'error', 'error': 'ValidationError', 'message': 'question_count must be a number'}), 400

        session_id = services.sessions.new_session_id(profile.name)
        seeds = services.seed_questions + services.bank.all()
        try:
            controller = SessionController.start(
                session_id,
                profile,
                seeds,
                queue_size,
                services.storage_for(session_id),
                services.ai,
                on_change=session_listener(services),
            )
        except ValidationError as e:
            return jsonify({'status': 'error', 'error': 'ValidationError', 'message': e.message}), 400

        services.sessions.add(controller)
        return jsonify({
            'status': 'started',
            'session_id': session_id,
            'session': controller.context.to_dict(),
            'question': QuestionFormatter.format_current(controller)
        }), 201

    @app.route('/api/session/<session_id>', methods=['GET'])
    def get_session_snapshot(session_id):
        """Return current session state"""
        controller = get_services().sessions.get(session_id)
        if not controller:
            return session_not_found(session_id)
        return jsonify({
            'status': 'success',
            'session': controller.context.to_dict(),
            'question': QuestionFormatter.format_current(controller)
        })

    @app.route('/api/session/<session_id>/answer', methods=['POST'])
    def submit_answer(session_id):
        """Record a clicked answer for the current question"""
        controller = get_services().sessions.get(session_id)
        if not controller:
            return session_not_found(session_id)
        data = request.get_json(silent=True) or {}
        return action_response(controller.submit_answer(data.get('option', '')), controller)

    @app.route('/api/session/<session_id>/speech', methods=['POST'])
    def read_question(session_id):
        """Synthesize the current question and its options"""
        controller = get_services().sessions.get(session_id)
        if not controller:
            return session_not_found(session_id)
        data = request.get_json(silent=True) or {}
        return action_response(controller.request_speech(data.get('voice', config.DEFAULT_VOICE)))

    @app.route('/api/session/<session_id>/voice', methods=['POST'])
    def submit_voice_answer(session_id):
        """
        Interpret a recorded spoken answer

        Multipart form with an ``audio`` file, or JSON/form ``device_error``
        when the browser could not open the microphone.
        """
        controller = get_services().sessions.get(session_id)
        if not controller:
            return session_not_found(session_id)

        data = request.get_json(silent=True) or request.form
        device_error = data.get('device_error')
        upload = request.files.get('audio')
        audio = upload.read() if upload else None
        mime_type = upload.mimetype if upload else 'audio/webm'

        result = controller.submit_voice_recording(audio, mime_type, device_error=device_error)
        return action_response(result, controller)

    @app.route('/api/session/<session_id>/finish', methods=['POST'])
    def finish_session(session_id):
        """Retry report synthesis for a completed session"""
        controller = get_services().sessions.get(session_id)
        if not controller:
            return session_not_found(session_id)
        return action_response(controller.finish())

    @app.route('/api/session/<session_id>/report', methods=['GET'])
    def get_report(session_id):
        """Report plus radar chart geometry; falls back to stored records"""
        services = get_services()
        controller = services.sessions.get(session_id)
        storage = controller.context.storage if controller else services.storage_for(session_id)
        report = controller.context.report if controller else None
        report = report or storage.load_report()
        profile = storage.load_profile()

        if report is None:
            return jsonify({
                'status': 'error',
                'error': 'NotReady',
                'message': 'No report for this session yet'
            }), 404

        chart = project_radar(
            report.traits,
            radius=config.CHART_RADIUS,
            label_offset=config.CHART_LABEL_OFFSET,
        )
        return jsonify({
            'status': 'success',
            'report': report.to_dict(),
            'user': profile.to_dict() if profile else None,
            'age': profile.age() if profile else None,
            'chart': chart.to_dict()
        })

    @app.route('/api/session/<session_id>/resume', methods=['GET'])
    def resume_session(session_id):
        """Tell a returning client which view to show"""
        services = get_services()
        storage = services.storage_for(session_id)
        view = storage.resume_view()
        profile = storage.load_profile()
        report = storage.load_report()
        return jsonify({
            'status': 'success',
            'view': view.value,
            'active': services.sessions.get(session_id) is not None,
            'user': profile.to_dict() if profile else None,
            'answers': [answer.to_dict() for answer in storage.load_answers()],
            'report': report.to_dict() if report else None
        })

    @app.route('/api/session/<session_id>/reset', methods=['POST'])
    def reset_session(session_id):
        """Forget stored records and drop the live session"""
        services = get_services()
        services.storage_for(session_id).clear()
        removed = services.sessions.remove(session_id)
        return jsonify({
            'status': 'reset',
            'session_id': session_id,
            'was_active': removed is not None
        })

# ============================================================================
# ERROR HANDLING
# ============================================================================

def register_error_handlers(app: Flask):

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'status': 'error', 'error': 'Endpoint not found'}), 404

    @app.errorhandler(HTTPException)
    def http_error(error):
        return jsonify({'status': 'error', 'error': error.name, 'message': error.description}), error.code

    @app.errorhandler(Exception)
    def unexpected_error(error):
        """Last-resort boundary: generic failure panel with a full reset"""
        logger.exception(f"❌ Unhandled error: {error}")
        return jsonify({
            'status': 'error',
            'error': 'Something went wrong.',
            'message': str(error) or 'Unknown error',
            'action': {
                'label': 'Reset App',
                'method': 'POST',
                'url': '/api/session/<session_id>/reset'
            }
        }), 500

# ============================================================================
# WEBSOCKET EVENTS (Real-time updates)
# ============================================================================

@socketio.on('connect')
def handle_connect():
    """Handle client connection"""
    logger.info(f"Client connected: {request.sid}")
    emit('connection_response', {'data': f'Connected to PsychoMetric AI v{VERSION}'})


@socketio.on('disconnect')
def handle_disconnect():
    """Handle client disconnection"""
    logger.info(f"Client disconnected: {request.sid}")


@socketio.on('join_session')
def handle_join_session(data):
    """Subscribe the client to updates for one session"""
    session_id = (data or {}).get('session_id')
    controller = get_services().sessions.get(session_id) if session_id else None
    if not controller:
        emit('session_error', {'error': 'Invalid session', 'session_id': session_id})
        return
    join_room(session_id)
    emit('session_update', controller.context.to_dict())


@socketio.on('leave_session')
def handle_leave_session(data):
    session_id = (data or {}).get('session_id')
    if session_id:
        leave_room(session_id)

# ============================================================================
# MAIN
# ============================================================================

app = create_app()

if __name__ == '__main__':
    socketio.run(
        app,
        debug=config.FLASK_DEBUG,
        host='0.0.0.0',
        port=config.PORT,
        allow_unsafe_werkzeug=True
    )
