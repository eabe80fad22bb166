"""
PsychoMetric AI - Runtime configuration
All values come from the environment (.env supported through python-dotenv)
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent

# ============================================================================
# FLASK
# ============================================================================

SECRET_KEY = os.getenv('SECRET_KEY', 'psychometric-secret-2025')
PORT = int(os.getenv('PORT', 5000))
FLASK_DEBUG = os.getenv('FLASK_DEBUG', 'false').lower() == 'true'

# ============================================================================
# GROQ
# ============================================================================

GROQ_API_KEY = os.getenv('GROQ_API_KEY')
GROQ_MODEL = os.getenv('GROQ_MODEL', 'llama-3.3-70b-versatile')
GROQ_VISION_MODEL = os.getenv('GROQ_VISION_MODEL', 'meta-llama/llama-4-scout-17b-16e-instruct')
GROQ_TTS_MODEL = os.getenv('GROQ_TTS_MODEL', 'playai-tts')
GROQ_TTS_FORMAT = os.getenv('GROQ_TTS_FORMAT', 'wav')
GROQ_STT_MODEL = os.getenv('GROQ_STT_MODEL', 'whisper-large-v3-turbo')
AI_TIMEOUT_SECONDS = float(os.getenv('AI_TIMEOUT_SECONDS', 60))

# Public voice presets -> provider voice names
VOICE_PRESETS = {
    'Puck': os.getenv('VOICE_PUCK', 'Fritz-PlayAI'),
    'Charon': os.getenv('VOICE_CHARON', 'Atlas-PlayAI'),
    'Kore': os.getenv('VOICE_KORE', 'Arista-PlayAI'),
    'Fenrir': os.getenv('VOICE_FENRIR', 'Thunder-PlayAI'),
    'Zephyr': os.getenv('VOICE_ZEPHYR', 'Celeste-PlayAI'),
}
DEFAULT_VOICE = 'Puck'

# ============================================================================
# ASSESSMENT
# ============================================================================

QUESTION_COUNT = int(os.getenv('QUESTION_COUNT', 5))
SEED_QUESTIONS_PATH = os.getenv(
    'SEED_QUESTIONS_PATH',
    str(BASE_DIR / 'data' / 'seed_questions.json')
)
REQUIRE_PHOTO = os.getenv('REQUIRE_PHOTO', 'true').lower() == 'true'

CHART_RADIUS = float(os.getenv('CHART_RADIUS', 100))
CHART_LABEL_OFFSET = float(os.getenv('CHART_LABEL_OFFSET', 20))

# ============================================================================
# STORAGE
# ============================================================================

CACHE_CONFIG = {
    'CACHE_TYPE': os.getenv('CACHE_TYPE', 'FileSystemCache'),
    'CACHE_DIR': os.getenv('CACHE_DIR', str(BASE_DIR / '.storage')),
    'CACHE_DEFAULT_TIMEOUT': 0,
    'CACHE_THRESHOLD': int(os.getenv('CACHE_THRESHOLD', 10000)),
}
