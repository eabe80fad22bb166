"""Groq client for the four AI operations the assessment depends on."""

from __future__ import annotations

import base64
import json
import logging
from typing import Dict, List, Optional, Sequence

import groq
import httpx
from groq import Groq

from errors import (
    AnalysisError,
    GenerationError,
    InterpretationError,
    SynthesisError,
    ValidationError,
)
from models import (
    AnalysisReport,
    Answer,
    Question,
    QuestionCategory,
    UserProfile,
    VOICES,
)
from schemas import (
    AnalysisReportPayload,
    GeneratedQuestionsPayload,
    SpokenSelectionPayload,
    validate_payload,
)

logger = logging.getLogger(__name__)

SERVICE_ERRORS = (groq.APIError, httpx.HTTPError)

AUDIO_MIME_TYPES = {
    'wav': 'audio/wav',
    'mp3': 'audio/mpeg',
    'flac': 'audio/flac',
    'ogg': 'audio/ogg',
    'mulaw': 'audio/basic',
}

AUDIO_EXTENSIONS = {
    'audio/webm': 'webm',
    'audio/ogg': 'ogg',
    'audio/wav': 'wav',
    'audio/x-wav': 'wav',
    'audio/mpeg': 'mp3',
    'audio/mp4': 'm4a',
}


class GroqAssessmentClient:
    """Question generation, speech in/out and profile analysis over Groq."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = 'llama-3.3-70b-versatile',
        vision_model: str = 'meta-llama/llama-4-scout-17b-16e-instruct',
        tts_model: str = 'playai-tts',
        tts_format: str = 'wav',
        stt_model: str = 'whisper-large-v3-turbo',
        voice_presets: Optional[Dict[str, str]] = None,
        timeout: float = 60.0,
        client: Optional[Groq] = None,
    ):
        self.model = model
        self.vision_model = vision_model
        self.tts_model = tts_model
        self.tts_format = tts_format
        self.stt_model = stt_model
        self.voice_presets = voice_presets or {voice: voice for voice in VOICES}
        if client is not None:
            self.client = client
        elif api_key:
            self.client = Groq(api_key=api_key, http_client=httpx.Client(timeout=timeout))
        else:
            self.client = None

    # ------------------------------------------------------------------
    # 1. Question generation
    # ------------------------------------------------------------------

    def generate_questions(self, category: QuestionCategory, count: int = 1) -> List[Question]:
        if not self.client:
            raise GenerationError('Groq client not configured')

        prompt = self._build_generation_prompt(category, count)
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{'role': 'user', 'content': prompt}],
                temperature=0.9,
                max_tokens=400 * max(1, count),
                response_format={'type': 'json_object'},
            )
        except SERVICE_ERRORS as e:
            logger.error(f"❌ Groq question generation failed: {e}")
            raise GenerationError(f"Question service unreachable: {e}", cause=e) from e

        data = self._parse_response(self._content(response))
        if data is None:
            raise GenerationError('Question service returned malformed JSON')
        if isinstance(data, list):
            data = {'questions': data}

        try:
            payload = validate_payload(GeneratedQuestionsPayload, data)
        except ValidationError as e:
            raise GenerationError(e.message, cause=e) from e

        questions = [
            Question.generated(category, item.text, item.options.as_mapping())
            for item in payload.questions[:count]
        ]
        logger.info(f"✓ Generated {len(questions)} question(s) for {category.name}")
        return questions

    def _build_generation_prompt(self, category: QuestionCategory, count: int) -> str:
        return f"""Generate {count} multiple-choice personality assessment question(s) for the category: "{category.value}".

Make them psychologically probing. Each question needs five distinct answer options
that reveal different temperaments.

Respond ONLY with JSON like:
{{
  "questions": [
    {{
      "text": "The question",
      "options": {{"A": "...", "B": "...", "C": "...", "D": "...", "E": "..."}}
    }}
  ]
}}

Options A, B, C and D are required; E is optional."""

    # ------------------------------------------------------------------
    # 2. Speech synthesis
    # ------------------------------------------------------------------

    def synthesize_speech(self, text: str, voice: str) -> bytes:
        if not self.client:
            raise SynthesisError('Groq client not configured')

        provider_voice = self.voice_presets.get(voice, voice)
        try:
            response = self.client.audio.speech.create(
                model=self.tts_model,
                voice=provider_voice,
                input=text,
                response_format=self.tts_format,
            )
            audio = response.read()
        except SERVICE_ERRORS as e:
            logger.error(f"❌ Groq speech synthesis failed: {e}")
            raise SynthesisError(f"Speech service unreachable: {e}", cause=e) from e

        if not audio:
            raise SynthesisError('No audio data returned')
        return audio

    def audio_data_url(self, audio: bytes) -> str:
        mime = AUDIO_MIME_TYPES.get(self.tts_format, 'audio/wav')
        return f"data:{mime};base64,{base64.b64encode(audio).decode('ascii')}"

    # ------------------------------------------------------------------
    # 3. Spoken answer interpretation
    # ------------------------------------------------------------------

    def interpret_spoken_answer(
        self,
        audio: bytes,
        mime_type: str = 'audio/webm',
        question: Optional[Question] = None,
    ) -> Optional[str]:
        """Return the option label the user said, or None when it is unclear"""
        if not self.client:
            raise InterpretationError('Groq client not configured')

        extension = AUDIO_EXTENSIONS.get((mime_type or '').split(';')[0], 'webm')
        try:
            transcription = self.client.audio.transcriptions.create(
                file=(f"answer.{extension}", audio),
                model=self.stt_model,
                response_format='json',
            )
        except SERVICE_ERRORS as e:
            logger.error(f"❌ Groq transcription failed: {e}")
            raise InterpretationError(f"Speech service unreachable: {e}", cause=e) from e

        transcript = (getattr(transcription, 'text', '') or '').strip()
        if not transcript:
            return None

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{'role': 'user', 'content': self._build_selection_prompt(transcript, question)}],
                temperature=0,
                max_tokens=50,
                response_format={'type': 'json_object'},
            )
        except SERVICE_ERRORS as e:
            raise InterpretationError(f"Speech service unreachable: {e}", cause=e) from e

        data = self._parse_response(self._content(response))
        try:
            payload = validate_payload(SpokenSelectionPayload, data or {})
        except ValidationError as e:
            raise InterpretationError(e.message, cause=e) from e

        logger.info(f"✓ Interpreted spoken answer {transcript!r} as {payload.selection}")
        return None if payload.selection == 'UNKNOWN' else payload.selection

    def _build_selection_prompt(self, transcript: str, question: Optional[Question]) -> str:
        options = ''
        if question is not None:
            options = '\n'.join(
                f"{label}: {question.options[label]}" for label in question.labels
            )
        return f"""The user is answering a multiple choice question out loud.
They might say "Option A", "the first one", or just read the answer text.

OPTIONS:
{options or 'A, B, C, D, E'}

TRANSCRIPT: "{transcript}"

Determine which option (A, B, C, D, or E) they selected.
Respond ONLY with JSON like {{"selection": "A"}}; use "UNKNOWN" if unclear."""

    # ------------------------------------------------------------------
    # 4. Profile analysis
    # ------------------------------------------------------------------

    def analyze_profile(
        self,
        profile: UserProfile,
        answers: Sequence[Answer],
        questions: Sequence[Question],
    ) -> AnalysisReport:
        if not self.client:
            raise AnalysisError('Groq client not configured')

        content: List[Dict] = [
            {'type': 'text', 'text': self._build_analysis_prompt(profile, answers, questions)}
        ]
        if profile.photo_data_url:
            content.append({'type': 'image_url', 'image_url': {'url': profile.photo_data_url}})

        try:
            response = self.client.chat.completions.create(
                model=self.vision_model,
                messages=[{'role': 'user', 'content': content}],
                temperature=0.7,
                max_tokens=2048,
                response_format={'type': 'json_object'},
            )
        except SERVICE_ERRORS as e:
            logger.error(f"❌ Groq profile analysis failed: {e}")
            raise AnalysisError(f"Analysis service unreachable: {e}", cause=e) from e

        data = self._parse_response(self._content(response))
        if not isinstance(data, dict):
            raise AnalysisError('Analysis service returned malformed JSON')
        try:
            payload = validate_payload(AnalysisReportPayload, data)
        except ValidationError as e:
            raise AnalysisError(e.message, cause=e) from e
        return payload.to_report()

    def _build_analysis_prompt(
        self,
        profile: UserProfile,
        answers: Sequence[Answer],
        questions: Sequence[Question],
    ) -> str:
        by_id = {q.id: q for q in questions}
        lines = []
        for answer in answers:
            question = by_id.get(answer.question_id)
            if question is None:
                continue
            lines.append(
                f"Category: {question.category.value} | Question: {question.text} | "
                f"Answer: {question.options.get(answer.selected_option, answer.selected_option)}"
            )
        answer_context = '\n'.join(lines)

        return f"""Analyze this user profile based on academic psychological frameworks (Big Five, MBTI, Jungian Archetypes).

USER DEMOGRAPHICS:
- Name: {profile.name}
- Age: {profile.age()}
- Gender: {profile.gender.value}
- Nationality: {profile.nationality}

QUESTIONNAIRE RESPONSES:
{answer_context}

Task: Provide a deep psychological profile. Also analyze the provided photo (physiognomy/visual vibe)
and correlate it with the data (use scientific skepticism but provide the 'visual impression').

Respond ONLY with JSON like:
{{
  "summary": "...",
  "traits": [{{"trait": "Openness", "score": 72, "description": "..."}}],
  "psychologicalArchetype": "...",
  "strengths": ["..."],
  "weaknesses": ["..."],
  "relationshipStyle": "...",
  "careerFit": "...",
  "visualCorrelation": "..."
}}

Trait scores are numbers from 0 to 100. Give at least five traits."""

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    @staticmethod
    def _content(response) -> str:
        choices = getattr(response, 'choices', None) or []
        return choices[0].message.content if choices else ''

    @staticmethod
    def _parse_response(content: str):
        if not content:
            return None
        snippet = content.strip()
        if snippet.startswith('```'):
            snippet = snippet.strip('`')
        if snippet.lower().startswith('json'):
            snippet = snippet[4:].strip()

        start_candidates = [i for i in (snippet.find('{'), snippet.find('[')) if i != -1]
        if not start_candidates:
            return None
        start = min(start_candidates)
        end = snippet.rfind('}' if snippet[start] == '{' else ']')
        if end == -1:
            return None
        try:
            return json.loads(snippet[start:end + 1])
        except json.JSONDecodeError:
            return None
