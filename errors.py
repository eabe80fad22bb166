"""Error taxonomy for the assessment service.

Every error is terminal to the single action that raised it; none of them
ends the session.
"""

from __future__ import annotations

from typing import Optional


class AssessmentError(Exception):
    """Base class for all assessment errors."""

    http_status = 400

    def __init__(self, message: str = '', *, cause: Optional[Exception] = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.cause = cause


class ValidationError(AssessmentError):
    """Missing onboarding fields or a payload that fails its schema."""


class SessionStateError(AssessmentError):
    """Action not allowed in the session's current state."""

    http_status = 409


class GenerationError(AssessmentError):
    """Question generation failed or returned nothing usable."""

    http_status = 502


class SynthesisError(AssessmentError):
    """Text-to-speech returned no audio."""

    http_status = 502


class InterpretationError(AssessmentError):
    """Speech interpretation service or network failure."""

    http_status = 502


class AnalysisError(AssessmentError):
    """Profile analysis unreachable or response failed validation."""

    http_status = 502


class DeviceAccessError(AssessmentError):
    """Microphone access denied on the client."""

    http_status = 403


class StaleResponseError(AssessmentError):
    """A response arrived after the session moved on; it was discarded."""

    http_status = 409
