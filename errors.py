"""Shared error codes, user-facing messages and exceptions."""

from __future__ import annotations

PERMISSION_DENIED = "PERMISSION_DENIED"
MICROPHONE_UNAVAILABLE = "MICROPHONE_UNAVAILABLE"
RECOGNIZER_UNAVAILABLE = "RECOGNIZER_UNAVAILABLE"
AUTH_FAILED = "AUTH_FAILED"
NETWORK_ERROR = "NETWORK_ERROR"
STREAM_SETUP_FAILED = "STREAM_SETUP_FAILED"
ASR_PROTOCOL_ERROR = "ASR_PROTOCOL_ERROR"

ERROR_MESSAGES = {
    PERMISSION_DENIED: "Permission is required in system settings.",
    MICROPHONE_UNAVAILABLE: "Microphone could not be opened.",
    RECOGNIZER_UNAVAILABLE: "Speech recognizer is unavailable.",
    AUTH_FAILED: "API key is invalid.",
    NETWORK_ERROR: "Network failed, please retry.",
    STREAM_SETUP_FAILED: "Could not start listening.",
    ASR_PROTOCOL_ERROR: "ASR response format is invalid.",
}


class VoiceInjectorError(Exception):
    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or ERROR_MESSAGES.get(code, code))
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code, code)


class SessionStartError(VoiceInjectorError):
    """Raised by SessionManager.start when a session cannot be opened."""


class RecognizerError(VoiceInjectorError):
    """Raised by a recognition client when a stream cannot be opened."""
