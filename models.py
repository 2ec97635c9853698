"""Core data models for the app."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import numpy as np


class SessionState(str, Enum):
    IDLE = "IDLE"
    STARTING = "STARTING"
    LISTENING = "LISTENING"
    RESTARTING = "RESTARTING"
    STOPPED = "STOPPED"


class TranscriptionKind(str, Enum):
    PARTIAL = "partial"
    FINAL = "final"
    NO_SPEECH = "no_speech"
    CANCELLED = "cancelled"
    TRANSIENT_ERROR = "transient_error"
    FATAL_ERROR = "fatal_error"


@dataclass(frozen=True)
class AudioFormat:
    sample_rate: int = 16000
    channels: int = 1


@dataclass(frozen=True)
class AudioFrame:
    """Mono float32 samples in [-1, 1] as delivered by the capture callback."""

    samples: np.ndarray
    sample_rate: int = 16000
    timestamp_ms: int = 0

    @property
    def frame_count(self) -> int:
        return int(self.samples.shape[0])

    def to_pcm16(self) -> bytes:
        clipped = np.clip(self.samples, -1.0, 1.0)
        return (clipped * 32767.0).astype("<i2").tobytes()


@dataclass
class TranscriptionEvent:
    kind: str
    text: str = ""
    code: str = ""
    message: str = ""


@dataclass(frozen=True)
class SessionTimings:
    silence_threshold_s: float = 1.8
    final_restart_delay_s: float = 0.5
    silence_restart_delay_s: float = 0.3
    no_speech_restart_delay_s: float = 1.0
    error_restart_delay_s: float = 0.5
    max_consecutive_errors: int = 3


@dataclass
class Session:
    """One open recognition cycle. Replaced, never reused, on restart."""

    epoch: int
    stream: Any = None
    transcription: str = ""
    consecutive_errors: int = 0
    silence_task: Optional[Any] = field(default=None, repr=False)
    restart_task: Optional[Any] = field(default=None, repr=False)
