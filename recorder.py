"""Microphone capture based on sounddevice."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Optional

import numpy as np

from errors import MICROPHONE_UNAVAILABLE, SessionStartError
from interfaces import FrameCallback
from models import AudioFormat, AudioFrame

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)

BUFFER_SIZE = 4096
VOICE_ISOLATION_RATE = 16000


class SoundDeviceRecorder:
    def __init__(
        self,
        sample_rate: Optional[int] = None,
        blocksize: int = BUFFER_SIZE,
        input_gain: float = 2.5,
        voice_isolation: bool = False,
        device: Any = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.blocksize = blocksize
        self.input_gain = input_gain
        self.voice_isolation = voice_isolation
        self.device = device
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self._callback: Optional[FrameCallback] = None
        self._format = AudioFormat()
        self.callback_errors = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def audio_format(self) -> AudioFormat:
        """Format the next start() will capture in."""
        if self.voice_isolation:
            return AudioFormat(sample_rate=VOICE_ISOLATION_RATE, channels=1)
        if self.sample_rate:
            return AudioFormat(sample_rate=self.sample_rate, channels=1)
        if sd is not None:
            try:
                info = sd.query_devices(self.device, "input")
                return AudioFormat(sample_rate=int(info["default_samplerate"]), channels=1)
            except Exception:
                logger.debug("could not query input device", exc_info=True)
        return AudioFormat()

    def start(self, callback: FrameCallback) -> None:
        with self._lock:
            if self._running:
                return
            if sd is None:
                raise RuntimeError("sounddevice is not installed")
            self._format = self.audio_format
            self._callback = callback
            try:
                self._stream = sd.InputStream(
                    samplerate=self._format.sample_rate,
                    channels=1,
                    dtype="float32",
                    blocksize=self.blocksize,
                    device=self.device,
                    callback=self._on_audio,
                )
                self._stream.start()
            except Exception as exc:
                self._stream = None
                self._callback = None
                raise SessionStartError(MICROPHONE_UNAVAILABLE, str(exc)) from exc
            self._running = True
            logger.info(
                "audio capture started at %d Hz (%d-sample blocks)",
                self._format.sample_rate,
                self.blocksize,
            )

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._callback = None
            if self._stream is not None:
                self._stream.stop()
                self._stream.close()
                self._stream = None
            logger.info("audio capture stopped")

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        callback = self._callback
        if not self._running or callback is None:
            return
        if status:
            logger.debug("audio status: %s", status)
        samples = np.asarray(indata, dtype=np.float32)
        if samples.ndim > 1:
            samples = samples[:, 0]
        samples = np.clip(samples * self.input_gain, -1.0, 1.0)
        frame = AudioFrame(
            samples=samples,
            sample_rate=self._format.sample_rate,
            timestamp_ms=int(time.time() * 1000),
        )
        try:
            callback(frame)
        except Exception:
            self.callback_errors += 1
            logger.exception("audio frame subscriber failed")
