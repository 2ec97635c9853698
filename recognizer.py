"""Streaming recognition client using DashScope real-time ASR.

Each ``open()`` starts one ``dashscope.audio.asr.Recognition`` task and returns
a ``RecognitionStream`` handle. SDK callbacks arrive on the SDK's websocket
thread; they are translated to ``TranscriptionEvent`` values and handed to a
per-stream dispatcher thread so the SDK thread never blocks on the consumer.
Once a stream is closed, nothing more is delivered from it.
"""

from __future__ import annotations

import logging
import os
import threading
from queue import Queue
from typing import Any, Callable, Optional

from errors import (
    ASR_PROTOCOL_ERROR,
    AUTH_FAILED,
    NETWORK_ERROR,
    RECOGNIZER_UNAVAILABLE,
    RecognizerError,
)
from models import AudioFormat, AudioFrame, TranscriptionEvent, TranscriptionKind

try:
    import dashscope
    from dashscope.audio.asr import Recognition, RecognitionCallback, RecognitionResult
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore
    Recognition = None  # type: ignore
    RecognitionCallback = object  # type: ignore
    RecognitionResult = None  # type: ignore

logger = logging.getLogger(__name__)

NO_SPEECH_MARKERS = ("no_valid_audio", "no valid audio", "no speech", "silence")
AUTH_MARKERS = ("401", "403", "auth", "api key", "apikey", "access denied")
NETWORK_MARKERS = ("timeout", "timed out", "network", "connection", "websocket")


def classify_error(message: str) -> TranscriptionEvent:
    """Map an SDK error message to a transcription event."""
    low = message.lower()
    if any(marker in low for marker in NO_SPEECH_MARKERS):
        return TranscriptionEvent(kind=TranscriptionKind.NO_SPEECH.value, message=message)
    if "cancel" in low:
        return TranscriptionEvent(kind=TranscriptionKind.CANCELLED.value, message=message)
    if any(marker in low for marker in AUTH_MARKERS):
        return TranscriptionEvent(
            kind=TranscriptionKind.FATAL_ERROR.value, code=AUTH_FAILED, message=message
        )
    if any(marker in low for marker in NETWORK_MARKERS):
        return TranscriptionEvent(
            kind=TranscriptionKind.TRANSIENT_ERROR.value, code=NETWORK_ERROR, message=message
        )
    return TranscriptionEvent(
        kind=TranscriptionKind.TRANSIENT_ERROR.value, code=ASR_PROTOCOL_ERROR, message=message
    )


class RecognitionStream:
    def __init__(self, on_event: Callable[[TranscriptionEvent], None]) -> None:
        self.recognition: Any = None
        self._on_event = on_event
        self._events: Queue[TranscriptionEvent | None] = Queue()
        self._closed = threading.Event()
        self._dispatcher = threading.Thread(target=self._dispatch, daemon=True)
        self._dispatcher.start()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def post(self, event: TranscriptionEvent) -> None:
        if self._closed.is_set():
            return
        self._events.put(event)

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        self._events.put(None)

    def _dispatch(self) -> None:
        while True:
            event = self._events.get()
            if event is None or self._closed.is_set():
                return
            try:
                self._on_event(event)
            except Exception:
                logger.exception("transcription event handler failed")


class _StreamCallback(RecognitionCallback):
    def __init__(self, stream: RecognitionStream) -> None:
        super().__init__()
        self._stream = stream

    def on_open(self) -> None:
        logger.debug("recognition stream opened")

    def on_event(self, result: Any) -> None:
        sentence = result.get_sentence()
        if not isinstance(sentence, dict):
            return
        text = str(sentence.get("text", ""))
        if RecognitionResult.is_sentence_end(sentence):
            kind = TranscriptionKind.FINAL
        else:
            kind = TranscriptionKind.PARTIAL
        self._stream.post(TranscriptionEvent(kind=kind.value, text=text))

    def on_error(self, result: Any) -> None:
        message = str(getattr(result, "message", "") or result)
        self._stream.post(classify_error(message))

    def on_complete(self) -> None:
        # Only reaches the consumer when the server ended a stream we did not close.
        self._stream.post(
            TranscriptionEvent(
                kind=TranscriptionKind.TRANSIENT_ERROR.value,
                code=ASR_PROTOCOL_ERROR,
                message="recognition task completed unexpectedly",
            )
        )

    def on_close(self) -> None:
        logger.debug("recognition stream closed")


class DashscopeRecognitionClient:
    def __init__(
        self,
        api_key: str = "",
        model: str = "paraformer-realtime-v2",
    ) -> None:
        self._api_key = api_key
        self._model = model

    def set_api_key(self, api_key: str) -> None:
        self._api_key = api_key

    def open(
        self,
        audio_format: AudioFormat,
        on_event: Callable[[TranscriptionEvent], None],
    ) -> RecognitionStream:
        if dashscope is None or Recognition is None:
            raise RecognizerError(RECOGNIZER_UNAVAILABLE, "dashscope is not installed")

        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise RecognizerError(AUTH_FAILED, "No API key configured")
        dashscope.api_key = api_key

        stream = RecognitionStream(on_event)
        try:
            stream.recognition = Recognition(
                model=self._model,
                format="pcm",
                sample_rate=audio_format.sample_rate,
                callback=_StreamCallback(stream),
            )
            stream.recognition.start()
        except Exception as exc:
            stream.close()
            event = classify_error(str(exc))
            raise RecognizerError(event.code or ASR_PROTOCOL_ERROR, str(exc)) from exc
        logger.debug("opened %s stream at %d Hz", self._model, audio_format.sample_rate)
        return stream

    def feed(self, stream: RecognitionStream, frame: AudioFrame) -> None:
        if stream.closed or stream.recognition is None:
            return
        stream.recognition.send_audio_frame(frame.to_pcm16())

    def close(self, stream: RecognitionStream) -> None:
        if stream.closed:
            return
        stream.close()
        recognition: Optional[Any] = stream.recognition
        if recognition is None:
            return
        try:
            recognition.stop()
        except Exception:
            logger.debug("recognition stop raised", exc_info=True)
