"""Tests for DashscopeRecognitionClient."""

from __future__ import annotations

import time
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from errors import AUTH_FAILED, NETWORK_ERROR, RECOGNIZER_UNAVAILABLE, RecognizerError
from models import AudioFormat, AudioFrame, TranscriptionEvent, TranscriptionKind
from recognizer import DashscopeRecognitionClient, RecognitionStream, _StreamCallback, classify_error


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

def _make_frame(n_samples: int = 4096, value: float = 0.0) -> AudioFrame:
    return AudioFrame(samples=np.full(n_samples, value, dtype=np.float32), sample_rate=16000)


def _wait_for(events: list, count: int, *, timeout: float = 2.0) -> None:
    deadline = time.time() + timeout
    while time.time() < deadline and len(events) < count:
        time.sleep(0.01)


def _result(sentence: object) -> MagicMock:
    result = MagicMock()
    result.get_sentence.return_value = sentence
    return result


# ---------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------

@pytest.mark.parametrize(
    ("message", "kind", "code"),
    [
        ("NO_VALID_AUDIO_ERROR", TranscriptionKind.NO_SPEECH, ""),
        ("Request cancelled by client", TranscriptionKind.CANCELLED, ""),
        ("401 Unauthorized: invalid api key", TranscriptionKind.FATAL_ERROR, AUTH_FAILED),
        ("websocket connection reset", TranscriptionKind.TRANSIENT_ERROR, NETWORK_ERROR),
        ("something odd happened", TranscriptionKind.TRANSIENT_ERROR, "ASR_PROTOCOL_ERROR"),
    ],
)
def test_classify_error(message: str, kind: TranscriptionKind, code: str) -> None:
    event = classify_error(message)

    assert event.kind == kind.value
    assert event.code == code
    assert event.message == message


# ---------------------------------------------------------------
# open()
# ---------------------------------------------------------------

@patch("recognizer.dashscope", None)
def test_open_without_dashscope_raises() -> None:
    client = DashscopeRecognitionClient(api_key="test-key")

    with pytest.raises(RecognizerError) as info:
        client.open(AudioFormat(), lambda e: None)

    assert info.value.code == RECOGNIZER_UNAVAILABLE


@patch("recognizer.Recognition", MagicMock())
@patch("recognizer.dashscope", MagicMock())
@patch.dict("os.environ", {"DASHSCOPE_API_KEY": ""}, clear=False)
def test_open_without_api_key_raises_auth_failed() -> None:
    client = DashscopeRecognitionClient(api_key="")

    with pytest.raises(RecognizerError) as info:
        client.open(AudioFormat(), lambda e: None)

    assert info.value.code == AUTH_FAILED


@patch("recognizer.Recognition")
@patch("recognizer.dashscope")
def test_open_starts_recognition_at_capture_rate(mock_ds: MagicMock, mock_rec: MagicMock) -> None:
    client = DashscopeRecognitionClient(api_key="test-key", model="paraformer-realtime-v2")

    stream = client.open(AudioFormat(sample_rate=48000), lambda e: None)

    kwargs = mock_rec.call_args.kwargs
    assert kwargs["model"] == "paraformer-realtime-v2"
    assert kwargs["format"] == "pcm"
    assert kwargs["sample_rate"] == 48000
    assert isinstance(kwargs["callback"], _StreamCallback)
    mock_rec.return_value.start.assert_called_once()
    assert mock_ds.api_key == "test-key"

    client.close(stream)
    assert stream.closed is True
    mock_rec.return_value.stop.assert_called_once()


@patch("recognizer.Recognition")
@patch("recognizer.dashscope", MagicMock())
def test_open_failure_is_mapped_to_error_code(mock_rec: MagicMock) -> None:
    mock_rec.return_value.start.side_effect = Exception("401 Unauthorized: invalid api key")
    client = DashscopeRecognitionClient(api_key="bad-key")

    with pytest.raises(RecognizerError) as info:
        client.open(AudioFormat(), lambda e: None)

    assert info.value.code == AUTH_FAILED


@patch("recognizer.RecognitionStream")
@patch("recognizer.Recognition", side_effect=Exception("connection refused"))
@patch("recognizer.dashscope", MagicMock())
def test_constructor_failure_closes_stream(mock_rec: MagicMock, mock_stream_cls: MagicMock) -> None:
    client = DashscopeRecognitionClient(api_key="sk-test")

    with pytest.raises(RecognizerError) as info:
        client.open(AudioFormat(), lambda e: None)

    assert info.value.code == NETWORK_ERROR
    mock_stream_cls.return_value.close.assert_called_once()


# ---------------------------------------------------------------
# feed() / close()
# ---------------------------------------------------------------

def test_feed_sends_pcm16_until_closed() -> None:
    client = DashscopeRecognitionClient(api_key="test-key")
    stream = RecognitionStream(lambda e: None)
    stream.recognition = MagicMock()

    client.feed(stream, _make_frame(4096, 0.5))
    payload = stream.recognition.send_audio_frame.call_args.args[0]
    assert isinstance(payload, bytes)
    assert len(payload) == 4096 * 2

    client.close(stream)
    client.close(stream)
    client.feed(stream, _make_frame())

    assert stream.recognition.send_audio_frame.call_count == 1
    stream.recognition.stop.assert_called_once()


def test_close_tolerates_stop_failure() -> None:
    client = DashscopeRecognitionClient(api_key="test-key")
    stream = RecognitionStream(lambda e: None)
    stream.recognition = MagicMock()
    stream.recognition.stop.side_effect = RuntimeError("already stopped")

    client.close(stream)

    assert stream.closed is True


def test_pcm16_conversion_clips() -> None:
    frame = AudioFrame(samples=np.array([0.0, 1.0, -1.0, 2.0], dtype=np.float32))
    pcm = np.frombuffer(frame.to_pcm16(), dtype="<i2")

    assert pcm.tolist() == [0, 32767, -32767, 32767]


# ---------------------------------------------------------------
# SDK callbacks
# ---------------------------------------------------------------

def test_callback_emits_partial_then_final() -> None:
    events: list[TranscriptionEvent] = []
    stream = RecognitionStream(events.append)
    callback = _StreamCallback(stream)

    callback.on_event(_result({"text": "turn on", "end_time": None}))
    callback.on_event(_result({"text": "turn on the lights", "end_time": 1800}))
    _wait_for(events, 2)

    assert [(e.kind, e.text) for e in events] == [
        (TranscriptionKind.PARTIAL.value, "turn on"),
        (TranscriptionKind.FINAL.value, "turn on the lights"),
    ]
    stream.close()


def test_callback_uses_sdk_sentence_end_check() -> None:
    events: list[TranscriptionEvent] = []
    stream = RecognitionStream(events.append)
    callback = _StreamCallback(stream)

    callback.on_event(_result({"text": "hi", "end_time": None}))
    callback.on_event(_result({"text": "hi there", "begin_time": 0, "end_time": 900}))
    callback.on_event(_result(None))
    _wait_for(events, 2)

    assert [(e.kind, e.text) for e in events] == [
        (TranscriptionKind.PARTIAL.value, "hi"),
        (TranscriptionKind.FINAL.value, "hi there"),
    ]
    stream.close()


@patch("recognizer.RecognitionResult")
def test_callback_defers_final_detection_to_sdk(mock_result: MagicMock) -> None:
    mock_result.is_sentence_end.return_value = False
    events: list[TranscriptionEvent] = []
    stream = RecognitionStream(events.append)
    callback = _StreamCallback(stream)
    sentence = {"text": "hi", "end_time": 300}

    callback.on_event(_result(sentence))
    _wait_for(events, 1)

    mock_result.is_sentence_end.assert_called_once_with(sentence)
    assert [e.kind for e in events] == [TranscriptionKind.PARTIAL.value]
    stream.close()


def test_callback_errors_and_completion_are_classified() -> None:
    events: list[TranscriptionEvent] = []
    stream = RecognitionStream(events.append)
    callback = _StreamCallback(stream)

    error = MagicMock()
    error.message = "NO_VALID_AUDIO_ERROR"
    callback.on_error(error)
    callback.on_complete()
    _wait_for(events, 2)

    assert events[0].kind == TranscriptionKind.NO_SPEECH.value
    assert events[1].kind == TranscriptionKind.TRANSIENT_ERROR.value
    stream.close()


def test_nothing_is_delivered_after_close() -> None:
    events: list[TranscriptionEvent] = []
    stream = RecognitionStream(events.append)
    callback = _StreamCallback(stream)

    stream.close()
    callback.on_event(_result({"text": "late", "end_time": 10}))
    callback.on_complete()
    time.sleep(0.1)

    assert events == []
