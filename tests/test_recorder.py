"""Tests for SoundDeviceRecorder."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from errors import MICROPHONE_UNAVAILABLE, SessionStartError
from models import AudioFrame
from recorder import BUFFER_SIZE, SoundDeviceRecorder


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

def _fake_indata(n_samples: int = BUFFER_SIZE, value: float = 0.1) -> np.ndarray:
    """Shape sounddevice hands to the callback: (frames, channels)."""
    return np.full((n_samples, 1), value, dtype=np.float32)


# ---------------------------------------------------------------
# Basic start / stop
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_start_creates_stream_and_runs(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    recorder = SoundDeviceRecorder(sample_rate=16000)
    recorder.start(lambda frame: None)

    kwargs = mock_sd.InputStream.call_args.kwargs
    assert kwargs["samplerate"] == 16000
    assert kwargs["blocksize"] == 4096
    assert kwargs["dtype"] == "float32"
    mock_stream.start.assert_called_once()
    assert recorder.is_running is True

    recorder.stop()
    mock_stream.stop.assert_called_once()
    mock_stream.close.assert_called_once()
    assert recorder.is_running is False


@patch("recorder.sd")
def test_start_is_idempotent(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder(sample_rate=16000)
    recorder.start(lambda frame: None)
    recorder.start(lambda frame: None)  # second call should be no-op

    assert mock_sd.InputStream.call_count == 1
    recorder.stop()


@patch("recorder.sd")
def test_stop_is_idempotent(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    recorder = SoundDeviceRecorder(sample_rate=16000)
    recorder.start(lambda frame: None)
    recorder.stop()
    recorder.stop()  # second stop: should not raise

    mock_stream.close.assert_called_once()


@patch("recorder.sd")
def test_stream_failure_raises_start_error(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.side_effect = OSError("Error querying device -1")

    recorder = SoundDeviceRecorder(sample_rate=16000)
    with pytest.raises(SessionStartError) as info:
        recorder.start(lambda frame: None)

    assert info.value.code == MICROPHONE_UNAVAILABLE
    assert recorder.is_running is False


# ---------------------------------------------------------------
# Audio format
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_audio_format_uses_device_default_rate(mock_sd: MagicMock) -> None:
    mock_sd.query_devices.return_value = {"default_samplerate": 48000.0}

    recorder = SoundDeviceRecorder()

    assert recorder.audio_format.sample_rate == 48000


@patch("recorder.sd")
def test_voice_isolation_captures_at_16k(mock_sd: MagicMock) -> None:
    mock_sd.query_devices.return_value = {"default_samplerate": 48000.0}
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder(voice_isolation=True)
    recorder.start(lambda frame: None)

    assert recorder.audio_format.sample_rate == 16000
    assert mock_sd.InputStream.call_args.kwargs["samplerate"] == 16000
    recorder.stop()


# ---------------------------------------------------------------
# Audio callback delivers frames
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_callback_delivers_boosted_mono_frames(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()
    frames: list[AudioFrame] = []

    recorder = SoundDeviceRecorder(sample_rate=16000, input_gain=2.5)
    recorder.start(frames.append)
    recorder._on_audio(_fake_indata(value=0.1), frames=BUFFER_SIZE, time_info=None, status=None)
    recorder._on_audio(_fake_indata(value=0.9), frames=BUFFER_SIZE, time_info=None, status=None)

    assert len(frames) == 2
    assert frames[0].frame_count == BUFFER_SIZE
    assert frames[0].sample_rate == 16000
    assert frames[0].samples[0] == pytest.approx(0.25)
    assert frames[1].samples.max() == pytest.approx(1.0)

    recorder.stop()


@patch("recorder.sd")
def test_subscriber_failure_is_counted(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    def broken(frame: AudioFrame) -> None:
        raise ValueError("boom")

    recorder = SoundDeviceRecorder(sample_rate=16000)
    recorder.start(broken)
    recorder._on_audio(_fake_indata(), frames=BUFFER_SIZE, time_info=None, status=None)

    assert recorder.callback_errors == 1
    recorder.stop()


# ---------------------------------------------------------------
# No sounddevice installed
# ---------------------------------------------------------------

def test_start_raises_without_sounddevice(monkeypatch) -> None:  # noqa: ANN001
    import recorder as rec_mod
    monkeypatch.setattr(rec_mod, "sd", None)

    recorder = SoundDeviceRecorder()
    with pytest.raises(RuntimeError, match="sounddevice is not installed"):
        recorder.start(lambda frame: None)


# ---------------------------------------------------------------
# Callback after stop is a no-op
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_callback_after_stop_is_noop(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()
    frames: list[AudioFrame] = []

    recorder = SoundDeviceRecorder(sample_rate=16000)
    recorder.start(frames.append)
    recorder.stop()

    recorder._on_audio(_fake_indata(), frames=BUFFER_SIZE, time_info=None, status=None)
    assert frames == []
