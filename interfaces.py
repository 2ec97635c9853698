"""Protocol interfaces used by SessionManager."""

from __future__ import annotations

from typing import Any, Callable, Protocol

from models import AudioFormat, AudioFrame, TranscriptionEvent

FrameCallback = Callable[[AudioFrame], None]
EventCallback = Callable[[TranscriptionEvent], None]


class AudioSource(Protocol):
    @property
    def audio_format(self) -> AudioFormat: ...

    @property
    def is_running(self) -> bool: ...

    def start(self, callback: FrameCallback) -> None: ...

    def stop(self) -> None: ...


class RecognitionClient(Protocol):
    def open(self, audio_format: AudioFormat, on_event: EventCallback) -> Any: ...

    def feed(self, stream: Any, frame: AudioFrame) -> None: ...

    def close(self, stream: Any) -> None: ...


class TextInjector(Protocol):
    def inject(self, text: str) -> bool: ...


class LevelSink(Protocol):
    def process(self, frame: AudioFrame) -> None: ...

    def reset(self) -> None: ...


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def schedule(self, delay_s: float, callback: Callable[[], None]) -> Cancellable: ...


class ConfigStore(Protocol):
    def get_api_key(self) -> str: ...

    def set_api_key(self, key: str) -> None: ...

    def get_hotkey(self) -> str: ...

    def set_hotkey(self, hotkey: str) -> None: ...

    def get_injection_mode(self) -> str: ...

    def set_injection_mode(self, mode: str) -> None: ...

    def get_voice_isolation(self) -> bool: ...

    def set_voice_isolation(self, enabled: bool) -> None: ...

    def get_input_gain(self) -> float: ...
