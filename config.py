"""Simple JSON-based config store."""

from __future__ import annotations

import json
from pathlib import Path

DEFAULT_HOTKEY = "<alt>+v"
DEFAULT_INJECTION_MODE = "type"
DEFAULT_INPUT_GAIN = 2.5


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "voice_injector" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("api_key", ""))

    def set_api_key(self, key: str) -> None:
        self._set("api_key", key)

    def get_hotkey(self) -> str:
        data = self._read_all()
        return str(data.get("hotkey", DEFAULT_HOTKEY))

    def set_hotkey(self, hotkey: str) -> None:
        self._set("hotkey", hotkey)

    def get_injection_mode(self) -> str:
        data = self._read_all()
        return str(data.get("injection_mode", DEFAULT_INJECTION_MODE))

    def set_injection_mode(self, mode: str) -> None:
        self._set("injection_mode", mode)

    def get_voice_isolation(self) -> bool:
        data = self._read_all()
        return bool(data.get("voice_isolation", False))

    def set_voice_isolation(self, enabled: bool) -> None:
        self._set("voice_isolation", bool(enabled))

    def get_input_gain(self) -> float:
        data = self._read_all()
        try:
            return float(data.get("input_gain", DEFAULT_INPUT_GAIN))
        except (TypeError, ValueError):
            return DEFAULT_INPUT_GAIN

    def _set(self, key: str, value: object) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
