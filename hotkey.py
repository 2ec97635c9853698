"""Global toggle hotkey based on pynput."""

from __future__ import annotations

import logging
from typing import Callable, Optional

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore

logger = logging.getLogger(__name__)


class GlobalHotkeyAdapter:
    def __init__(self, hotkey: str = "<alt>+v") -> None:
        self._hotkey = hotkey
        self._listener: Optional[object] = None

    @property
    def hotkey(self) -> str:
        return self._hotkey

    def start(self, on_activate: Callable[[], None]) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")
        if self._listener is not None:
            return

        def _on_activate() -> None:
            logger.debug("hotkey %s pressed", self._hotkey)
            on_activate()

        self._listener = keyboard.GlobalHotKeys({self._hotkey: _on_activate})
        self._listener.start()
        logger.info("listening for hotkey %s", self._hotkey)

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None
