"""Text injection at the current keyboard focus."""

from __future__ import annotations

import logging
import sys
import time

try:
    import pyperclip
except Exception:  # pragma: no cover
    pyperclip = None  # type: ignore

try:
    from pynput.keyboard import Controller, Key
except Exception:  # pragma: no cover
    Controller = None  # type: ignore
    Key = None  # type: ignore

logger = logging.getLogger(__name__)

INJECTION_MODES = ("type", "paste")


class KeystrokeInjector:
    """Types text one character at a time with synthetic key events."""

    def __init__(self, char_delay_s: float = 0.001) -> None:
        self._char_delay_s = char_delay_s

    def inject(self, text: str) -> bool:
        if not text:
            return False
        if Controller is None:
            logger.warning("pynput is not installed, cannot type text")
            return False
        try:
            keyboard = Controller()
            for char in text:
                keyboard.type(char)
                if self._char_delay_s:
                    time.sleep(self._char_delay_s)
            return True
        except Exception as exc:
            logger.warning("typing text failed: %s", exc)
            return False


class ClipboardInjector:
    """Pastes text through the clipboard, restoring the previous contents."""

    def __init__(self, restore_delay_s: float = 0.1) -> None:
        self._restore_delay_s = restore_delay_s

    def inject(self, text: str) -> bool:
        if not text:
            return False
        if pyperclip is None or Controller is None or Key is None:
            logger.warning("clipboard/keyboard dependency missing")
            return False

        old_clip: str | None = None
        try:
            old_clip = pyperclip.paste()
            pyperclip.copy(text)
            modifier = Key.cmd if sys.platform == "darwin" else Key.ctrl
            keyboard = Controller()
            keyboard.press(modifier)
            keyboard.press("v")
            keyboard.release("v")
            keyboard.release(modifier)
            time.sleep(self._restore_delay_s)
            pyperclip.copy(old_clip)
            return True
        except Exception as exc:
            logger.warning("paste failed: %s", exc)
            if old_clip is not None:
                try:
                    pyperclip.copy(old_clip)
                except Exception:
                    logger.debug("clipboard restore failed", exc_info=True)
            return False


def create_injector(mode: str = "type") -> KeystrokeInjector | ClipboardInjector:
    if mode == "paste":
        return ClipboardInjector()
    if mode != "type":
        logger.warning("unknown injection mode %r, falling back to typing", mode)
    return KeystrokeInjector()
