"""Application entrypoint."""

from __future__ import annotations

import logging
import os
import sys

from config import JsonConfigStore
from errors import SessionStartError
from hotkey import GlobalHotkeyAdapter
from injector import create_injector
from interfaces import ConfigStore
from levels import LevelExtractor
from models import SessionState
from recognizer import DashscopeRecognitionClient
from recorder import SoundDeviceRecorder
from session_manager import SessionManager
from visualizer import VisualizerWindow

try:
    from PySide6.QtCore import QObject, QSize, Signal
    from PySide6.QtGui import QAction, QBrush, QColor, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import QApplication, QInputDialog, QMenu, QMessageBox, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    level = os.getenv("VOICE_INJECTOR_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


ICON_IDLE = "#888888"
ICON_LISTENING = "#FF4444"


class UIBridge(QObject):
    partial_signal = Signal(str)
    error_signal = Signal(str)
    state_signal = Signal(str, str)  # from_state, to_state
    toggle_signal = Signal()


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store: ConfigStore = JsonConfigStore()

        self.levels = LevelExtractor()
        self.recorder = SoundDeviceRecorder(
            input_gain=self.config_store.get_input_gain(),
            voice_isolation=self.config_store.get_voice_isolation(),
        )
        self.recognizer = DashscopeRecognitionClient(api_key=self.config_store.get_api_key())

        self.ui = UIBridge()
        self.ui.partial_signal.connect(self._on_partial_ui)
        self.ui.error_signal.connect(self._on_error_ui)
        self.ui.state_signal.connect(self._on_state_change_ui)
        self.ui.toggle_signal.connect(self.toggle_listening)

        self.manager = SessionManager(
            audio_source=self.recorder,
            recognizer=self.recognizer,
            injector=create_injector(self.config_store.get_injection_mode()),
            level_sink=self.levels,
            on_state_change=self._on_state_change,
            on_partial=self._on_partial,
            on_error=self._on_error,
        )
        self.visualizer = VisualizerWindow(self.levels.snapshot)
        self.hotkey = GlobalHotkeyAdapter(hotkey=self.config_store.get_hotkey())

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_IDLE))
        self.tray.setToolTip("VoiceInjector — Not listening")
        self.tray.activated.connect(self._on_tray_activated)
        self._setup_menu()
        self.tray.show()

    def _setup_menu(self) -> None:
        menu = QMenu()

        self.toggle_action = QAction("Start Listening", menu)
        self.toggle_action.triggered.connect(self.toggle_listening)
        menu.addAction(self.toggle_action)

        menu.addSeparator()

        self.isolation_action = QAction("Voice Isolation", menu)
        self.isolation_action.setCheckable(True)
        self.isolation_action.setChecked(self.recorder.voice_isolation)
        self.isolation_action.toggled.connect(self._set_voice_isolation)
        menu.addAction(self.isolation_action)

        api_action = QAction("Set API Key", menu)
        api_action.triggered.connect(self._set_api_key)
        menu.addAction(api_action)

        menu.addSeparator()
        quit_action = QAction("Quit VoiceInjector", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def toggle_listening(self) -> None:
        try:
            enabled = self.manager.toggle()
        except SessionStartError as exc:
            # The state callback has already updated the UI.
            logger.error("could not start listening: %s", exc.message)
            return
        self._update_enabled_ui(enabled)

    def _on_tray_activated(self, reason: QSystemTrayIcon.ActivationReason) -> None:
        if reason == QSystemTrayIcon.Trigger:
            self.toggle_listening()

    def _set_voice_isolation(self, enabled: bool) -> None:
        self.config_store.set_voice_isolation(enabled)
        self.recorder.voice_isolation = enabled
        logger.info("voice isolation %s", "enabled" if enabled else "disabled")
        self.manager.request_restart()

    def _set_api_key(self) -> None:
        value, ok = QInputDialog.getText(None, "API Key", "DashScope API Key")
        if not ok:
            return
        self.config_store.set_api_key(value)
        self.recognizer.set_api_key(value)
        self.manager.request_restart()
        QMessageBox.information(None, "Saved", "API Key saved and applied.")

    # ------------------------------------------------------------------
    # Callbacks (called from worker threads → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: SessionState, to_state: SessionState) -> None:
        self.ui.state_signal.emit(from_state.value, to_state.value)

    def _on_partial(self, text: str) -> None:
        self.ui.partial_signal.emit(text)

    def _on_error(self, code: str, message: str) -> None:
        self.ui.error_signal.emit(f"{code}: {message}")

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_partial_ui(self, text: str) -> None:
        self.visualizer.set_text(text)

    def _on_error_ui(self, msg: str) -> None:
        self.visualizer.show_error(msg)

    def _on_state_change_ui(self, from_state: str, to_state: str) -> None:
        if to_state == SessionState.LISTENING.value:
            self.visualizer.set_text("")
        self._update_enabled_ui(self.manager.enabled)

    def _update_enabled_ui(self, enabled: bool) -> None:
        if enabled:
            self.tray.setIcon(_create_icon(ICON_LISTENING))
            self.tray.setToolTip("VoiceInjector — Listening")
            self.toggle_action.setText("Stop Listening")
            if not self.visualizer.isVisible():
                self.visualizer.show_meter()
        else:
            self.tray.setIcon(_create_icon(ICON_IDLE))
            self.tray.setToolTip("VoiceInjector — Not listening")
            self.toggle_action.setText("Start Listening")
            self.visualizer.hide_with_delay(400)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self.levels.start()
        try:
            # The hotkey fires on pynput's thread; hop to the Qt thread.
            self.hotkey.start(on_activate=self.ui.toggle_signal.emit)
        except Exception as exc:
            logger.warning("hotkey disabled: %s", exc)
            self.visualizer.show_error(f"Hotkey disabled: {exc}")
        logger.info("VoiceInjector ready, toggle with %s", self.hotkey.hotkey)
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        self.manager.stop()
        self.levels.stop()
        self.app.quit()


def main() -> int:
    _configure_logging()
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
