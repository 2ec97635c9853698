"""Floating level meter with the latest partial transcription."""

from __future__ import annotations

from typing import Callable

try:
    from PySide6.QtCore import QRectF, Qt, QTimer
    from PySide6.QtGui import QColor, QPainter
    from PySide6.QtWidgets import QApplication, QLabel, QVBoxLayout, QWidget
except Exception:  # pragma: no cover
    QRectF = None  # type: ignore
    Qt = None  # type: ignore
    QTimer = None  # type: ignore
    QColor = None  # type: ignore
    QPainter = None  # type: ignore
    QApplication = None  # type: ignore
    QLabel = object  # type: ignore
    QVBoxLayout = object  # type: ignore
    QWidget = object  # type: ignore

LevelSource = Callable[[], "list[float]"]

_LABEL_STYLE = "color: white; font-size: 14px; padding: 4px 8px;"
_ERROR_STYLE = "color: #FF6B6B; font-size: 14px; padding: 4px 8px;"


class LevelBars(QWidget):
    def __init__(self, level_source: LevelSource, refresh_ms: int = 50) -> None:
        super().__init__()
        self._level_source = level_source
        self._levels: list[float] = []
        self.setFixedHeight(36)
        self._timer = QTimer(self)
        self._timer.timeout.connect(self._refresh)
        self._timer.start(refresh_ms)

    def _refresh(self) -> None:
        self._levels = self._level_source()
        self.update()

    def paintEvent(self, event: object) -> None:  # noqa: N802
        if not self._levels:
            return
        painter = QPainter(self)
        painter.setRenderHint(QPainter.Antialiasing, True)
        painter.setPen(Qt.NoPen)
        count = len(self._levels)
        gap = 4.0
        width = (self.width() - gap * (count + 1)) / count
        for index, level in enumerate(self._levels):
            height = max(3.0, level * (self.height() - 4))
            x = gap + index * (width + gap)
            y = (self.height() - height) / 2
            painter.setBrush(QColor.fromHsvF(0.33 - 0.33 * level, 0.8, 1.0))
            painter.drawRoundedRect(QRectF(x, y, width, height), 2, 2)
        painter.end()


class VisualizerWindow(QWidget):
    def __init__(self, level_source: LevelSource) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowFlags(Qt.WindowStaysOnTopHint | Qt.FramelessWindowHint | Qt.Tool)
        self.setAttribute(Qt.WA_TranslucentBackground, True)
        self.setAttribute(Qt.WA_ShowWithoutActivating, True)
        self.setFixedWidth(360)
        self.setStyleSheet("background: rgba(0,0,0,200); border-radius: 10px;")

        self._bars = LevelBars(level_source)
        self._label = QLabel("")
        self._label.setWordWrap(True)
        self._label.setStyleSheet(_LABEL_STYLE)

        layout = QVBoxLayout()
        layout.setContentsMargins(8, 8, 8, 8)
        layout.addWidget(self._bars)
        layout.addWidget(self._label)
        self.setLayout(layout)

        self._hide_timer: QTimer | None = None

    def _place_top_right(self) -> None:
        if QApplication is None:
            return
        screen = QApplication.primaryScreen()
        if screen is None:
            return
        geom = screen.availableGeometry()
        self.adjustSize()
        x = geom.x() + geom.width() - self.width() - 100
        y = geom.y() + 10
        self.move(x, y)

    def show_meter(self) -> None:
        self._cancel_hide_timer()
        self._label.setStyleSheet(_LABEL_STYLE)
        self._label.setText("")
        self._place_top_right()
        self.show()

    def set_text(self, text: str) -> None:
        self._label.setText(text)

    def hide_with_delay(self, delay_ms: int = 400) -> None:
        self._cancel_hide_timer()
        if QTimer is not None:
            self._hide_timer = QTimer()
            self._hide_timer.setSingleShot(True)
            self._hide_timer.timeout.connect(self.hide)
            self._hide_timer.start(delay_ms)

    def show_error(self, text: str, hide_after_ms: int = 3000) -> None:
        self._label.setStyleSheet(_ERROR_STYLE)
        self._label.setText(f"⚠️ {text}")
        self._place_top_right()
        self.show()
        self.hide_with_delay(hide_after_ms)

    def _cancel_hide_timer(self) -> None:
        if self._hide_timer is not None:
            self._hide_timer.stop()
            self._hide_timer = None
