"""Continuous dictation on top of an utterance-bounded recognizer.

The manager keeps one recognition ``Session`` open while enabled, commits
text either on the recognizer's final result or after a silence timeout,
and tears the session down and reopens it after every commit or error.
All state changes happen under ``self._lock``; asynchronous callbacks carry
the epoch of the session that created them and are dropped when it is no
longer current.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from errors import STREAM_SETUP_FAILED, SessionStartError, VoiceInjectorError
from interfaces import AudioSource, LevelSink, RecognitionClient, Scheduler, TextInjector
from models import (
    AudioFrame,
    Session,
    SessionState,
    SessionTimings,
    TranscriptionEvent,
    TranscriptionKind,
)
from scheduler import ThreadingScheduler

logger = logging.getLogger(__name__)

StateCallback = Callable[[SessionState, SessionState], None]
PartialCallback = Callable[[str], None]
ErrorCallback = Callable[[str, str], None]
SessionHandler = Callable[[Session, object], None]

INJECTION_DELIMITER = " "


class SessionManager:
    def __init__(
        self,
        audio_source: AudioSource,
        recognizer: RecognitionClient,
        injector: TextInjector,
        level_sink: Optional[LevelSink] = None,
        scheduler: Optional[Scheduler] = None,
        timings: Optional[SessionTimings] = None,
        on_state_change: Optional[StateCallback] = None,
        on_partial: Optional[PartialCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._audio_source = audio_source
        self._recognizer = recognizer
        self._injector = injector
        self._level_sink = level_sink
        self._scheduler = scheduler or ThreadingScheduler()
        self._timings = timings or SessionTimings()
        self._on_state_change = on_state_change
        self._on_partial = on_partial
        self._on_error = on_error

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._enabled = False
        self._epoch = 0
        self._session: Optional[Session] = None
        self._tap: Optional[Session] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def is_listening(self) -> bool:
        return self._state == SessionState.LISTENING

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def current_transcription(self) -> str:
        session = self._session
        return session.transcription if session is not None else ""

    @property
    def restart_pending(self) -> bool:
        session = self._session
        return session is not None and session.restart_task is not None

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def set_enabled(self, enabled: bool) -> None:
        if enabled:
            self.start()
        else:
            self.stop()

    def toggle(self) -> bool:
        with self._lock:
            self.set_enabled(not self._enabled)
            return self._enabled

    def start(self) -> None:
        """Open a session and begin listening.

        Raises SessionStartError when the recognizer or the microphone cannot
        be opened. The manager is left idle and disabled in that case.
        """
        with self._lock:
            self._enabled = True
            if self._state in (SessionState.STARTING, SessionState.LISTENING):
                logger.debug("already %s, ignoring start()", self._state.value)
                return
            self._begin_session()

    def stop(self) -> None:
        with self._lock:
            self._enabled = False
            if self._state == SessionState.IDLE and self._session is None:
                return
            logger.info("stopping session %d", self._epoch)
            self._transition(SessionState.STOPPED)
            self._teardown()
            if self._level_sink is not None:
                self._level_sink.reset()
            self._transition(SessionState.IDLE)

    def request_restart(self, delay_s: float = 0.2) -> bool:
        """Reopen the current session after ``delay_s``, e.g. after a settings change."""
        with self._lock:
            session = self._session
            if session is None or self._state != SessionState.LISTENING:
                return False
            return self._schedule_restart(session, delay_s)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def _begin_session(self) -> None:
        self._transition(SessionState.STARTING)
        self._epoch += 1
        session = Session(epoch=self._epoch)
        self._session = session
        epoch = session.epoch
        try:
            session.stream = self._recognizer.open(
                self._audio_source.audio_format,
                lambda event: self._handle_event(epoch, event),
            )
            self._tap = session
            self._audio_source.start(self._on_audio_frame)
        except Exception as exc:
            if isinstance(exc, VoiceInjectorError):
                error = SessionStartError(exc.code, exc.message)
            else:
                error = SessionStartError(STREAM_SETUP_FAILED, str(exc))
            logger.error("failed to start session %d: %s", epoch, error.message)
            self._teardown()
            if self._level_sink is not None:
                self._level_sink.reset()
            self._enabled = False
            self._transition(SessionState.IDLE)
            self._emit_error(error.code, error.message)
            raise error from exc
        self._transition(SessionState.LISTENING)
        logger.info("session %d listening", epoch)

    def _teardown(self) -> None:
        session = self._session
        self._session = None
        if session is not None:
            stream, session.stream = session.stream, None
            if stream is not None:
                try:
                    self._recognizer.close(stream)
                except Exception:
                    logger.warning("closing recognition stream failed", exc_info=True)
        self._tap = None
        if self._audio_source.is_running:
            try:
                self._audio_source.stop()
            except Exception:
                logger.warning("stopping audio capture failed", exc_info=True)
        if session is not None:
            self._disarm_silence(session)
            if session.restart_task is not None:
                session.restart_task.cancel()
                session.restart_task = None

    def _on_audio_frame(self, frame: AudioFrame) -> None:
        # Runs on the capture thread; reads the tap without taking the lock.
        session = self._tap
        if session is None:
            return
        stream = session.stream
        if stream is None:
            return
        if self._level_sink is not None:
            self._level_sink.process(frame)
        try:
            self._recognizer.feed(stream, frame)
        except Exception:
            logger.warning("feeding audio to session %d failed", session.epoch, exc_info=True)

    # ------------------------------------------------------------------
    # Recognition events
    # ------------------------------------------------------------------

    def _handle_event(self, epoch: int, event: TranscriptionEvent) -> None:
        with self._lock:
            session = self._session
            if session is None or session.epoch != epoch or self._state != SessionState.LISTENING:
                logger.debug("dropping %s event from stale session %d", event.kind, epoch)
                return

            kind = event.kind
            if kind in (TranscriptionKind.PARTIAL.value, TranscriptionKind.FINAL.value):
                session.consecutive_errors = 0
                self._process_transcription(
                    session, event.text, final=kind == TranscriptionKind.FINAL.value
                )
                return

            if kind == TranscriptionKind.NO_SPEECH.value:
                session.consecutive_errors += 1
                logger.debug(
                    "no speech detected (%d/%d)",
                    session.consecutive_errors,
                    self._timings.max_consecutive_errors,
                )
                if session.consecutive_errors >= self._timings.max_consecutive_errors:
                    logger.info("too many no-speech errors, restarting")
                    self._schedule_restart(session, self._timings.no_speech_restart_delay_s)
                return

            if kind == TranscriptionKind.CANCELLED.value:
                logger.debug("recognition cancelled")
                return

            if kind == TranscriptionKind.FATAL_ERROR.value:
                logger.error("fatal recognition error %s: %s", event.code, event.message)
                self._emit_error(event.code, event.message)
                self.stop()
                return

            logger.warning("recognition error %s: %s", event.code or kind, event.message)
            self._schedule_restart(session, self._timings.error_restart_delay_s)

    def _process_transcription(self, session: Session, text: str, final: bool) -> None:
        self._disarm_silence(session)
        session.transcription = text
        if not text.strip():
            return
        if final:
            self._inject(session)
            self._schedule_restart(session, self._timings.final_restart_delay_s)
            return
        if self._on_partial:
            self._on_partial(text)
        session.silence_task = self._schedule(
            session, self._timings.silence_threshold_s, self._on_silence_timeout
        )

    def _on_silence_timeout(self, session: Session, task: object) -> None:
        if session.silence_task is not task:
            return
        session.silence_task = None
        if not session.transcription.strip():
            return
        logger.info("silence timeout, committing partial result")
        self._inject(session)
        self._schedule_restart(session, self._timings.silence_restart_delay_s)

    def _inject(self, session: Session) -> None:
        text = session.transcription
        session.transcription = ""
        if not text.strip():
            return
        logger.info("injecting %r", text)
        try:
            ok = self._injector.inject(text + INJECTION_DELIMITER)
        except Exception:
            logger.warning("text injection raised", exc_info=True)
            return
        if not ok:
            logger.warning("text injection failed for %r", text)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _schedule(self, session: Session, delay_s: float, handler: SessionHandler) -> object:
        epoch = session.epoch
        task = None

        def fire() -> None:
            with self._lock:
                current = self._session
                if current is None or current.epoch != epoch:
                    logger.debug("dropping timer from stale session %d", epoch)
                    return
                handler(current, task)

        task = self._scheduler.schedule(delay_s, fire)
        return task

    def _disarm_silence(self, session: Session) -> None:
        if session.silence_task is not None:
            session.silence_task.cancel()
            session.silence_task = None

    def _schedule_restart(self, session: Session, delay_s: float) -> bool:
        if session.restart_task is not None:
            logger.debug("restart already pending for session %d", session.epoch)
            return False
        if not self._enabled:
            return False
        logger.info("scheduling restart of session %d in %.0fms", session.epoch, delay_s * 1000)
        session.restart_task = self._schedule(session, delay_s, self._perform_restart)
        return True

    def _perform_restart(self, session: Session, task: object) -> None:
        if session.restart_task is not task:
            return
        session.restart_task = None
        if not self._enabled:
            logger.info("disabled while restart was pending, not reopening")
            self.stop()
            return
        logger.info("restarting session %d", session.epoch)
        self._transition(SessionState.RESTARTING)
        self._teardown()
        try:
            self._begin_session()
        except SessionStartError as exc:
            logger.error("restart failed: %s", exc.message)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
