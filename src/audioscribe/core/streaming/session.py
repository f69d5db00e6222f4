"""
Live dictation session.

IDLE -> LISTENING -> DRAINING -> ENDED. Recognition events are reduced into a
StreamingTranscriptState and pushed to the caller after every event. A
file-sourced session plays the clip while the recognizer listens and starts
draining when playback ends; a live session drains on stop().
"""

import threading
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional, Protocol

from ...errors import RecognitionError, Unsupported
from ...utils.logger import get_logger
from ..audio.clip import AudioClip, validate_clip
from ..audio.playback import Playback
from .events import RecognitionEvent, StreamingTranscriptState, reduce_transcript

logger = get_logger(__name__)

DEFAULT_GRACE_SECONDS = 1.5


class SessionState(Enum):
    IDLE = auto()
    LISTENING = auto()
    DRAINING = auto()
    ENDED = auto()


class SessionStatus(Enum):
    COMPLETED = "completed"
    NO_SPEECH = "no-speech"
    FAILED = "failed"


@dataclass(frozen=True)
class SessionOutcome:
    status: SessionStatus
    text: str = ""
    error: Optional[RecognitionError] = None


@dataclass(frozen=True)
class RecognizerConfig:
    language: str = "th"
    continuous: bool = True
    interim_results: bool = True


EventCallback = Callable[[RecognitionEvent], None]
ErrorCallback = Callable[[RecognitionError], None]
EndCallback = Callable[[], None]


class Recognizer(Protocol):
    def start(
        self,
        config: RecognizerConfig,
        on_event: EventCallback,
        on_error: ErrorCallback,
        on_end: EndCallback,
    ) -> None: ...

    def stop(self) -> None: ...


class StreamingRecognitionSession:
    def __init__(
        self,
        recognizer: Optional[Recognizer],
        config: Optional[RecognizerConfig] = None,
        source_clip: Optional[AudioClip] = None,
        playback: Optional[Playback] = None,
        on_update: Optional[Callable[[str], None]] = None,
        on_warning: Optional[Callable[[RecognitionError], None]] = None,
        on_end: Optional[Callable[[SessionOutcome], None]] = None,
        grace_seconds: float = DEFAULT_GRACE_SECONDS,
        timer_factory: Callable[[float, Callable[[], None]], threading.Timer] = threading.Timer,
    ):
        self._recognizer = recognizer
        self.config = config or RecognizerConfig()
        self._source_clip = source_clip
        self._playback = playback
        self.on_update = on_update
        self.on_warning = on_warning
        self.on_end = on_end
        self.grace_seconds = grace_seconds
        self._timer_factory = timer_factory

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._transcript = StreamingTranscriptState()
        self._last_sequence_index = -1
        self._released = False
        self._grace_timer: Optional[threading.Timer] = None
        self._outcome: Optional[SessionOutcome] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def transcript(self) -> StreamingTranscriptState:
        return self._transcript

    @property
    def outcome(self) -> Optional[SessionOutcome]:
        return self._outcome

    @property
    def is_file_sourced(self) -> bool:
        return self._source_clip is not None

    def start(self) -> None:
        """
        Start the recognizer, and playback for file-sourced sessions.

        Raises:
            Unsupported: No recognizer (or, for file input, no playback) exists.
            DecodeError: The source clip is too large or not audio we accept.
            RuntimeError: The session was already started.
        """
        if self._recognizer is None:
            raise Unsupported("Speech recognition is not available on this host")
        if self.is_file_sourced and self._playback is None:
            raise Unsupported("Audio playback is not available on this host")
        if self.is_file_sourced:
            validate_clip(self._source_clip)

        with self._lock:
            if self._state is not SessionState.IDLE:
                raise RuntimeError(f"Session cannot start from {self._state.name}")
            self._state = SessionState.LISTENING

        try:
            self._recognizer.start(
                self.config, self._handle_event, self._handle_error, self._handle_end
            )
            if self.is_file_sourced:
                self._playback.play(self._source_clip, self._handle_playback_finished)
        except Exception:
            with self._lock:
                self._state = SessionState.ENDED
            self._release()
            raise

        logger.info(
            f"Dictation session started ({'file' if self.is_file_sourced else 'live'}, "
            f"language={self.config.language})"
        )

    def stop(self) -> None:
        with self._lock:
            if self._state is SessionState.ENDED:
                return
            if self._state is SessionState.IDLE:
                self._state = SessionState.ENDED
                return
            self._state = SessionState.DRAINING
        self._release()

    def _release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
            timer, self._grace_timer = self._grace_timer, None

        if timer is not None:
            timer.cancel()
        try:
            if self.is_file_sourced and self._playback is not None:
                self._playback.stop()
        finally:
            if self._recognizer is not None:
                self._recognizer.stop()
        logger.debug("Dictation resources released")

    def _handle_playback_finished(self) -> None:
        with self._lock:
            if self._state is not SessionState.LISTENING:
                return
            self._state = SessionState.DRAINING
            self._grace_timer = self._timer_factory(self.grace_seconds, self._release)
            self._grace_timer.daemon = True
            self._grace_timer.start()
        logger.debug(f"Playback finished, draining for {self.grace_seconds}s")

    def _handle_event(self, event: RecognitionEvent) -> None:
        with self._lock:
            if self._state not in (SessionState.LISTENING, SessionState.DRAINING):
                return
            if event.sequence_index < self._last_sequence_index:
                logger.debug(f"Dropping stale recognition event #{event.sequence_index}")
                return
            self._last_sequence_index = event.sequence_index
            self._transcript = reduce_transcript(self._transcript, event)
            if self.on_update is not None:
                self.on_update(self._transcript.display_text)

    def _handle_error(self, error: RecognitionError) -> None:
        with self._lock:
            if self._state is SessionState.ENDED:
                return
            if not error.fatal:
                logger.warning(f"Recognition warning ({error.subkind}): {error}")
                if self.on_warning is not None:
                    self.on_warning(error)
                return
            logger.error(f"Fatal recognition error ({error.subkind}): {error}")
            outcome = SessionOutcome(
                status=SessionStatus.FAILED,
                text=self._transcript.finalized_text,
                error=error,
            )
        self._finish(outcome)

    def _handle_end(self) -> None:
        with self._lock:
            if self._state is SessionState.ENDED:
                return
            self._transcript = self._transcript.flushed()
            text = self._transcript.finalized_text
            outcome = SessionOutcome(
                status=SessionStatus.COMPLETED if text else SessionStatus.NO_SPEECH,
                text=text,
            )
        self._finish(outcome)

    def _finish(self, outcome: SessionOutcome) -> None:
        with self._lock:
            if self._state is SessionState.ENDED:
                return
            self._state = SessionState.ENDED
            self._outcome = outcome
        self._release()
        logger.info(f"Dictation session ended: {outcome.status.value}")
        if self.on_end is not None:
            self.on_end(outcome)
