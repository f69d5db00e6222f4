from typing import Optional

from PySide6.QtCore import QThread, Signal

from ...errors import AudioscribeError, TranscriptionCancelled
from ...utils.logger import get_logger
from ..audio.clip import AudioClip
from .orchestrator import DegradedModeNotice, TranscriptionOrchestrator
from .progress import CancellationToken, TranscriptionProgress

logger = get_logger(__name__)


class TranscriptionWorkerThread(QThread):
    """
    Background thread for one transcription request.

    Runs the orchestrator off the UI thread so decoding, model loading and
    inference never block it. After cancel() no further signals are emitted.

    Signals:
        progress: (stage value, fraction)
        degraded: fallback notice message
        finished: the TranscriptResult
        error: (error type name, message)
    """

    progress = Signal(str, float)
    degraded = Signal(str)
    finished = Signal(object)
    error = Signal(str, str)

    def __init__(
        self,
        orchestrator: TranscriptionOrchestrator,
        clip: AudioClip,
        parent=None,
    ):
        super().__init__(parent)
        self._orchestrator = orchestrator
        self._clip = clip
        self._cancel_token = CancellationToken()

    def cancel(self) -> None:
        self._cancel_token.cancel()

    @property
    def is_cancelled(self) -> bool:
        return self._cancel_token.is_cancelled

    def run(self):
        logger.info(f"Background transcription started: '{self._clip.name}'")

        try:
            result = self._orchestrator.transcribe_file(
                self._clip,
                on_progress=self._on_progress,
                on_notice=self._on_notice,
                cancel_token=self._cancel_token,
            )
        except TranscriptionCancelled:
            logger.info(f"Transcription of '{self._clip.name}' cancelled")
            return
        except AudioscribeError as e:
            logger.warning(f"Transcription failed: {type(e).__name__}: {e}")
            self._emit_error(type(e).__name__, str(e))
            return
        except Exception as e:
            logger.exception(f"Background transcription error: {e}")
            self._emit_error(type(e).__name__, str(e))
            return

        if not self.is_cancelled:
            self.finished.emit(result)

    def _emit_error(self, kind: str, message: str) -> None:
        if not self.is_cancelled:
            self.error.emit(kind, message)

    def _on_progress(self, update: TranscriptionProgress) -> None:
        self.progress.emit(update.stage.value, update.fraction)

    def _on_notice(self, notice: DegradedModeNotice) -> None:
        if not self.is_cancelled:
            self.degraded.emit(notice.message)
