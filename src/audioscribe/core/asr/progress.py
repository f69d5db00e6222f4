import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from ...errors import TranscriptionCancelled


class ProgressStage(str, Enum):
    READING = "reading"
    LOADING_MODEL = "loading-model"
    PROCESSING = "processing"


@dataclass(frozen=True)
class TranscriptionProgress:
    stage: ProgressStage
    fraction: float


ProgressCallback = Callable[[TranscriptionProgress], None]


class CancellationToken:
    """Cooperative cancellation flag shared between caller and workers."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TranscriptionCancelled("Transcription was cancelled")


class ProgressReporter:
    """
    Forwards progress to a caller callback.

    Fractions are clamped to [0, 1] and never go backwards within a stage;
    nothing is forwarded once the token is cancelled.
    """

    def __init__(
        self,
        callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self._callback = callback
        self._cancel_token = cancel_token
        self._high_water: Dict[ProgressStage, float] = {}
        self._lock = threading.Lock()

    def report(self, stage: ProgressStage, fraction: float) -> None:
        if self._callback is None:
            return
        if self._cancel_token is not None and self._cancel_token.is_cancelled:
            return

        fraction = min(1.0, max(0.0, float(fraction)))
        with self._lock:
            previous = self._high_water.get(stage)
            if previous is not None and fraction < previous:
                return
            self._high_water[stage] = fraction

        self._callback(TranscriptionProgress(stage=stage, fraction=fraction))

    def __call__(self, progress: TranscriptionProgress) -> None:
        self.report(progress.stage, progress.fraction)
