"""
Transcription backend contract and the shared result model.

Every backend turns a TranscriptionRequest into a TranscriptResult and
reports progress through a ProgressReporter. Backends adapt their own raw
output shapes into TranscriptResult before returning.
"""

import dataclasses
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol, Tuple

from ..audio.clip import AudioClip
from ..audio.decoder import PcmBuffer
from .progress import CancellationToken, ProgressReporter, ProgressStage

PLACEHOLDER_TEXT = "[Transcription unavailable: no speech backend could process this audio]"


@dataclass(frozen=True)
class Segment:
    text: str
    start: Optional[float] = None
    end: Optional[float] = None


@dataclass(frozen=True)
class TranscriptResult:
    text: str
    segments: Optional[Tuple[Segment, ...]] = None
    backend: str = ""
    degraded: bool = False
    is_placeholder: bool = False

    @classmethod
    def from_segments(cls, segments: Iterable[Segment], backend: str = "") -> "TranscriptResult":
        kept = tuple(
            Segment(text=s.text.strip(), start=s.start, end=s.end)
            for s in segments
            if s.text and s.text.strip()
        )
        return cls(
            text=" ".join(s.text for s in kept),
            segments=kept,
            backend=backend,
        )

    def as_degraded(self) -> "TranscriptResult":
        return dataclasses.replace(self, degraded=True)


@dataclass(frozen=True)
class TranscriptionRequest:
    clip: AudioClip
    pcm: Optional[PcmBuffer] = None
    language: Optional[str] = None


class TranscriptionBackend(Protocol):
    name: str
    requires_pcm: bool

    def is_ready(self) -> bool: ...

    def transcribe(
        self,
        request: TranscriptionRequest,
        progress: ProgressReporter,
        cancel_token: Optional[CancellationToken] = None,
    ) -> TranscriptResult: ...


class StaticFallbackBackend:
    """Last-resort backend: always succeeds with a marked placeholder."""

    name = "static"
    requires_pcm = False

    def __init__(self, text: str = PLACEHOLDER_TEXT):
        self._text = text

    def is_ready(self) -> bool:
        return True

    def transcribe(
        self,
        request: TranscriptionRequest,
        progress: ProgressReporter,
        cancel_token: Optional[CancellationToken] = None,
    ) -> TranscriptResult:
        progress.report(ProgressStage.PROCESSING, 1.0)
        return TranscriptResult(text=self._text, backend=self.name, is_placeholder=True)
