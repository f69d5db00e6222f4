"""
Recognition events and the transcript reducer for live dictation.

A recognizer emits interim hypotheses that keep replacing each other until a
final result confirms the span. reduce_transcript() folds that stream into a
StreamingTranscriptState without touching any host API.
"""

from dataclasses import dataclass
from enum import Enum


class RecognitionKind(str, Enum):
    INTERIM = "interim"
    FINAL = "final"


@dataclass(frozen=True)
class RecognitionEvent:
    kind: RecognitionKind
    text: str
    sequence_index: int

    @classmethod
    def interim(cls, text: str, sequence_index: int) -> "RecognitionEvent":
        return cls(RecognitionKind.INTERIM, text, sequence_index)

    @classmethod
    def final(cls, text: str, sequence_index: int) -> "RecognitionEvent":
        return cls(RecognitionKind.FINAL, text, sequence_index)


def _join(left: str, right: str) -> str:
    left, right = left.strip(), right.strip()
    if not left:
        return right
    if not right:
        return left
    return f"{left} {right}"


@dataclass(frozen=True)
class StreamingTranscriptState:
    finalized_text: str = ""
    pending_interim_text: str = ""

    @property
    def display_text(self) -> str:
        if not self.pending_interim_text:
            return self.finalized_text
        return _join(self.finalized_text, f"[{self.pending_interim_text}]")

    def flushed(self) -> "StreamingTranscriptState":
        """Fold unconfirmed interim text into the finalized transcript."""
        return StreamingTranscriptState(
            finalized_text=_join(self.finalized_text, self.pending_interim_text)
        )


def reduce_transcript(
    state: StreamingTranscriptState, event: RecognitionEvent
) -> StreamingTranscriptState:
    if event.kind == RecognitionKind.INTERIM:
        return StreamingTranscriptState(
            finalized_text=state.finalized_text,
            pending_interim_text=event.text.strip(),
        )
    return StreamingTranscriptState(
        finalized_text=_join(state.finalized_text, event.text)
    )
