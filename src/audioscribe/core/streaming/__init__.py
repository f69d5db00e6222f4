from .events import (
    RecognitionEvent,
    RecognitionKind,
    StreamingTranscriptState,
    reduce_transcript,
)
from .session import (
    Recognizer,
    RecognizerConfig,
    SessionOutcome,
    SessionState,
    SessionStatus,
    StreamingRecognitionSession,
)

__all__ = [
    "RecognitionEvent",
    "RecognitionKind",
    "Recognizer",
    "RecognizerConfig",
    "SessionOutcome",
    "SessionState",
    "SessionStatus",
    "StreamingRecognitionSession",
    "StreamingTranscriptState",
    "reduce_transcript",
]
