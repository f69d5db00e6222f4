from .backends import (
    Segment,
    StaticFallbackBackend,
    TranscriptionBackend,
    TranscriptionRequest,
    TranscriptResult,
)
from .local_backend import LocalModelBackend, SharedModelCache, get_model_cache
from .orchestrator import (
    DegradedModeNotice,
    TranscriptionOrchestrator,
    build_orchestrator,
    create_backend,
)
from .progress import (
    CancellationToken,
    ProgressReporter,
    ProgressStage,
    TranscriptionProgress,
)
from .remote_backend import RemoteAPIBackend

# The Qt threads (transcription_worker, model_loader) are imported directly
# by GUI callers so the headless pipeline does not load QtCore.

__all__ = [
    "CancellationToken",
    "DegradedModeNotice",
    "LocalModelBackend",
    "ProgressReporter",
    "ProgressStage",
    "RemoteAPIBackend",
    "Segment",
    "SharedModelCache",
    "StaticFallbackBackend",
    "TranscriptionBackend",
    "TranscriptionOrchestrator",
    "TranscriptionProgress",
    "TranscriptionRequest",
    "TranscriptResult",
    "build_orchestrator",
    "create_backend",
    "get_model_cache",
]
