"""Error taxonomy shared by capture, decoding, transcription and streaming."""

from typing import Optional


class AudioscribeError(Exception):
    """Base class for every error raised by the pipeline."""


class PermissionDenied(AudioscribeError):
    pass


class DeviceNotFound(AudioscribeError):
    pass


class Unsupported(AudioscribeError):
    """The host lacks a capability (capture, encoding, recognition)."""


class DecodeError(AudioscribeError):
    pass


class UnsupportedFormat(DecodeError):
    pass


class FileTooLarge(DecodeError):
    def __init__(self, size: int, limit: int):
        super().__init__(
            f"Audio input is {size} bytes, larger than the {limit} byte limit"
        )
        self.size = size
        self.limit = limit


class ModelNotReady(AudioscribeError):
    pass


class InferenceError(AudioscribeError):
    pass


class NetworkError(AudioscribeError):
    """The transcription service could not be reached."""


class ServiceError(AudioscribeError):
    """The transcription service answered with a failure."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidResponse(AudioscribeError):
    """The transcription service answered with an unusable payload."""


class TranscriptionCancelled(AudioscribeError):
    pass


class RecognitionError(AudioscribeError):
    """
    A recognizer failure tagged with one of the subkinds below.

    Capture and permission failures are always fatal. ``fatal=True`` marks any
    other subkind as fatal too, e.g. a model that failed to load before
    listening began.
    """

    NO_INPUT = "no-input"
    CAPTURE_FAILURE = "capture-failure"
    PERMISSION_DENIED = "permission-denied"
    CONNECTIVITY = "connectivity"
    OTHER = "other"

    FATAL_SUBKINDS = frozenset({CAPTURE_FAILURE, PERMISSION_DENIED})

    def __init__(self, subkind: str, message: str = "", fatal: bool = False):
        if subkind not in (
            self.NO_INPUT,
            self.CAPTURE_FAILURE,
            self.PERMISSION_DENIED,
            self.CONNECTIVITY,
            self.OTHER,
        ):
            subkind = self.OTHER
        super().__init__(message or subkind)
        self.subkind = subkind
        self._fatal = fatal

    @property
    def fatal(self) -> bool:
        return self._fatal or self.subkind in self.FATAL_SUBKINDS
