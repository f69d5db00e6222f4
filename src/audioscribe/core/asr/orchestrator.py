"""
Transcription orchestration across pluggable backends.

Hides backend selection and fallback behind a single transcribe_file() call.
Only NetworkError (the backend is unreachable) moves the request on to the
next configured backend; every other failure is surfaced unchanged so data
problems are never masked by a fallback.
"""

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence

from ...config import MAX_INPUT_BYTES
from ...errors import NetworkError, TranscriptionCancelled
from ...utils.logger import get_logger
from ..audio.clip import AudioClip, validate_clip
from ..audio.decoder import AudioDecoder, PcmBuffer
from .backends import (
    StaticFallbackBackend,
    TranscriptionBackend,
    TranscriptionRequest,
    TranscriptResult,
)
from .progress import CancellationToken, ProgressCallback, ProgressReporter, ProgressStage

if TYPE_CHECKING:
    from ..settings import Settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class DegradedModeNotice:
    failed_backend: str
    fallback_backend: str
    reason: str

    @property
    def message(self) -> str:
        return (
            f"{self.failed_backend} transcription unavailable ({self.reason}); "
            f"using {self.fallback_backend} instead"
        )


NoticeCallback = Callable[[DegradedModeNotice], None]


class TranscriptionOrchestrator:
    """
    Runs one transcription request against an ordered backend chain.

    Example:
        orchestrator = TranscriptionOrchestrator(
            [LocalModelBackend("sherpa-onnx-whisper-tiny"), StaticFallbackBackend()]
        )
        result = orchestrator.transcribe_file(AudioClip.from_path("talk.m4a"))
    """

    def __init__(
        self,
        backends: Sequence[TranscriptionBackend],
        decoder: Optional[AudioDecoder] = None,
        language: Optional[str] = None,
        max_input_bytes: int = MAX_INPUT_BYTES,
    ):
        if not backends:
            raise ValueError("At least one transcription backend is required")
        self._backends: List[TranscriptionBackend] = list(backends)
        self._decoder = decoder or AudioDecoder(max_input_bytes=max_input_bytes)
        self.language = language
        self.max_input_bytes = max_input_bytes

    @property
    def backends(self) -> List[TranscriptionBackend]:
        return list(self._backends)

    @property
    def primary(self) -> TranscriptionBackend:
        return self._backends[0]

    def transcribe_file(
        self,
        clip: AudioClip,
        on_progress: Optional[ProgressCallback] = None,
        on_notice: Optional[NoticeCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> TranscriptResult:
        """
        Transcribe a clip with the primary backend, falling back on NetworkError.

        Raises:
            DecodeError: Invalid, oversized or undecodable input.
            TranscriptionCancelled: The token was cancelled; any late backend
                result is discarded.
            AudioscribeError: Any non-network backend failure, or the last
                NetworkError when every backend was unreachable.
        """
        validate_clip(clip, self.max_input_bytes)
        self._check_cancelled(cancel_token)

        start_time = time.time()
        pcm: Optional[PcmBuffer] = None

        for index, backend in enumerate(self._backends):
            # Fresh reporter per attempt: stages never blend across backends.
            progress = ProgressReporter(on_progress, cancel_token)

            if backend.requires_pcm:
                if pcm is None:
                    pcm = self._decode(clip, progress)
                else:
                    progress.report(ProgressStage.READING, 1.0)
                self._check_cancelled(cancel_token)

            request = TranscriptionRequest(clip=clip, pcm=pcm, language=self.language)
            logger.info(f"Transcribing '{clip.name}' with {backend.name} backend")

            try:
                result = backend.transcribe(request, progress, cancel_token)
            except NetworkError as e:
                self._check_cancelled(cancel_token)
                if index + 1 >= len(self._backends):
                    logger.error(f"{backend.name} backend unreachable and no fallback left: {e}")
                    raise
                notice = DegradedModeNotice(
                    failed_backend=backend.name,
                    fallback_backend=self._backends[index + 1].name,
                    reason=str(e),
                )
                logger.warning(notice.message)
                if on_notice is not None:
                    on_notice(notice)
                continue

            self._check_cancelled(cancel_token)

            if index > 0:
                result = result.as_degraded()

            logger.info(
                f"Transcription of '{clip.name}' finished in {time.time() - start_time:.2f}s "
                f"via {backend.name}{' (degraded)' if result.degraded else ''}"
            )
            return result

        raise AssertionError("unreachable: backend loop always returns or raises")

    def _decode(self, clip: AudioClip, progress: ProgressReporter) -> PcmBuffer:
        progress.report(ProgressStage.READING, 0.0)
        pcm = self._decoder.decode(clip)
        progress.report(ProgressStage.READING, 1.0)
        return pcm

    @staticmethod
    def _check_cancelled(cancel_token: Optional[CancellationToken]) -> None:
        if cancel_token is not None and cancel_token.is_cancelled:
            raise TranscriptionCancelled("Transcription was cancelled")


def create_backend(name: str, settings: "Settings") -> TranscriptionBackend:
    if name == "local":
        from .local_backend import LocalModelBackend, SherpaOnnxModelLoader

        return LocalModelBackend(
            model_id=settings.model_id,
            wait_for_model=settings.wait_for_model,
            loader=SherpaOnnxModelLoader(
                num_threads=settings.num_threads, language=settings.language
            ),
        )
    if name == "remote":
        from .remote_backend import RemoteAPIBackend

        return RemoteAPIBackend(
            endpoint=settings.remote_endpoint,
            language=settings.language,
            api_key=settings.remote_api_key,
            timeout=settings.remote_timeout,
        )
    if name == "static":
        return StaticFallbackBackend()
    raise ValueError(f"Unknown transcription backend '{name}'")


def build_orchestrator(settings: "Settings") -> TranscriptionOrchestrator:
    backends = []
    for name in settings.backend_chain:
        if name == "remote" and not settings.remote_endpoint:
            logger.info("Remote backend skipped: no endpoint configured")
            continue
        backends.append(create_backend(name, settings))
    return TranscriptionOrchestrator(backends, language=settings.language)
