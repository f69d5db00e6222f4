"""
On-device transcription with sherpa-onnx offline recognizers.

Models are downloaded on first use and shared process-wide through
SharedModelCache, which collapses concurrent first requests into a single
in-flight load. Long audio is decoded in overlapping windows whose texts are
merged back together in time order.
"""

import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import numpy as np
import requests

from ...errors import InferenceError, ModelNotReady, NetworkError
from ...utils.logger import get_logger
from .backends import Segment, TranscriptionRequest, TranscriptResult
from .file_utils import TRANSDUCER, WHISPER, get_model_path, missing_model_files, model_files
from .model_downloader import ModelDownloader
from .model_registry import get_model_type, is_model_downloaded
from .progress import CancellationToken, ProgressReporter, ProgressStage

logger = get_logger(__name__)

WINDOW_SECONDS = 30.0
STRIDE_SECONDS = 5.0
MAX_OVERLAP_WORDS = 40


class _InFlightLoad:
    def __init__(self):
        self.done = threading.Event()
        self.result: Any = None
        self.error: Optional[BaseException] = None


class SharedModelCache:
    """Process-wide model instances keyed by model id, loaded at most once."""

    def __init__(self):
        self._lock = threading.Lock()
        self._models: Dict[str, Any] = {}
        self._in_flight: Dict[str, _InFlightLoad] = {}

    def get(self, key: str) -> Any:
        with self._lock:
            return self._models.get(key)

    def is_loaded(self, key: str) -> bool:
        with self._lock:
            return key in self._models

    def is_loading(self, key: str) -> bool:
        with self._lock:
            return key in self._in_flight

    def get_or_load(self, key: str, load: Callable[[], Any]) -> Any:
        with self._lock:
            if key in self._models:
                return self._models[key]
            flight = self._in_flight.get(key)
            is_leader = flight is None
            if is_leader:
                flight = _InFlightLoad()
                self._in_flight[key] = flight

        if not is_leader:
            logger.debug(f"Waiting for in-flight load of '{key}'")
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return flight.result

        try:
            model = load()
        except BaseException as e:
            # Nothing is cached, so the next request starts a fresh load.
            with self._lock:
                del self._in_flight[key]
            flight.error = e
            flight.done.set()
            raise

        with self._lock:
            self._models[key] = model
            del self._in_flight[key]
        flight.result = model
        flight.done.set()
        return model

    def evict(self, key: str) -> None:
        with self._lock:
            self._models.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._models.clear()


_model_cache = SharedModelCache()


def get_model_cache() -> SharedModelCache:
    return _model_cache


class SherpaOnnxModelLoader:
    """Downloads (when missing) and instantiates sherpa-onnx offline recognizers."""

    def __init__(
        self,
        downloader: Optional[ModelDownloader] = None,
        num_threads: int = 4,
        language: str = "",
    ):
        self._downloader = downloader or ModelDownloader()
        self.num_threads = num_threads
        self.language = language

    def load(self, model_id: str, on_progress: Optional[Callable[[float], None]] = None):
        if not is_model_downloaded(model_id):
            completed = self._downloader.download(
                model_id,
                on_progress=(
                    (lambda done, total: on_progress(0.9 * done / total))
                    if on_progress
                    else None
                ),
            )
            if not completed:
                raise ModelNotReady(f"Download of '{model_id}' was cancelled")

        import sherpa_onnx

        model_path = get_model_path(model_id)
        model_type = get_model_type(model_id)
        missing = missing_model_files(model_path, model_type)
        if missing:
            raise InferenceError(
                f"Missing {model_type} model files in {model_path}: {', '.join(missing)}"
            )

        files = model_files(model_path, model_type)
        logger.info(f"Loading model '{model_id}' as type '{model_type}'")

        if model_type == WHISPER:
            recognizer = sherpa_onnx.OfflineRecognizer.from_whisper(
                encoder=files["encoder"],
                decoder=files["decoder"],
                tokens=files["tokens"],
                language=self.language,
                task="transcribe",
                num_threads=self.num_threads,
                provider="cpu",
                debug=False,
                decoding_method="greedy_search",
            )
        elif model_type == TRANSDUCER:
            recognizer = sherpa_onnx.OfflineRecognizer.from_transducer(
                encoder=files["encoder"],
                decoder=files["decoder"],
                joiner=files["joiner"],
                tokens=files["tokens"],
                num_threads=self.num_threads,
                provider="cpu",
                debug=False,
                decoding_method="greedy_search",
                model_type="nemo_transducer",
            )
        else:
            raise InferenceError(
                f"Model '{model_id}' of type '{model_type}' cannot transcribe files"
            )

        if on_progress:
            on_progress(1.0)
        return recognizer


@dataclass(frozen=True)
class AudioWindow:
    start: int
    end: int
    keep_start: int
    keep_end: int


def plan_windows(
    sample_count: int,
    sample_rate: int,
    window_seconds: float = WINDOW_SECONDS,
    stride_seconds: float = STRIDE_SECONDS,
) -> List[AudioWindow]:
    """
    Split audio into fixed windows overlapping by ``stride_seconds`` per side.

    Consecutive windows advance by ``window - 2 * stride``; ``keep_start`` /
    ``keep_end`` mark the non-overlapped region used for segment timing.
    """
    window = int(window_seconds * sample_rate)
    stride = int(stride_seconds * sample_rate)
    if sample_count <= window:
        return [AudioWindow(0, sample_count, 0, sample_count)]

    step = max(1, window - 2 * stride)
    windows = []
    start = 0
    while True:
        end = min(start + window, sample_count)
        is_last = end >= sample_count
        windows.append(
            AudioWindow(
                start=start,
                end=end,
                keep_start=start if start == 0 else start + stride,
                keep_end=end if is_last else end - stride,
            )
        )
        if is_last:
            return windows
        start += step


def _normalize_word(word: str) -> str:
    return re.sub(r"[^\w']", "", word).lower()


def merge_overlap(previous_words: List[str], text: str, max_overlap: int = MAX_OVERLAP_WORDS) -> str:
    """Drop the leading words of ``text`` that repeat the tail of ``previous_words``."""
    words = text.split()
    if not previous_words or not words:
        return text.strip()

    prev_norm = [_normalize_word(w) for w in previous_words[-max_overlap:]]
    cur_norm = [_normalize_word(w) for w in words[:max_overlap]]
    for k in range(min(len(prev_norm), len(cur_norm)), 0, -1):
        if prev_norm[-k:] == cur_norm[:k]:
            return " ".join(words[k:])
    return " ".join(words)


class LocalModelBackend:
    """Transcribes PCM with an on-device sherpa-onnx model."""

    name = "local"
    requires_pcm = True

    def __init__(
        self,
        model_id: str = "sherpa-onnx-whisper-tiny",
        wait_for_model: bool = True,
        loader: Optional[SherpaOnnxModelLoader] = None,
        cache: Optional[SharedModelCache] = None,
        window_seconds: float = WINDOW_SECONDS,
        stride_seconds: float = STRIDE_SECONDS,
    ):
        self.model_id = model_id
        self.wait_for_model = wait_for_model
        self.window_seconds = window_seconds
        self.stride_seconds = stride_seconds
        self._loader = loader or SherpaOnnxModelLoader()
        self._cache = cache or get_model_cache()
        self._background_error: Optional[BaseException] = None

    def is_ready(self) -> bool:
        return self._cache.is_loaded(self.model_id)

    def preload(self, on_progress: Optional[Callable[[float], None]] = None) -> None:
        self._load(on_progress)

    def _load(self, on_progress: Optional[Callable[[float], None]] = None):
        try:
            return self._cache.get_or_load(
                self.model_id, lambda: self._loader.load(self.model_id, on_progress)
            )
        except (InferenceError, ModelNotReady):
            raise
        except (requests.ConnectionError, requests.Timeout) as e:
            raise NetworkError(f"Could not download model '{self.model_id}': {e}") from e
        except Exception as e:
            raise InferenceError(f"Failed to load model '{self.model_id}': {e}") from e

    def _load_in_background(self) -> None:
        try:
            self._load()
        except Exception as e:
            logger.exception(f"Background model load failed: {e}")
            self._background_error = e

    def _acquire_model(self, progress: ProgressReporter):
        model = self._cache.get(self.model_id)
        if model is not None:
            return model

        if not self.wait_for_model:
            error, self._background_error = self._background_error, None
            if error is not None:
                raise InferenceError(f"Model '{self.model_id}' failed to load: {error}") from error
            if not self._cache.is_loading(self.model_id):
                threading.Thread(
                    target=self._load_in_background,
                    name=f"model-load-{self.model_id}",
                    daemon=True,
                ).start()
            raise ModelNotReady(f"Model '{self.model_id}' is still loading")

        progress.report(ProgressStage.LOADING_MODEL, 0.0)
        model = self._load(lambda f: progress.report(ProgressStage.LOADING_MODEL, f))
        progress.report(ProgressStage.LOADING_MODEL, 1.0)
        return model

    def transcribe(
        self,
        request: TranscriptionRequest,
        progress: ProgressReporter,
        cancel_token: Optional[CancellationToken] = None,
    ) -> TranscriptResult:
        if request.pcm is None:
            raise InferenceError("Local transcription requires decoded PCM audio")

        recognizer = self._acquire_model(progress)

        samples = request.pcm.samples
        sample_rate = request.pcm.sample_rate
        windows = plan_windows(len(samples), sample_rate, self.window_seconds, self.stride_seconds)
        logger.info(f"Processing {len(windows)} audio window(s) with '{self.model_id}'")

        start_time = time.time()
        progress.report(ProgressStage.PROCESSING, 0.0)
        segments: List[Segment] = []
        merged_words: List[str] = []

        for i, window in enumerate(windows):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            text = self._decode_window(recognizer, samples[window.start : window.end], sample_rate)
            text = merge_overlap(merged_words, text)
            if text:
                merged_words.extend(text.split())
                segments.append(
                    Segment(
                        text=text,
                        start=window.keep_start / sample_rate,
                        end=window.keep_end / sample_rate,
                    )
                )
            logger.debug(f"Window {i + 1}/{len(windows)}: '{text[:50]}'")
            progress.report(ProgressStage.PROCESSING, (i + 1) / len(windows))

        processing_time = time.time() - start_time
        if processing_time > 0:
            logger.debug(
                f"Transcription finished: audio_len={len(samples) / sample_rate:.2f}s, "
                f"time={processing_time:.2f}s, speed={len(samples) / sample_rate / processing_time:.2f}x"
            )

        return TranscriptResult.from_segments(segments, backend=self.name)

    @staticmethod
    def _decode_window(recognizer, samples: np.ndarray, sample_rate: int) -> str:
        try:
            stream = recognizer.create_stream()
            stream.accept_waveform(sample_rate, np.ascontiguousarray(samples, dtype=np.float32))
            recognizer.decode_stream(stream)
            return (stream.result.text or "").strip()
        except Exception as e:
            raise InferenceError(f"Inference failed: {e}") from e
