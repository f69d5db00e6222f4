"""
Live microphone recognizer backed by a sherpa-onnx streaming transducer.

A worker thread owns the PortAudio input stream and the online decoding
stream. Partial hypotheses become interim events, endpoint detection turns
the current utterance into a final event, and the end callback always fires
once when the worker exits.
"""

import threading
from queue import Empty, Queue
from typing import Callable, Optional

import numpy as np
import requests

from ...errors import RecognitionError, Unsupported
from ...utils.logger import get_logger
from ..asr.file_utils import ONLINE_TRANSDUCER, get_model_path, missing_model_files, model_files
from ..asr.local_backend import SharedModelCache, get_model_cache
from ..asr.model_downloader import ModelDownloader
from ..asr.model_registry import get_model_type, is_model_downloaded
from .events import RecognitionEvent
from .session import EndCallback, ErrorCallback, EventCallback, RecognizerConfig

try:
    import sounddevice as sd
except OSError:  # PortAudio shared library missing
    sd = None

logger = get_logger(__name__)

DEFAULT_STREAMING_MODEL = "sherpa-onnx-streaming-zipformer-en-2023-06-26"
NO_INPUT_TIMEOUT_SECONDS = 8.0


def load_online_recognizer(
    model_id: str,
    num_threads: int = 2,
    sample_rate: int = 16000,
    downloader: Optional[ModelDownloader] = None,
):
    """Download (when missing) and build a sherpa-onnx OnlineRecognizer."""
    if not is_model_downloaded(model_id):
        if not (downloader or ModelDownloader()).download(model_id):
            raise RuntimeError(f"Download of '{model_id}' was cancelled")

    import sherpa_onnx

    model_type = get_model_type(model_id)
    if model_type != ONLINE_TRANSDUCER:
        raise ValueError(f"Model '{model_id}' of type '{model_type}' cannot stream")

    model_path = get_model_path(model_id)
    missing = missing_model_files(model_path, model_type)
    if missing:
        raise RuntimeError(f"Missing model files in {model_path}: {', '.join(missing)}")

    files = model_files(model_path, model_type)
    logger.info(f"Loading streaming model '{model_id}'")
    return sherpa_onnx.OnlineRecognizer.from_transducer(
        tokens=files["tokens"],
        encoder=files["encoder"],
        decoder=files["decoder"],
        joiner=files["joiner"],
        num_threads=num_threads,
        sample_rate=sample_rate,
        feature_dim=80,
        enable_endpoint_detection=True,
        rule1_min_trailing_silence=2.4,
        rule2_min_trailing_silence=1.2,
        rule3_min_utterance_length=300,
        decoding_method="greedy_search",
        provider="cpu",
    )


def _result_text(recognizer, stream) -> str:
    result = recognizer.get_result(stream)
    if not isinstance(result, str):
        result = getattr(result, "text", "")
    return (result or "").strip()


def map_recognition_error(e: Exception) -> RecognitionError:
    if isinstance(e, RecognitionError):
        return e
    if isinstance(e, (requests.ConnectionError, requests.Timeout)):
        return RecognitionError(RecognitionError.CONNECTIVITY, f"Model download failed: {e}")
    if sd is not None and isinstance(e, sd.PortAudioError):
        lowered = str(e).lower()
        if "permission" in lowered or "denied" in lowered or "not allowed" in lowered:
            return RecognitionError(RecognitionError.PERMISSION_DENIED, str(e))
        return RecognitionError(RecognitionError.CAPTURE_FAILURE, str(e))
    return RecognitionError(RecognitionError.OTHER, str(e))


class SherpaOnnxStreamingRecognizer:
    """Recognizer for StreamingRecognitionSession fed from the default input device."""

    def __init__(
        self,
        model_id: str = DEFAULT_STREAMING_MODEL,
        sample_rate: int = 16000,
        num_threads: int = 2,
        input_device: Optional[str] = None,
        block_seconds: float = 0.1,
        no_input_timeout: float = NO_INPUT_TIMEOUT_SECONDS,
        cache: Optional[SharedModelCache] = None,
        load: Optional[Callable[[], object]] = None,
    ):
        self.model_id = model_id
        self.sample_rate = sample_rate
        self.num_threads = num_threads
        self.input_device = input_device
        self.block_seconds = block_seconds
        self.no_input_timeout = no_input_timeout
        self._cache = cache or get_model_cache()
        self._load = load or (
            lambda: load_online_recognizer(self.model_id, self.num_threads, self.sample_rate)
        )
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def start(
        self,
        config: RecognizerConfig,
        on_event: EventCallback,
        on_error: ErrorCallback,
        on_end: EndCallback,
    ) -> None:
        if sd is None:
            raise Unsupported("PortAudio is not available, live recognition is disabled")
        if self._thread and self._thread.is_alive():
            raise RuntimeError("Recognizer is already running")

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._worker,
            args=(config, on_event, on_error, on_end),
            name="streaming-recognizer",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=2.0)

    def _worker(
        self,
        config: RecognizerConfig,
        on_event: EventCallback,
        on_error: ErrorCallback,
        on_end: EndCallback,
    ) -> None:
        try:
            try:
                recognizer = self._cache.get_or_load(f"online:{self.model_id}", self._load)
            except Exception as e:
                # Nothing can be heard without a model.
                logger.exception(f"Loading streaming model '{self.model_id}' failed: {e}")
                error = map_recognition_error(e)
                on_error(RecognitionError(error.subkind, str(error), fatal=True))
                return
            if self._stop_event.is_set():
                logger.info("Stopped while the streaming model was loading")
                return
            self._listen(recognizer, config, on_event, on_error)
        except Exception as e:
            logger.exception(f"Streaming recognition error: {e}")
            on_error(map_recognition_error(e))
        finally:
            on_end()

    def _listen(
        self,
        recognizer,
        config: RecognizerConfig,
        on_event: EventCallback,
        on_error: ErrorCallback,
    ) -> None:
        chunks: "Queue[np.ndarray]" = Queue()

        def callback(indata, frames, time_info, status):
            if status:
                logger.warning(f"Input stream status: {status}")
            chunks.put(indata[:, 0].copy())

        stream = recognizer.create_stream()
        sequence = 0
        partial = ""
        heard_anything = False
        silent_blocks = 0
        no_input_blocks = max(1, int(self.no_input_timeout / self.block_seconds))

        with sd.InputStream(
            samplerate=self.sample_rate,
            channels=1,
            dtype="float32",
            device=self.input_device,
            blocksize=int(self.sample_rate * self.block_seconds),
            callback=callback,
        ):
            logger.info(f"Listening with '{self.model_id}'")
            while not self._stop_event.is_set():
                try:
                    chunk = chunks.get(timeout=self.block_seconds)
                except Empty:
                    continue

                stream.accept_waveform(self.sample_rate, chunk)
                while recognizer.is_ready(stream):
                    recognizer.decode_stream(stream)

                text = _result_text(recognizer, stream)
                if text and text != partial:
                    heard_anything = True
                    partial = text
                    if config.interim_results:
                        on_event(RecognitionEvent.interim(text, sequence))
                        sequence += 1

                if recognizer.is_endpoint(stream):
                    if text:
                        on_event(RecognitionEvent.final(text, sequence))
                        sequence += 1
                    recognizer.reset(stream)
                    partial = ""
                    if not config.continuous and heard_anything:
                        return

                if not heard_anything:
                    silent_blocks += 1
                    if silent_blocks == no_input_blocks:
                        on_error(RecognitionError(RecognitionError.NO_INPUT, "No speech detected"))

        # Flush the utterance still in progress when listening stopped.
        stream.input_finished()
        while recognizer.is_ready(stream):
            recognizer.decode_stream(stream)
        text = _result_text(recognizer, stream)
        if text:
            on_event(RecognitionEvent.final(text, sequence))
