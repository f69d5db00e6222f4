"""
Microphone capture into an encoded AudioClip.

Capture runs through two capabilities so hosts and tests can swap them:
a capture device (sounddevice/PortAudio) that delivers float32 chunks, and an
encoder (libsndfile) that packs the finished recording into a container.
"""

import io
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Sequence

import numpy as np
import soundfile as sf

from ...errors import AudioscribeError, DeviceNotFound, PermissionDenied, Unsupported
from ...utils.logger import get_logger
from .clip import AudioClip

try:
    import sounddevice as sd
except OSError:  # PortAudio shared library missing: no capture capability
    sd = None

logger = get_logger(__name__)

PREFERRED_MIME_TYPES = (
    "audio/webm;codecs=opus",
    "audio/webm",
    "audio/ogg;codecs=opus",
    "audio/ogg",
    "audio/mp4",
)
DEFAULT_MIME_TYPE = "audio/wav"

ChunkCallback = Callable[[np.ndarray], None]


@dataclass
class AudioDevice:
    name: str
    index: int
    channels: int
    default_sample_rate: float


@dataclass(frozen=True)
class CaptureConstraints:
    sample_rate: int = 16000
    channels: int = 1
    device: Optional[str] = None


class CaptureDevice(Protocol):
    def acquire(self, constraints: CaptureConstraints, on_chunk: ChunkCallback): ...

    def release(self, stream) -> None: ...


class Encoder(Protocol):
    def is_type_supported(self, mime_type: str) -> bool: ...

    def encode(self, frames: np.ndarray, sample_rate: int, mime_type: str) -> bytes: ...


def _map_portaudio_error(e: Exception) -> AudioscribeError:
    message = str(e)
    lowered = message.lower()
    if "permission" in lowered or "denied" in lowered or "not allowed" in lowered:
        return PermissionDenied(f"Microphone access denied: {message}")
    return DeviceNotFound(f"Audio device error: {message}")


class SoundDeviceCaptureDevice:
    """PortAudio input streams via sounddevice."""

    def acquire(self, constraints: CaptureConstraints, on_chunk: ChunkCallback):
        if sd is None:
            raise Unsupported("No audio capture backend (PortAudio) is available")

        device_index = self._get_device_index(constraints.device)
        try:
            sd.query_devices(device_index, kind="input")
        except (ValueError, sd.PortAudioError) as e:
            raise DeviceNotFound(f"No input device available: {e}") from e

        def _callback(indata: np.ndarray, frames: int, time_info, status) -> None:
            if status:
                logger.debug(f"Input stream status: {status}")
            on_chunk(indata.copy())

        try:
            stream = sd.InputStream(
                samplerate=float(constraints.sample_rate),
                channels=constraints.channels,
                dtype="float32",
                device=device_index,
                callback=_callback,
            )
            stream.start()
        except sd.PortAudioError as e:
            raise _map_portaudio_error(e) from e
        return stream

    def release(self, stream) -> None:
        try:
            stream.stop()
        finally:
            stream.close()

    def _get_device_index(self, name: Optional[str]) -> Optional[int]:
        if name is None:
            return None

        for device in self.list_devices():
            if device.name == name:
                return device.index

        logger.warning(f"Input device '{name}' not found, using system default")
        return None

    @staticmethod
    def list_devices() -> List[AudioDevice]:
        if sd is None:
            return []

        devices = []
        for i, device in enumerate(sd.query_devices()):
            if device["max_input_channels"] > 0:
                devices.append(
                    AudioDevice(
                        name=device["name"],
                        index=i,
                        channels=device["max_input_channels"],
                        default_sample_rate=device["default_samplerate"],
                    )
                )

        return devices


class SoundFileEncoder:
    """Encodes captured PCM with libsndfile; no WebM or MP4 support."""

    _FORMATS = {
        "audio/ogg;codecs=opus": ("OGG", "OPUS"),
        "audio/ogg": ("OGG", "VORBIS"),
        "audio/wav": ("WAV", "PCM_16"),
    }

    def is_type_supported(self, mime_type: str) -> bool:
        fmt = self._FORMATS.get(mime_type.replace(" ", "").lower())
        if fmt is None:
            return False
        container, subtype = fmt
        return subtype in sf.available_subtypes(container)

    def encode(self, frames: np.ndarray, sample_rate: int, mime_type: str) -> bytes:
        container, subtype = self._FORMATS[mime_type.replace(" ", "").lower()]
        buffer = io.BytesIO()
        try:
            sf.write(buffer, frames, sample_rate, format=container, subtype=subtype)
            return buffer.getvalue()
        finally:
            buffer.close()


def select_mime_type(
    encoder: Encoder, preferred: Sequence[str] = PREFERRED_MIME_TYPES
) -> str:
    for mime_type in preferred:
        if encoder.is_type_supported(mime_type):
            return mime_type
    return DEFAULT_MIME_TYPE


class AudioCapture:
    """
    Records from the microphone and emits one AudioClip per recording.

    The capture device is released on stop() even when encoding fails, and
    stop() after the first call is a no-op.
    """

    def __init__(
        self,
        device: Optional[CaptureDevice] = None,
        encoder: Optional[Encoder] = None,
        sample_rate: int = 16000,
        channels: int = 1,
        input_device: Optional[str] = None,
        preferred_mime_types: Sequence[str] = PREFERRED_MIME_TYPES,
        on_complete: Optional[Callable[[AudioClip], None]] = None,
        on_audio_level: Optional[Callable[[float], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._device = device or SoundDeviceCaptureDevice()
        self._encoder = encoder or SoundFileEncoder()
        self.constraints = CaptureConstraints(
            sample_rate=sample_rate, channels=channels, device=input_device
        )
        self.preferred_mime_types = tuple(preferred_mime_types)
        self.on_complete = on_complete
        self.on_audio_level = on_audio_level
        self._clock = clock

        self._lock = threading.Lock()
        self._stream = None
        self._audio_buffer: List[np.ndarray] = []
        self._is_recording = False
        self._started_at: Optional[float] = None

    @property
    def is_recording(self) -> bool:
        return self._is_recording

    def start(self) -> None:
        """
        Acquire the microphone and begin recording immediately.

        Raises:
            PermissionDenied: Microphone access was refused by the host.
            DeviceNotFound: No usable input device.
            Unsupported: The host has no capture capability.
        """
        with self._lock:
            if self._is_recording:
                return

            self._audio_buffer = []
            self._stream = self._device.acquire(self.constraints, self._on_chunk)
            self._started_at = self._clock()
            self._is_recording = True

        logger.info(
            f"Recording started ({self.constraints.sample_rate}Hz, "
            f"{self.constraints.channels}ch)"
        )

    def elapsed_time(self) -> int:
        if self._started_at is None:
            return 0
        return int(self._clock() - self._started_at)

    def stop(self) -> Optional[AudioClip]:
        with self._lock:
            if not self._is_recording:
                return None
            self._is_recording = False
            stream, self._stream = self._stream, None
            chunks, self._audio_buffer = self._audio_buffer, []
            self._started_at = None

        try:
            self._device.release(stream)
        finally:
            clip = self._finalize(chunks)

        if self.on_complete is not None:
            self.on_complete(clip)
        return clip

    def _finalize(self, chunks: List[np.ndarray]) -> AudioClip:
        channels = self.constraints.channels
        if chunks:
            frames = np.concatenate(chunks, axis=0)
        else:
            frames = np.zeros((0, channels), dtype=np.float32)

        mime_type = select_mime_type(self._encoder, self.preferred_mime_types)
        data = self._encoder.encode(frames, self.constraints.sample_rate, mime_type)
        duration = len(frames) / self.constraints.sample_rate

        logger.info(
            f"Recording finished: {duration:.2f}s encoded as {mime_type} ({len(data)} bytes)"
        )
        return AudioClip.recorded(data=data, mime_type=mime_type, duration=duration)

    def _on_chunk(self, chunk: np.ndarray) -> None:
        if not self._is_recording:
            return
        self._audio_buffer.append(chunk)

        if self.on_audio_level is not None:
            level = float(np.abs(chunk).mean()) if chunk.size else 0.0
            self.on_audio_level(min(1.0, level * 10))

    def __enter__(self) -> "AudioCapture":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
