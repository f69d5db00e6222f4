"""
Decoding and resampling of arbitrary audio input.

Turns an encoded AudioClip into a mono float32 PcmBuffer at the pipeline's
target rate. Container parsing is delegated to libsndfile (soundfile) with
FFmpeg as the fallback for containers libsndfile cannot read (webm, m4a).
"""

import io
import os
import shutil
import tempfile
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

import ffmpeg
import numpy as np
import soundfile as sf
from scipy import signal

from ...config import MAX_INPUT_BYTES, TARGET_SAMPLE_RATE
from ...errors import DecodeError
from ...utils.logger import get_logger
from .clip import AudioClip, validate_clip

logger = get_logger(__name__)


@dataclass(frozen=True)
class DecodedAudio:
    channels: List[np.ndarray]
    sample_rate: int

    @property
    def frame_count(self) -> int:
        return len(self.channels[0]) if self.channels else 0


@dataclass(frozen=True)
class PcmBuffer:
    samples: np.ndarray
    sample_rate: int = TARGET_SAMPLE_RATE

    @property
    def duration_seconds(self) -> float:
        return len(self.samples) / self.sample_rate

    def __len__(self) -> int:
        return len(self.samples)


class DecodeCapability(Protocol):
    def decode(self, data: bytes) -> DecodedAudio: ...


class SoundFileDecoder:
    """Decodes wav, flac, ogg and (libsndfile >= 1.1) mp3."""

    def decode(self, data: bytes) -> DecodedAudio:
        buffer = io.BytesIO(data)
        try:
            frames, sample_rate = sf.read(buffer, dtype="float32", always_2d=True)
        except (sf.SoundFileError, RuntimeError, TypeError) as e:
            raise DecodeError(f"libsndfile could not decode input: {e}") from e
        finally:
            buffer.close()

        channels = [np.ascontiguousarray(frames[:, i]) for i in range(frames.shape[1])]
        return DecodedAudio(channels=channels, sample_rate=int(sample_rate))


def check_ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


class FfmpegDecoder:
    """
    Decodes anything FFmpeg understands at its native rate and layout.

    ffprobe needs a seekable file for some containers (mp4 moov atoms at the
    end), so the input is spooled to a temporary file that is always removed.
    """

    def decode(self, data: bytes) -> DecodedAudio:
        if not check_ffmpeg_available():
            raise DecodeError("FFmpeg is not installed or not in PATH")

        fd, tmp_path = tempfile.mkstemp(suffix=".audio")
        try:
            with os.fdopen(fd, "wb") as tmp_file:
                tmp_file.write(data)

            sample_rate, channel_count = self._probe(tmp_path)

            out, _ = (
                ffmpeg.input(tmp_path)
                .output("pipe:", format="f32le", acodec="pcm_f32le")
                .run(capture_stdout=True, capture_stderr=True, quiet=True)
            )
        except ffmpeg.Error as e:
            error_msg = e.stderr.decode(errors="replace") if e.stderr else str(e)
            raise DecodeError(f"FFmpeg could not decode input: {error_msg}") from e
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)

        interleaved = np.frombuffer(out, dtype=np.float32)
        usable = len(interleaved) - len(interleaved) % channel_count
        frames = interleaved[:usable].reshape(-1, channel_count)
        channels = [np.ascontiguousarray(frames[:, i]) for i in range(channel_count)]
        return DecodedAudio(channels=channels, sample_rate=sample_rate)

    @staticmethod
    def _probe(path: str) -> tuple[int, int]:
        info = ffmpeg.probe(path, select_streams="a:0")
        streams = [s for s in info.get("streams", []) if s.get("codec_type") == "audio"]
        if not streams:
            raise DecodeError("Input has no audio stream")
        try:
            return int(streams[0]["sample_rate"]), int(streams[0]["channels"])
        except (KeyError, ValueError) as e:
            raise DecodeError(f"Audio stream is missing rate/channel info: {e}") from e


class ChainedDecoder:
    """Tries each decode capability in order, returning the first success."""

    def __init__(self, decoders: Optional[Sequence[DecodeCapability]] = None):
        self._decoders = (
            list(decoders) if decoders else [SoundFileDecoder(), FfmpegDecoder()]
        )

    def decode(self, data: bytes) -> DecodedAudio:
        errors = []
        for decoder in self._decoders:
            try:
                return decoder.decode(data)
            except DecodeError as e:
                logger.debug(f"{type(decoder).__name__} failed: {e}")
                errors.append(str(e))
        raise DecodeError("; ".join(errors) or "No decoder configured")


def downmix(channels: Sequence[np.ndarray]) -> np.ndarray:
    """Average the first two channels; further channels are ignored."""
    if not channels:
        return np.zeros(0, dtype=np.float32)
    if len(channels) == 1:
        return np.asarray(channels[0], dtype=np.float32)
    left = np.asarray(channels[0], dtype=np.float32)
    right = np.asarray(channels[1], dtype=np.float32)
    return (0.5 * (left + right)).astype(np.float32)


def resampled_length(frame_count: int, from_rate: int, to_rate: int) -> int:
    # ceil(duration * to_rate) in integer math: 10 s at 44.1 kHz is exactly 160000
    return -(-frame_count * to_rate // from_rate)


def resample(samples: np.ndarray, from_rate: int, to_rate: int) -> np.ndarray:
    """Band-limited (FFT) resampling to ``ceil(duration * to_rate)`` samples."""
    if from_rate == to_rate or len(samples) == 0:
        return np.asarray(samples, dtype=np.float32)
    target = resampled_length(len(samples), from_rate, to_rate)
    return signal.resample(samples, target).astype(np.float32)


class AudioDecoder:
    """
    Converts AudioClips into normalized PCM.

    Validation (size and type) happens before the decode capability is
    touched, so oversized uploads never reach a decoder.
    """

    def __init__(
        self,
        decoder: Optional[DecodeCapability] = None,
        target_sample_rate: int = TARGET_SAMPLE_RATE,
        max_input_bytes: int = MAX_INPUT_BYTES,
    ):
        self._decoder = decoder or ChainedDecoder()
        self.target_sample_rate = target_sample_rate
        self.max_input_bytes = max_input_bytes

    def decode(self, clip: AudioClip) -> PcmBuffer:
        validate_clip(clip, self.max_input_bytes)

        decoded = self._decoder.decode(clip.data)
        if not decoded.channels or decoded.sample_rate <= 0:
            raise DecodeError(f"'{clip.name}' contains no audio")

        mono = downmix(decoded.channels)
        samples = resample(mono, decoded.sample_rate, self.target_sample_rate)
        samples.setflags(write=False)

        logger.debug(
            f"Decoded '{clip.name}': {len(decoded.channels)}ch @ {decoded.sample_rate}Hz, "
            f"{decoded.frame_count} frames -> {len(samples)} samples @ {self.target_sample_rate}Hz"
        )
        return PcmBuffer(samples=samples, sample_rate=self.target_sample_rate)
