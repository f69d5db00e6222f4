import threading
from typing import Callable, Optional, Protocol

import numpy as np

from ...errors import Unsupported
from ...utils.logger import get_logger
from .clip import AudioClip, validate_clip
from .decoder import ChainedDecoder, DecodeCapability

try:
    import sounddevice as sd
except OSError:  # PortAudio shared library missing
    sd = None

logger = get_logger(__name__)


class Playback(Protocol):
    def play(self, clip: AudioClip, on_finished: Callable[[], None]) -> None: ...

    def stop(self) -> None: ...


class SoundDevicePlayback:
    """
    Plays a clip through the default output device.

    ``on_finished`` fires only when the clip plays to its end, not when
    playback is stopped early.
    """

    def __init__(self, decoder: Optional[DecodeCapability] = None, device=None):
        self._decoder = decoder or ChainedDecoder()
        self._device = device
        self._stream = None
        self._frames: Optional[np.ndarray] = None
        self._position = 0
        self._stopped = threading.Event()

    def play(self, clip: AudioClip, on_finished: Callable[[], None]) -> None:
        if sd is None:
            raise Unsupported("No audio output backend (PortAudio) is available")
        validate_clip(clip)

        decoded = self._decoder.decode(clip.data)
        self._frames = np.stack(decoded.channels, axis=1).astype(np.float32)
        self._position = 0
        self._stopped.clear()

        def _finished() -> None:
            if not self._stopped.is_set():
                logger.debug(f"Playback of '{clip.name}' reached the end")
                on_finished()

        self._stream = sd.OutputStream(
            samplerate=decoded.sample_rate,
            channels=self._frames.shape[1],
            dtype="float32",
            device=self._device,
            callback=self._callback,
            finished_callback=_finished,
        )
        self._stream.start()
        logger.info(
            f"Playing '{clip.name}' ({len(self._frames) / decoded.sample_rate:.1f}s)"
        )

    def _callback(self, outdata: np.ndarray, frames: int, time_info, status) -> None:
        chunk = self._frames[self._position : self._position + frames]
        outdata[: len(chunk)] = chunk
        if len(chunk) < frames:
            outdata[len(chunk) :] = 0
            raise sd.CallbackStop
        self._position += frames

    def stop(self) -> None:
        self._stopped.set()
        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.abort()
            finally:
                stream.close()
