from .capture import (
    AudioCapture,
    AudioDevice,
    CaptureConstraints,
    SoundDeviceCaptureDevice,
    SoundFileEncoder,
    select_mime_type,
)
from .clip import AudioClip, ClipOrigin, validate_clip
from .decoder import (
    AudioDecoder,
    ChainedDecoder,
    DecodedAudio,
    FfmpegDecoder,
    PcmBuffer,
    SoundFileDecoder,
    downmix,
    resample,
)
from .playback import SoundDevicePlayback

__all__ = [
    "AudioCapture",
    "AudioClip",
    "AudioDecoder",
    "AudioDevice",
    "CaptureConstraints",
    "ChainedDecoder",
    "ClipOrigin",
    "DecodedAudio",
    "FfmpegDecoder",
    "PcmBuffer",
    "SoundDeviceCaptureDevice",
    "SoundDevicePlayback",
    "SoundFileDecoder",
    "SoundFileEncoder",
    "downmix",
    "resample",
    "select_mime_type",
    "validate_clip",
]
