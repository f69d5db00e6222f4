"""
Audio clips and input validation.

An AudioClip is the unit that flows from capture or upload into the
transcription pipeline: encoded bytes plus the metadata needed to decode,
submit and display them.
"""

import mimetypes
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from ...config import MAX_INPUT_BYTES
from ...errors import FileTooLarge, UnsupportedFormat


class ClipOrigin(str, Enum):
    RECORDED = "recorded"
    UPLOADED = "uploaded"


ACCEPTED_MIME_TYPES = frozenset(
    {
        "audio/wav",
        "audio/x-wav",
        "audio/wave",
        "audio/mpeg",
        "audio/mp3",
        "audio/mp4",
        "audio/x-m4a",
        "audio/m4a",
        "audio/flac",
        "audio/x-flac",
        "audio/webm",
        "audio/ogg",
    }
)

ACCEPTED_EXTENSIONS = frozenset({"wav", "mp3", "m4a", "flac", "webm", "ogg", "mp4"})

_EXTENSION_MIME_TYPES = {
    "wav": "audio/wav",
    "mp3": "audio/mpeg",
    "m4a": "audio/mp4",
    "mp4": "audio/mp4",
    "flac": "audio/flac",
    "webm": "audio/webm",
    "ogg": "audio/ogg",
}


@dataclass(frozen=True)
class AudioClip:
    data: bytes = field(repr=False)
    mime_type: str
    origin: ClipOrigin
    name: str
    duration: Optional[float] = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def base_mime_type(self) -> str:
        return base_mime_type(self.mime_type)

    @property
    def extension(self) -> str:
        return os.path.splitext(self.name)[1].lstrip(".").lower()

    @classmethod
    def from_path(cls, path: str) -> "AudioClip":
        with open(path, "rb") as f:
            data = f.read()
        name = os.path.basename(path)
        return cls(
            data=data,
            mime_type=guess_mime_type(name),
            origin=ClipOrigin.UPLOADED,
            name=name,
        )

    @classmethod
    def recorded(
        cls,
        data: bytes,
        mime_type: str,
        duration: Optional[float] = None,
        timestamp: Optional[datetime] = None,
    ) -> "AudioClip":
        return cls(
            data=data,
            mime_type=mime_type,
            origin=ClipOrigin.RECORDED,
            name=recording_file_name(mime_type, timestamp),
            duration=duration,
        )


def base_mime_type(mime_type: str) -> str:
    return mime_type.split(";", 1)[0].strip().lower()


def guess_mime_type(name: str) -> str:
    ext = os.path.splitext(name)[1].lstrip(".").lower()
    if ext in _EXTENSION_MIME_TYPES:
        return _EXTENSION_MIME_TYPES[ext]
    guessed, _ = mimetypes.guess_type(name)
    return guessed or "application/octet-stream"


def recording_file_name(mime_type: str, timestamp: Optional[datetime] = None) -> str:
    mime = base_mime_type(mime_type)
    if "ogg" in mime:
        ext = "ogg"
    elif "mp4" in mime:
        ext = "m4a"
    elif "wav" in mime:
        ext = "wav"
    else:
        ext = "webm"
    stamp = (timestamp or datetime.now()).isoformat().replace(":", "-").replace(".", "-")
    return f"recording_{stamp}.{ext}"


def sniff_container(data: bytes) -> Optional[str]:
    """Identify a container from its leading bytes, or None."""
    head = data[:12]
    if head[:4] == b"RIFF" and head[8:12] == b"WAVE":
        return "wav"
    if head[:4] == b"fLaC":
        return "flac"
    if head[:4] == b"OggS":
        return "ogg"
    if head[:4] == b"\x1a\x45\xdf\xa3":
        return "webm"
    if head[4:8] == b"ftyp":
        return "mp4"
    if head[:3] == b"ID3" or (len(head) >= 2 and head[0] == 0xFF and head[1] & 0xE0 == 0xE0):
        return "mp3"
    return None


def is_supported_clip(clip: AudioClip) -> bool:
    return (
        clip.base_mime_type in ACCEPTED_MIME_TYPES
        or clip.extension in ACCEPTED_EXTENSIONS
        or sniff_container(clip.data) is not None
    )


def validate_clip(clip: AudioClip, max_bytes: int = MAX_INPUT_BYTES) -> None:
    """Reject clips that must never reach a decoder.

    Raises:
        FileTooLarge: If the clip is larger than ``max_bytes``.
        UnsupportedFormat: If neither type, extension nor content is audio
            we accept.
    """
    if clip.size > max_bytes:
        raise FileTooLarge(clip.size, max_bytes)
    if not is_supported_clip(clip):
        raise UnsupportedFormat(
            f"Unsupported audio type for '{clip.name}' ({clip.mime_type})"
        )
