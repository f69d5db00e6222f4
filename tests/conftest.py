"""
Pytest configuration.

Provides Qt cleanup between tests, plus small audio fixtures shared by the
decoder, capture and orchestrator tests.
"""
import io
import os

import numpy as np
import pytest
import soundfile as sf
from PySide6.QtWidgets import QApplication

from audioscribe.core.asr.local_backend import SharedModelCache
from audioscribe.core.audio.clip import AudioClip, ClipOrigin

# Run Qt headless unless the caller picked a platform.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


@pytest.fixture(autouse=True)
def cleanup_qt_objects(qtbot, request):
    """
    Auto-cleanup fixture that runs after each test to ensure Qt objects are
    properly destroyed before the next test starts.
    """
    yield

    app = QApplication.instance()
    if app:
        app.processEvents()


@pytest.fixture
def model_cache():
    """A private model cache so tests never share loaded models."""
    return SharedModelCache()


def make_wav_bytes(frames: np.ndarray, sample_rate: int) -> bytes:
    buffer = io.BytesIO()
    sf.write(buffer, frames, sample_rate, format="WAV", subtype="FLOAT")
    return buffer.getvalue()


def make_clip(data: bytes, name: str = "clip.wav", mime_type: str = "audio/wav") -> AudioClip:
    return AudioClip(data=data, mime_type=mime_type, origin=ClipOrigin.UPLOADED, name=name)


@pytest.fixture
def sine_clip():
    """One second of a 440 Hz mono sine at 16 kHz as a WAV clip."""
    t = np.arange(16000) / 16000
    frames = (0.5 * np.sin(2 * np.pi * 440 * t)).astype(np.float32)
    return make_clip(make_wav_bytes(frames, 16000), name="sine.wav")
