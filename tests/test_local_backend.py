"""
Tests for the on-device backend.

sherpa-onnx is never loaded: the model loader is replaced with fakes that
return a recognizer double, so windowing, merging and the shared cache are
tested in isolation.
"""

import threading
import time
from unittest.mock import MagicMock

import numpy as np
import pytest
import requests

from audioscribe.core.asr.backends import TranscriptionRequest
from audioscribe.core.asr.local_backend import (
    LocalModelBackend,
    SharedModelCache,
    SherpaOnnxModelLoader,
    merge_overlap,
    plan_windows,
)
from audioscribe.core.asr.progress import CancellationToken, ProgressReporter, ProgressStage
from audioscribe.core.audio.decoder import PcmBuffer
from audioscribe.errors import (
    InferenceError,
    ModelNotReady,
    NetworkError,
    TranscriptionCancelled,
)

from conftest import make_clip


class FakeStream:
    def __init__(self, texts):
        self._texts = texts
        self.result = MagicMock()

    def accept_waveform(self, sample_rate, samples):
        self.result.text = self._texts.pop(0)


class FakeRecognizer:
    def __init__(self, texts):
        self.texts = list(texts)
        self.decoded = 0

    def create_stream(self):
        return FakeStream(self.texts)

    def decode_stream(self, stream):
        self.decoded += 1


class FakeLoader:
    def __init__(self, recognizer=None, error=None, delay=0.0):
        self.recognizer = recognizer
        self.error = error
        self.delay = delay
        self.calls = 0

    def load(self, model_id, on_progress=None):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if on_progress:
            on_progress(0.5)
        if self.error is not None:
            raise self.error
        return self.recognizer


def pcm_request(seconds, sample_rate=16000):
    samples = np.zeros(int(seconds * sample_rate), dtype=np.float32)
    return TranscriptionRequest(
        clip=make_clip(b"RIFF", name="a.wav"),
        pcm=PcmBuffer(samples=samples, sample_rate=sample_rate),
    )


class TestPlanWindows:
    def test_short_audio_single_window(self):
        windows = plan_windows(16000 * 10, 16000)
        assert len(windows) == 1
        assert (windows[0].start, windows[0].end) == (0, 160000)

    def test_long_audio_overlaps_by_stride(self):
        windows = plan_windows(16000 * 60, 16000, window_seconds=30, stride_seconds=5)

        assert [w.start // 16000 for w in windows] == [0, 20, 40]
        assert windows[0].end // 16000 == 30
        assert windows[-1].end == 16000 * 60
        assert windows[1].keep_start // 16000 == 25
        assert windows[0].keep_end // 16000 == 25

    def test_kept_regions_tile_the_audio(self):
        windows = plan_windows(16000 * 95, 16000)
        assert windows[0].keep_start == 0
        assert windows[-1].keep_end == 16000 * 95
        for prev, cur in zip(windows, windows[1:]):
            assert prev.keep_end == cur.keep_start


class TestMergeOverlap:
    def test_drops_repeated_prefix(self):
        assert merge_overlap("the quick brown fox".split(), "brown fox jumps over") == "jumps over"

    def test_ignores_case_and_punctuation(self):
        assert merge_overlap("Hello, World.".split(), "world again") == "again"

    def test_no_overlap_keeps_text(self):
        assert merge_overlap(["alpha"], "beta gamma") == "beta gamma"

    def test_first_window(self):
        assert merge_overlap([], "  first words ") == "first words"


class TestSharedModelCache:
    def test_concurrent_first_requests_load_once(self, model_cache):
        calls = []

        def load():
            calls.append(1)
            time.sleep(0.05)
            return object()

        results = []
        threads = [
            threading.Thread(target=lambda: results.append(model_cache.get_or_load("m", load)))
            for _ in range(5)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(calls) == 1
        assert len(results) == 5
        assert all(r is results[0] for r in results)

    def test_failed_load_is_not_cached(self, model_cache):
        def failing():
            raise RuntimeError("corrupt model")

        with pytest.raises(RuntimeError):
            model_cache.get_or_load("m", failing)

        assert model_cache.is_loaded("m") is False
        assert model_cache.is_loading("m") is False
        assert model_cache.get_or_load("m", lambda: "ok") == "ok"

    def test_evict(self, model_cache):
        model_cache.get_or_load("m", lambda: "model")
        model_cache.evict("m")
        assert model_cache.get("m") is None


class TestLocalModelBackend:
    def test_transcribes_single_window(self, model_cache):
        loader = FakeLoader(FakeRecognizer([" hello world "]))
        backend = LocalModelBackend(loader=loader, cache=model_cache)

        result = backend.transcribe(pcm_request(5), ProgressReporter())

        assert result.text == "hello world"
        assert result.backend == "local"
        assert result.segments[0].start == 0
        assert result.segments[0].end == pytest.approx(5.0)

    def test_merges_windows_in_order(self, model_cache):
        recognizer = FakeRecognizer(["one two three", "two three four", "four five"])
        backend = LocalModelBackend(loader=FakeLoader(recognizer), cache=model_cache)

        result = backend.transcribe(pcm_request(60), ProgressReporter())

        assert result.text == "one two three four five"
        assert [s.text for s in result.segments] == ["one two three", "four", "five"]

    def test_reports_stages(self, model_cache):
        backend = LocalModelBackend(loader=FakeLoader(FakeRecognizer(["x"])), cache=model_cache)
        updates = []

        backend.transcribe(pcm_request(1), ProgressReporter(updates.append))

        stages = [(u.stage, u.fraction) for u in updates]
        assert stages[0] == (ProgressStage.LOADING_MODEL, 0.0)
        assert (ProgressStage.LOADING_MODEL, 1.0) in stages
        assert stages[-1] == (ProgressStage.PROCESSING, 1.0)

    def test_model_loaded_once_across_backends(self, model_cache):
        loader = FakeLoader(FakeRecognizer(["a", "b"]))
        LocalModelBackend(loader=loader, cache=model_cache).transcribe(pcm_request(1), ProgressReporter())
        LocalModelBackend(loader=loader, cache=model_cache).transcribe(pcm_request(1), ProgressReporter())
        assert loader.calls == 1

    def test_requires_pcm(self, model_cache):
        backend = LocalModelBackend(loader=FakeLoader(FakeRecognizer([])), cache=model_cache)
        request = TranscriptionRequest(clip=make_clip(b"RIFF", name="a.wav"))
        with pytest.raises(InferenceError):
            backend.transcribe(request, ProgressReporter())

    def test_not_waiting_raises_model_not_ready(self, model_cache):
        loader = FakeLoader(FakeRecognizer(["late"]), delay=0.2)
        backend = LocalModelBackend(loader=loader, cache=model_cache, wait_for_model=False)

        with pytest.raises(ModelNotReady):
            backend.transcribe(pcm_request(1), ProgressReporter())

        deadline = time.time() + 5
        while not backend.is_ready() and time.time() < deadline:
            time.sleep(0.01)
        assert backend.transcribe(pcm_request(1), ProgressReporter()).text == "late"

    def test_load_failure_is_inference_error(self, model_cache):
        backend = LocalModelBackend(loader=FakeLoader(error=OSError("bad onnx")), cache=model_cache)
        with pytest.raises(InferenceError):
            backend.transcribe(pcm_request(1), ProgressReporter())

    def test_download_connectivity_is_network_error(self, model_cache):
        loader = FakeLoader(error=requests.ConnectionError("offline"))
        backend = LocalModelBackend(loader=loader, cache=model_cache)
        with pytest.raises(NetworkError):
            backend.transcribe(pcm_request(1), ProgressReporter())

    def test_retry_after_failed_load(self, model_cache):
        loader = FakeLoader(error=OSError("bad onnx"))
        backend = LocalModelBackend(loader=loader, cache=model_cache)
        with pytest.raises(InferenceError):
            backend.preload()

        loader.error = None
        loader.recognizer = FakeRecognizer(["ok"])
        assert backend.transcribe(pcm_request(1), ProgressReporter()).text == "ok"
        assert loader.calls == 2

    def test_cancel_between_windows(self, model_cache):
        token = CancellationToken()
        recognizer = FakeRecognizer(["one", "two", "three"])
        original = recognizer.decode_stream

        def decode_then_cancel(stream):
            original(stream)
            token.cancel()

        recognizer.decode_stream = decode_then_cancel
        backend = LocalModelBackend(loader=FakeLoader(recognizer), cache=model_cache)

        with pytest.raises(TranscriptionCancelled):
            backend.transcribe(pcm_request(60), ProgressReporter(), token)
        assert recognizer.decoded == 1

    def test_inference_failure(self, model_cache):
        recognizer = MagicMock()
        recognizer.create_stream.side_effect = RuntimeError("onnx runtime")
        backend = LocalModelBackend(loader=FakeLoader(recognizer), cache=model_cache)
        with pytest.raises(InferenceError):
            backend.transcribe(pcm_request(1), ProgressReporter())


class TestSherpaOnnxModelLoader:
    def test_cancelled_download_is_model_not_ready(self, monkeypatch):
        downloader = MagicMock()
        downloader.download.return_value = False
        monkeypatch.setattr(
            "audioscribe.core.asr.local_backend.is_model_downloaded", lambda model_id: False
        )

        with pytest.raises(ModelNotReady):
            SherpaOnnxModelLoader(downloader=downloader).load("sherpa-onnx-whisper-tiny")
