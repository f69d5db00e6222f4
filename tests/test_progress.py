"""Tests for progress reporting and cancellation."""

import pytest

from audioscribe.core.asr.progress import (
    CancellationToken,
    ProgressReporter,
    ProgressStage,
    TranscriptionProgress,
)
from audioscribe.errors import TranscriptionCancelled


class TestCancellationToken:
    def test_starts_uncancelled(self):
        token = CancellationToken()
        assert token.is_cancelled is False
        token.raise_if_cancelled()

    def test_cancel_raises(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(TranscriptionCancelled):
            token.raise_if_cancelled()


class TestProgressReporter:
    def test_fractions_clamped(self):
        updates = []
        reporter = ProgressReporter(updates.append)
        reporter.report(ProgressStage.READING, -0.5)
        reporter.report(ProgressStage.READING, 1.7)
        assert [u.fraction for u in updates] == [0.0, 1.0]

    def test_monotonic_within_stage(self):
        updates = []
        reporter = ProgressReporter(updates.append)
        reporter.report(ProgressStage.PROCESSING, 0.5)
        reporter.report(ProgressStage.PROCESSING, 0.3)
        reporter.report(ProgressStage.PROCESSING, 0.8)
        assert [u.fraction for u in updates] == [0.5, 0.8]

    def test_stages_tracked_independently(self):
        updates = []
        reporter = ProgressReporter(updates.append)
        reporter.report(ProgressStage.READING, 1.0)
        reporter.report(ProgressStage.PROCESSING, 0.1)
        assert updates == [
            TranscriptionProgress(ProgressStage.READING, 1.0),
            TranscriptionProgress(ProgressStage.PROCESSING, 0.1),
        ]

    def test_silent_after_cancel(self):
        updates = []
        token = CancellationToken()
        reporter = ProgressReporter(updates.append, token)
        reporter.report(ProgressStage.READING, 0.2)
        token.cancel()
        reporter.report(ProgressStage.READING, 0.9)
        assert len(updates) == 1

    def test_no_callback_is_fine(self):
        ProgressReporter().report(ProgressStage.READING, 0.5)

    def test_stage_values(self):
        assert ProgressStage.LOADING_MODEL.value == "loading-model"
