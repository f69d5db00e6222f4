"""Tests for the command line entry point."""

from unittest.mock import MagicMock, patch

import pytest

from audioscribe import cli
from audioscribe.core.asr.backends import TranscriptResult
from audioscribe.core.settings import Settings
from audioscribe.errors import NetworkError


@pytest.fixture
def settings():
    with patch("audioscribe.cli.get_settings", return_value=Settings()) as mock:
        yield mock.return_value


def test_requires_command():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_transcribe_prints_text(tmp_path, settings, capsys):
    path = tmp_path / "memo.wav"
    path.write_bytes(b"RIFF\x00\x00\x00\x00WAVE")
    orchestrator = MagicMock()
    orchestrator.transcribe_file.return_value = TranscriptResult(text="hello there", backend="local")

    with patch("audioscribe.cli.build_orchestrator", return_value=orchestrator) as build:
        assert cli.main(["transcribe", str(path), "--backend", "static", "--language", "en"]) == 0

    used = build.call_args.args[0]
    assert used.primary_backend == "static"
    assert used.language == "en"
    assert capsys.readouterr().out.strip() == "hello there"


def test_pipeline_error_exit_code(tmp_path, settings, capsys):
    path = tmp_path / "memo.wav"
    path.write_bytes(b"RIFF")
    orchestrator = MagicMock()
    orchestrator.transcribe_file.side_effect = NetworkError("offline")

    with patch("audioscribe.cli.build_orchestrator", return_value=orchestrator):
        assert cli.main(["transcribe", str(path)]) == 1

    assert "offline" in capsys.readouterr().err


def test_models_lists_streaming(settings, capsys):
    assert cli.main(["models", "--streaming"]) == 0
    out = capsys.readouterr().out
    assert "streaming-zipformer" in out
    assert "whisper-tiny" not in out
