"""
Audioscribe command line entry point.

Usage:
    audioscribe transcribe FILE [--backend NAME] [--language CODE]
    audioscribe record [--output PATH] [--transcribe]
    audioscribe dictate [--file PATH]
    audioscribe devices
    audioscribe models [--streaming]
"""

import argparse
import sys
import threading
from pathlib import Path
from typing import List, Optional

from . import __app_name__, __version__
from .core.asr import CancellationToken, TranscriptionProgress, build_orchestrator
from .core.asr.model_registry import get_all_models_with_status
from .core.audio import AudioCapture, AudioClip, SoundDeviceCaptureDevice, SoundDevicePlayback
from .core.settings import BACKEND_NAMES, Settings, get_settings
from .core.streaming import (
    RecognizerConfig,
    SessionOutcome,
    SessionStatus,
    StreamingRecognitionSession,
)
from .errors import AudioscribeError, RecognitionError, TranscriptionCancelled
from .utils.logger import get_logger, shutdown_logging

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="audioscribe",
        description=f"{__app_name__} audio capture and transcription",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    transcribe = subparsers.add_parser("transcribe", help="Transcribe an audio file")
    transcribe.add_argument("file", type=Path)
    transcribe.add_argument(
        "--backend", choices=BACKEND_NAMES, help="Primary backend (overrides settings)"
    )
    transcribe.add_argument("--language", help="Language code (overrides settings)")

    record = subparsers.add_parser("record", help="Record from the microphone")
    record.add_argument("--output", type=Path, help="Where to save the recording")
    record.add_argument(
        "--transcribe", action="store_true", help="Transcribe the recording afterwards"
    )

    dictate = subparsers.add_parser("dictate", help="Live dictation with interim results")
    dictate.add_argument("--file", type=Path, help="Play this file and dictate from it")

    subparsers.add_parser("devices", help="List audio input devices")

    models = subparsers.add_parser("models", help="List known models and download status")
    models.add_argument("--streaming", action="store_true", help="Only streaming models")

    return parser


def _print_progress(update: TranscriptionProgress) -> None:
    print(f"\r{update.stage.value}: {update.fraction:6.1%}", end="", file=sys.stderr, flush=True)


def transcribe_clip(clip: AudioClip, settings: Settings) -> int:
    orchestrator = build_orchestrator(settings)
    cancel_token = CancellationToken()
    try:
        result = orchestrator.transcribe_file(
            clip,
            on_progress=_print_progress,
            on_notice=lambda notice: print(f"\n{notice.message}", file=sys.stderr),
            cancel_token=cancel_token,
        )
    except KeyboardInterrupt:
        cancel_token.cancel()
        print("\nCancelled", file=sys.stderr)
        return 130
    finally:
        print(file=sys.stderr)

    if result.is_placeholder:
        print("(no transcription backend available)", file=sys.stderr)
    print(result.text)
    return 0


def _wait_for_enter(prompt: str) -> None:
    print(prompt, file=sys.stderr)
    try:
        input()
    except (EOFError, KeyboardInterrupt):
        pass


def cmd_transcribe(args, settings: Settings) -> int:
    if args.backend:
        settings = settings.model_copy(update={"primary_backend": args.backend})
    if args.language:
        settings = settings.model_copy(update={"language": args.language})
    clip = AudioClip.from_path(str(args.file))
    return transcribe_clip(clip, settings)


def cmd_record(args, settings: Settings) -> int:
    capture = AudioCapture(sample_rate=settings.sample_rate, input_device=settings.input_device)
    capture.start()
    try:
        _wait_for_enter("Recording... press Enter to stop")
    finally:
        clip = capture.stop()

    output = args.output or Path(clip.name)
    output.write_bytes(clip.data)
    print(f"Saved {clip.duration or 0:.1f}s recording to {output}", file=sys.stderr)

    if args.transcribe:
        return transcribe_clip(clip, settings)
    return 0


def cmd_dictate(args, settings: Settings) -> int:
    from .core.streaming.recognizer import SherpaOnnxStreamingRecognizer

    ended = threading.Event()
    outcomes: List[SessionOutcome] = []

    def on_end(outcome: SessionOutcome) -> None:
        outcomes.append(outcome)
        ended.set()

    def on_warning(error: RecognitionError) -> None:
        print(f"\nwarning: {error}", file=sys.stderr)

    clip = AudioClip.from_path(str(args.file)) if args.file else None
    session = StreamingRecognitionSession(
        recognizer=SherpaOnnxStreamingRecognizer(
            model_id=settings.streaming_model_id,
            sample_rate=settings.sample_rate,
            input_device=settings.input_device,
        ),
        config=RecognizerConfig(
            language=settings.language, interim_results=settings.interim_results
        ),
        source_clip=clip,
        playback=SoundDevicePlayback() if clip else None,
        on_update=lambda text: print(f"\r{text}", end="", file=sys.stderr, flush=True),
        on_warning=on_warning,
        on_end=on_end,
        grace_seconds=settings.drain_grace_seconds,
    )
    session.start()

    if clip is None:
        _wait_for_enter("Listening... press Enter to stop")
        session.stop()
    try:
        ended.wait()
    except KeyboardInterrupt:
        session.stop()
        ended.wait(timeout=5.0)
    print(file=sys.stderr)

    outcome = outcomes[0] if outcomes else session.outcome
    if outcome is None or outcome.status is SessionStatus.FAILED:
        return 1
    if outcome.status is SessionStatus.NO_SPEECH:
        print("No speech detected", file=sys.stderr)
        return 0
    print(outcome.text)
    return 0


def cmd_devices(args, settings: Settings) -> int:
    devices = SoundDeviceCaptureDevice.list_devices()
    if not devices:
        print("No audio input devices found", file=sys.stderr)
        return 1
    for device in devices:
        print(f"[{device.index}] {device.name} ({device.channels}ch, {device.default_sample_rate:.0f}Hz)")
    return 0


def cmd_models(args, settings: Settings) -> int:
    for model, status in get_all_models_with_status(streaming=True if args.streaming else None):
        print(f"{model.id:<60} {model.type:<18} {status}")
    return 0


COMMANDS = {
    "transcribe": cmd_transcribe,
    "record": cmd_record,
    "dictate": cmd_dictate,
    "devices": cmd_devices,
    "models": cmd_models,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()

    try:
        return COMMANDS[args.command](args, settings)
    except TranscriptionCancelled:
        return 130
    except AudioscribeError as e:
        logger.error(f"{args.command} failed: {type(e).__name__}: {e}")
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        shutdown_logging()


if __name__ == "__main__":
    sys.exit(main())
