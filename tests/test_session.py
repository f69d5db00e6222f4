"""
Tests for the StreamingRecognitionSession state machine.

A scripted recognizer stands in for the real one; it hands the session's
callbacks back to the test so events can be injected in any order.
"""

import pytest

from audioscribe.core.streaming.events import RecognitionEvent
from audioscribe.core.streaming.session import (
    RecognizerConfig,
    SessionState,
    SessionStatus,
    StreamingRecognitionSession,
)
from audioscribe.errors import FileTooLarge, RecognitionError, Unsupported, UnsupportedFormat

from conftest import make_clip


class ScriptedRecognizer:
    """Calls on_end synchronously from stop(), like a recognizer that flushes immediately."""

    def __init__(self, end_on_stop=True, start_error=None):
        self.end_on_stop = end_on_stop
        self.start_error = start_error
        self.config = None
        self.on_event = None
        self.on_error = None
        self.on_end = None
        self.stop_calls = 0

    def start(self, config, on_event, on_error, on_end):
        if self.start_error is not None:
            raise self.start_error
        self.config = config
        self.on_event = on_event
        self.on_error = on_error
        self.on_end = on_end

    def stop(self):
        self.stop_calls += 1
        if self.end_on_stop and self.on_end is not None:
            self.on_end()


class FakePlayback:
    def __init__(self):
        self.on_finished = None
        self.stop_calls = 0
        self.played = None

    def play(self, clip, on_finished):
        self.played = clip
        self.on_finished = on_finished

    def stop(self):
        self.stop_calls += 1


class ManualTimer:
    instances = []

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False
        ManualTimer.instances.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function()


@pytest.fixture
def recorder():
    calls = {"updates": [], "warnings": [], "ends": []}
    return calls


def make_session(recognizer, recorder, **kwargs):
    return StreamingRecognitionSession(
        recognizer,
        on_update=recorder["updates"].append,
        on_warning=recorder["warnings"].append,
        on_end=recorder["ends"].append,
        **kwargs,
    )


class TestLiveSession:
    def test_starts_listening_with_config(self, recorder):
        recognizer = ScriptedRecognizer()
        config = RecognizerConfig(language="en", interim_results=False)
        session = make_session(recognizer, recorder, config=config)

        session.start()

        assert session.state is SessionState.LISTENING
        assert recognizer.config is config

    def test_updates_after_every_event(self, recorder):
        recognizer = ScriptedRecognizer()
        session = make_session(recognizer, recorder)
        session.start()

        recognizer.on_event(RecognitionEvent.interim("a", 0))
        recognizer.on_event(RecognitionEvent.interim("ab", 1))
        recognizer.on_event(RecognitionEvent.final("abc", 2))

        assert recorder["updates"] == ["[a]", "[ab]", "abc"]
        assert session.transcript.finalized_text == "abc"
        assert session.transcript.pending_interim_text == ""

    def test_double_stop_single_end_single_release(self, recorder):
        recognizer = ScriptedRecognizer()
        session = make_session(recognizer, recorder)
        session.start()
        recognizer.on_event(RecognitionEvent.final("hello", 0))

        session.stop()
        session.stop()

        assert recognizer.stop_calls == 1
        assert len(recorder["ends"]) == 1
        assert recorder["ends"][0].status is SessionStatus.COMPLETED
        assert recorder["ends"][0].text == "hello"
        assert session.state is SessionState.ENDED

    def test_stop_drains_until_recognizer_ends(self, recorder):
        recognizer = ScriptedRecognizer(end_on_stop=False)
        session = make_session(recognizer, recorder)
        session.start()

        session.stop()
        assert session.state is SessionState.DRAINING

        recognizer.on_event(RecognitionEvent.final("trailing words", 0))
        recognizer.on_end()

        assert session.state is SessionState.ENDED
        assert recorder["ends"][0].text == "trailing words"

    def test_no_speech(self, recorder):
        recognizer = ScriptedRecognizer()
        session = make_session(recognizer, recorder)
        session.start()
        session.stop()

        assert recorder["ends"][0].status is SessionStatus.NO_SPEECH
        assert recorder["ends"][0].text == ""

    def test_pending_interim_folded_in_on_end(self, recorder):
        recognizer = ScriptedRecognizer()
        session = make_session(recognizer, recorder)
        session.start()
        recognizer.on_event(RecognitionEvent.final("one", 0))
        recognizer.on_event(RecognitionEvent.interim("two", 1))

        session.stop()

        assert recorder["ends"][0].text == "one two"

    def test_stale_events_dropped(self, recorder):
        recognizer = ScriptedRecognizer()
        session = make_session(recognizer, recorder)
        session.start()

        recognizer.on_event(RecognitionEvent.interim("newer", 5))
        recognizer.on_event(RecognitionEvent.interim("older", 3))

        assert recorder["updates"] == ["[newer]"]

    def test_no_callbacks_after_end(self, recorder):
        recognizer = ScriptedRecognizer()
        session = make_session(recognizer, recorder)
        session.start()
        session.stop()

        recognizer.on_event(RecognitionEvent.final("late", 9))
        recognizer.on_error(RecognitionError(RecognitionError.NO_INPUT))
        recognizer.on_end()

        assert recorder["updates"] == []
        assert recorder["warnings"] == []
        assert len(recorder["ends"]) == 1

    def test_recoverable_error_is_warning(self, recorder):
        recognizer = ScriptedRecognizer()
        session = make_session(recognizer, recorder)
        session.start()

        recognizer.on_error(RecognitionError(RecognitionError.NO_INPUT, "silence"))
        recognizer.on_error(RecognitionError(RecognitionError.CONNECTIVITY, "offline"))

        assert [e.subkind for e in recorder["warnings"]] == ["no-input", "connectivity"]
        assert session.state is SessionState.LISTENING
        assert recorder["ends"] == []

    @pytest.mark.parametrize(
        "subkind", [RecognitionError.PERMISSION_DENIED, RecognitionError.CAPTURE_FAILURE]
    )
    def test_fatal_error_ends_session(self, recorder, subkind):
        recognizer = ScriptedRecognizer()
        session = make_session(recognizer, recorder)
        session.start()
        recognizer.on_event(RecognitionEvent.final("partial result", 0))

        recognizer.on_error(RecognitionError(subkind, "mic gone"))

        outcome = recorder["ends"][0]
        assert outcome.status is SessionStatus.FAILED
        assert outcome.error.subkind == subkind
        assert outcome.text == "partial result"
        assert len(recorder["ends"]) == 1
        assert recognizer.stop_calls == 1

    def test_error_flagged_fatal_fails_session(self, recorder):
        recognizer = ScriptedRecognizer()
        session = make_session(recognizer, recorder)
        session.start()

        recognizer.on_error(RecognitionError(RecognitionError.OTHER, "model missing", fatal=True))
        recognizer.on_end()

        assert [o.status for o in recorder["ends"]] == [SessionStatus.FAILED]
        assert recorder["warnings"] == []

    def test_stop_before_start(self, recorder):
        recognizer = ScriptedRecognizer()
        session = make_session(recognizer, recorder)

        session.stop()

        assert session.state is SessionState.ENDED
        assert recognizer.stop_calls == 0
        assert recorder["ends"] == []

    def test_cannot_start_twice(self, recorder):
        session = make_session(ScriptedRecognizer(), recorder)
        session.start()
        with pytest.raises(RuntimeError):
            session.start()

    def test_no_recognizer_is_unsupported(self, recorder):
        with pytest.raises(Unsupported):
            make_session(None, recorder).start()

    def test_start_failure_ends_session(self, recorder):
        recognizer = ScriptedRecognizer(start_error=Unsupported("no portaudio"))
        session = make_session(recognizer, recorder)

        with pytest.raises(Unsupported):
            session.start()
        assert session.state is SessionState.ENDED


class TestFileSourcedSession:
    def setup_method(self):
        ManualTimer.instances = []

    def test_plays_clip_and_drains_after_grace(self, recorder):
        recognizer = ScriptedRecognizer()
        playback = FakePlayback()
        clip = make_clip(b"RIFF", name="speech.wav")
        session = make_session(
            recognizer,
            recorder,
            source_clip=clip,
            playback=playback,
            grace_seconds=1.5,
            timer_factory=ManualTimer,
        )
        session.start()
        assert playback.played is clip

        recognizer.on_event(RecognitionEvent.final("spoken", 0))
        playback.on_finished()

        assert session.state is SessionState.DRAINING
        timer = ManualTimer.instances[0]
        assert timer.interval == 1.5
        assert timer.started and timer.daemon
        assert recognizer.stop_calls == 0

        recognizer.on_event(RecognitionEvent.final("tail", 1))
        timer.fire()

        assert recognizer.stop_calls == 1
        assert playback.stop_calls == 1
        assert recorder["ends"][0].text == "spoken tail"

    def test_stop_during_grace_cancels_timer(self, recorder):
        recognizer = ScriptedRecognizer()
        playback = FakePlayback()
        session = make_session(
            recognizer,
            recorder,
            source_clip=make_clip(b"RIFF", name="speech.wav"),
            playback=playback,
            timer_factory=ManualTimer,
        )
        session.start()
        playback.on_finished()

        session.stop()
        ManualTimer.instances[0].fire()

        assert ManualTimer.instances[0].cancelled
        assert recognizer.stop_calls == 1
        assert playback.stop_calls == 1
        assert len(recorder["ends"]) == 1

    def test_stop_before_playback_finishes(self, recorder):
        recognizer = ScriptedRecognizer()
        playback = FakePlayback()
        session = make_session(
            recognizer,
            recorder,
            source_clip=make_clip(b"RIFF", name="speech.wav"),
            playback=playback,
            timer_factory=ManualTimer,
        )
        session.start()
        session.stop()
        playback.on_finished()

        assert ManualTimer.instances == []
        assert playback.stop_calls == 1

    def test_file_without_playback_is_unsupported(self, recorder):
        session = make_session(
            ScriptedRecognizer(), recorder, source_clip=make_clip(b"RIFF", name="a.wav")
        )
        with pytest.raises(Unsupported):
            session.start()

    def test_oversized_clip_rejected_before_anything_starts(self, recorder):
        recognizer = ScriptedRecognizer()
        playback = FakePlayback()
        clip = make_clip(b"\x00" * (100 * 1024 * 1024 + 5), name="huge.wav")
        session = make_session(recognizer, recorder, source_clip=clip, playback=playback)

        with pytest.raises(FileTooLarge):
            session.start()

        assert recognizer.config is None
        assert playback.played is None
        assert recorder["ends"] == []

    def test_non_audio_clip_rejected(self, recorder):
        recognizer = ScriptedRecognizer()
        clip = make_clip(b"plain text", name="notes.txt", mime_type="text/plain")
        session = make_session(recognizer, recorder, source_clip=clip, playback=FakePlayback())

        with pytest.raises(UnsupportedFormat):
            session.start()
        assert recognizer.config is None
