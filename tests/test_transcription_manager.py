import asyncio

import pytest

from conftest import FakeSpeechRecognizer
from empathic_agent.errors import PermissionDenied, TranscriptionStartError
from empathic_agent.transcription_manager import RestartPolicy, TranscriptionLifecycle


def make_lifecycle(recognizer, delay=0.01):
    finals = []
    segments = []
    lifecycle = TranscriptionLifecycle(
        recognizer,
        on_final=finals.append,
        on_segment=segments.append,
        restart_policy=RestartPolicy(delay=delay),
    )
    return lifecycle, finals, segments


def test_final_segment_is_delivered_once(recognizer):
    lifecycle, finals, _ = make_lifecycle(recognizer)
    lifecycle.start()
    recognizer.emit(" hello ", is_final=True)
    assert finals == ["hello"]
    assert lifecycle.current_transcript == ""


def test_partial_segment_updates_transcript(recognizer):
    lifecycle, finals, segments = make_lifecycle(recognizer)
    lifecycle.start()
    recognizer.emit("hel", is_final=False)
    assert finals == []
    assert lifecycle.current_transcript == "hel"
    assert segments[0].text == "hel"


def test_blank_final_segment_is_ignored(recognizer):
    lifecycle, finals, _ = make_lifecycle(recognizer)
    lifecycle.start()
    recognizer.emit("   ", is_final=True)
    assert finals == []


def test_start_is_idempotent(recognizer):
    lifecycle, _, _ = make_lifecycle(recognizer)
    lifecycle.start()
    lifecycle.start()
    assert recognizer.start_calls == 1
    assert lifecycle.should_be_transcribing


def test_start_failure_is_reported():
    recognizer = FakeSpeechRecognizer(start_error=RuntimeError("not supported"))
    lifecycle, _, _ = make_lifecycle(recognizer)
    with pytest.raises(TranscriptionStartError):
        lifecycle.start()
    assert not lifecycle.should_be_transcribing


def test_permission_denied_passes_through():
    recognizer = FakeSpeechRecognizer(start_error=PermissionDenied("microphone"))
    lifecycle, _, _ = make_lifecycle(recognizer)
    with pytest.raises(PermissionDenied):
        lifecycle.start()
    assert not lifecycle.should_be_transcribing


def test_stop_without_start_is_safe(recognizer):
    lifecycle, _, _ = make_lifecycle(recognizer)
    lifecycle.stop()
    assert not lifecycle.should_be_transcribing


def test_stop_ignores_recognizer_errors():
    class BrokenStop(FakeSpeechRecognizer):
        def stop(self):
            raise RuntimeError("already stopped")

    lifecycle, _, _ = make_lifecycle(BrokenStop())
    lifecycle.stop()


def test_language_is_forwarded(recognizer):
    lifecycle, _, _ = make_lifecycle(recognizer)
    lifecycle.set_language("fr-FR")
    assert recognizer.language == "fr-FR"


@pytest.mark.asyncio
async def test_unexpected_end_restarts_once(recognizer):
    lifecycle, _, _ = make_lifecycle(recognizer)
    lifecycle.start()
    recognizer.end()
    await asyncio.sleep(0.05)
    assert recognizer.start_calls == 2


@pytest.mark.asyncio
async def test_end_after_stop_does_not_restart(recognizer):
    lifecycle, _, _ = make_lifecycle(recognizer)
    lifecycle.start()
    lifecycle.stop()
    recognizer.end()
    await asyncio.sleep(0.05)
    assert recognizer.start_calls == 1


@pytest.mark.asyncio
async def test_stop_during_restart_delay_cancels_restart(recognizer):
    lifecycle, _, _ = make_lifecycle(recognizer, delay=0.05)
    lifecycle.start()
    recognizer.end()
    lifecycle.stop()
    await asyncio.sleep(0.1)
    assert recognizer.start_calls == 1


@pytest.mark.asyncio
async def test_failed_restart_is_not_retried():
    recognizer = FakeSpeechRecognizer()
    lifecycle, _, _ = make_lifecycle(recognizer)
    lifecycle.start()
    recognizer.start_error = RuntimeError("busy")
    recognizer.end()
    await asyncio.sleep(0.05)
    assert recognizer.start_calls == 2
    assert lifecycle.should_be_transcribing
