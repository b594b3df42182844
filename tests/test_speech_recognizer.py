import asyncio
import os
from unittest.mock import MagicMock

import numpy as np
import pytest

from empathic_agent.speech_recognizer import ModelServerSpeechRecognizer


class ChunkedAudio:
    sample_rate = 16000

    def __init__(self, chunk):
        self.chunk = chunk
        self.drains = 0

    def drain(self):
        self.drains += 1
        return self.chunk


def make_recognizer(tmp_path, chunk, text="hello", **kwargs):
    service = MagicMock()
    service.transcribe.return_value = text
    recognizer = ModelServerSpeechRecognizer(
        ChunkedAudio(chunk), service, chunk_seconds=0.01, output_dir=str(tmp_path), **kwargs
    )
    segments = []
    ended = []
    recognizer.on_segment(segments.append)
    recognizer.on_ended(lambda: ended.append(True))
    return recognizer, service, segments, ended


def speech():
    t = np.arange(1600) / 16000
    return (0.3 * np.sin(2 * np.pi * 200 * t)).astype(np.float32)


@pytest.mark.asyncio
async def test_speech_chunks_become_final_segments(tmp_path):
    recognizer, service, segments, ended = make_recognizer(tmp_path, speech())
    recognizer.start()
    await asyncio.sleep(0.1)
    recognizer.stop()
    await asyncio.sleep(0.02)

    assert segments
    assert all(s.is_final and s.text == "hello" for s in segments)
    assert segments[0].confidence == pytest.approx(0.9)
    path = service.transcribe.call_args.args[0]
    assert service.transcribe.call_args.kwargs["language"] == "en-US"
    assert not os.path.exists(path)
    assert ended == []


@pytest.mark.asyncio
async def test_silent_chunks_are_not_transcribed(tmp_path):
    recognizer, service, segments, _ = make_recognizer(tmp_path, np.zeros(1600, dtype=np.float32))
    recognizer.start()
    await asyncio.sleep(0.05)
    recognizer.stop()
    service.transcribe.assert_not_called()
    assert segments == []


@pytest.mark.asyncio
async def test_session_ends_by_itself(tmp_path):
    recognizer, _, _, ended = make_recognizer(tmp_path, np.zeros(0, dtype=np.float32),
                                              max_session_seconds=0.02)
    recognizer.start()
    await asyncio.sleep(0.1)
    assert ended == [True]
    assert not recognizer.running

    # A new session can be started after the previous one ended.
    recognizer.start()
    recognizer.stop()


@pytest.mark.asyncio
async def test_start_while_running_is_refused(tmp_path):
    recognizer, _, _, _ = make_recognizer(tmp_path, np.zeros(0, dtype=np.float32))
    recognizer.start()
    with pytest.raises(RuntimeError):
        recognizer.start()
    recognizer.stop()


@pytest.mark.asyncio
async def test_empty_transcription_emits_nothing(tmp_path):
    recognizer, service, segments, _ = make_recognizer(tmp_path, speech(), text="")
    recognizer.start()
    await asyncio.sleep(0.05)
    recognizer.stop()
    assert service.transcribe.called
    assert segments == []
