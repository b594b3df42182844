"""Shared pytest fixtures and fake capture devices."""

from datetime import datetime
from typing import List, Optional

import numpy as np
import pytest

from empathic_agent.config import Settings
from empathic_agent.errors import BackendCallFailure
from empathic_agent.models import TranscriptSegment
from empathic_agent.sources import AudioFrame, FaceDetection


class FakeAudioSource:
    def __init__(self, samples: Optional[np.ndarray] = None, sample_rate: int = 44100):
        self.samples = samples if samples is not None else np.zeros(2048)
        self.sample_rate = sample_rate
        self.opened = False
        self.open_calls = 0
        self.close_calls = 0

    def open(self):
        self.opened = True
        self.open_calls += 1

    def read_frame(self) -> AudioFrame:
        return AudioFrame(samples=self.samples, sample_rate=self.sample_rate)

    def drain(self) -> np.ndarray:
        return np.zeros(0, dtype=np.float32)

    def close(self):
        self.opened = False
        self.close_calls += 1


class FakeVideoSource:
    def __init__(self, frame=None):
        self.frame = frame if frame is not None else np.zeros((48, 64, 3), dtype=np.uint8)
        self.opened = False
        self.close_calls = 0

    def open(self):
        self.opened = True

    def get_latest_frame(self):
        return self.frame if self.opened else None

    def close(self):
        self.opened = False
        self.close_calls += 1


class FakeFaceDetector:
    def __init__(self, detection: Optional[FaceDetection] = None, init_error: Exception = None):
        self.detection = detection
        self.init_error = init_error
        self.init_calls = 0
        self.detect_calls = 0

    async def initialize_models(self):
        self.init_calls += 1
        if self.init_error is not None:
            raise self.init_error

    async def detect(self, frame):
        self.detect_calls += 1
        return self.detection


class FakeSpeechRecognizer:
    def __init__(self, start_error: Exception = None):
        self.start_error = start_error
        self.start_calls = 0
        self.stop_calls = 0
        self.language = None
        self.segment_callbacks = []
        self.ended_callbacks = []

    def start(self):
        self.start_calls += 1
        if self.start_error is not None:
            raise self.start_error

    def stop(self):
        self.stop_calls += 1

    def on_segment(self, callback):
        self.segment_callbacks.append(callback)

    def on_ended(self, callback):
        self.ended_callbacks.append(callback)

    def set_language(self, language):
        self.language = language

    def emit(self, text: str, is_final: bool = True):
        segment = TranscriptSegment(text=text, is_final=is_final, confidence=0.9,
                                    timestamp=datetime.now())
        for callback in self.segment_callbacks:
            callback(segment)

    def end(self):
        for callback in self.ended_callbacks:
            callback()


class FakeChatBackend:
    def __init__(self, reply: str = "I hear you.", error: Exception = None):
        self.reply = reply
        self.error = error
        self.calls: List[dict] = []

    def chat(self, message, emotion_context, history, provider, model, system_prompt=None):
        self.calls.append({
            "message": message,
            "emotion_context": emotion_context,
            "history": list(history),
            "provider": provider,
            "model": model,
            "system_prompt": system_prompt,
        })
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def settings():
    return Settings(
        vocal_interval=0.01,
        facial_interval=0.01,
        restart_delay=0.01,
    )


@pytest.fixture
def audio_source():
    return FakeAudioSource()


@pytest.fixture
def video_source():
    return FakeVideoSource()


@pytest.fixture
def face_detector():
    return FakeFaceDetector()


@pytest.fixture
def recognizer():
    return FakeSpeechRecognizer()


@pytest.fixture
def chat_backend():
    return FakeChatBackend()


@pytest.fixture
def failing_chat_backend():
    return FakeChatBackend(error=BackendCallFailure("Backend returned 500"))
