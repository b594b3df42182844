"""Interfaces of the capture devices and external recognition capabilities."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Protocol

import numpy as np

from .models import TranscriptSegment


@dataclass(frozen=True)
class AudioFrame:
    """One frame of microphone audio."""
    samples: np.ndarray
    sample_rate: int
    spectrum: Optional[np.ndarray] = None


@dataclass(frozen=True)
class FaceDetection:
    """Expression scores of the single face found in a frame."""
    label: str
    scores: Dict[str, float] = field(default_factory=dict)


class AudioSource(Protocol):
    def open(self) -> None:
        """Acquire the device. Raises PermissionDenied if refused."""
        ...

    def read_frame(self) -> AudioFrame:
        """Return the most recent frame of audio."""
        ...

    def close(self) -> None:
        ...


class VideoSource(Protocol):
    def open(self) -> None:
        """Acquire the device. Raises PermissionDenied if refused."""
        ...

    def get_latest_frame(self) -> Optional[Any]:
        """Return the latest frame, or None if none is available yet."""
        ...

    def close(self) -> None:
        ...


class FaceExpressionDetector(Protocol):
    async def initialize_models(self) -> None:
        """Load the detection models. Raises InitializationFailure."""
        ...

    async def detect(self, frame: Any) -> Optional[FaceDetection]:
        """Detect one face and its expression scores, or None if no face."""
        ...


class SpeechRecognizer(Protocol):
    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...

    def on_segment(self, callback: Callable[[TranscriptSegment], None]) -> None:
        ...

    def on_ended(self, callback: Callable[[], None]) -> None:
        """Register a callback fired when recognition ends without stop()."""
        ...

    def set_language(self, language: str) -> None:
        ...
