import logging
import threading
from collections import deque
from typing import Optional

import cv2
import numpy as np

from .errors import PermissionDenied
from .sources import AudioFrame

logger = logging.getLogger(__name__)


class MicrophoneAudioSource:
    """
    Default input device read through sounddevice.

    The stream callback runs on the PortAudio thread and appends blocks
    under a lock. ``read_frame`` returns the latest ``frame_size`` samples
    for analysis; ``drain`` hands the audio captured since the previous
    drain to the transcriber.
    """

    def __init__(self, sample_rate: int = 44100, frame_size: int = 2048,
                 buffer_seconds: float = 60.0, device: Optional[int] = None):
        self.sample_rate = sample_rate
        self.frame_size = frame_size
        self.device = device
        self.max_pending = int(buffer_seconds * sample_rate)
        self._frame = np.zeros(frame_size, dtype=np.float32)
        self._pending = deque()
        self._pending_samples = 0
        self._lock = threading.Lock()
        self._stream = None

    def open(self):
        if self._stream is not None:
            return

        import sounddevice as sd

        try:
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype="float32",
                device=self.device,
                callback=self._callback,
            )
            self._stream.start()
        except (sd.PortAudioError, OSError) as e:
            self._stream = None
            logger.error(f"Microphone unavailable: {e}")
            raise PermissionDenied(f"Microphone access denied: {e}") from e
        logger.info(f"Microphone opened at {self.sample_rate} Hz")

    def _callback(self, indata, frames, time_info, status):
        if status:
            logger.debug(f"Input stream status: {status}")
        block = indata[:, 0].copy()
        with self._lock:
            if len(block) >= self.frame_size:
                self._frame = block[-self.frame_size:]
            else:
                self._frame = np.concatenate([self._frame[len(block):], block])

            self._pending.append(block)
            self._pending_samples += len(block)
            while self._pending_samples > self.max_pending:
                self._pending_samples -= len(self._pending.popleft())

    def read_frame(self) -> AudioFrame:
        with self._lock:
            samples = self._frame.copy()
        return AudioFrame(samples=samples, sample_rate=self.sample_rate)

    def drain(self) -> np.ndarray:
        """Return and forget the audio captured since the last drain."""
        with self._lock:
            blocks = list(self._pending)
            self._pending.clear()
            self._pending_samples = 0
        if not blocks:
            return np.zeros(0, dtype=np.float32)
        return np.concatenate(blocks)

    def close(self):
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.stop()
            stream.close()
            logger.info("Microphone closed")
        with self._lock:
            self._frame = np.zeros(self.frame_size, dtype=np.float32)
            self._pending.clear()
            self._pending_samples = 0


class CameraVideoSource:
    """Webcam read through OpenCV."""

    def __init__(self, camera_index: int = 0):
        self.camera_index = camera_index
        self._capture: Optional[cv2.VideoCapture] = None

    def open(self):
        if self._capture is not None:
            return
        capture = cv2.VideoCapture(self.camera_index)
        if not capture.isOpened():
            capture.release()
            raise PermissionDenied(f"Camera {self.camera_index} could not be opened")
        self._capture = capture
        logger.info(f"Camera {self.camera_index} opened")

    def get_latest_frame(self):
        if self._capture is None:
            return None
        ret, frame = self._capture.read()
        if not ret:
            return None
        return frame

    def close(self):
        capture, self._capture = self._capture, None
        if capture is not None:
            capture.release()
            logger.info(f"Camera {self.camera_index} released")
