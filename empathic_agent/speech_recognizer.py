import asyncio
import logging
import os
import tempfile
import uuid
from datetime import datetime
from typing import Callable, List, Optional

import numpy as np
import soundfile as sf

from .model_service import ModelService
from .models import TranscriptSegment

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.9


class ModelServerSpeechRecognizer:
    """
    Continuous recognition built on the model server's file transcription.

    Every ``chunk_seconds`` the audio captured since the previous chunk is
    written to a WAV file the server can read and transcribed in the
    default executor. Each non-empty result is emitted as a final segment.
    A recognition session ends by itself after ``max_session_seconds``,
    and the ended callbacks fire whenever a session ends without ``stop()``.
    """

    def __init__(self, audio_source, model_service: ModelService,
                 language: str = "en-US", chunk_seconds: float = 3.0,
                 max_session_seconds: Optional[float] = 60.0,
                 silence_threshold: float = 0.01,
                 output_dir: Optional[str] = None):
        """
        Initialize the recognizer.

        Args:
            audio_source: Source with a ``drain()`` method returning new samples
            model_service: Client of the transcription server
            language: BCP-47 language tag
            chunk_seconds: Length of audio sent per transcription request
            max_session_seconds: Session length after which recognition ends;
                None keeps the session open until stopped
            silence_threshold: RMS below which a chunk is not transcribed
            output_dir: Directory shared with the model server for chunk files
        """
        self.audio_source = audio_source
        self.model_service = model_service
        self.language = language
        self.chunk_seconds = chunk_seconds
        self.max_session_seconds = max_session_seconds
        self.silence_threshold = silence_threshold
        self.output_dir = output_dir or tempfile.gettempdir()
        self._segment_callbacks: List[Callable[[TranscriptSegment], None]] = []
        self._ended_callbacks: List[Callable[[], None]] = []
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def on_segment(self, callback: Callable[[TranscriptSegment], None]):
        self._segment_callbacks.append(callback)

    def on_ended(self, callback: Callable[[], None]):
        self._ended_callbacks.append(callback)

    def set_language(self, language: str):
        self.language = language

    def start(self):
        if self.running:
            raise RuntimeError("Recognition already started")
        # Audio captured before the session started is not transcribed.
        self.audio_source.drain()
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="speech-recognition"
        )
        logger.info(f"Recognition started (language: {self.language})")

    def stop(self):
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    async def _run(self):
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            while True:
                await asyncio.sleep(self.chunk_seconds)
                audio = self.audio_source.drain()
                if self._is_speech(audio):
                    sample_rate = self.audio_source.sample_rate
                    text = await loop.run_in_executor(None, self.transcribe, audio, sample_rate)
                    if text:
                        self._emit(TranscriptSegment(
                            text=text,
                            is_final=True,
                            confidence=DEFAULT_CONFIDENCE,
                            timestamp=datetime.now(),
                        ))

                if (self.max_session_seconds is not None
                        and loop.time() - started >= self.max_session_seconds):
                    logger.info("Recognition session reached its maximum length")
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Recognition error: {e}")
        finally:
            # A session cancelled by stop() is no longer current and ends silently.
            if self._task is asyncio.current_task():
                self._task = None
                self._fire_ended()

    def _is_speech(self, audio: np.ndarray) -> bool:
        if audio.size == 0:
            return False
        rms = float(np.sqrt(np.mean(np.square(audio, dtype=np.float64))))
        return rms >= self.silence_threshold

    def transcribe(self, audio: np.ndarray, sample_rate: int) -> str:
        """Write one chunk to disk and transcribe it."""
        path = os.path.join(self.output_dir, f"chunk_{uuid.uuid4().hex}.wav")
        try:
            sf.write(path, audio, samplerate=sample_rate, subtype="PCM_16")
            return self.model_service.transcribe(path, language=self.language)
        finally:
            if os.path.exists(path):
                os.remove(path)

    def _emit(self, segment: TranscriptSegment):
        for callback in list(self._segment_callbacks):
            try:
                callback(segment)
            except Exception as e:
                logger.error(f"Error in segment callback: {e}")

    def _fire_ended(self):
        for callback in list(self._ended_callbacks):
            try:
                callback()
            except Exception as e:
                logger.error(f"Error in ended callback: {e}")
