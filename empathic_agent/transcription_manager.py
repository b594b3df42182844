import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .errors import PermissionDenied, TranscriptionStartError
from .models import TranscriptSegment
from .sources import SpeechRecognizer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RestartPolicy:
    """How the recognizer is revived after it ends on its own."""
    delay: float = 0.1
    max_attempts_per_end: int = 1


class TranscriptionLifecycle:
    """
    Keeps continuous speech recognition alive while the user is listening.

    Recognizers stop by themselves (silence timeouts, provider limits).
    ``should_be_transcribing`` holds the user's intent separately from the
    recognizer's own state, and every "ended" notification received while
    it is set schedules a restart according to the ``RestartPolicy``.
    """

    def __init__(self, recognizer: SpeechRecognizer,
                 on_final: Callable[[str], None],
                 on_segment: Optional[Callable[[TranscriptSegment], None]] = None,
                 restart_policy: Optional[RestartPolicy] = None):
        """
        Initialize the lifecycle.

        Args:
            recognizer: Continuous speech recognizer
            on_final: Called once with the trimmed text of each final segment
            on_segment: Called with every segment, final or not
            restart_policy: Restart behavior after unexpected ends
        """
        self.recognizer = recognizer
        self.on_final = on_final
        self.on_segment = on_segment
        self.restart_policy = restart_policy or RestartPolicy()
        self.should_be_transcribing = False
        self.current_transcript = ""
        self._restart_task: Optional[asyncio.Task] = None

        self.recognizer.on_segment(self._handle_segment)
        self.recognizer.on_ended(self._handle_ended)

    def start(self):
        """
        Start transcribing.

        Raises:
            PermissionDenied: The microphone was refused
            TranscriptionStartError: The recognizer could not be started
        """
        if self.should_be_transcribing:
            logger.info("Already transcribing, skipping")
            return

        self.should_be_transcribing = True
        try:
            self.recognizer.start()
        except PermissionDenied:
            self.should_be_transcribing = False
            raise
        except Exception as e:
            self.should_be_transcribing = False
            logger.error(f"Could not start recognition: {e}")
            raise TranscriptionStartError(f"Could not start speech recognition: {e}") from e
        logger.info("Transcription started")

    def stop(self):
        """Stop transcribing. Safe to call at any time."""
        self.should_be_transcribing = False
        self._cancel_restart()
        try:
            self.recognizer.stop()
        except Exception as e:
            logger.debug(f"Ignoring recognizer stop error: {e}")
        logger.info("Transcription stopped")

    def set_language(self, language: str):
        self.recognizer.set_language(language)

    def clear_transcript(self):
        self.current_transcript = ""

    def _handle_segment(self, segment: TranscriptSegment):
        self.current_transcript = segment.text
        if self.on_segment:
            self.on_segment(segment)

        text = segment.text.strip()
        if segment.is_final and text:
            self.on_final(text)
            self.current_transcript = ""

    def _handle_ended(self):
        logger.info(f"Speech recognition ended, should_be_transcribing={self.should_be_transcribing}")
        if not self.should_be_transcribing:
            return

        self._cancel_restart()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, cannot schedule recognition restart")
            return
        self._restart_task = loop.create_task(self._restart(), name="recognition-restart")

    async def _restart(self):
        attempts = 0
        while attempts < self.restart_policy.max_attempts_per_end:
            attempts += 1
            await asyncio.sleep(self.restart_policy.delay)
            if not self.should_be_transcribing:
                return
            try:
                logger.info("Auto-restarting recognition")
                self.recognizer.start()
                return
            except Exception as e:
                logger.warning(f"Could not restart recognition: {e}")

    def _cancel_restart(self):
        task, self._restart_task = self._restart_task, None
        if task is not None and not task.done():
            task.cancel()
