import asyncio
import functools
import logging
from enum import Enum
from typing import Callable, Optional, Set

from .config import Settings
from .errors import InitializationFailure, PermissionDenied, SessionStateError, TranscriptionStartError
from .facial_loop import FacialAnalysisLoop
from .fusion import fuse
from .model_service import ChatBackendClient
from .models import (
    PROVIDERS,
    ConversationMessage,
    EmotionContext,
    FacialEmotionEstimate,
    SessionState,
    TranscriptSegment,
    VocalEmotionEstimate,
)
from .sources import AudioSource, FaceExpressionDetector, SpeechRecognizer, VideoSource
from .transcription_manager import RestartPolicy, TranscriptionLifecycle
from .vocal_loop import VocalAnalysisLoop

logger = logging.getLogger(__name__)

NOT_INITIALIZED_ERROR = "Services not initialized. Call initialize() first."


class SessionStatus(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    DISPOSED = "disposed"


class SessionCoordinator:
    """
    Owns the facial and vocal analysis loops and the transcription stream
    for one conversation session.

    Every estimate updates the held estimate of its modality and recomputes
    the fused estimate against the other modality's current one. Final
    transcripts are sent to the chat backend with the latest emotion
    context. All callbacks run on the event loop thread, so state changes
    are serialized without locks.

    Once disposed a coordinator cannot be initialized again; create a new
    one instead.
    """

    def __init__(self, face_detector: FaceExpressionDetector,
                 speech_recognizer: SpeechRecognizer,
                 chat_backend: ChatBackendClient,
                 settings: Optional[Settings] = None,
                 on_emotion_change: Optional[Callable[[SessionState], None]] = None,
                 on_transcription: Optional[Callable[[str, bool], None]] = None):
        """
        Initialize the coordinator.

        Args:
            face_detector: Facial expression capability
            speech_recognizer: Continuous speech recognition capability
            chat_backend: Client of the chat completion backend
            settings: Thresholds, intervals and conversation options
            on_emotion_change: Called with the state after every emotion update
            on_transcription: Called with (text, is_final) for every segment
        """
        self.settings = settings or Settings()
        if self.settings.provider not in PROVIDERS:
            raise ValueError(f"Unknown provider: {self.settings.provider}")

        self.face_detector = face_detector
        self.speech_recognizer = speech_recognizer
        self.chat_backend = chat_backend
        self.on_emotion_change = on_emotion_change
        self.on_transcription = on_transcription

        self.status = SessionStatus.UNINITIALIZED
        self.state = SessionState(provider=self.settings.provider)
        self.language = self.settings.language

        self.video_source: Optional[VideoSource] = None
        self.audio_source: Optional[AudioSource] = None
        self.facial_loop: Optional[FacialAnalysisLoop] = None
        self.vocal_loop: Optional[VocalAnalysisLoop] = None
        self.transcription: Optional[TranscriptionLifecycle] = None
        self._pending: Set[asyncio.Task] = set()

    async def initialize(self, video_source: VideoSource, audio_source: AudioSource):
        """
        Load the models, open both capture devices and start face detection.

        Raises:
            SessionStateError: The coordinator was already initialized or disposed
            InitializationFailure: A model or device could not be loaded
            PermissionDenied: Camera or microphone access was refused
        """
        if self.status is not SessionStatus.UNINITIALIZED:
            raise SessionStateError(f"Cannot initialize a session that is {self.status.value}")

        self.status = SessionStatus.INITIALIZING
        self.state.error = None

        try:
            await self.face_detector.initialize_models()
            if self.status is SessionStatus.DISPOSED:
                logger.info("Session disposed during initialization, aborting")
                return

            self.video_source = video_source
            video_source.open()
            self.facial_loop = FacialAnalysisLoop(
                self.face_detector,
                video_source,
                self._handle_facial_estimate,
                interval=self.settings.facial_interval,
                min_confidence=self.settings.facial_min_confidence,
            )
            self.state.is_camera_active = True

            self.audio_source = audio_source
            audio_source.open()
            self.vocal_loop = VocalAnalysisLoop(
                audio_source,
                self._handle_vocal_estimate,
                interval=self.settings.vocal_interval,
                voice_activity_threshold=self.settings.voice_activity_threshold,
                window_size=self.settings.variation_window,
            )
            self.transcription = TranscriptionLifecycle(
                self.speech_recognizer,
                on_final=self._handle_final_transcript,
                on_segment=self._handle_segment,
                restart_policy=RestartPolicy(delay=self.settings.restart_delay),
            )
            self.transcription.set_language(self.language)
            self.state.is_mic_active = True
        except Exception as e:
            self.state.error = str(e) or "Failed to initialize"
            logger.error(f"Initialization error: {e}")
            self._release()
            self._reset_flags()
            if self.status is SessionStatus.INITIALIZING:
                self.status = SessionStatus.UNINITIALIZED
            if isinstance(e, (InitializationFailure, PermissionDenied)):
                raise
            raise InitializationFailure(self.state.error) from e

        self.status = SessionStatus.READY
        self.state.is_initialized = True
        logger.info("Session initialized successfully")

        # Visual cues come before verbal ones, so face detection starts right away.
        self.facial_loop.start()
        self.state.is_face_detection_active = True
        logger.info("Face detection auto-started")

    def start_face_detection(self):
        if not self._require_ready():
            return
        self.facial_loop.start()
        self.state.is_face_detection_active = True

    def stop_face_detection(self):
        if self.facial_loop is not None:
            self.facial_loop.stop()
        self.state.is_face_detection_active = False

    def start_listening(self):
        """Start voice analysis and transcription. Face detection is untouched."""
        if not self._require_ready():
            return

        self.vocal_loop.start()
        try:
            self.transcription.start()
        except (TranscriptionStartError, PermissionDenied) as e:
            self.state.error = str(e)
        self.state.is_listening = True
        logger.info("Started voice listening")

    def stop_listening(self):
        """Stop voice analysis and transcription. Face detection keeps running."""
        if self.vocal_loop is not None:
            self.vocal_loop.stop()
        if self.transcription is not None:
            self.transcription.stop()
        self.state.is_listening = False
        logger.info("Stopped voice listening")

    async def send_message(self, text: str):
        """
        Send a user message to the chat backend and append the reply.

        Backend errors are reported through ``state.error``; the user
        message stays in the conversation.
        """
        text = text.strip()
        if not text:
            return

        self.state.is_processing = True
        self.state.error = None

        history = self.state.messages[-self.settings.history_limit:]
        context = EmotionContext(facial=self.state.facial, vocal=self.state.vocal)
        self.state.messages.append(
            ConversationMessage(role="user", content=text, emotion_context=context)
        )

        try:
            loop = asyncio.get_running_loop()
            reply = await loop.run_in_executor(None, functools.partial(
                self.chat_backend.chat,
                text,
                context,
                history,
                self.state.provider,
                self.settings.model,
                self.settings.system_prompt,
            ))
            self.state.messages.append(ConversationMessage(role="assistant", content=reply))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.state.error = str(e) or "Failed to send message"
            logger.error(f"Send message error: {e}")
        finally:
            self.state.is_processing = False

    def clear_messages(self):
        self.state.messages = []
        self.state.current_transcript = ""
        self.state.error = None
        if self.transcription is not None:
            self.transcription.clear_transcript()

    def set_provider(self, provider: str):
        if provider not in PROVIDERS:
            raise ValueError(f"Unknown provider: {provider}")
        self.state.provider = provider

    def set_language(self, language: str):
        self.language = language
        if self.transcription is not None:
            self.transcription.set_language(language)

    async def wait_for_pending(self):
        """Wait until every message send triggered by transcription is done."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def dispose(self):
        """Stop everything and release the devices. Safe to call repeatedly."""
        self.stop_listening()
        self.stop_face_detection()

        for task in list(self._pending):
            task.cancel()

        self._release()
        self._reset_flags()
        self.status = SessionStatus.DISPOSED
        logger.info("Session disposed")

    def _require_ready(self) -> bool:
        if self.status is SessionStatus.READY:
            return True
        self.state.error = NOT_INITIALIZED_ERROR
        logger.warning(NOT_INITIALIZED_ERROR)
        return False

    def _handle_facial_estimate(self, estimate: FacialEmotionEstimate):
        self.state.facial = estimate
        self.state.fused = fuse(estimate, self.state.vocal)
        self._notify_emotion_change()

    def _handle_vocal_estimate(self, estimate: VocalEmotionEstimate):
        self.state.vocal = estimate
        self.state.fused = fuse(self.state.facial, estimate)
        self._notify_emotion_change()

    def _notify_emotion_change(self):
        if self.on_emotion_change is None:
            return
        try:
            self.on_emotion_change(self.state)
        except Exception as e:
            logger.error(f"Error in emotion change callback: {e}")

    def _handle_segment(self, segment: TranscriptSegment):
        self.state.current_transcript = segment.text
        if self.on_transcription is None:
            return
        try:
            self.on_transcription(segment.text, segment.is_final)
        except Exception as e:
            logger.error(f"Error in transcription callback: {e}")

    def _handle_final_transcript(self, text: str):
        self.state.current_transcript = ""
        task = asyncio.get_running_loop().create_task(self.send_message(text))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _release(self):
        for source in (self.video_source, self.audio_source):
            if source is None:
                continue
            try:
                source.close()
            except Exception as e:
                logger.error(f"Error releasing capture device: {e}")
        self.video_source = None
        self.audio_source = None
        self.facial_loop = None
        self.vocal_loop = None
        self.transcription = None

    def _reset_flags(self):
        self.state.is_initialized = False
        self.state.is_camera_active = False
        self.state.is_mic_active = False
        self.state.is_face_detection_active = False
        self.state.is_listening = False
        self.state.is_processing = False
