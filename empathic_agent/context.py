# context.py
from typing import Callable, Optional, Tuple

from .capture import CameraVideoSource, MicrophoneAudioSource
from .config import Settings
from .face_detector import DeepFaceExpressionDetector
from .model_service import ChatBackendClient, ModelService
from .models import SessionState
from .session_manager import SessionCoordinator
from .speech_recognizer import ModelServerSpeechRecognizer

_settings = None
_model_service = None
_chat_backend = None
_face_detector = None
_audio_source = None
_video_source = None


def init_all_services(settings: Optional[Settings] = None):
    global _settings, _model_service, _chat_backend, _face_detector, _audio_source, _video_source

    _settings = settings or Settings.from_env()
    _model_service = ModelService(_settings.model_server_url)
    _chat_backend = ChatBackendClient(
        _settings.chat_backend_url,
        token=_settings.chat_backend_token,
        timeout=_settings.chat_timeout,
    )
    _face_detector = DeepFaceExpressionDetector(detector_backend=_settings.detector_backend)
    _audio_source = MicrophoneAudioSource(
        sample_rate=_settings.sample_rate,
        frame_size=_settings.fft_size,
    )
    _video_source = CameraVideoSource(_settings.camera_index)


def get_settings() -> Settings:
    return _settings


def get_capture_sources() -> Tuple[CameraVideoSource, MicrophoneAudioSource]:
    return _video_source, _audio_source


def create_coordinator(on_emotion_change: Optional[Callable[[SessionState], None]] = None,
                       on_transcription: Optional[Callable[[str, bool], None]] = None
                       ) -> SessionCoordinator:
    """Build a coordinator with a fresh recognizer over the shared devices."""
    if _settings is None:
        init_all_services()

    recognizer = ModelServerSpeechRecognizer(
        _audio_source,
        _model_service,
        language=_settings.language,
        chunk_seconds=_settings.transcription_chunk_seconds,
        max_session_seconds=_settings.transcription_max_session_seconds,
    )
    return SessionCoordinator(
        _face_detector,
        recognizer,
        _chat_backend,
        settings=_settings,
        on_emotion_change=on_emotion_change,
        on_transcription=on_transcription,
    )
