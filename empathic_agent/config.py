"""Runtime settings loaded from the environment."""

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_MODEL = "claude-sonnet-4-20250514"


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def _env_optional_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else None


@dataclass(frozen=True)
class Settings:
    """Thresholds, intervals and endpoints for one agent process."""

    # Audio analysis
    sample_rate: int = 44100
    fft_size: int = 2048
    vocal_interval: float = 0.1
    voice_activity_threshold: float = 0.1
    variation_window: int = 20

    # Facial analysis
    facial_interval: float = 0.5
    facial_min_confidence: float = 0.5
    detector_backend: str = "opencv"
    camera_index: int = 0

    # Transcription
    language: str = "en-US"
    restart_delay: float = 0.1
    transcription_chunk_seconds: float = 3.0
    transcription_max_session_seconds: float = 60.0

    # Conversation
    provider: str = "claude"
    model: str = DEFAULT_MODEL
    system_prompt: Optional[str] = None
    history_limit: int = 10
    chat_backend_url: str = "http://localhost:54321/functions/v1"
    chat_backend_token: Optional[str] = None
    chat_timeout: Optional[float] = None
    model_server_url: str = "http://model-server:8000"

    # HTTP surface
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        defaults = cls()
        return cls(
            sample_rate=_env_int("SAMPLE_RATE", defaults.sample_rate),
            fft_size=_env_int("FFT_SIZE", defaults.fft_size),
            vocal_interval=_env_float("VOCAL_INTERVAL", defaults.vocal_interval),
            voice_activity_threshold=_env_float(
                "VOICE_ACTIVITY_THRESHOLD", defaults.voice_activity_threshold
            ),
            variation_window=_env_int("VARIATION_WINDOW", defaults.variation_window),
            facial_interval=_env_float("FACIAL_INTERVAL", defaults.facial_interval),
            facial_min_confidence=_env_float(
                "FACIAL_MIN_CONFIDENCE", defaults.facial_min_confidence
            ),
            detector_backend=os.getenv("EMOTION_DETECTOR_BACKEND", defaults.detector_backend),
            camera_index=_env_int("CAMERA_INDEX", defaults.camera_index),
            language=os.getenv("LANGUAGE", defaults.language),
            restart_delay=_env_float("RESTART_DELAY", defaults.restart_delay),
            transcription_chunk_seconds=_env_float(
                "TRANSCRIPTION_CHUNK_SECONDS", defaults.transcription_chunk_seconds
            ),
            transcription_max_session_seconds=_env_float(
                "TRANSCRIPTION_MAX_SESSION_SECONDS",
                defaults.transcription_max_session_seconds,
            ),
            provider=os.getenv("AI_PROVIDER", defaults.provider),
            model=os.getenv("AI_MODEL", defaults.model),
            system_prompt=os.getenv("SYSTEM_PROMPT") or None,
            history_limit=_env_int("HISTORY_LIMIT", defaults.history_limit),
            chat_backend_url=os.getenv("CHAT_BACKEND_URL", defaults.chat_backend_url),
            chat_backend_token=os.getenv("CHAT_BACKEND_TOKEN") or None,
            chat_timeout=_env_optional_float("CHAT_TIMEOUT"),
            model_server_url=os.getenv("MODEL_SERVER", defaults.model_server_url),
            host=os.getenv("HOST", defaults.host),
            port=_env_int("PORT", defaults.port),
        )
