import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

VOCAL_EMOTIONS = ("happy", "sad", "angry", "fearful", "neutral")
FACIAL_EMOTIONS = VOCAL_EMOTIONS + ("surprised", "disgusted")

PROVIDERS = ("claude", "openai")


def clamp_confidence(value: float) -> float:
    """Clamp a confidence value into [0, 1]."""
    return max(0.0, min(1.0, float(value)))


@dataclass(frozen=True)
class FeatureVector:
    """Scalar voice features produced once per audio tick."""
    pitch_hz: float
    loudness: float
    energy: float
    pitch_variation: float = 0.0
    loudness_variation: float = 0.0

    def to_metrics(self) -> Dict[str, float]:
        """Voice metrics in the shape the chat backend expects."""
        return {
            "pitch": self.pitch_hz,
            "pitchVariation": self.pitch_variation,
            "volume": self.loudness,
            "volumeVariation": self.loudness_variation,
            "speechRate": 0.0,
            "energy": self.energy,
        }


@dataclass(frozen=True)
class VocalEmotionEstimate:
    """Emotion detected from the voice."""
    label: str
    confidence: float
    features: FeatureVector
    timestamp: datetime


@dataclass(frozen=True)
class FacialEmotionEstimate:
    """Emotion detected from a facial expression."""
    label: str
    confidence: float
    scores: Dict[str, float]
    timestamp: datetime


@dataclass(frozen=True)
class FusedEmotionEstimate:
    label: str
    confidence: float


@dataclass(frozen=True)
class TranscriptSegment:
    """One recognizer result. Final segments are never revised."""
    text: str
    is_final: bool
    confidence: float
    timestamp: datetime


@dataclass(frozen=True)
class EmotionContext:
    facial: Optional[FacialEmotionEstimate]
    vocal: Optional[VocalEmotionEstimate]


def generate_message_id() -> str:
    return f"msg_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass(frozen=True)
class ConversationMessage:
    """A chat message. User messages carry the emotion snapshot taken at send time."""
    role: str
    content: str
    id: str = field(default_factory=generate_message_id)
    timestamp: datetime = field(default_factory=datetime.now)
    emotion_context: Optional[EmotionContext] = None


@dataclass
class SessionState:
    """Observed state of one conversation session."""
    is_initialized: bool = False
    is_camera_active: bool = False
    is_mic_active: bool = False
    is_face_detection_active: bool = False
    is_listening: bool = False
    is_processing: bool = False
    facial: Optional[FacialEmotionEstimate] = None
    vocal: Optional[VocalEmotionEstimate] = None
    fused: Optional[FusedEmotionEstimate] = None
    messages: List[ConversationMessage] = field(default_factory=list)
    current_transcript: str = ""
    error: Optional[str] = None
    provider: str = "claude"

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly view of the state."""
        return {
            "is_initialized": self.is_initialized,
            "is_camera_active": self.is_camera_active,
            "is_mic_active": self.is_mic_active,
            "is_face_detection_active": self.is_face_detection_active,
            "is_listening": self.is_listening,
            "is_processing": self.is_processing,
            "emotion": emotion_state_to_dict(self.facial, self.vocal, self.fused),
            "messages": [message_to_dict(m) for m in self.messages],
            "current_transcript": self.current_transcript,
            "error": self.error,
            "provider": self.provider,
        }


def facial_to_dict(facial: Optional[FacialEmotionEstimate]) -> Optional[Dict[str, Any]]:
    if facial is None:
        return None
    return {
        "emotion": facial.label,
        "confidence": facial.confidence,
        "scores": dict(facial.scores),
        "timestamp": facial.timestamp.isoformat(),
    }


def vocal_to_dict(vocal: Optional[VocalEmotionEstimate]) -> Optional[Dict[str, Any]]:
    if vocal is None:
        return None
    return {
        "emotion": vocal.label,
        "confidence": vocal.confidence,
        "metrics": vocal.features.to_metrics(),
        "timestamp": vocal.timestamp.isoformat(),
    }


def emotion_state_to_dict(facial, vocal, fused) -> Dict[str, Any]:
    return {
        "facial": facial_to_dict(facial),
        "voice": vocal_to_dict(vocal),
        "combined": (
            {"emotion": fused.label, "confidence": fused.confidence}
            if fused is not None else None
        ),
    }


def message_to_dict(message: ConversationMessage) -> Dict[str, Any]:
    data = {
        "id": message.id,
        "role": message.role,
        "content": message.content,
        "timestamp": message.timestamp.isoformat(),
    }
    if message.emotion_context is not None:
        data["emotion_context"] = {
            "facial": facial_to_dict(message.emotion_context.facial),
            "voice": vocal_to_dict(message.emotion_context.vocal),
        }
    return data
