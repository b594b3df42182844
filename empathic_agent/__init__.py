"""
Empathic Agent Package

This package contains the empathic conversation system. It tracks the
user's emotional state from facial expressions and voice in real time
and feeds it, together with the transcribed speech, to a chat backend.
"""

from .audio_processor import RollingVariationTracker, SignalMetricsExtractor
from .config import Settings
from .emotion_manager import HeuristicEmotionClassifier
from .fusion import fuse
from .session_manager import SessionCoordinator, SessionStatus
from .transcription_manager import RestartPolicy, TranscriptionLifecycle

__version__ = "1.0.0"
__author__ = "Empathic Agent Team"

__all__ = [
    "HeuristicEmotionClassifier",
    "RestartPolicy",
    "RollingVariationTracker",
    "SessionCoordinator",
    "SessionStatus",
    "Settings",
    "SignalMetricsExtractor",
    "TranscriptionLifecycle",
    "fuse",
]
