"""Combining the facial and vocal estimates into one."""

from typing import Optional

from .models import (
    FacialEmotionEstimate,
    FusedEmotionEstimate,
    VocalEmotionEstimate,
    clamp_confidence,
)

# Facial expression weighs more than tone of voice (55% vs 38%, Mehrabian).
FACIAL_WEIGHT = 0.55
VOCAL_WEIGHT = 0.38
AGREEMENT_BOOST = 1.2

PRIMARY_EMOTIONS = ("happy", "sad", "angry", "fearful")


def fuse(facial: Optional[FacialEmotionEstimate],
         vocal: Optional[VocalEmotionEstimate]) -> Optional[FusedEmotionEstimate]:
    """
    Fuse the latest facial and vocal estimates.

    A single modality passes through unchanged. When both agree the
    weighted sum gets a 20% boost; otherwise the modality with the higher
    weighted score wins with that score as confidence, facial on ties.
    """
    if facial is None and vocal is None:
        return None
    if vocal is None:
        return FusedEmotionEstimate(label=facial.label, confidence=facial.confidence)
    if facial is None:
        return FusedEmotionEstimate(label=vocal.label, confidence=vocal.confidence)

    facial_score = facial.confidence * FACIAL_WEIGHT
    vocal_score = vocal.confidence * VOCAL_WEIGHT

    if facial.label == vocal.label:
        return FusedEmotionEstimate(
            label=facial.label,
            confidence=clamp_confidence((facial_score + vocal_score) * AGREEMENT_BOOST),
        )

    if facial_score >= vocal_score:
        return FusedEmotionEstimate(label=facial.label, confidence=clamp_confidence(facial_score))
    return FusedEmotionEstimate(label=vocal.label, confidence=clamp_confidence(vocal_score))


def to_primary_label(label: str) -> str:
    """
    Collapse a facial label onto the four primary emotions.

    Surprise maps to fear, disgust to anger, and neutral or anything
    unknown to happy.
    """
    if label in PRIMARY_EMOTIONS:
        return label
    if label == "surprised":
        return "fearful"
    if label == "disgusted":
        return "angry"
    return "happy"
