from datetime import datetime
from typing import Dict, Optional

from .models import VOCAL_EMOTIONS, FeatureVector, VocalEmotionEstimate, clamp_confidence

NEUTRAL_PRIOR = 0.3


class HeuristicEmotionClassifier:
    """
    Rule-based voice emotion scorer.

    Every rule that matches adds to its labels' scores; the label with
    the highest score wins. Ties go to the label listed first in
    ``VOCAL_EMOTIONS``. This is a fixed rule table, not a trained model.
    """

    def __init__(self):
        self.emotions = VOCAL_EMOTIONS

    def score(self, features: FeatureVector) -> Dict[str, float]:
        """
        Compute the raw score of every label.

        Args:
            features: Feature vector of one audio tick

        Returns:
            Mapping of label to accumulated score, in label order
        """
        scores = {emotion: 0.0 for emotion in self.emotions}
        scores["neutral"] = NEUTRAL_PRIOR

        pitch = features.pitch_hz
        loudness = features.loudness

        if 200 <= pitch <= 400:
            scores["happy"] += 0.3
        if 150 <= pitch <= 350 and loudness > 0.7:
            scores["angry"] += 0.3
        if 100 <= pitch <= 200:
            scores["sad"] += 0.3
        if 180 <= pitch <= 350:
            scores["fearful"] += 0.2

        if loudness > 0.7:
            scores["angry"] += 0.2
            scores["happy"] += 0.1
        elif loudness < 0.3:
            scores["sad"] += 0.3
            scores["fearful"] += 0.1

        if features.pitch_variation > 40:
            scores["angry"] += 0.2
            scores["fearful"] += 0.2
        elif features.pitch_variation > 25:
            scores["happy"] += 0.2
        elif features.pitch_variation < 15:
            scores["sad"] += 0.2
            scores["neutral"] += 0.1

        if features.energy > 0.6:
            scores["angry"] += 0.2
            scores["happy"] += 0.1
        elif features.energy < 0.3:
            scores["sad"] += 0.2

        return scores

    def classify(self, features: FeatureVector,
                 timestamp: Optional[datetime] = None) -> VocalEmotionEstimate:
        """
        Classify a feature vector into a vocal emotion estimate.

        Args:
            features: Feature vector of one audio tick
            timestamp: Event time; defaults to now

        Returns:
            VocalEmotionEstimate with the winning label and its clamped score
        """
        scores = self.score(features)

        predicted_emotion = "neutral"
        max_score = 0.0
        for emotion in self.emotions:
            if scores[emotion] > max_score:
                max_score = scores[emotion]
                predicted_emotion = emotion

        return VocalEmotionEstimate(
            label=predicted_emotion,
            confidence=clamp_confidence(max_score),
            features=features,
            timestamp=timestamp or datetime.now(),
        )
