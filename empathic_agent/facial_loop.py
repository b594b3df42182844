import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from .models import FACIAL_EMOTIONS, FacialEmotionEstimate, clamp_confidence
from .periodic import PeriodicTask
from .sources import FaceDetection, FaceExpressionDetector, VideoSource

logger = logging.getLogger(__name__)


def dominant_expression(detection: FaceDetection):
    """
    Pick the strongest expression of a detection.

    Scores are scanned in ``FACIAL_EMOTIONS`` order and the first maximum
    wins. Missing labels score 0.
    """
    scores: Dict[str, float] = {
        emotion: float(detection.scores.get(emotion, 0.0)) for emotion in FACIAL_EMOTIONS
    }
    dominant = "neutral"
    max_score = 0.0
    for emotion, score in scores.items():
        if score > max_score:
            max_score = score
            dominant = emotion

    return dominant, max_score, scores


class FacialAnalysisLoop:
    """
    Polls the face detector once per tick and emits an estimate when the
    dominant expression is confident enough.

    Only one detection is in flight at a time. A detection that completes
    after ``stop()`` is dropped.
    """

    def __init__(self, detector: FaceExpressionDetector, video_source: VideoSource,
                 on_estimate: Callable[[FacialEmotionEstimate], None],
                 interval: float = 0.5, min_confidence: float = 0.5):
        self.detector = detector
        self.video_source = video_source
        self.on_estimate = on_estimate
        self.min_confidence = min_confidence
        self._periodic = PeriodicTask("facial-analysis", interval, self._tick)

    @property
    def running(self) -> bool:
        return self._periodic.running

    def start(self):
        if self._periodic.start():
            logger.info("Face detection started")

    def stop(self):
        self._periodic.stop()
        logger.info("Face detection stopped")

    async def _tick(self):
        current = asyncio.current_task()
        try:
            frame = self.video_source.get_latest_frame()
            if frame is None:
                return
            detection = await self.detector.detect(frame)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Face detection error: {e}")
            return

        if not self._periodic.is_current(current):
            logger.debug("Discarding detection that finished after stop")
            return

        estimate = self.to_estimate(detection)
        if estimate is not None:
            self.on_estimate(estimate)

    def to_estimate(self, detection: Optional[FaceDetection]) -> Optional[FacialEmotionEstimate]:
        """Turn a detection into an estimate, or None if below threshold."""
        if detection is None:
            return None

        dominant, confidence, scores = dominant_expression(detection)
        if confidence < self.min_confidence:
            return None

        return FacialEmotionEstimate(
            label=dominant,
            confidence=clamp_confidence(confidence),
            scores=scores,
            timestamp=datetime.now(),
        )
