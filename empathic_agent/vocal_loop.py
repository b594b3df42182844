import logging
from datetime import datetime
from typing import Callable, Optional

from .audio_processor import (
    SILENT_METRICS,
    VARIATION_WINDOW,
    VOICE_ACTIVITY_THRESHOLD,
    RollingVariationTracker,
    SignalMetricsExtractor,
)
from .emotion_manager import HeuristicEmotionClassifier
from .models import FeatureVector, VocalEmotionEstimate
from .periodic import PeriodicTask
from .sources import AudioSource

logger = logging.getLogger(__name__)


class VocalAnalysisLoop:
    """
    Samples the microphone every ``interval`` seconds and emits a voice
    emotion estimate for every tick with enough signal energy.
    """

    def __init__(self, audio_source: AudioSource,
                 on_estimate: Callable[[VocalEmotionEstimate], None],
                 extractor: Optional[SignalMetricsExtractor] = None,
                 classifier: Optional[HeuristicEmotionClassifier] = None,
                 interval: float = 0.1,
                 voice_activity_threshold: float = VOICE_ACTIVITY_THRESHOLD,
                 window_size: int = VARIATION_WINDOW):
        """
        Initialize the loop.

        Args:
            audio_source: Where frames are read from
            on_estimate: Called with every emitted estimate
            extractor: Feature extractor (a default one if None)
            classifier: Emotion classifier (a default one if None)
            interval: Delay between the end of one tick and the next
            voice_activity_threshold: Minimum energy for a tick to count
            window_size: Number of samples kept for variation
        """
        self.audio_source = audio_source
        self.on_estimate = on_estimate
        self.extractor = extractor or SignalMetricsExtractor()
        self.classifier = classifier or HeuristicEmotionClassifier()
        self.voice_activity_threshold = voice_activity_threshold
        self.pitch_tracker = RollingVariationTracker(window_size)
        self.loudness_tracker = RollingVariationTracker(window_size)
        self._periodic = PeriodicTask("vocal-analysis", interval, self._tick)

    @property
    def running(self) -> bool:
        return self._periodic.running

    def start(self):
        if self.running:
            return
        self.pitch_tracker.reset()
        self.loudness_tracker.reset()
        self._periodic.start()
        logger.info("Started voice emotion analysis")

    def stop(self):
        self._periodic.stop()
        logger.info("Stopped voice emotion analysis")

    async def _tick(self):
        self.analyze_frame()

    def analyze_frame(self) -> Optional[VocalEmotionEstimate]:
        """
        Run one analysis step.

        Returns:
            The emitted estimate, or None when the tick was below the
            voice-activity threshold
        """
        try:
            frame = self.audio_source.read_frame()
            metrics = self.extractor.extract(frame.samples, frame.sample_rate, frame.spectrum)
        except Exception as e:
            logger.warning(f"Audio feature extraction failed, treating tick as silent: {e}")
            metrics = SILENT_METRICS

        if metrics.energy <= self.voice_activity_threshold:
            return None

        features = FeatureVector(
            pitch_hz=metrics.pitch_hz,
            loudness=metrics.loudness,
            energy=metrics.energy,
            pitch_variation=self.pitch_tracker.update(metrics.pitch_hz),
            loudness_variation=self.loudness_tracker.update(metrics.loudness),
        )
        estimate = self.classifier.classify(features, datetime.now())
        logger.debug(f"Voice emotion: {estimate.label} ({estimate.confidence:.2f})")

        self.on_estimate(estimate)
        return estimate
