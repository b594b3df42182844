import asyncio
import logging
from typing import Dict, Optional

import imutils
import numpy as np

from .errors import DetectionTickFailure, InitializationFailure
from .sources import FaceDetection

logger = logging.getLogger(__name__)

# DeepFace label -> expression label
EXPRESSION_LABELS = {
    "happy": "happy",
    "sad": "sad",
    "angry": "angry",
    "fear": "fearful",
    "surprise": "surprised",
    "disgust": "disgusted",
    "neutral": "neutral",
}


def normalize_scores(raw: Dict[str, float]) -> Dict[str, float]:
    """Map DeepFace percentages onto expression labels in [0, 1]."""
    values = [float(v) for v in raw.values()]
    if not values:
        return {}
    # One scale per result: percentages sum to about 100.
    scale = 100.0 if max(values) > 1 or sum(values) > 1.5 else 1.0

    scores = {}
    for name, value in raw.items():
        label = EXPRESSION_LABELS.get(name)
        if label is None:
            continue
        scores[label] = float(value) / scale
    return scores


class DeepFaceExpressionDetector:
    """
    Facial expression detector backed by DeepFace.

    Detection runs in the default executor so the event loop keeps ticking
    while a frame is analyzed. When several faces are found the most
    confident one is used.
    """

    def __init__(self, detector_backend: str = "opencv", enforce_detection: bool = False,
                 frame_width: int = 600, min_face_confidence: float = 0.0):
        self.detector_backend = detector_backend
        self.enforce_detection = enforce_detection
        self.frame_width = frame_width
        self.min_face_confidence = min_face_confidence
        self._deepface = None

    async def initialize_models(self):
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._load_models)
        except Exception as e:
            logger.error(f"Error loading face models: {e}")
            raise InitializationFailure(f"Failed to load face detection models: {e}") from e
        logger.info(f"Face models loaded (detector backend: {self.detector_backend})")

    def _load_models(self):
        from deepface import DeepFace

        self.check_device()
        # A first analysis on a blank frame builds and caches the emotion model.
        blank = np.zeros((224, 224, 3), dtype=np.uint8)
        DeepFace.analyze(
            blank,
            actions=["emotion"],
            enforce_detection=False,
            detector_backend=self.detector_backend,
            silent=True,
        )
        self._deepface = DeepFace

    def check_device(self):
        try:
            import tensorflow as tf
            gpus = tf.config.list_physical_devices("GPU")
            if gpus:
                logger.info(f"TensorFlow GPU: {[gpu.name for gpu in gpus]}")
            else:
                logger.info("TensorFlow using CPU")
        except ImportError:
            logger.info("TensorFlow not installed")

    async def detect(self, frame) -> Optional[FaceDetection]:
        if self._deepface is None:
            raise DetectionTickFailure("Face models not loaded")

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self.analyze, frame)
        except DetectionTickFailure:
            raise
        except Exception as e:
            raise DetectionTickFailure(f"Error processing frame: {e}") from e

    def _has_face(self, result) -> bool:
        face_confidence = result.get("face_confidence")
        return face_confidence is None or float(face_confidence) > self.min_face_confidence

    def analyze(self, frame) -> Optional[FaceDetection]:
        """Analyze one BGR frame and return the most confident face, or None."""
        frame = imutils.resize(frame, width=self.frame_width)

        results = self._deepface.analyze(
            frame,
            actions=["emotion"],
            enforce_detection=self.enforce_detection,
            detector_backend=self.detector_backend,
            silent=True,
        )

        results = results if isinstance(results, list) else [results]
        # Without enforce_detection a frame with no face is analyzed whole
        # and reported with face_confidence 0.
        results = [r for r in results if r.get("emotion") and self._has_face(r)]
        if not results:
            return None

        most_confident_face = max(results, key=lambda r: max(r["emotion"].values()))
        scores = normalize_scores(most_confident_face["emotion"])
        if not scores:
            return None

        dominant = EXPRESSION_LABELS.get(most_confident_face.get("dominant_emotion"))
        if dominant is None:
            dominant = max(scores, key=scores.get)
        return FaceDetection(label=dominant, scores=scores)
