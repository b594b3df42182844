from unittest.mock import MagicMock

import numpy as np
import pytest

from empathic_agent.errors import DetectionTickFailure
from empathic_agent.face_detector import DeepFaceExpressionDetector, normalize_scores
from empathic_agent.facial_loop import FacialAnalysisLoop


def deepface_result(dominant, scores):
    return {"dominant_emotion": dominant, "emotion": scores}


@pytest.fixture
def detector():
    detector = DeepFaceExpressionDetector()
    detector._deepface = MagicMock()
    return detector


@pytest.fixture
def frame():
    return np.zeros((120, 160, 3), dtype=np.uint8)


def test_scores_are_renamed_and_scaled():
    scores = normalize_scores({"fear": 50.0, "surprise": 20.0, "disgust": 5.0, "happy": 25.0})
    assert scores == pytest.approx({
        "fearful": 0.5,
        "surprised": 0.2,
        "disgusted": 0.05,
        "happy": 0.25,
    })


def test_most_confident_face_wins(detector, frame):
    detector._deepface.analyze.return_value = [
        deepface_result("sad", {"sad": 55.0, "neutral": 45.0}),
        deepface_result("happy", {"happy": 92.0, "neutral": 8.0}),
    ]
    detection = detector.analyze(frame)
    assert detection.label == "happy"
    assert detection.scores["happy"] == pytest.approx(0.92)


def test_no_face_gives_none(detector, frame):
    detector._deepface.analyze.return_value = []
    assert detector.analyze(frame) is None


def test_frame_is_resized_before_analysis(detector, frame):
    detector._deepface.analyze.return_value = deepface_result("neutral", {"neutral": 99.0})
    detector.analyze(frame)
    analyzed = detector._deepface.analyze.call_args.args[0]
    assert analyzed.shape[1] == 600


@pytest.mark.asyncio
async def test_detect_wraps_errors(detector, frame):
    detector._deepface.analyze.side_effect = ValueError("bad frame")
    with pytest.raises(DetectionTickFailure):
        await detector.detect(frame)


@pytest.mark.asyncio
async def test_detect_before_models_loaded(frame):
    with pytest.raises(DetectionTickFailure):
        await DeepFaceExpressionDetector().detect(frame)


def test_minor_emotion_below_one_percent_is_scaled():
    scores = normalize_scores({"angry": 60.0, "sad": 39.05, "happy": 0.95})
    assert scores == pytest.approx({"angry": 0.6, "sad": 0.3905, "happy": 0.0095})


def test_fractional_scores_are_left_alone():
    scores = normalize_scores({"happy": 0.7, "neutral": 0.3})
    assert scores == pytest.approx({"happy": 0.7, "neutral": 0.3})


def test_minor_emotion_does_not_become_dominant(detector, frame):
    detector._deepface.analyze.return_value = deepface_result(
        "angry", {"angry": 60.0, "sad": 39.05, "happy": 0.95}
    )
    detection = detector.analyze(frame)
    estimate = FacialAnalysisLoop(detector, None, lambda e: None).to_estimate(detection)
    assert estimate.label == "angry"
    assert estimate.confidence == pytest.approx(0.6)


def test_frame_without_face_gives_none(detector, frame):
    result = deepface_result("neutral", {"neutral": 92.0, "happy": 8.0})
    result["face_confidence"] = 0
    detector._deepface.analyze.return_value = [result]
    assert detector.analyze(frame) is None


def test_detected_face_is_kept(detector, frame):
    result = deepface_result("sad", {"sad": 80.0, "neutral": 20.0})
    result["face_confidence"] = 0.93
    detector._deepface.analyze.return_value = [result]
    assert detector.analyze(frame).label == "sad"
