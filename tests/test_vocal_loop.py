import asyncio
from unittest.mock import MagicMock

import numpy as np
import pytest

from empathic_agent.audio_processor import SignalMetrics
from empathic_agent.vocal_loop import VocalAnalysisLoop


def make_loop(audio_source, metrics=None, **kwargs):
    estimates = []
    extractor = MagicMock()
    if metrics is not None:
        extractor.extract.return_value = metrics
    loop = VocalAnalysisLoop(audio_source, estimates.append, extractor=extractor, **kwargs)
    return loop, estimates, extractor


def test_quiet_tick_is_ignored(audio_source):
    loop, estimates, _ = make_loop(audio_source, SignalMetrics(200.0, 0.5, 0.1))
    assert loop.analyze_frame() is None
    assert estimates == []
    assert len(loop.pitch_tracker) == 0
    assert len(loop.loudness_tracker) == 0


def test_voiced_tick_emits_estimate(audio_source):
    loop, estimates, _ = make_loop(audio_source, SignalMetrics(300.0, 0.5, 0.5))
    estimate = loop.analyze_frame()
    assert estimates == [estimate]
    assert estimate.features.pitch_hz == 300.0
    assert estimate.features.pitch_variation == 0.0
    assert len(loop.pitch_tracker) == 1


def test_variation_builds_over_ticks(audio_source):
    loop, estimates, extractor = make_loop(audio_source)
    extractor.extract.side_effect = [
        SignalMetrics(200.0, 0.4, 0.5),
        SignalMetrics(300.0, 0.6, 0.5),
    ]
    loop.analyze_frame()
    estimate = loop.analyze_frame()
    assert estimate.features.pitch_variation == pytest.approx(50.0)
    assert estimate.features.loudness_variation == pytest.approx(0.1)


def test_extraction_failure_counts_as_silence(audio_source):
    loop, estimates, extractor = make_loop(audio_source)
    extractor.extract.side_effect = ValueError("bad frame")
    assert loop.analyze_frame() is None
    assert estimates == []


def test_silent_microphone_emits_nothing(audio_source):
    estimates = []
    loop = VocalAnalysisLoop(audio_source, estimates.append)
    audio_source.samples = np.zeros(2048)
    assert loop.analyze_frame() is None
    assert estimates == []


@pytest.mark.asyncio
async def test_loop_emits_while_running(audio_source):
    loop, estimates, _ = make_loop(audio_source, SignalMetrics(300.0, 0.5, 0.5), interval=0.01)
    loop.start()
    await asyncio.sleep(0.08)
    loop.stop()
    count = len(estimates)
    assert count >= 2

    await asyncio.sleep(0.03)
    assert len(estimates) == count
    assert not loop.running


@pytest.mark.asyncio
async def test_start_resets_variation_history(audio_source):
    loop, _, _ = make_loop(audio_source, SignalMetrics(300.0, 0.5, 0.5), interval=10)
    loop.analyze_frame()
    loop.analyze_frame()
    assert len(loop.pitch_tracker) == 2

    loop.start()
    assert len(loop.pitch_tracker) == 0
    loop.stop()
