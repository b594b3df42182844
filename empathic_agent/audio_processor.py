import logging
from collections import deque
from dataclasses import dataclass
from typing import Optional

import librosa
import numpy as np

logger = logging.getLogger(__name__)

VOICE_ACTIVITY_THRESHOLD = 0.1
VARIATION_WINDOW = 20

MIN_PITCH_HZ = 50
MAX_PITCH_HZ = 500


@dataclass(frozen=True)
class SignalMetrics:
    """Raw scalar features of one audio frame."""
    pitch_hz: float
    loudness: float
    energy: float


SILENT_METRICS = SignalMetrics(pitch_hz=0.0, loudness=0.0, energy=0.0)


class SignalMetricsExtractor:
    """
    Turns one frame of audio into pitch, loudness and spectral energy.

    The frequency-domain view mirrors a browser analyser node: Blackman
    window, magnitude spectrum in decibels, mapped linearly from
    [min_decibels, max_decibels] onto [0, 1].
    """

    def __init__(self, fft_size: int = 2048,
                 min_decibels: float = -100.0,
                 max_decibels: float = -30.0):
        """
        Initialize the extractor.

        Args:
            fft_size: FFT length used when a spectrum has to be computed
            min_decibels: Level mapped to 0 in the normalized spectrum
            max_decibels: Level mapped to 1 in the normalized spectrum
        """
        self.fft_size = fft_size
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels

    def extract(self, samples: np.ndarray, sample_rate: int,
                spectrum: Optional[np.ndarray] = None) -> SignalMetrics:
        """
        Extract all metrics for a frame.

        Args:
            samples: Time-domain samples normalized to [-1, 1]
            sample_rate: Sample rate of the frame
            spectrum: Optional normalized magnitudes in [0, 1]; computed
                from ``samples`` when omitted

        Returns:
            SignalMetrics for the frame
        """
        samples = np.asarray(samples, dtype=np.float64)
        if spectrum is None:
            spectrum = self.compute_spectrum(samples)

        return SignalMetrics(
            pitch_hz=self.detect_pitch(samples, sample_rate),
            loudness=self.calculate_rms(samples),
            energy=self.calculate_energy(spectrum),
        )

    def detect_pitch(self, samples: np.ndarray, sample_rate: int) -> float:
        """
        Estimate the fundamental frequency by autocorrelation.

        Candidate lags cover 50-500 Hz and never exceed half the frame.
        The first lag holding the strictly largest positive correlation
        wins; returns 0 when no lag correlates positively.
        """
        samples = np.asarray(samples, dtype=np.float64)
        n = len(samples)
        min_lag = int(sample_rate // MAX_PITCH_HZ)
        max_lag = int(sample_rate // MIN_PITCH_HZ)
        upper = min(max_lag, (n + 1) // 2)
        if n == 0 or upper <= min_lag:
            return 0.0

        # autocorr[lag] = sum(x[i] * x[i + lag])
        autocorr = np.correlate(samples, samples, mode="full")[n - 1:]
        window = autocorr[min_lag:upper]

        best = int(np.argmax(window))
        if window[best] <= 0:
            return 0.0
        return float(sample_rate) / (min_lag + best)

    def calculate_rms(self, samples: np.ndarray) -> float:
        """Root-mean-square level of the frame."""
        samples = np.asarray(samples, dtype=np.float64)
        if samples.size == 0:
            return 0.0
        return float(np.sqrt(np.mean(samples ** 2)))

    def calculate_energy(self, spectrum: np.ndarray) -> float:
        """Mean of the normalized frequency magnitudes."""
        spectrum = np.asarray(spectrum, dtype=np.float64)
        if spectrum.size == 0:
            return 0.0
        return float(np.mean(np.clip(spectrum, 0.0, 1.0)))

    def compute_spectrum(self, samples: np.ndarray) -> np.ndarray:
        """
        Compute normalized frequency magnitudes for a frame.

        Args:
            samples: Time-domain samples normalized to [-1, 1]

        Returns:
            Array of ``fft_size // 2`` values in [0, 1]
        """
        samples = np.asarray(samples, dtype=np.float64)
        if samples.size == 0:
            return np.zeros(self.fft_size // 2)

        frame = samples[-self.fft_size:]
        if len(frame) < self.fft_size:
            frame = np.pad(frame, (self.fft_size - len(frame), 0), "constant")

        windowed = frame * np.blackman(self.fft_size)
        magnitudes = np.abs(np.fft.rfft(windowed))[: self.fft_size // 2] / self.fft_size

        decibels = librosa.amplitude_to_db(magnitudes, ref=1.0, amin=1e-10, top_db=None)
        span = self.max_decibels - self.min_decibels
        return np.clip((decibels - self.min_decibels) / span, 0.0, 1.0)


class RollingVariationTracker:
    """
    Short-term variation of one feature.

    Keeps the most recent accepted samples and reports their population
    standard deviation.
    """

    def __init__(self, window_size: int = VARIATION_WINDOW):
        self.window_size = window_size
        self.history = deque(maxlen=window_size)

    def update(self, value: float) -> float:
        """Add an accepted sample and return the current variation."""
        self.history.append(float(value))
        return self.variation()

    def variation(self) -> float:
        if not self.history:
            return 0.0
        return float(np.std(np.fromiter(self.history, dtype=np.float64)))

    def reset(self):
        self.history.clear()

    def __len__(self) -> int:
        return len(self.history)
