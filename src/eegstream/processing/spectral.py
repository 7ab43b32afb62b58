"""
Spectral Analysis Module.

Implements frequency-domain analysis for EEG signals:
- Windowed FFT power spectrum
- Band power extraction (delta, theta, alpha, beta, gamma)
- Band power history for trend analysis
"""

import threading
from collections import deque
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

import numpy as np
from scipy import signal
from scipy.fft import rfft, rfftfreq

from ..core.constants import ANALYSIS_WINDOW_SECONDS, BAND_NAMES, FREQUENCY_BANDS
from ..core.data_types import BandPowerEstimate
from ..core.errors import StreamConfigurationError


class SpectralAnalyzer:
    """
    Computes band powers from a fixed-length window of filtered samples.

    The window is Hann tapered, transformed with a real FFT and the one-sided
    power per bin is summed over each band. Bins are assigned with the lower
    band edge inclusive and the upper edge exclusive.
    """

    def __init__(
        self,
        sample_rate: float,
        window_seconds: float = ANALYSIS_WINDOW_SECONDS,
        bands: Optional[Dict[str, Tuple[float, float]]] = None,
    ):
        """
        Initialize the spectral analyzer.

        Args:
            sample_rate: Sampling rate in Hz.
            window_seconds: Analysis window size in seconds.
            bands: Custom frequency bands dict {name: (low, high)}. Must
                contain the five standard band names.
        """
        self.sample_rate = float(sample_rate)
        self.window_seconds = window_seconds
        self.bands = bands or FREQUENCY_BANDS

        missing = [b for b in BAND_NAMES if b not in self.bands]
        if missing:
            raise StreamConfigurationError(f"bands missing {missing}")

        self.n_samples = int(round(window_seconds * self.sample_rate))
        if self.n_samples < 2:
            raise StreamConfigurationError(
                f"analysis window must span at least 2 samples, got {self.n_samples}"
            )

        # Windowing function (Hann reduces spectral leakage)
        self.window = signal.windows.hann(self.n_samples, sym=False)
        self._window_energy = float(np.sum(self.window ** 2))

        # Frequency axis for FFT
        self.freqs = rfftfreq(self.n_samples, 1 / self.sample_rate)
        self.freq_res = self.sample_rate / self.n_samples

        self._band_masks = {
            name: (self.freqs >= low) & (self.freqs < high)
            for name, (low, high) in self.bands.items()
        }

        # Per-bin ceiling that keeps the sum over every band finite
        self._power_ceiling = np.finfo(np.float64).max / (2 * len(self.freqs))

    def _power(self, data: np.ndarray) -> np.ndarray:
        """
        One-sided power per bin for each column of ``data``.

        Args:
            data: Array of shape (n_samples, n_channels), exactly one window.

        Returns:
            Power array of shape (n_bins, n_channels), µV² per bin.
        """
        # Normalize by the peak so the transform cannot overflow
        peak = np.max(np.abs(data), axis=0)
        scale = np.where(peak > 0, peak, 1.0)

        spectrum = rfft(data / scale * self.window[:, np.newaxis], axis=0)
        power = np.abs(spectrum) ** 2 / (self.n_samples * self._window_energy)

        # Fold negative frequencies onto the positive side (not DC / Nyquist)
        if self.n_samples % 2 == 0:
            power[1:-1] *= 2
        else:
            power[1:] *= 2

        with np.errstate(over='ignore', invalid='ignore'):
            power = np.where(power > 0, power * scale ** 2, 0.0)
        return np.minimum(power, self._power_ceiling)

    def compute_spectrum(self, data: np.ndarray) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """
        Power spectrum of the most recent window of one channel.

        Returns:
            Tuple of (frequencies, power) arrays, or None if fewer than
            ``n_samples`` values are given.
        """
        data = np.asarray(data, dtype=np.float64).reshape(-1)
        if len(data) < self.n_samples:
            return None
        return self.freqs, self._power(data[-self.n_samples:, np.newaxis])[:, 0]

    def compute_band_power(
        self,
        data: np.ndarray,
        channel: int = 0,
        timestamp: float = 0.0,
    ) -> Optional[BandPowerEstimate]:
        """
        Compute power in each frequency band for one channel.

        Args:
            data: Array of shape (n_samples,). Only the last window is used.
            channel: Channel index recorded on the estimate.
            timestamp: Timestamp recorded on the estimate.

        Returns:
            BandPowerEstimate, or None when not enough data is available.
        """
        data = np.asarray(data, dtype=np.float64).reshape(-1)
        estimates = self.analyze(data[:, np.newaxis], timestamp)
        if estimates is None:
            return None

        return replace(estimates[0], channel=channel)

    def analyze(self, data: np.ndarray, timestamp: float = 0.0) -> Optional[List[BandPowerEstimate]]:
        """
        Compute band power for all channels.

        Args:
            data: Array of shape (n_samples, n_channels). Only the last
                window is used.
            timestamp: Timestamp recorded on every estimate.

        Returns:
            One BandPowerEstimate per channel, or None when fewer than
            ``n_samples`` rows are given.
        """
        data = np.asarray(data, dtype=np.float64)
        if data.ndim != 2 or data.shape[0] < self.n_samples:
            return None

        power = self._power(data[-self.n_samples:])
        band_powers = {
            name: np.sum(power[mask], axis=0) for name, mask in self._band_masks.items()
        }

        return [
            BandPowerEstimate(
                timestamp=timestamp,
                channel=ch,
                delta=float(band_powers["delta"][ch]),
                theta=float(band_powers["theta"][ch]),
                alpha=float(band_powers["alpha"][ch]),
                beta=float(band_powers["beta"][ch]),
                gamma=float(band_powers["gamma"][ch]),
            )
            for ch in range(data.shape[1])
        ]


class BandPowerTracker:
    """
    Tracks band power over time for trend analysis.

    Useful for detecting changes in brain state over
    longer time periods.
    """

    def __init__(
        self,
        history_seconds: float = 60.0,
        update_rate: float = 5.0,  # Updates per second
    ):
        """
        Initialize the tracker.

        Args:
            history_seconds: How much history to keep.
            update_rate: Expected updates per second.
        """
        self.history_size = max(1, int(history_seconds * update_rate))
        self._history: Dict[int, deque] = {}
        self._lock = threading.Lock()

    def add(self, estimate: BandPowerEstimate):
        """Add a band power measurement."""
        with self._lock:
            if estimate.channel not in self._history:
                self._history[estimate.channel] = deque(maxlen=self.history_size)
            self._history[estimate.channel].append(estimate)

    def add_all(self, estimates: List[BandPowerEstimate]):
        for estimate in estimates:
            self.add(estimate)

    def channels(self) -> List[int]:
        with self._lock:
            return sorted(self._history)

    def latest(self, channel: int) -> Optional[BandPowerEstimate]:
        with self._lock:
            history = self._history.get(channel)
            return history[-1] if history else None

    def get_history(self, band: str, channel: int = 0) -> Tuple[np.ndarray, np.ndarray]:
        """
        Get time series for a band.

        Returns:
            Tuple of (timestamps, values).
        """
        with self._lock:
            estimates = list(self._history.get(channel, ()))
        return (
            np.array([e.timestamp for e in estimates]),
            np.array([getattr(e, band) for e in estimates]),
        )

    def get_trend(self, band: str, channel: int = 0, window: int = 10) -> float:
        """
        Get recent trend (slope) for a band.

        Positive = increasing, negative = decreasing.
        """
        _, values = self.get_history(band, channel)
        if len(values) < max(window, 2):
            return 0.0

        values = values[-window:]
        x = np.arange(len(values))

        # Linear regression slope
        slope = np.polyfit(x, values, 1)[0]
        return float(slope)

    def get_average(self, band: str, channel: int = 0, window: int = 10) -> float:
        """Get recent average for a band."""
        _, values = self.get_history(band, channel)
        if len(values) == 0:
            return 0.0
        return float(np.mean(values[-window:]))

    def clear(self):
        with self._lock:
            self._history.clear()
