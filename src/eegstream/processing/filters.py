"""
EEG Signal Filtering Module.

Implements the real-time preprocessing stage:
- Bandpass filtering (isolate 1-40 Hz)
- Notch filtering (remove 50/60 Hz line noise)
- Artifact clamping (saturate large transients before they reach filter memory)

All filters are causal and carry their state between calls, so the stage can
be fed one sample at a time.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Optional

import numpy as np
from scipy import signal

from ..core.constants import CLAMP_THRESHOLD_UV, DEFAULT_FILTER_SETTINGS
from ..core.data_types import Sample, Stream
from ..core.errors import StreamConfigurationError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class FilterSettings:
    """Configuration for EEG filtering."""
    # Bandpass filter settings
    bandpass_low: float = DEFAULT_FILTER_SETTINGS["bandpass_low"]      # Hz - remove slow drift
    bandpass_high: float = DEFAULT_FILTER_SETTINGS["bandpass_high"]    # Hz - remove high freq noise
    bandpass_order: int = DEFAULT_FILTER_SETTINGS["bandpass_order"]

    # Notch filter for line noise. None disables the notch.
    notch_freq: Optional[float] = DEFAULT_FILTER_SETTINGS["notch_freq_eu"]
    notch_width: float = DEFAULT_FILTER_SETTINGS["notch_width"]  # Hz either side of centre

    # Artifact clamp (µV). None disables clamping.
    clamp_threshold: Optional[float] = CLAMP_THRESHOLD_UV

    @property
    def notch_q(self) -> float:
        """Quality factor giving a -3 dB band of notch_freq +/- notch_width."""
        return self.notch_freq / (2 * self.notch_width)

    def to_dict(self) -> dict:
        return asdict(self)


def design_bandpass(settings: FilterSettings, sample_rate: float) -> np.ndarray:
    """Butterworth bandpass as second-order sections."""
    nyquist = sample_rate / 2
    low, high = settings.bandpass_low, settings.bandpass_high

    if settings.bandpass_order < 1:
        raise StreamConfigurationError(f"bandpass_order must be >= 1, got {settings.bandpass_order}")
    if not 0 < low < high:
        raise StreamConfigurationError(f"invalid bandpass range {low}-{high} Hz")
    if high >= nyquist:
        raise StreamConfigurationError(
            f"bandpass_high {high} Hz must be below Nyquist ({nyquist} Hz)"
        )

    # Use second-order sections (sos) for numerical stability
    return signal.butter(
        settings.bandpass_order,
        [low, high],
        btype='bandpass',
        fs=sample_rate,
        output='sos'
    )


def design_notch(freq: float, width: float, sample_rate: float) -> np.ndarray:
    """IIR notch centred on ``freq`` with a -3 dB band of ``freq +/- width``."""
    nyquist = sample_rate / 2
    if not 0 < freq < nyquist:
        raise StreamConfigurationError(
            f"notch frequency {freq} Hz must be between 0 and Nyquist ({nyquist} Hz)"
        )
    if width <= 0:
        raise StreamConfigurationError(f"notch_width must be positive, got {width}")

    b, a = signal.iirnotch(freq, freq / (2 * width), fs=sample_rate)
    return signal.tf2sos(b, a)


class SOSFilterBank:
    """
    Streaming second-order-section filter with independent memory per channel.

    State has shape (n_sections, 2, n_channels) and is seeded from the first
    sample so a DC offset does not produce a start-up step.
    """

    def __init__(self, sos: np.ndarray, n_channels: int):
        self.sos = np.asarray(sos, dtype=np.float64)
        self.n_channels = n_channels
        self._zi: Optional[np.ndarray] = None

    def reset(self):
        self._zi = None

    def process(self, data: np.ndarray) -> np.ndarray:
        """
        Filter a block of samples, carrying state to the next call.

        Args:
            data: Array of shape (n_samples, n_channels).

        Returns:
            Filtered data of same shape.
        """
        if self._zi is None:
            zi = signal.sosfilt_zi(self.sos)
            self._zi = zi[:, :, np.newaxis] * data[0][np.newaxis, np.newaxis, :]

        filtered, self._zi = signal.sosfilt(self.sos, data, axis=0, zi=self._zi)
        return filtered


class DigitalFilterStage:
    """
    Real-time EEG filtering for one stream.

    Each raw sample is clamped, bandpass filtered and notch filtered, channel
    by channel, with memory kept between samples. Output depends only on the
    ordered input sequence.
    """

    def __init__(self, stream: Stream, settings: Optional[FilterSettings] = None):
        """
        Initialize the filter stage.

        Args:
            stream: Stream contract (sample rate and channel count).
            settings: Filter configuration. Uses defaults if None.

        Raises:
            StreamConfigurationError: the filters cannot be designed for the
                stream's sample rate.
        """
        self.stream = stream
        self.settings = settings or FilterSettings()

        self.bandpass = SOSFilterBank(
            design_bandpass(self.settings, stream.sample_rate), stream.channel_count
        )
        self.notch: Optional[SOSFilterBank] = None
        if self.settings.notch_freq is not None:
            self.notch = SOSFilterBank(
                design_notch(self.settings.notch_freq, self.settings.notch_width, stream.sample_rate),
                stream.channel_count,
            )

        self._last_timestamp: Optional[float] = None
        self.clipped_count = 0

    def reset_state(self):
        """Reset filter memory (call when a stream restarts)."""
        self.bandpass.reset()
        if self.notch is not None:
            self.notch.reset()
        self._last_timestamp = None
        self.clipped_count = 0

    def _validate(self, data: np.ndarray):
        if data.ndim != 2 or data.shape[1] != self.stream.channel_count:
            got = data.shape[-1] if data.ndim else 0
            raise ValidationError(
                f"{self.stream.name}: expected {self.stream.channel_count} channels, got {got}"
            )
        if not np.all(np.isfinite(data)):
            raise ValidationError(f"{self.stream.name}: sample contains non-finite values")

    def _clamp(self, data: np.ndarray) -> np.ndarray:
        threshold = self.settings.clamp_threshold
        if threshold is None:
            return data

        over = np.abs(data) > threshold
        if over.any():
            self.clipped_count += int(over.sum())
            return np.clip(data, -threshold, threshold)
        return data

    def filter_chunk(self, data: np.ndarray) -> np.ndarray:
        """
        Filter a chunk of data (maintains state between calls).

        Args:
            data: Array of shape (n_samples, n_channels).

        Returns:
            Filtered data of same shape.

        Raises:
            ValidationError: wrong channel count or non-finite values. Filter
                memory is not touched.
        """
        data = np.asarray(data, dtype=np.float64)
        self._validate(data)
        if len(data) == 0:
            return data.copy()

        filtered = self.bandpass.process(self._clamp(data))
        if self.notch is not None:
            filtered = self.notch.process(filtered)
        return filtered

    def filter_sample(self, sample: Sample) -> Sample:
        """
        Filter a single sample (all channels).

        This is the main method for real-time filtering.

        Returns:
            Filtered sample with the same timestamp and channel count.
        """
        if not np.isfinite(sample.timestamp):
            raise ValidationError(f"{self.stream.name}: timestamp {sample.timestamp} is not finite")
        if sample.channel_count != self.stream.channel_count:
            raise ValidationError(
                f"{self.stream.name}: expected {self.stream.channel_count} channels, "
                f"got {sample.channel_count}"
            )
        if self._last_timestamp is not None and sample.timestamp < self._last_timestamp:
            raise ValidationError(
                f"{self.stream.name}: sample at t={sample.timestamp:.6f} arrived after "
                f"t={self._last_timestamp:.6f}"
            )

        filtered = self.filter_chunk(sample.channels[np.newaxis, :])
        self._last_timestamp = sample.timestamp
        return Sample(timestamp=sample.timestamp, channels=filtered[0])
