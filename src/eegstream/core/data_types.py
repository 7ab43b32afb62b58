"""
Core data types for the EEG stream pipeline.

Samples, stream metadata, band power estimates and classification results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Sequence

import numpy as np

from .channel_map import default_channel_labels
from .errors import StreamConfigurationError, ValidationError


@dataclass(frozen=True, eq=False)
class Sample:
    """
    A single multi-channel EEG sample.

    ``channels`` is copied into a read-only float64 array so a sample
    cannot change after it is created.
    """
    timestamp: float       # Seconds on the source's monotonic clock
    channels: np.ndarray   # Shape: (n_channels,), µV

    def __post_init__(self):
        values = np.array(self.channels, dtype=np.float64)
        if values.ndim > 1:
            raise ValidationError(f"channels must be one-dimensional, got shape {values.shape}")
        values = values.reshape(-1)
        values.flags.writeable = False
        object.__setattr__(self, "channels", values)
        object.__setattr__(self, "timestamp", float(self.timestamp))

    @property
    def channel_count(self) -> int:
        return len(self.channels)


@dataclass(frozen=True)
class Stream:
    """Metadata for one connected stream. Immutable for its lifetime."""
    name: str
    channel_count: int
    sample_rate: float
    channel_labels: tuple[str, ...] = field(default=())

    def __post_init__(self):
        if isinstance(self.channel_count, bool) or int(self.channel_count) != self.channel_count:
            raise StreamConfigurationError(f"channel_count must be an integer, got {self.channel_count!r}")
        if self.channel_count <= 0:
            raise StreamConfigurationError(f"channel_count must be positive, got {self.channel_count}")
        if not np.isfinite(self.sample_rate) or self.sample_rate <= 0:
            raise StreamConfigurationError(f"sample_rate must be positive, got {self.sample_rate}")

        labels = tuple(self.channel_labels) or tuple(
            default_channel_labels(self.name, self.channel_count)
        )
        if len(labels) != self.channel_count:
            raise StreamConfigurationError(
                f"expected {self.channel_count} channel labels, got {len(labels)}"
            )

        object.__setattr__(self, "channel_count", int(self.channel_count))
        object.__setattr__(self, "sample_rate", float(self.sample_rate))
        object.__setattr__(self, "channel_labels", labels)

    def samples_for(self, seconds: float) -> int:
        """Number of samples covering ``seconds`` at this stream's rate."""
        return int(round(seconds * self.sample_rate))


@dataclass(frozen=True)
class BandPowerEstimate:
    """Power values for each frequency band of one channel."""
    timestamp: float
    channel: int
    delta: float
    theta: float
    alpha: float
    beta: float
    gamma: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "delta": self.delta,
            "theta": self.theta,
            "alpha": self.alpha,
            "beta": self.beta,
            "gamma": self.gamma,
        }

    def total(self) -> float:
        """Total power across all bands."""
        return self.delta + self.theta + self.alpha + self.beta + self.gamma

    def relative(self) -> Dict[str, float]:
        """Get relative power (percentage) for each band."""
        total = self.total()
        if total == 0:
            return {k: 0.0 for k in self.to_dict()}
        return {k: v / total * 100 for k, v in self.to_dict().items()}


class MentalState(str, Enum):
    """Discrete state labels produced by the classifier."""
    DEEP_STATE = "DeepState"
    RELAXED_FOCUS = "RelaxedFocus"
    ACTIVE_STATE = "ActiveState"


@dataclass(frozen=True)
class ClassificationResult:
    """Detected state for the focus channel."""
    timestamp: float
    label: MentalState
    quality_score: int  # 0-100
    channel: int = 0


class StreamStatus(str, Enum):
    """Liveness of the upstream sample source as seen by the coordinator."""
    ACTIVE = "active"
    STALE = "stale"
    CLOSED = "closed"


def find_channel(estimates: Sequence[BandPowerEstimate], channel: int) -> Optional[BandPowerEstimate]:
    for estimate in estimates:
        if estimate.channel == channel:
            return estimate
    return None
