"""
Bounded sample history for one stream.

A ``SampleBuffer`` keeps the most recent samples of a stream (raw or
filtered) and evicts the oldest first once its capacity is reached.
"""

import threading
from collections import deque
from typing import Optional

import numpy as np

from .constants import BUFFER_SECONDS
from .data_types import Sample, Stream
from .errors import InsufficientDataError, StreamConfigurationError, ValidationError


class SampleBuffer:
    """
    Fixed-capacity, time-ordered ring buffer of samples.

    Pushes are O(1). Reads return snapshots taken under the buffer lock, so
    a reader never sees a partially written sample or out-of-order entries.
    """

    def __init__(self, stream: Stream, capacity: Optional[int] = None):
        """
        Initialize the buffer.

        Args:
            stream: Stream whose contract every pushed sample must match.
            capacity: Maximum number of samples kept. Defaults to
                BUFFER_SECONDS worth of data at the stream's sample rate.
        """
        if capacity is None:
            capacity = stream.samples_for(BUFFER_SECONDS)
        if capacity < 1:
            raise StreamConfigurationError(f"buffer capacity must be >= 1, got {capacity}")

        self.stream = stream
        self._capacity = int(capacity)
        self._samples: deque[Sample] = deque(maxlen=self._capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def is_full(self) -> bool:
        return len(self) == self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)

    def push(self, sample: Sample):
        """
        Append a sample, evicting the oldest one when full.

        Raises:
            ValidationError: wrong channel count, a non-finite timestamp or a
                timestamp earlier than the newest buffered sample. The buffer
                is left unchanged.
        """
        if not np.isfinite(sample.timestamp):
            raise ValidationError(f"{self.stream.name}: timestamp {sample.timestamp} is not finite")
        if sample.channel_count != self.stream.channel_count:
            raise ValidationError(
                f"{self.stream.name}: expected {self.stream.channel_count} channels, "
                f"got {sample.channel_count}"
            )

        with self._lock:
            if self._samples and sample.timestamp < self._samples[-1].timestamp:
                raise ValidationError(
                    f"{self.stream.name}: sample at t={sample.timestamp:.6f} is older than "
                    f"t={self._samples[-1].timestamp:.6f}"
                )
            self._samples.append(sample)

    def recent(self, n: int) -> list[Sample]:
        """Last ``n`` samples in timestamp order (fewer if not available)."""
        if n <= 0:
            return []
        with self._lock:
            snapshot = list(self._samples)
        return snapshot[-n:]

    def latest(self) -> Optional[Sample]:
        """Most recent sample, or None if the buffer is empty."""
        with self._lock:
            return self._samples[-1] if self._samples else None

    def window(self, n: int) -> tuple[np.ndarray, np.ndarray]:
        """
        Get exactly the last ``n`` samples as arrays.

        Returns:
            Tuple of (timestamps, data) with shapes (n,) and (n, n_channels).

        Raises:
            InsufficientDataError: fewer than ``n`` samples are buffered.
        """
        samples = self.recent(n)
        if len(samples) < n:
            raise InsufficientDataError(n, len(samples))

        timestamps = np.array([s.timestamp for s in samples], dtype=np.float64)
        data = np.vstack([s.channels for s in samples])
        return timestamps, data

    def clear(self):
        """Drop all buffered samples."""
        with self._lock:
            self._samples.clear()
