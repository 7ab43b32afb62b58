"""
EEG Simulator - deterministic synthetic EEG for testing and demos.

Signals are sums of exact sinusoids (frequency, amplitude, phase) with
optional seeded Gaussian noise and mains interference, so the same settings
always give the same samples.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from ..core.constants import DEFAULT_CHANNEL_COUNT, DEFAULT_SAMPLE_RATE
from ..core.data_types import Sample, Stream
from .base import SampleSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignalComponent:
    """One sinusoidal rhythm in the synthetic signal."""
    frequency: float   # Hz
    amplitude: float   # µV
    phase: float = 0.0  # radians


# Resting-state mix: alpha dominant with some theta, beta and delta
DEFAULT_COMPONENTS: tuple[SignalComponent, ...] = (
    SignalComponent(10.0, 15.0),   # Alpha
    SignalComponent(6.0, 12.0),    # Theta
    SignalComponent(20.0, 6.0),    # Beta
    SignalComponent(2.0, 8.0),     # Delta
)


def sinusoid(
    frequency: float,
    amplitude: float,
    sample_rate: float,
    n_samples: int,
    phase: float = 0.0,
) -> np.ndarray:
    """Exact sinusoid ``amplitude * sin(2*pi*f*t + phase)`` at t = i / fs."""
    t = np.arange(n_samples) / sample_rate
    return amplitude * np.sin(2 * np.pi * frequency * t + phase)


def sinusoid_samples(
    frequency: float,
    amplitude: float,
    sample_rate: float,
    n_samples: int,
    n_channels: int = 1,
    phase: float = 0.0,
    start_time: float = 0.0,
) -> List[Sample]:
    """Same sinusoid on every channel, as timestamped samples."""
    wave = sinusoid(frequency, amplitude, sample_rate, n_samples, phase)
    return [
        Sample(timestamp=start_time + i / sample_rate, channels=np.full(n_channels, value))
        for i, value in enumerate(wave)
    ]


class SyntheticSampleSource(SampleSource):
    """
    Generates synthetic EEG signals for testing.

    Simulates:
    - Background rhythms as exact sinusoids
    - Optional 50/60 Hz line noise
    - Optional Gaussian noise from a seeded generator
    - A per-channel time offset so channels are not identical
    """

    def __init__(
        self,
        n_channels: int = DEFAULT_CHANNEL_COUNT,
        sample_rate: float = DEFAULT_SAMPLE_RATE,
        components: Optional[Sequence[SignalComponent]] = None,
        noise_level: float = 0.0,
        line_noise: float = 0.0,
        line_freq: float = 50.0,
        channel_offset: float = 0.0,
        seed: Optional[int] = None,
        name: str = "Synthetic EEG",
        channel_labels: Sequence[str] = (),
    ):
        """
        Initialize the synthetic source.

        Args:
            n_channels: Number of EEG channels to simulate.
            sample_rate: Samples per second.
            components: Sinusoidal rhythms summed on every channel.
            noise_level: Standard deviation of Gaussian noise (µV).
            line_noise: Amplitude of mains interference (µV).
            line_freq: Mains frequency (Hz).
            channel_offset: Time shift between consecutive channels (s).
            seed: Seed for the noise generator.
            name: Stream name announced on connect.
            channel_labels: Labels announced on connect (defaults from name).
        """
        super().__init__()
        self.n_channels = n_channels
        self.sample_rate = sample_rate
        self.components = tuple(DEFAULT_COMPONENTS if components is None else components)
        self.noise_level = noise_level
        self.line_noise = line_noise
        self.line_freq = line_freq
        self.channel_offset = channel_offset
        self.name = name
        self.channel_labels = tuple(channel_labels)

        self._rng = np.random.default_rng(seed)
        self._index = 0
        self._start_time = 0.0
        self._running = False
        self._thread: Optional[threading.Thread] = None

    def connect(self) -> Stream:
        """Announce the synthetic stream (no hardware involved)."""
        self.stream = Stream(
            name=self.name,
            channel_count=self.n_channels,
            sample_rate=self.sample_rate,
            channel_labels=self.channel_labels,
        )
        logger.info("Synthetic source connected: %d channels at %.1f Hz",
                    self.n_channels, self.sample_rate)
        return self.stream

    def _sample_at(self, index: int) -> Sample:
        """Generate the sample with the given index."""
        t = index / self.sample_rate
        channel_times = t + self.channel_offset * np.arange(self.n_channels)
        channels = np.zeros(self.n_channels)

        for component in self.components:
            channels += component.amplitude * np.sin(
                2 * np.pi * component.frequency * channel_times + component.phase
            )

        if self.line_noise:
            channels += self.line_noise * np.sin(2 * np.pi * self.line_freq * t)

        if self.noise_level:
            channels += self._rng.normal(0.0, self.noise_level, self.n_channels)

        return Sample(timestamp=self._start_time + t, channels=channels)

    def generate(self, n_samples: int) -> List[Sample]:
        """Generate the next ``n_samples`` samples without dispatching them."""
        samples = [self._sample_at(self._index + i) for i in range(n_samples)]
        self._index += n_samples
        return samples

    def start_acquisition(self):
        """Start generating samples at the nominal rate."""
        if self._running:
            return

        self._start_time = time.monotonic() - self._index / self.sample_rate
        self._running = True
        self._thread = threading.Thread(target=self._generate_loop, daemon=True)
        self._thread.start()
        logger.info("Started synthetic acquisition")

    def stop_acquisition(self):
        """Stop the simulation."""
        self._running = False
        if self._thread:
            if self._thread is not threading.current_thread():
                self._thread.join(timeout=2.0)
            self._thread = None
            logger.info("Stopped synthetic acquisition")

    def _generate_loop(self):
        """Main generation loop."""
        interval = 1.0 / self.sample_rate
        next_sample_time = time.monotonic()

        while self._running:
            current_time = time.monotonic()

            if current_time >= next_sample_time:
                sample = self._sample_at(self._index)
                self._index += 1
                self._dispatch_sample(sample)
                next_sample_time += interval

                # If we're falling behind, catch up
                if current_time - next_sample_time > 0.1:
                    next_sample_time = current_time
            else:
                # Sleep until next sample
                sleep_time = next_sample_time - current_time
                if sleep_time > 0.0001:
                    time.sleep(sleep_time * 0.9)
