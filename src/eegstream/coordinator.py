"""
Stream coordination.

Owns one stream's buffers, filter stage, spectral analyzer and classifier,
and sequences them:

    raw sample -> raw buffer -> filter -> filtered buffer -> notify
    every analysis_interval: filtered window -> band powers -> state -> notify

Ingestion runs on the source's thread; analysis runs on a cadence thread of
its own. Only the ingestion path touches filter memory.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional

import numpy as np

from .core.buffer import SampleBuffer
from .core.constants import (
    ANALYSIS_INTERVAL_SECONDS,
    ANALYSIS_WINDOW_SECONDS,
    BUFFER_SECONDS,
    HISTORY_SECONDS,
    STALE_TIMEOUT_SECONDS,
)
from .core.data_types import (
    BandPowerEstimate,
    ClassificationResult,
    Sample,
    Stream,
    StreamStatus,
    find_channel,
)
from .core.errors import InsufficientDataError, StreamConfigurationError, ValidationError
from .core.events import EventHub, Topic
from .core.session_logging import SessionLogger
from .hardware.base import SampleSource
from .processing.classifier import ClassifierPolicy, StateClassifier
from .processing.filters import DigitalFilterStage, FilterSettings
from .processing.spectral import BandPowerTracker, SpectralAnalyzer

logger = logging.getLogger(__name__)


@dataclass
class CoordinatorSettings:
    """Buffering, cadence and liveness settings for one stream."""
    buffer_seconds: float = BUFFER_SECONDS
    window_seconds: float = ANALYSIS_WINDOW_SECONDS
    analysis_interval: float = ANALYSIS_INTERVAL_SECONDS
    stale_timeout: float = STALE_TIMEOUT_SECONDS
    focus_channel: int = 0
    history_seconds: float = HISTORY_SECONDS


class StreamCoordinator:
    """
    Real-time processing pipeline for one connected stream.

    Consumers subscribe to ``Topic`` notifications. After ``disconnect()``
    all buffers and filter state are released and nothing is published.
    """

    def __init__(
        self,
        stream: Stream,
        source: Optional[SampleSource] = None,
        filter_settings: Optional[FilterSettings] = None,
        settings: Optional[CoordinatorSettings] = None,
        classifier_policy: Optional[ClassifierPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Build the pipeline for a stream.

        Args:
            stream: Metadata of the connected stream.
            source: Sample source to attach on ``start()``. Optional when
                samples are pushed directly.
            filter_settings: Filter configuration.
            settings: Buffering and cadence configuration.
            classifier_policy: Quality scores for the state classifier.
            clock: Monotonic clock (seconds) used for stale detection.

        Raises:
            StreamConfigurationError: the settings cannot work for this stream.
        """
        self.stream = stream
        self.source = source
        self.settings = settings or CoordinatorSettings()
        self._clock = clock

        if self.settings.analysis_interval <= 0:
            raise StreamConfigurationError("analysis_interval must be positive")
        if self.settings.stale_timeout <= 0:
            raise StreamConfigurationError("stale_timeout must be positive")

        capacity = stream.samples_for(self.settings.buffer_seconds)
        self.raw_buffer = SampleBuffer(stream, capacity)
        self.filtered_buffer = SampleBuffer(stream, capacity)
        self.filter_stage = DigitalFilterStage(stream, filter_settings)
        self.analyzer = SpectralAnalyzer(stream.sample_rate, self.settings.window_seconds)
        if self.analyzer.n_samples > capacity:
            raise StreamConfigurationError(
                f"analysis window ({self.analyzer.n_samples} samples) exceeds "
                f"buffer capacity ({capacity} samples)"
            )
        self.classifier = StateClassifier(classifier_policy)
        self.band_power_history = BandPowerTracker(
            history_seconds=self.settings.history_seconds,
            update_rate=1.0 / self.settings.analysis_interval,
        )

        if not 0 <= self.settings.focus_channel < stream.channel_count:
            raise StreamConfigurationError(
                f"focus channel {self.settings.focus_channel} out of range for "
                f"{stream.channel_count} channels"
            )
        self._focus_channel = self.settings.focus_channel

        self._events = EventHub()
        self._ingest_lock = threading.RLock()
        self._analysis_lock = threading.RLock()
        self._status_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._attached = False
        self._closed = False

        self._status = StreamStatus.ACTIVE
        self._last_arrival = clock()
        self._last_timestamp: Optional[float] = None
        self._first_timestamp: Optional[float] = None
        self._analyzed_count = 0

        self.latest_band_powers: Optional[List[BandPowerEstimate]] = None
        self.latest_classification: Optional[ClassificationResult] = None
        self.sample_count = 0
        self.rejected_count = 0
        self.skipped_cycles = 0

        self.session = SessionLogger()
        self.session.start_session(
            stream_name=stream.name,
            sample_rate=stream.sample_rate,
            n_channels=stream.channel_count,
            channel_names=list(stream.channel_labels),
            filter_settings=self.filter_stage.settings.to_dict(),
        )

    # ------------------------------------------------------------------
    # Properties

    @property
    def focus_channel(self) -> int:
        return self._focus_channel

    @focus_channel.setter
    def focus_channel(self, channel: int):
        if not 0 <= channel < self.stream.channel_count:
            raise ValueError(
                f"focus channel {channel} out of range for {self.stream.channel_count} channels"
            )
        self._focus_channel = channel

    @property
    def status(self) -> StreamStatus:
        return self._status

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ------------------------------------------------------------------
    # Subscriptions

    def subscribe(self, topic: Topic, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Register a consumer. Returns a function that unsubscribes it."""
        if self._closed:
            raise RuntimeError(f"stream {self.stream.name!r} is disconnected")
        return self._events.subscribe(topic, callback)

    def unsubscribe(self, topic: Topic, callback: Callable[[Any], None]):
        self._events.unsubscribe(topic, callback)

    def _publish(self, topic: Topic, payload: Any):
        if not self._closed:
            self._events.publish(topic, payload)

    def _set_status(self, status: StreamStatus) -> bool:
        with self._status_lock:
            if self._status == status:
                return False
            self._status = status
            return True

    # ------------------------------------------------------------------
    # Ingestion

    def _validate(self, sample: Sample):
        if not np.isfinite(sample.timestamp):
            raise ValidationError(f"sample timestamp {sample.timestamp} is not finite")
        if sample.channel_count != self.stream.channel_count:
            raise ValidationError(
                f"expected {self.stream.channel_count} channels, got {sample.channel_count}"
            )
        if self._last_timestamp is not None and sample.timestamp < self._last_timestamp:
            raise ValidationError(
                f"sample at t={sample.timestamp:.6f} is older than t={self._last_timestamp:.6f}"
            )

    def push_sample(self, sample: Sample) -> Optional[Sample]:
        """
        Ingest one raw sample.

        Returns:
            The filtered sample, or None if the sample was rejected or the
            stream is disconnected.
        """
        with self._ingest_lock:
            if self._closed:
                return None

            try:
                self._validate(sample)
                start = time.perf_counter()
                filtered = self.filter_stage.filter_sample(sample)
                latency_ms = (time.perf_counter() - start) * 1000
            except ValidationError as e:
                self.rejected_count += 1
                logger.warning("Rejected sample from %s: %s", self.stream.name, e)
                return None

            self.raw_buffer.push(sample)
            self.filtered_buffer.push(filtered)
            self.session.record_latency("filter_latency_ms", latency_ms)

            if self._first_timestamp is None:
                self._first_timestamp = sample.timestamp
            self._last_timestamp = sample.timestamp
            self._last_arrival = self._clock()
            self.sample_count += 1

            if self._set_status(StreamStatus.ACTIVE):
                self.session.add_event("resumed", f"{self.stream.name} is producing samples again")
                self._publish(Topic.STATUS, StreamStatus.ACTIVE)

            self._publish(Topic.RAW_SAMPLE, sample)
            self._publish(Topic.FILTERED_SAMPLE, filtered)
            return filtered

    def push_samples(self, samples: Iterable[Sample]) -> int:
        """Ingest a burst of samples in order. Returns how many were accepted."""
        accepted = 0
        for sample in samples:
            if self.push_sample(sample) is not None:
                accepted += 1
        return accepted

    # ------------------------------------------------------------------
    # Analysis

    def run_analysis_cycle(self) -> Optional[List[BandPowerEstimate]]:
        """
        Analyze the most recent filtered window of every channel.

        Returns:
            The new band power estimates, or None when the cycle was skipped
            (not enough data, no new samples, busy, or disconnected).
        """
        if not self._analysis_lock.acquire(blocking=False):
            self.skipped_cycles += 1
            return None

        try:
            if self._closed:
                return None

            sample_count = self.sample_count
            if sample_count == self._analyzed_count:
                return None

            try:
                timestamps, data = self.filtered_buffer.window(self.analyzer.n_samples)
            except InsufficientDataError as e:
                logger.debug("Skipping analysis of %s: %s", self.stream.name, e)
                return None

            start = time.perf_counter()
            estimates = self.analyzer.analyze(data, timestamp=float(timestamps[-1]))
            self.session.record_latency("analysis_latency_ms", (time.perf_counter() - start) * 1000)
            self._analyzed_count = sample_count

            self.band_power_history.add_all(estimates)
            self.latest_band_powers = estimates

            result = self.classifier.classify(find_channel(estimates, self._focus_channel))
            previous = self.latest_classification
            self.latest_classification = result

            self._publish(Topic.BAND_POWERS, estimates)
            if previous is None or previous.label != result.label or previous.channel != result.channel:
                logger.debug("%s state: %s (%d)", self.stream.name, result.label.value, result.quality_score)
                self._publish(Topic.STATE, result)

            return estimates
        finally:
            self._analysis_lock.release()

    def check_staleness(self) -> StreamStatus:
        """Report the stream as stale once no sample arrived for stale_timeout."""
        silent_for = self._clock() - self._last_arrival
        if silent_for >= self.settings.stale_timeout and not self._closed:
            if self._set_status(StreamStatus.STALE):
                self.session.add_event(
                    "stale",
                    f"No samples from {self.stream.name} for {silent_for:.1f}s",
                    level=logging.WARNING,
                )
                self._publish(Topic.STATUS, StreamStatus.STALE)
        return self._status

    # ------------------------------------------------------------------
    # Lifecycle

    def start(self):
        """Attach the source and start the analysis cadence."""
        if self._closed:
            raise RuntimeError(f"stream {self.stream.name!r} is disconnected")

        if self.source is not None and not self._attached:
            self.source.register_callback(self.push_sample)
            self._attached = True
            self.source.start_acquisition()

        if self._thread is None:
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._cadence_loop, name=f"analysis-{self.stream.name}", daemon=True
            )
            self._thread.start()
            self.session.add_event("connect", f"Processing {self.stream.name}")

    def _cadence_loop(self):
        """Run analysis on a fixed cadence, skipping ticks instead of queueing them."""
        interval = self.settings.analysis_interval
        next_tick = time.monotonic() + interval

        while not self._stop_event.wait(max(0.0, next_tick - time.monotonic())):
            try:
                self.run_analysis_cycle()
                self.check_staleness()
            except Exception:
                logger.exception("Analysis cycle failed for %s", self.stream.name)

            next_tick += interval
            behind = time.monotonic() - next_tick
            if behind > 0:
                missed = int(behind // interval) + 1
                self.skipped_cycles += missed
                next_tick += missed * interval
                logger.debug("Analysis of %s fell behind, skipped %d cycle(s)", self.stream.name, missed)

    def disconnect(self):
        """
        Stop the cadence, detach the source and release all stream state.

        Safe to call more than once. No notifications fire afterwards.
        """
        if self._closed:
            return

        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=max(2.0, 5 * self.settings.analysis_interval))
        self._thread = None

        if self.source is not None:
            if self._attached:
                self.source.unregister_callback(self.push_sample)
                self._attached = False
            self.source.disconnect()

        with self._ingest_lock, self._analysis_lock:
            self._set_status(StreamStatus.CLOSED)
            self._events.publish(Topic.STATUS, StreamStatus.CLOSED)
            self._closed = True

            self.raw_buffer.clear()
            self.filtered_buffer.clear()
            self.filter_stage.reset_state()
            self.band_power_history.clear()
            self.latest_band_powers = None
            self.latest_classification = None

        duration = 0.0
        if self._first_timestamp is not None and self._last_timestamp is not None:
            duration = self._last_timestamp - self._first_timestamp
        self.session.update_sample_count(self.sample_count, duration, self.rejected_count)
        self.session.add_event("disconnect", f"Released {self.stream.name}")
        self.session.end_session()
        self._events.clear()

    def stop(self):
        """Alias of ``disconnect()``."""
        self.disconnect()

    def stats(self) -> dict:
        """Counters for diagnostics."""
        return {
            "stream": self.stream.name,
            "status": self._status.value,
            "samples": self.sample_count,
            "rejected": self.rejected_count,
            "clipped": self.filter_stage.clipped_count,
            "skipped_cycles": self.skipped_cycles,
            "buffered": len(self.filtered_buffer),
        }

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.disconnect()


def connect(
    source: SampleSource,
    filter_settings: Optional[FilterSettings] = None,
    settings: Optional[CoordinatorSettings] = None,
    classifier_policy: Optional[ClassifierPolicy] = None,
    start: bool = True,
) -> StreamCoordinator:
    """
    Connect a source and build its pipeline.

    Raises:
        StreamConfigurationError: the stream or settings are invalid. The
            source is disconnected again before any setup error propagates.
    """
    stream = source.connect()
    try:
        coordinator = StreamCoordinator(
            stream,
            source=source,
            filter_settings=filter_settings,
            settings=settings,
            classifier_policy=classifier_policy,
        )
    except Exception:
        source.disconnect()
        raise

    if start:
        coordinator.start()
    return coordinator
