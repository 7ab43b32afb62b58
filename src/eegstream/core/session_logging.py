"""
Session Logging and Diagnostics.

Provides structured logging for streaming sessions with:
- Session metadata
- Event markers (connect, disconnect, stale stream, resumed stream)
- Performance metrics (filter and analysis latency)

Everything is kept in memory; sessions are not written to disk.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import numpy as np

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

# Console handler installed by configure_logging, reused on later calls
_console_handler: Optional[logging.Handler] = None


def configure_logging(level: int = logging.INFO, fmt: str = LOG_FORMAT) -> logging.Logger:
    """
    Attach a console handler to the package logger.

    Library code only logs; applications call this once at startup.
    """
    global _console_handler

    package_logger = logging.getLogger("eegstream")
    package_logger.setLevel(level)

    if _console_handler is None:
        _console_handler = logging.StreamHandler()
    _console_handler.setFormatter(logging.Formatter(fmt))
    if _console_handler not in package_logger.handlers:
        package_logger.addHandler(_console_handler)

    return package_logger


@dataclass
class SessionMetadata:
    """Metadata for one stream session."""
    session_id: str
    start_time: str
    stream_name: str
    end_time: Optional[str] = None
    sample_rate: float = 250.0
    n_channels: int = 8
    channel_names: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    total_samples: int = 0
    rejected_samples: int = 0
    filter_settings: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EventMarker:
    """An event marker during a session."""
    timestamp: float
    event_type: str
    description: str
    data: Optional[Dict] = None


class SessionLogger:
    """
    Tracks a stream session for diagnostics.

    Features:
    - Automatic session ID generation
    - Event markers with timestamps
    - Latency metrics with a mean/std/min/max summary
    """

    MAX_METRIC_SAMPLES = 10_000

    def __init__(self, name: str = "eegstream.session"):
        self.current_session: Optional[SessionMetadata] = None
        self.events: List[EventMarker] = []
        self.performance_metrics: Dict[str, List[float]] = {
            "filter_latency_ms": [],
            "analysis_latency_ms": [],
        }

        self.logger = logging.getLogger(name)

    def start_session(
        self,
        stream_name: str,
        sample_rate: float = 250.0,
        n_channels: int = 8,
        channel_names: Optional[List[str]] = None,
        filter_settings: Optional[Dict] = None,
    ) -> str:
        """Start a new session."""
        session_id = datetime.now().strftime("%Y%m%d_%H%M%S_%f")

        self.current_session = SessionMetadata(
            session_id=session_id,
            start_time=datetime.now().isoformat(),
            stream_name=stream_name,
            sample_rate=sample_rate,
            n_channels=n_channels,
            channel_names=channel_names or [],
            filter_settings=filter_settings or {},
        )

        self.events = []
        self.performance_metrics = {k: [] for k in self.performance_metrics}

        self.logger.info(f"Session started: {session_id}")
        self.logger.info(f"Stream: {stream_name}, Sample rate: {sample_rate} Hz, Channels: {n_channels}")

        return session_id

    def end_session(self) -> Optional[Dict[str, Any]]:
        """End the current session and return its summary."""
        if not self.current_session:
            return None

        self.current_session.end_time = datetime.now().isoformat()
        summary = self.summary()

        self.logger.info(f"Session ended: {self.current_session.session_id}")
        self.logger.info(
            f"Duration: {self.current_session.duration_seconds:.1f}s, "
            f"Samples: {self.current_session.total_samples}, "
            f"Rejected: {self.current_session.rejected_samples}"
        )

        self.current_session = None
        return summary

    def summary(self) -> Dict[str, Any]:
        """Session metadata, events and performance statistics."""
        perf_summary = {}
        for metric, values in self.performance_metrics.items():
            if values:
                perf_summary[metric] = {
                    "mean": float(np.mean(values)),
                    "std": float(np.std(values)),
                    "min": float(np.min(values)),
                    "max": float(np.max(values)),
                }

        return {
            "metadata": asdict(self.current_session) if self.current_session else None,
            "events": [asdict(e) for e in self.events],
            "performance": perf_summary,
        }

    def add_event(self, event_type: str, description: str, data: Optional[Dict] = None,
                  level: int = logging.INFO):
        """Add an event marker."""
        if not self.current_session:
            return

        event = EventMarker(
            timestamp=time.time(),
            event_type=event_type,
            description=description,
            data=data,
        )
        self.events.append(event)
        self.logger.log(level, f"Event: [{event_type}] {description}")

    def update_sample_count(self, count: int, duration: float, rejected: int = 0):
        """Update sample counters and duration."""
        if self.current_session:
            self.current_session.total_samples = count
            self.current_session.duration_seconds = duration
            self.current_session.rejected_samples = rejected

    def record_latency(self, metric: str, latency_ms: float):
        """Record a latency measurement."""
        values = self.performance_metrics.get(metric)
        if values is None:
            return
        values.append(latency_ms)
        if len(values) > self.MAX_METRIC_SAMPLES:
            del values[: len(values) - self.MAX_METRIC_SAMPLES]
