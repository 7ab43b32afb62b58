"""Core data types, buffering and plumbing for the EEG stream pipeline."""

from .buffer import SampleBuffer
from .channel_map import default_channel_labels, get_device_info
from .data_types import (
    BandPowerEstimate,
    ClassificationResult,
    MentalState,
    Sample,
    Stream,
    StreamStatus,
)
from .errors import (
    EEGStreamError,
    InsufficientDataError,
    StreamConfigurationError,
    ValidationError,
)
from .events import EventHub, Topic
from .session_logging import SessionLogger, configure_logging

__all__ = [
    "SampleBuffer",
    "default_channel_labels", "get_device_info",
    "BandPowerEstimate", "ClassificationResult", "MentalState",
    "Sample", "Stream", "StreamStatus",
    "EEGStreamError", "InsufficientDataError",
    "StreamConfigurationError", "ValidationError",
    "EventHub", "Topic",
    "SessionLogger", "configure_logging",
]
