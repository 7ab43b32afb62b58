"""
EEG Stream - real-time EEG filtering, spectral analysis and state classification.

Raw multi-channel samples are buffered, filtered causally, windowed into
per-band spectral power and reduced to a coarse mental-state label.
"""

import logging

from .coordinator import CoordinatorSettings, StreamCoordinator, connect
from .core import (
    BandPowerEstimate,
    ClassificationResult,
    EEGStreamError,
    InsufficientDataError,
    MentalState,
    Sample,
    SampleBuffer,
    Stream,
    StreamConfigurationError,
    StreamStatus,
    Topic,
    ValidationError,
)
from .processing import (
    ClassifierPolicy,
    DigitalFilterStage,
    FilterSettings,
    SpectralAnalyzer,
    StateClassifier,
)

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "BandPowerEstimate", "ClassificationResult", "ClassifierPolicy", "CoordinatorSettings",
    "DigitalFilterStage", "EEGStreamError", "FilterSettings", "InsufficientDataError",
    "MentalState", "Sample", "SampleBuffer", "SpectralAnalyzer", "StateClassifier",
    "Stream", "StreamConfigurationError", "StreamCoordinator", "StreamStatus", "Topic",
    "ValidationError", "connect",
]
