"""Sample sources for EEG data acquisition."""

from .base import SampleSource
from .serial_interface import SerialSampleSource
from .simulator import SignalComponent, SyntheticSampleSource, sinusoid, sinusoid_samples

__all__ = [
    "SampleSource", "SerialSampleSource",
    "SignalComponent", "SyntheticSampleSource", "sinusoid", "sinusoid_samples",
]
