"""Signal processing modules for EEG data."""

from .classifier import ClassifierPolicy, StateClassifier
from .filters import DigitalFilterStage, FilterSettings, SOSFilterBank, design_bandpass, design_notch
from .spectral import BandPowerTracker, SpectralAnalyzer

__all__ = [
    "ClassifierPolicy", "StateClassifier",
    "DigitalFilterStage", "FilterSettings", "SOSFilterBank",
    "design_bandpass", "design_notch",
    "BandPowerTracker", "SpectralAnalyzer",
]
