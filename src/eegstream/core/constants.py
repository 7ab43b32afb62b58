"""
Shared constants and defaults for the EEG stream pipeline.

This module consolidates common constants to avoid duplication.
"""

from typing import Dict, Tuple


# Standard EEG frequency bands (in Hz). Lower bound inclusive, upper exclusive.
FREQUENCY_BANDS: Dict[str, Tuple[float, float]] = {
    "delta": (0.5, 4),     # Deep sleep, unconscious processes
    "theta": (4, 8),       # Drowsiness, light sleep, meditation
    "alpha": (8, 12),      # Relaxed, calm, eyes closed
    "beta": (13, 30),      # Active thinking, focus, alertness
    "gamma": (30, 100),    # Higher cognitive functions, perception
}

BAND_NAMES: Tuple[str, ...] = tuple(FREQUENCY_BANDS)


# Stream defaults
DEFAULT_SAMPLE_RATE = 250
DEFAULT_CHANNEL_COUNT = 8


# Default filter settings
DEFAULT_FILTER_SETTINGS = {
    "bandpass_low": 1.0,
    "bandpass_high": 40.0,
    "bandpass_order": 4,
    "notch_freq_eu": 50.0,
    "notch_freq_us": 60.0,
    "notch_width": 2.0,    # Hz either side of the notch centre (-3 dB)
}

# Raw amplitudes are saturated to +/- this value before filtering (µV)
CLAMP_THRESHOLD_UV = 200.0


# Buffering and analysis cadence
BUFFER_SECONDS = 4.0               # History kept per stream
ANALYSIS_WINDOW_SECONDS = 1.0      # Spectral window length
ANALYSIS_INTERVAL_SECONDS = 0.2    # Spectral analysis cadence
STALE_TIMEOUT_SECONDS = 5.0        # Silence before a stream is reported stale
HISTORY_SECONDS = 60.0             # Band power history kept for trends


# Default classifier quality scores (0-100)
CLASSIFIER_QUALITY = {
    "deep": 90,
    "relaxed": 70,
    "active": 40,
}
