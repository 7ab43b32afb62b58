"""Exceptions raised by the EEG stream pipeline."""


class EEGStreamError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(EEGStreamError, ValueError):
    """
    A sample violates the stream contract.

    Raised for a channel-count mismatch, non-finite amplitudes or a timestamp
    earlier than the last accepted sample. The sample is rejected and the
    stream keeps running.
    """


class InsufficientDataError(EEGStreamError):
    """Not enough samples are buffered yet for the requested window."""

    def __init__(self, required: int, available: int):
        super().__init__(f"need {required} samples, have {available}")
        self.required = required
        self.available = available


class StreamConfigurationError(EEGStreamError, ValueError):
    """Stream or processing setup is invalid. Fatal for stream creation."""
