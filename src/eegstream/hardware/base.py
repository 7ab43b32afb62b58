"""
Sample source interface.

A source announces its stream metadata on ``connect()`` and then pushes
samples to registered callbacks from its own acquisition thread.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

from ..core.data_types import Sample, Stream

logger = logging.getLogger(__name__)

SampleCallback = Callable[[Sample], None]


class SampleSource(ABC):
    """Base class for raw sample producers."""

    def __init__(self):
        self._callbacks: list[SampleCallback] = []
        self._callback_lock = threading.Lock()
        self.stream: Optional[Stream] = None

    @abstractmethod
    def connect(self) -> Stream:
        """Open the source and return its stream metadata."""

    @abstractmethod
    def start_acquisition(self):
        """Start producing samples in the background."""

    @abstractmethod
    def stop_acquisition(self):
        """Stop producing samples. Safe to call when not running."""

    def disconnect(self):
        """Stop acquisition and release the source."""
        self.stop_acquisition()
        self.stream = None

    def register_callback(self, callback: SampleCallback):
        """Register a callback to receive samples."""
        with self._callback_lock:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: SampleCallback):
        with self._callback_lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def _dispatch_sample(self, sample: Sample):
        """Send sample to all registered callbacks."""
        with self._callback_lock:
            callbacks = list(self._callbacks)

        for callback in callbacks:
            try:
                callback(sample)
            except Exception:
                logger.exception("Sample callback failed")
