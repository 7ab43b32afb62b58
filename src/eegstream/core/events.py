"""
Publish/subscribe hub used by the coordinator to notify consumers.
"""

import logging
import threading
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class Topic(str, Enum):
    """Notification topics exposed to consumers."""
    RAW_SAMPLE = "raw_sample"
    FILTERED_SAMPLE = "filtered_sample"
    BAND_POWERS = "band_powers"
    STATE = "state"
    STATUS = "status"


class EventHub:
    """
    Registry of callbacks per topic.

    Callbacks run on the publishing thread. A failing callback is logged and
    does not prevent delivery to the others.
    """

    def __init__(self):
        self._callbacks: dict[Topic, list[Callable[[Any], None]]] = {t: [] for t in Topic}
        self._lock = threading.Lock()

    def subscribe(self, topic: Topic, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Register a callback. Returns a function that unsubscribes it."""
        topic = Topic(topic)
        with self._lock:
            self._callbacks[topic].append(callback)
        return lambda: self.unsubscribe(topic, callback)

    def unsubscribe(self, topic: Topic, callback: Callable[[Any], None]):
        topic = Topic(topic)
        with self._lock:
            if callback in self._callbacks[topic]:
                self._callbacks[topic].remove(callback)

    def subscriber_count(self, topic: Topic) -> int:
        with self._lock:
            return len(self._callbacks[Topic(topic)])

    def publish(self, topic: Topic, payload: Any):
        """Send payload to all callbacks registered for the topic."""
        with self._lock:
            callbacks = list(self._callbacks[topic])

        for callback in callbacks:
            try:
                callback(payload)
            except Exception:
                logger.exception("Subscriber for %s failed", topic.value)

    def clear(self):
        """Remove every subscriber."""
        with self._lock:
            for callbacks in self._callbacks.values():
                callbacks.clear()
