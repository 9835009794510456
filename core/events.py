"""
Lightweight event bus carrying pipeline results to consumers.

The classification and recording workers publish; UI or logging consumers
subscribe. Publishers never depend on who is listening.

Usage:
    bus = EventBus()
    bus.subscribe(Events.STABLE_GESTURE, on_gesture)
    bus.emit(Events.STABLE_GESTURE, result=pipeline_result)
"""

import time
import logging
import threading
from collections import defaultdict, deque
from typing import Callable

logger = logging.getLogger(__name__)


class EventBus:
    """Thread-safe publish/subscribe event bus.

    Each pipeline owns one bus; listeners are dispatched synchronously on the
    publishing thread in priority order.
    """

    def __init__(self, max_history: int = 100):
        self._listeners = defaultdict(list)  # event_name -> [(priority, callback)]
        self._lock = threading.Lock()
        self._event_history = deque(maxlen=max_history)
        self._enabled = True

    def subscribe(self, event_name: str, callback: Callable, priority: int = 0):
        """Register a listener for an event.

        Args:
            event_name: Event to listen for
            callback: Function to call. Receives **kwargs from emit().
            priority: Higher priority callbacks run first (default 0)
        """
        with self._lock:
            self._listeners[event_name].append((priority, callback))
            self._listeners[event_name].sort(key=lambda x: -x[0])
        logger.debug("Subscribed to '%s': %s (priority=%d)",
                     event_name, getattr(callback, "__name__", callback), priority)

    def unsubscribe(self, event_name: str, callback: Callable):
        """Remove a listener for an event."""
        with self._lock:
            self._listeners[event_name] = [
                (p, cb) for p, cb in self._listeners[event_name] if cb is not callback
            ]

    def emit(self, event_name: str, **kwargs):
        """Emit an event to all registered listeners.

        A failing listener is logged and skipped; it never breaks the
        publishing pipeline stage.
        """
        if not self._enabled:
            return

        with self._lock:
            listeners = list(self._listeners.get(event_name, []))
            self._event_history.append({
                "event": event_name,
                "time": time.time(),
                "data_keys": list(kwargs.keys()),
            })

        for priority, callback in listeners:
            try:
                callback(**kwargs)
            except Exception as e:
                logger.error("Event handler error [%s -> %s]: %s",
                             event_name, getattr(callback, "__name__", callback), e)

    def set_enabled(self, enabled: bool):
        self._enabled = enabled

    def clear(self, event_name: str = None):
        """Remove all listeners, optionally for a specific event."""
        with self._lock:
            if event_name:
                self._listeners.pop(event_name, None)
            else:
                self._listeners.clear()

    @property
    def listener_count(self) -> int:
        """Total number of registered listeners."""
        with self._lock:
            return sum(len(cbs) for cbs in self._listeners.values())

    def get_history(self, last_n: int = 10) -> list:
        """Get recent event history."""
        with self._lock:
            return list(self._event_history)[-last_n:]


# =============================================================================
# Standard Event Names (constants to avoid typos)
# =============================================================================

class Events:
    """Standard event names used throughout the system."""

    # Classification path
    PREDICTION_UPDATED = "prediction_updated"
    STABLE_GESTURE = "stable_gesture"
    HAND_LOST = "hand_lost"

    # Recording path
    RECORDING_STARTED = "recording_started"
    RECORDING_STOPPED = "recording_stopped"
    SAMPLE_SAVED = "sample_saved"
    SAMPLE_REJECTED = "sample_rejected"
    SAMPLES_CLEARED = "samples_cleared"
    PERSISTENCE_FAILED = "persistence_failed"
