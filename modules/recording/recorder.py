"""
Supervised recording session: labeled landmark frames → SampleStore.

Every ``frame_skip``-th frame of an active session is evaluated by the
SampleAcceptancePolicy against the last saved sample of the same label, so
the write rate stays bounded regardless of camera frame rate.
"""

import time
import logging
import threading

from core.types import LandmarkSample
from modules.recording.sample_policy import SampleAcceptancePolicy

logger = logging.getLogger(__name__)


class SampleRecorder:
    """Owns recording state; all persistence goes through the SampleStore."""

    def __init__(self, store, config: dict = None, policy=None):
        config = config or {}
        self._store = store
        self._policy = policy or SampleAcceptancePolicy(config)
        self._frame_skip = max(1, int(config.get("frame_skip", 2)))

        self._lock = threading.Lock()
        self._label = None
        self._active = False
        self._frame_counter = 0
        self._start_time = None
        self._duration = 0.0
        self._saved = 0
        self._rejected = 0
        self._last_presence = 0.0

    # ------------------------------------------------------------------
    # Session control
    # ------------------------------------------------------------------

    def start(self, label: str):
        """Begin recording samples for ``label``."""
        if not label:
            raise ValueError("Recording label must be a non-empty string")
        with self._lock:
            self._label = label
            self._active = True
            self._frame_counter = 0
            self._saved = 0
            self._rejected = 0
            self._duration = 0.0
            self._start_time = time.monotonic()
        logger.info("Recording started [%s]", label)

    def stop(self) -> dict:
        """End the session and return its summary."""
        with self._lock:
            if self._active and self._start_time is not None:
                self._duration = time.monotonic() - self._start_time
            self._active = False
        summary = self.get_status()
        logger.info("Recording stopped [%s]: %d saved, %d rejected in %.1fs",
                    summary["label"], summary["saved"], summary["rejected"],
                    summary["duration_s"])
        return summary

    @property
    def is_recording(self) -> bool:
        return self._active

    @property
    def label(self):
        return self._label

    @property
    def last_presence(self) -> float:
        """Presence proxy of the last evaluated frame (for display)."""
        return self._last_presence

    # ------------------------------------------------------------------
    # Frame handling
    # ------------------------------------------------------------------

    def handle_frame(self, frame):
        """Evaluate one frame of the active session.

        Returns:
            (AcceptanceDecision or None when skipped/inactive, saved sample or None)

        Raises:
            PersistenceError: sample kept in memory but not written to disk
        """
        with self._lock:
            if not self._active:
                return None, None
            self._frame_counter += 1
            if self._frame_counter % self._frame_skip != 0:
                return None, None
            label = self._label

        last = self._store.last(label)
        decision = self._policy.evaluate(frame, last.landmarks if last else None)
        self._last_presence = decision.presence

        if not decision.accepted:
            with self._lock:
                self._rejected += 1
            return decision, None

        sample = LandmarkSample(label, tuple(frame))
        with self._lock:
            self._saved += 1
        self._store.append(sample)
        logger.debug("Saved sample [%s] (%s)", label, decision.reason)
        return decision, sample

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> dict:
        """Session status plus per-label totals from the store."""
        with self._lock:
            duration = self._duration
            if self._active and self._start_time is not None:
                duration = time.monotonic() - self._start_time
            status = {
                "label": self._label,
                "recording": self._active,
                "saved": self._saved,
                "rejected": self._rejected,
                "duration_s": round(duration, 2),
            }
        status["per_label"] = self._store.count_by_label()
        status["total_samples"] = sum(status["per_label"].values())
        return status

    def print_status(self):
        """Log formatted recording status."""
        status = self.get_status()
        logger.info("=" * 50)
        logger.info("RECORDED SAMPLES")
        logger.info("=" * 50)
        for index, sample in enumerate(self._store.all(), start=1):
            logger.debug("Sample #%d | Label: %s | Landmarks: %d",
                         index, sample.label, len(sample.landmarks))
        for label, count in sorted(status["per_label"].items()):
            bar = "#" * min(count // 10, 30)
            logger.info("  %-15s %4d %s", label, count, bar)
        logger.info("Total samples: %d", status["total_samples"])
        logger.info("=" * 50)
