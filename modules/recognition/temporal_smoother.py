"""
Time-windowed consensus filter for single-frame predictions.

Turns a noisy stream of per-frame (label, confidence) records into a stable
label:

    1. failed/rejected frames are not recorded and yield no prediction
    2. history is bounded by age (time_window) and by count (max_history)
    3. fast path: a record above high_confidence_cutoff is returned as-is
    4. warm-up: fewer than min_stable_frames records → newest record
    5. global gate: mean confidence of the whole window must reach
       min_confidence_threshold
    6. winner = highest per-label mean confidence; ties go to the label
       seen earliest in the window
    7. winner needs share >= required_consensus_ratio and
       mean >= min_confidence_threshold

Updates carry the frame-arrival sequence number. An update that is not newer
than the last applied one (or than the last reset) is discarded, so a late
classification can never rewrite history out of order.
"""

import logging
import threading
from collections import deque

from core.types import SmoothingConfig, StablePrediction

logger = logging.getLogger(__name__)


class TemporalSmoother:
    """Smooths classifier output across frames using consensus voting."""

    def __init__(self, config: dict = None):
        config = config or {}
        temporal_cfg = config.get("temporal", config)
        self._config = SmoothingConfig.from_dict(temporal_cfg)

        self._lock = threading.Lock()
        self._history = deque()  # PredictionRecord, oldest first
        self._last_sequence = None
        self._discarded = 0

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def config(self) -> SmoothingConfig:
        return self._config

    def set_config(self, config: SmoothingConfig):
        """Hot-swap parameters; takes effect from the next update."""
        with self._lock:
            self._config = config
        logger.info("Smoothing config updated: %s", config)

    # ------------------------------------------------------------------
    # Main API
    # ------------------------------------------------------------------

    def update(self, record, sequence: int = None):
        """Process one frame's classification result.

        Args:
            record: PredictionRecord, or None when classification failed
                    or was rejected
            sequence: frame-arrival sequence number (optional)

        Returns:
            StablePrediction or None ("no stable prediction")
        """
        return self.apply(record, sequence)[1]

    def apply(self, record, sequence: int = None):
        """update() that also reports whether the update was applied.

        Returns:
            (applied: bool, StablePrediction or None); applied is False only
            for out-of-order updates
        """
        with self._lock:
            if sequence is not None:
                if self._last_sequence is not None and sequence <= self._last_sequence:
                    self._discarded += 1
                    logger.debug("Discarded out-of-order update #%d (last applied #%d)",
                                 sequence, self._last_sequence)
                    return False, None
                self._last_sequence = sequence

            if record is None:
                return True, None

            cfg = self._config
            self._history.append(record)
            self._evict(record.timestamp, cfg)

            if record.confidence > cfg.high_confidence_cutoff:
                return True, StablePrediction(record.label, record.confidence, via="fast_path")

            return True, self._consensus(cfg)

    def reset(self, sequence: int = None):
        """Clear history.

        Args:
            sequence: when given, any later update with a sequence number
                      at or below it is discarded as stale
        """
        with self._lock:
            self._history.clear()
            if sequence is not None and (self._last_sequence is None
                                         or sequence > self._last_sequence):
                self._last_sequence = sequence

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _evict(self, now: float, cfg: SmoothingConfig):
        history = self._history
        while history and now - history[0].timestamp > cfg.time_window:
            history.popleft()
        while len(history) > cfg.max_history:
            history.popleft()

    def _consensus(self, cfg: SmoothingConfig):
        history = self._history
        if len(history) < cfg.min_stable_frames:
            if not history:
                return None
            newest = history[-1]
            return StablePrediction(newest.label, newest.confidence, via="warmup")

        # dict preserves insertion order: earliest-seen label first
        per_label = {}
        total_confidence = 0.0
        for rec in history:
            entry = per_label.setdefault(rec.label, [0.0, 0])
            entry[0] += rec.confidence
            entry[1] += 1
            total_confidence += rec.confidence

        total_count = len(history)
        if total_confidence / total_count < cfg.min_confidence_threshold:
            return None

        best_label = None
        best_mean = None
        for label, (total, count) in per_label.items():
            mean = total / count
            if best_mean is None or mean > best_mean:
                best_label, best_mean = label, mean

        share = per_label[best_label][1] / total_count
        if share >= cfg.required_consensus_ratio and best_mean >= cfg.min_confidence_threshold:
            return StablePrediction(best_label, best_mean, via="consensus")
        return None

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def describe_state(self) -> str:
        """Per-label frame count and mean confidence over the current window."""
        with self._lock:
            records = list(self._history)

        lines = ["History count: %d" % len(records)]
        grouped = {}
        for rec in records:
            grouped.setdefault(rec.label, []).append(rec.confidence)
        for label, confidences in grouped.items():
            lines.append("%s: %d frames, avg conf: %.2f"
                         % (label, len(confidences), sum(confidences) / len(confidences)))
        return "\n".join(lines)

    @property
    def history_size(self) -> int:
        with self._lock:
            return len(self._history)

    @property
    def window_fill(self) -> float:
        """How full the history is relative to the hard cap (0.0 - 1.0)."""
        with self._lock:
            return len(self._history) / self._config.max_history

    @property
    def discarded_count(self) -> int:
        """Number of out-of-order updates dropped so far."""
        with self._lock:
            return self._discarded
