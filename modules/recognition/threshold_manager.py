"""
Per-class confidence thresholds derived from offline evaluation metrics.

Thresholds are computed once from the model's evaluation report and swapped
in wholesale; a decision in flight always sees a single consistent table.

Threshold policy (monotonic in precision):
    threshold = clip(base + weight * (1 - precision), floor, ceiling)

A class the model confuses often (low precision) needs a higher confidence
before its label is accepted. Explicit per-class ``threshold`` entries in the
metrics file override the computed value.
"""

import json
import logging
import threading
from types import MappingProxyType

from core.errors import MetricsLoadError

logger = logging.getLogger(__name__)

# Aggregate rows in a scikit-learn classification_report dict
_AGGREGATE_KEYS = {"accuracy", "macro avg", "weighted avg", "micro avg", "samples avg"}


class ConfidenceThresholdManager:
    """Holds per-class thresholds and answers accept/reject decisions."""

    def __init__(self, config: dict = None):
        config = config or {}
        thresholds = config.get("confidence_thresholds", {})
        self._default_threshold = float(thresholds.get("default", 0.5))
        self._base = float(config.get("threshold_base", 0.5))
        self._weight = float(config.get("threshold_precision_weight", 0.4))
        self._floor = float(config.get("threshold_floor", 0.3))
        self._ceiling = float(config.get("threshold_ceiling", 0.95))
        self._min_confidence_gap = float(config.get("min_confidence_gap", 0.1))

        self._lock = threading.Lock()
        self._table = MappingProxyType(
            {k: float(v) for k, v in thresholds.items() if k != "default"}
        )

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def accept(self, label: str, confidence: float) -> bool:
        """True iff confidence reaches the label's threshold (or the default)."""
        table = self._table
        return confidence >= table.get(label, self._default_threshold)

    def get_threshold(self, label: str) -> float:
        """Get the confidence threshold for a label."""
        return self._table.get(label, self._default_threshold)

    def get_all_thresholds(self) -> dict:
        """Copy of the current threshold table."""
        return dict(self._table)

    @property
    def default_threshold(self) -> float:
        return self._default_threshold

    def classify_confidence(self, label: str, confidence: float) -> str:
        """Band a confidence relative to the label's threshold.

        'low' is below the threshold (the frame would be rejected);
        'high' is at least halfway from the threshold to 1.0.
        """
        threshold = self.get_threshold(label)
        if confidence < threshold:
            return "low"
        if confidence >= threshold + (1.0 - threshold) / 2:
            return "high"
        return "medium"

    def check_ambiguity(self, scores: dict) -> bool:
        """Check if the top two class probabilities are too close."""
        if len(scores) < 2:
            return False

        sorted_scores = sorted(scores.values(), reverse=True)
        gap = sorted_scores[0] - sorted_scores[1]
        is_ambiguous = gap < self._min_confidence_gap
        if is_ambiguous:
            logger.debug("Ambiguous prediction: gap=%.3f (threshold=%.3f)",
                         gap, self._min_confidence_gap)
        return is_ambiguous

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def threshold_for_precision(self, precision: float) -> float:
        """Apply the threshold policy to one class's precision."""
        precision = min(max(float(precision), 0.0), 1.0)
        value = self._base + self._weight * (1.0 - precision)
        return min(max(value, self._floor), self._ceiling)

    def load_thresholds(self, metrics: dict) -> dict:
        """Compute a threshold per class and swap the table in atomically.

        Args:
            metrics: ``classification_report(output_dict=True)`` style dict,
                     optionally nested under a ``classes`` key.

        Returns:
            The new threshold table (label -> threshold)

        Raises:
            MetricsLoadError: metrics hold no usable per-class entries
        """
        if not isinstance(metrics, dict):
            raise MetricsLoadError("Metrics must be a mapping, got %s" % type(metrics).__name__)

        classes = metrics.get("classes", metrics)
        if not isinstance(classes, dict):
            raise MetricsLoadError("'classes' must be a mapping")

        table = {}
        for label, stats in classes.items():
            if label in _AGGREGATE_KEYS or not isinstance(stats, dict):
                continue
            try:
                if "threshold" in stats:
                    table[str(label)] = float(stats["threshold"])
                elif "precision" in stats:
                    table[str(label)] = self.threshold_for_precision(stats["precision"])
                else:
                    raise MetricsLoadError(
                        "Class '%s' has neither precision nor threshold" % label)
            except (TypeError, ValueError) as e:
                raise MetricsLoadError("Bad statistics for class '%s': %s" % (label, e)) from e

        if not table:
            raise MetricsLoadError("Metrics contain no per-class statistics")

        with self._lock:
            self._table = MappingProxyType(table)

        logger.info("Loaded thresholds for %d classes", len(table))
        for label, value in sorted(table.items()):
            logger.debug("  %-15s %.3f", label, value)
        return dict(table)

    def load_metrics_file(self, path: str) -> bool:
        """Load thresholds from a metrics JSON file.

        A missing or malformed file leaves only the global default in
        effect; startup is never blocked.
        """
        try:
            with open(path, "r") as f:
                metrics = json.load(f)
            self.load_thresholds(metrics)
            return True
        except (OSError, ValueError, MetricsLoadError) as e:
            logger.warning("Metrics unavailable (%s): %s; using default threshold %.2f",
                           path, e, self._default_threshold)
            with self._lock:
                self._table = MappingProxyType({})
            return False
