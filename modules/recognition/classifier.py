"""
Single-frame classifier: feature vector → thresholded top-class prediction.

Wraps the black-box probability model with:
    - strict input-width validation (never truncates or pads)
    - deterministic arg-max (ties go to the first label in the model's
      declared class order, not to dict iteration order)
    - bounded inference latency via a worker + timeout
    - per-class confidence gating through ConfidenceThresholdManager
"""

import time
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout

import numpy as np

from core.errors import ClassifyError, FeatureCountMismatch, ModelUnavailable, InferenceTimeout
from core.types import PredictionRecord
from models.probability_model import load_model
from modules.recognition.threshold_manager import ConfidenceThresholdManager

logger = logging.getLogger(__name__)


class SingleFrameClassifier:
    """Classifies one feature vector at a time."""

    def __init__(self, config: dict, model=None, threshold_manager=None):
        """
        Args:
            config: ``recognition`` section from config.yaml
            model: ProbabilityModel instance; when None, ``model_path`` from
                   the config is loaded (failures leave the model unavailable)
            threshold_manager: shared ConfidenceThresholdManager
        """
        self._expected_width = int(config.get("feature_width", 30))
        timeout_ms = config.get("inference_timeout_ms", 250)
        self._timeout_s = timeout_ms / 1000.0 if timeout_ms and timeout_ms > 0 else None
        self._thresholds = threshold_manager or ConfidenceThresholdManager(config)

        self._model = None
        self._model_error = "no model configured"
        if model is not None:
            self.set_model(model)
        elif config.get("model_path"):
            self.load(config["model_path"])

        self._executor = ThreadPoolExecutor(
            max_workers=int(config.get("inference_workers", 2)),
            thread_name_prefix="inference",
        )

        self._lock = threading.Lock()
        self._last_prediction = None
        self._calls = 0
        self._rejected = 0
        self._failures = 0

    # ------------------------------------------------------------------
    # Model management
    # ------------------------------------------------------------------

    def load(self, path: str) -> bool:
        """Load a model from disk; on failure classification reports ModelUnavailable."""
        try:
            self.set_model(load_model(path))
            return True
        except ModelUnavailable as e:
            self._model = None
            self._model_error = str(e)
            logger.error("Classifier unavailable: %s", e)
            return False

    def set_model(self, model):
        width = getattr(model, "input_width", None)
        if width is not None and width != self._expected_width:
            logger.warning("Model expects %d features but pipeline is configured for %d",
                           width, self._expected_width)
        self._model = model
        self._model_error = None

    @property
    def is_available(self) -> bool:
        return self._model is not None

    @property
    def expected_width(self) -> int:
        return self._expected_width

    @property
    def threshold_manager(self) -> ConfidenceThresholdManager:
        return self._thresholds

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def classify(self, features, timestamp: float = None):
        """Classify one feature vector.

        Returns:
            PredictionRecord when the top class passes its threshold,
            otherwise None (the raw top class is kept as last_prediction)

        Raises:
            FeatureCountMismatch: len(features) != expected width
            ModelUnavailable: no model loaded
            InferenceTimeout: model did not answer in time
        """
        record, accepted = self.evaluate(features, timestamp)
        return record if accepted else None

    def evaluate(self, features, timestamp: float = None):
        """Like classify() but always returns the raw top class.

        Returns:
            (PredictionRecord, accepted: bool)
        """
        probabilities = self.predict_proba(features)
        label, confidence = self.select_top(probabilities)
        record = PredictionRecord(
            label, confidence, time.monotonic() if timestamp is None else timestamp
        )
        accepted = self._thresholds.accept(label, confidence)

        with self._lock:
            self._calls += 1
            self._last_prediction = record
            if not accepted:
                self._rejected += 1

        if not accepted:
            logger.debug("Rejected %s (%.3f < %.3f)", label, confidence,
                         self._thresholds.get_threshold(label))
        return record, accepted

    def predict_proba(self, features) -> dict:
        """Raw label → probability mapping for a validated feature vector."""
        model = self._model
        if model is None:
            raise ModelUnavailable(self._model_error or "model not loaded")

        vector = np.asarray(features, dtype=np.float64).reshape(-1)
        if vector.shape[0] != self._expected_width:
            raise FeatureCountMismatch(self._expected_width, vector.shape[0])

        future = self._executor.submit(model.predict_proba, vector)
        try:
            probabilities = future.result(timeout=self._timeout_s)
        except FutureTimeout:
            future.cancel()
            with self._lock:
                self._failures += 1
            raise InferenceTimeout(self._timeout_s)
        except Exception as e:
            # Black-box model: any failure is a per-frame classification error
            with self._lock:
                self._failures += 1
            raise ClassifyError("Model inference failed: %s" % e) from e

        if not probabilities:
            raise ClassifyError("Model returned no class probabilities")
        return probabilities

    def class_order(self, probabilities: dict) -> list:
        """Stable class order: declared model labels first, then any extras sorted."""
        declared = [label for label in getattr(self._model, "labels", ()) or ()
                    if label in probabilities]
        seen = set(declared)
        extras = sorted(label for label in probabilities if label not in seen)
        return declared + extras

    def select_top(self, probabilities: dict):
        """Arg-max over probabilities; ties go to the earliest class in class_order()."""
        best_label = None
        best_p = None
        for label in self.class_order(probabilities):
            p = float(probabilities[label])
            if best_p is None or p > best_p:
                best_label, best_p = label, p
        return best_label, best_p

    def rank(self, features) -> list:
        """All (label, probability) pairs, best first; for debugging."""
        probabilities = self.predict_proba(features)
        order = self.class_order(probabilities)
        position = {label: i for i, label in enumerate(order)}
        ranked = sorted(order, key=lambda label: (-float(probabilities[label]), position[label]))
        result = [(label, float(probabilities[label])) for label in ranked]
        if len(result) >= 2:
            logger.debug("Top prediction: %s = %.3f, second: %s = %.3f",
                         result[0][0], result[0][1], result[1][0], result[1][1])
        self._thresholds.check_ambiguity(probabilities)
        return result

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def last_prediction(self):
        """Most recent raw top-class prediction, accepted or not."""
        with self._lock:
            return self._last_prediction

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                "available": self.is_available,
                "calls": self._calls,
                "rejected": self._rejected,
                "failures": self._failures,
            }

    def shutdown(self, wait: bool = True):
        """Release the inference worker."""
        self._executor.shutdown(wait=wait)
