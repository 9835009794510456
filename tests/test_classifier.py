"""
Tests for Single-Frame Classification
=====================================
"""

import sys
import threading
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.errors import ClassifyError, FeatureCountMismatch, InferenceTimeout, ModelUnavailable
from models.probability_model import CallableModel, SoftmaxModel, load_model
from modules.recognition.classifier import SingleFrameClassifier
from modules.recognition.threshold_manager import ConfidenceThresholdManager


WIDTH = 4


def make_classifier(probabilities, labels=None, **config):
    """Classifier around a fixed-output model."""
    cfg = {"feature_width": WIDTH, "inference_timeout_ms": 1000}
    cfg.update(config)
    model = CallableModel(lambda features: probabilities, labels=labels, input_width=WIDTH)
    return SingleFrameClassifier(cfg, model=model)


@pytest.fixture
def features():
    return np.zeros(WIDTH)


class TestClassification:
    """Test suite for classify()/evaluate()."""

    def test_top_class_returned(self, features):
        """Highest probability wins and carries the timestamp."""
        clf = make_classifier({"fist": 0.2, "palm": 0.8})
        record = clf.classify(features, timestamp=12.5)
        assert record.label == "palm"
        assert record.confidence == pytest.approx(0.8)
        assert record.timestamp == 12.5
        clf.shutdown()

    def test_tie_goes_to_declared_label_order(self, features):
        """Equal probabilities resolve to the first label the model declares."""
        clf = make_classifier({"palm": 0.5, "fist": 0.5}, labels=["fist", "palm"])
        assert clf.classify(features).label == "fist"

        clf = make_classifier({"palm": 0.5, "fist": 0.5}, labels=["palm", "fist"])
        assert clf.classify(features).label == "palm"

    def test_tie_without_declared_labels_is_sorted(self, features):
        """Without declared labels ties resolve alphabetically, not by dict order."""
        clf = make_classifier({"zeta": 0.5, "alpha": 0.5})
        assert clf.classify(features).label == "alpha"

    def test_rejection_returns_none_but_tracks_last(self, features):
        """Below-threshold top class yields None; last_prediction still reports it."""
        clf = make_classifier({"fist": 0.3, "palm": 0.25, "ok": 0.45})
        assert clf.classify(features) is None
        assert clf.last_prediction.label == "ok"
        assert clf.stats["rejected"] == 1
        assert clf.stats["calls"] == 1

    def test_evaluate_reports_acceptance(self, features):
        """evaluate() always returns the raw top class."""
        clf = make_classifier({"fist": 0.4, "palm": 0.6})
        record, accepted = clf.evaluate(features)
        assert record.label == "palm" and accepted

    def test_per_class_threshold(self, features):
        """A class-specific threshold gates its label."""
        thresholds = ConfidenceThresholdManager()
        thresholds.load_thresholds({"palm": {"threshold": 0.9}})
        model = CallableModel(lambda f: {"palm": 0.8, "fist": 0.2}, input_width=WIDTH)
        clf = SingleFrameClassifier({"feature_width": WIDTH}, model=model,
                                    threshold_manager=thresholds)
        assert clf.classify(features) is None


class TestClassificationErrors:
    """Test suite for per-frame failures."""

    def test_wrong_width(self):
        """Never truncates or pads: wrong width raises."""
        clf = make_classifier({"fist": 1.0})
        with pytest.raises(FeatureCountMismatch) as exc:
            clf.classify(np.zeros(WIDTH + 1))
        assert exc.value.expected == WIDTH
        assert exc.value.actual == WIDTH + 1

    def test_no_model(self, features):
        """Classifier without a model raises ModelUnavailable."""
        clf = SingleFrameClassifier({"feature_width": WIDTH})
        assert not clf.is_available
        with pytest.raises(ModelUnavailable):
            clf.classify(features)

    def test_missing_model_file(self, tmp_path, features):
        """A missing weights file leaves the classifier unavailable."""
        clf = SingleFrameClassifier({
            "feature_width": WIDTH,
            "model_path": str(tmp_path / "missing.npz"),
        })
        assert not clf.is_available
        with pytest.raises(ModelUnavailable):
            clf.classify(features)

    def test_timeout(self, features):
        """A model slower than the timeout raises InferenceTimeout."""
        release = threading.Event()

        def slow(_features):
            release.wait(2.0)
            return {"fist": 1.0}

        model = CallableModel(slow, input_width=WIDTH)
        clf = SingleFrameClassifier(
            {"feature_width": WIDTH, "inference_timeout_ms": 50}, model=model
        )
        try:
            with pytest.raises(InferenceTimeout):
                clf.classify(features)
            assert clf.stats["failures"] == 1
        finally:
            release.set()
            clf.shutdown()

    def test_model_exception_is_classify_error(self, features):
        """Backend exceptions surface as ClassifyError."""
        def broken(_features):
            raise RuntimeError("boom")

        clf = SingleFrameClassifier({"feature_width": WIDTH},
                                    model=CallableModel(broken, input_width=WIDTH))
        with pytest.raises(ClassifyError):
            clf.classify(features)

    def test_empty_probabilities(self, features):
        """A model returning nothing is an error, not a prediction."""
        clf = make_classifier({})
        with pytest.raises(ClassifyError):
            clf.classify(features)


class TestRanking:
    """Test suite for debug ranking."""

    def test_rank_order(self, features):
        clf = make_classifier({"a": 0.2, "b": 0.5, "c": 0.3}, labels=["a", "b", "c"])
        ranked = clf.rank(features)
        assert [label for label, _ in ranked] == ["b", "c", "a"]


class TestSoftmaxModel:
    """Test suite for the numpy softmax backend."""

    def _save(self, tmp_path):
        path = tmp_path / "model.npz"
        weights = np.array([[1.0, 0.0, 0.0, 0.0],
                            [0.0, 1.0, 0.0, 0.0]])
        np.savez(path, weights=weights, bias=np.zeros(2), labels=np.array(["fist", "palm"]))
        return str(path)

    def test_load_and_predict(self, tmp_path):
        """Saved weights load and produce a normalized distribution."""
        model = load_model(self._save(tmp_path))
        assert model.labels == ("fist", "palm")
        assert model.input_width == 4

        probs = model.predict_proba(np.array([3.0, 0.0, 0.0, 0.0]))
        assert sum(probs.values()) == pytest.approx(1.0)
        assert probs["fist"] > probs["palm"]

    def test_classifier_loads_path(self, tmp_path):
        """model_path in config is loaded at construction."""
        clf = SingleFrameClassifier({
            "feature_width": WIDTH,
            "model_path": self._save(tmp_path),
        })
        assert clf.is_available
        record = clf.classify(np.array([0.0, 4.0, 0.0, 0.0]))
        assert record.label == "palm"

    def test_standardization(self):
        """mean/scale are applied before the linear layer."""
        model = SoftmaxModel(
            weights=[[1.0], [-1.0]], bias=[0.0, 0.0], labels=["up", "down"],
            mean=[10.0], scale=[2.0],
        )
        probs = model.predict_proba([10.0])
        assert probs["up"] == pytest.approx(0.5)

    def test_shape_mismatch_rejected(self):
        with pytest.raises(ValueError):
            SoftmaxModel(weights=[[1.0, 2.0]], bias=[0.0, 0.0], labels=["a", "b"])

    def test_corrupt_file(self, tmp_path):
        """Non-archive file raises ModelUnavailable."""
        path = tmp_path / "model.npz"
        path.write_bytes(b"not a zip")
        with pytest.raises(ModelUnavailable):
            load_model(str(path))
