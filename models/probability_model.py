"""
Model boundary: feature vector → per-class probability mapping.

The pipeline treats the trained classifier as a black box. Anything with a
``labels`` sequence and a ``predict_proba(features) -> {label: p}`` method
can be plugged in:

    - SoftmaxModel:  numpy linear/softmax weights exported to ``.npz``
    - CallableModel: wraps any function returning a label → probability dict

``labels`` declares the stable class order used for tie-breaking.
"""

import os
import logging

import numpy as np

from core.errors import ModelUnavailable

logger = logging.getLogger(__name__)


class ProbabilityModel:
    """Interface for classifier backends."""

    labels = ()
    input_width = None

    def predict_proba(self, features) -> dict:
        raise NotImplementedError


class SoftmaxModel(ProbabilityModel):
    """Multinomial logistic regression evaluated with numpy.

    Weights file (``np.savez``) keys:
        weights: (n_classes, n_features)
        bias:    (n_classes,)
        labels:  (n_classes,) class names, in training label order
        mean, scale: optional standardization applied before the dot product
    """

    def __init__(self, weights, bias, labels, mean=None, scale=None):
        self._weights = np.asarray(weights, dtype=np.float64)
        self._bias = np.asarray(bias, dtype=np.float64)
        self.labels = tuple(str(label) for label in labels)

        if self._weights.ndim != 2 or self._weights.shape[0] != len(self.labels):
            raise ValueError("weights shape %s does not match %d labels"
                             % (self._weights.shape, len(self.labels)))
        if self._bias.shape != (len(self.labels),):
            raise ValueError("bias shape %s does not match %d labels"
                             % (self._bias.shape, len(self.labels)))

        self.input_width = self._weights.shape[1]
        self._mean = None if mean is None else np.asarray(mean, dtype=np.float64)
        self._scale = None if scale is None else np.asarray(scale, dtype=np.float64)

    @classmethod
    def load(cls, path: str) -> "SoftmaxModel":
        with np.load(path, allow_pickle=False) as data:
            return cls(
                weights=data["weights"],
                bias=data["bias"],
                labels=[str(label) for label in data["labels"]],
                mean=data["mean"] if "mean" in data.files else None,
                scale=data["scale"] if "scale" in data.files else None,
            )

    def predict_proba(self, features) -> dict:
        x = np.asarray(features, dtype=np.float64)
        if self._mean is not None:
            x = x - self._mean
        if self._scale is not None:
            x = x / np.where(self._scale == 0, 1.0, self._scale)

        logits = self._weights @ x + self._bias
        logits = logits - logits.max()
        exp = np.exp(logits)
        probs = exp / exp.sum()
        return {label: float(p) for label, p in zip(self.labels, probs)}


class CallableModel(ProbabilityModel):
    """Adapts a plain function ``features -> {label: probability}``."""

    def __init__(self, fn, labels=None, input_width=None):
        self._fn = fn
        self.labels = tuple(labels) if labels else ()
        self.input_width = input_width

    def predict_proba(self, features) -> dict:
        return dict(self._fn(features))


def load_model(path: str) -> ProbabilityModel:
    """Load a probability model from disk.

    Raises:
        ModelUnavailable: file missing or not a valid weights archive
    """
    if not path or not os.path.isfile(path):
        raise ModelUnavailable("Model file not found: %s" % path)

    try:
        model = SoftmaxModel.load(path)
    except (OSError, KeyError, ValueError) as e:
        raise ModelUnavailable("Model load failed (%s): %s" % (path, e)) from e

    logger.info("Model loaded: %s (%d classes, %d features)",
                path, len(model.labels), model.input_width)
    return model
