"""
Error taxonomy for the gesture stream pipeline.

Per-frame errors (extraction, classification) are caught by the pipeline and
turned into "no prediction" for that frame. Load-time errors (metrics, feature
indices) degrade to safe defaults. Persistence errors reach the caller but
never roll back the in-memory sample collection.
"""


class GestureStreamError(Exception):
    """Base class for all pipeline errors."""


# =============================================================================
# Classification
# =============================================================================

class ClassifyError(GestureStreamError):
    """A single frame could not be classified."""


class FeatureCountMismatch(ClassifyError):
    """Feature vector (or landmark frame) has the wrong length."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__("Expected %d features, but got %d" % (expected, actual))


class ModelUnavailable(ClassifyError):
    """The probability model failed to load or was never configured."""


class InferenceTimeout(ClassifyError):
    """Model inference did not complete within the configured timeout."""

    def __init__(self, timeout_s: float):
        self.timeout_s = timeout_s
        super().__init__("Model inference exceeded %.0f ms" % (timeout_s * 1000))


# =============================================================================
# Load-time / persistence
# =============================================================================

class InvalidIndex(GestureStreamError):
    """Feature-index selection references a position outside the vector."""

    def __init__(self, index: int, length: int):
        self.index = index
        self.length = length
        super().__init__("Feature index %d out of range for vector of length %d"
                         % (index, length))


class PersistenceError(GestureStreamError):
    """Reading or writing the sample file failed."""


class MetricsLoadError(GestureStreamError):
    """Metrics document is missing or malformed."""
