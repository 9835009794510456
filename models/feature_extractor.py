"""
Feature extraction pipeline: 21-point hand landmarks → classifier feature vector.

Converts raw detector landmarks into a normalized, position/scale-invariant
feature vector. The same normalization routine feeds both the recording path
(training data export) and the live prediction path, so the two can never
diverge.

Feature layout (78 dimensions):
    [0:63]   Wrist-centred + scaled landmarks (21 × 3)
    [63:68]  Fingertip-to-wrist distances (thumb, index, middle, ring, pinky)
    [68:78]  Pairwise fingertip distances (10 pairs, fixed order)

All distances are expressed in hand-size units (wrist → middle MCP).
The deployed model usually consumes a 30-value subset selected by
``load_feature_indices``.
"""

import json
import logging
from itertools import combinations

import numpy as np

from core.errors import FeatureCountMismatch, InvalidIndex
from core.types import NUM_LANDMARKS, LandmarkSample, frame_to_array, make_frame
from modules.recording.dataset import sample_features

logger = logging.getLogger(__name__)

# Detector landmark indices (only the ones the features depend on)
WRIST = 0
THUMB_TIP = 4
INDEX_TIP = 8
MIDDLE_MCP = 9
MIDDLE_TIP = 12
RING_TIP = 16
PINKY_TIP = 20

FINGER_TIPS = (THUMB_TIP, INDEX_TIP, MIDDLE_TIP, RING_TIP, PINKY_TIP)
TIP_PAIRS = tuple(combinations(FINGER_TIPS, 2))

FEATURE_DIM = NUM_LANDMARKS * 3 + len(FINGER_TIPS) + len(TIP_PAIRS)

_MIN_HAND_SIZE = 1e-6


def normalize_landmarks(landmarks) -> np.ndarray:
    """Centre landmarks on the wrist and scale by hand size.

    This is the single normalization routine shared by every caller.

    Args:
        landmarks: LandmarkFrame or array-like of shape (21, 3)

    Returns:
        np.ndarray of shape (21, 3), dtype float64
    """
    if isinstance(landmarks, np.ndarray):
        points = landmarks.astype(np.float64, copy=True)
    else:
        points = frame_to_array(tuple(landmarks))

    if points.ndim != 2 or points.shape[0] != NUM_LANDMARKS or points.shape[1] != 3:
        raise FeatureCountMismatch(NUM_LANDMARKS, int(points.shape[0]) if points.ndim else 0)

    wrist = points[WRIST].copy()
    scale = max(float(np.linalg.norm(points[MIDDLE_MCP] - wrist)), _MIN_HAND_SIZE)
    return (points - wrist) / scale


class FeatureExtractor:
    """Converts hand landmarks to the feature vector the classifier expects.

    Owns the selected feature indices (loaded once at startup, reused for
    every frame); there is no process-wide cache.
    """

    def __init__(self, config: dict = None):
        config = config or {}
        self._feature_dim = FEATURE_DIM
        self._selected_indices = None
        indices_file = config.get("indices_file")
        if indices_file:
            try:
                self.load_feature_indices(indices_file)
            except InvalidIndex as e:
                logger.error("Feature selection disabled: %s", e)

    @property
    def feature_dim(self) -> int:
        return self._feature_dim

    @property
    def selected_indices(self):
        """Currently active index subset, or None when disabled."""
        return self._selected_indices

    @property
    def output_dim(self) -> int:
        """Width of vectors produced by prepare_for_prediction()."""
        if self._selected_indices is None:
            return self._feature_dim
        return len(self._selected_indices)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def extract(self, landmarks) -> np.ndarray:
        """Convert a 21-point frame → (78,) feature vector.

        Pure and deterministic: identical input gives a bit-identical output.

        Raises:
            FeatureCountMismatch: frame does not hold 21 landmarks
        """
        normalized = normalize_landmarks(landmarks)
        features = np.empty(self._feature_dim, dtype=np.float64)

        n_coords = NUM_LANDMARKS * 3
        features[0:n_coords] = normalized.reshape(-1)

        # Wrist sits at the origin after normalization
        offset = n_coords
        for i, tip in enumerate(FINGER_TIPS):
            features[offset + i] = np.linalg.norm(normalized[tip])

        offset += len(FINGER_TIPS)
        for i, (a, b) in enumerate(TIP_PAIRS):
            features[offset + i] = np.linalg.norm(normalized[a] - normalized[b])

        return features

    def extract_batch(self, frames) -> np.ndarray:
        """prepare_for_prediction() over a batch → (N, output_dim)."""
        out = np.empty((len(frames), self.output_dim), dtype=np.float64)
        for i, frame in enumerate(frames):
            out[i] = self.prepare_for_prediction(frame)
        return out

    @staticmethod
    def select_subset(vector, indices) -> np.ndarray:
        """Project a feature vector onto an ordered index subset.

        Raises:
            InvalidIndex: any index is negative or >= len(vector)
        """
        vector = np.asarray(vector, dtype=np.float64)
        length = vector.shape[0]
        for idx in indices:
            if idx < 0 or idx >= length:
                raise InvalidIndex(int(idx), length)
        return vector[np.asarray(list(indices), dtype=np.intp)]

    def prepare_for_prediction(self, landmarks) -> np.ndarray:
        """extract() followed by subset selection when indices are loaded."""
        features = self.extract(landmarks)
        if self._selected_indices is None:
            return features
        return self.select_subset(features, self._selected_indices)

    # ------------------------------------------------------------------
    # Feature-index selection file
    # ------------------------------------------------------------------

    def load_feature_indices(self, path: str):
        """Load the index subset the deployed model was trained on.

        Accepts a JSON list or an object with a ``selected_indices`` key.
        On any failure subset selection is disabled until a valid file
        is loaded.

        Raises:
            InvalidIndex: an index falls outside the full feature vector
        """
        self._selected_indices = None
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Feature index file unreadable (%s): %s", path, e)
            return None

        if isinstance(data, dict):
            data = data.get("selected_indices", data.get("indices"))
        if not isinstance(data, list) or not all(isinstance(i, int) for i in data):
            logger.warning("Feature index file %s has no integer index list", path)
            return None

        self.set_feature_indices(data)
        logger.info("Loaded %d selected feature indices from %s", len(data), path)
        return self._selected_indices

    def set_feature_indices(self, indices):
        """Validate and activate an index subset (None disables selection)."""
        if indices is None:
            self._selected_indices = None
            return
        for idx in indices:
            if idx < 0 or idx >= self._feature_dim:
                self._selected_indices = None
                raise InvalidIndex(int(idx), self._feature_dim)
        self._selected_indices = tuple(int(i) for i in indices)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def verify_consistency(self, landmarks) -> bool:
        """Check a frame gives the same vector live and after a sample-store round trip.

        The recorded copy goes through LandmarkSample serialization and the
        dataset export path; both results must be bit-identical.
        """
        live = self.prepare_for_prediction(landmarks)
        stored = LandmarkSample.from_dict(LandmarkSample("_", make_frame(landmarks)).to_dict())
        recorded = sample_features(stored, self)
        consistent = live.shape == recorded.shape and live.tobytes() == recorded.tobytes()
        if not consistent:
            logger.warning("Recorded and live feature vectors differ for the check frame")
        return consistent
