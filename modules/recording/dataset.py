"""
Training-set export for recorded samples.

Converts stored LandmarkSamples into an (N, D) feature matrix with the same
FeatureExtractor the live classifier uses, so training features and
inference features come from one normalization path.
"""

import logging

import numpy as np

from core.errors import FeatureCountMismatch
from core.types import NUM_LANDMARKS
from modules.utils.logger import log_timing

logger = logging.getLogger(__name__)


def sample_features(sample, extractor) -> np.ndarray:
    """Feature vector for one recorded sample."""
    return extractor.prepare_for_prediction(sample.landmarks)


@log_timing
def build_training_matrix(samples, extractor, skip_invalid: bool = True):
    """Turn samples into (X, labels).

    Args:
        samples: iterable of LandmarkSample
        extractor: FeatureExtractor shared with the prediction path
        skip_invalid: drop samples with a wrong landmark count instead of raising

    Returns:
        (np.ndarray of shape (N, D), list of N labels)
    """
    frames = []
    labels = []
    skipped = 0
    for sample in samples:
        if len(sample.landmarks) != NUM_LANDMARKS:
            if not skip_invalid:
                raise FeatureCountMismatch(NUM_LANDMARKS, len(sample.landmarks))
            skipped += 1
            continue
        frames.append(sample.landmarks)
        labels.append(sample.label)

    if skipped:
        logger.warning("Skipped %d samples with unexpected landmark count", skipped)
    return extractor.extract_batch(frames), labels


def export_training_set(samples, extractor, path: str) -> int:
    """Write (X, labels) to a compressed .npz file; returns the row count."""
    X, labels = build_training_matrix(samples, extractor)
    np.savez_compressed(path, X=X, labels=np.array(labels, dtype=str),
                        feature_indices=np.array(extractor.selected_indices or (), dtype=np.intp))
    logger.info("Exported %d samples (%d features) to %s", X.shape[0], X.shape[1], path)
    return X.shape[0]
