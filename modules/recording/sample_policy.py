"""
Sample acceptance policy for supervised recording.

Keeps the training set free of occluded frames and near-duplicates:

    1. presence proxy (share of landmarks inside the unit square) must reach
       min_hand_presence
    2. at least min_visible_landmarks points must be inside the unit square
    3. no previous sample to compare with → accept
    4. otherwise the mean per-point 3D distance to the last saved frame must
       reach min_frame_distance

Frames with a different landmark count than the previous sample are at
infinite distance and always pass step 4.
"""

import math
import logging

import numpy as np

from core.types import AcceptanceDecision, frame_to_array

logger = logging.getLogger(__name__)


def presence_proxy(frame) -> float:
    """Fraction of landmarks whose x and y both lie in [0, 1]."""
    if len(frame) == 0:
        return 0.0
    inside = sum(1 for p in frame if p.in_frame)
    return min(inside / len(frame), 1.0)


def visible_count(frame) -> int:
    """Number of landmarks whose x and y both lie in [0, 1]."""
    return sum(1 for p in frame if p.in_frame)


def mean_distance(a, b) -> float:
    """Mean 3D Euclidean distance between matching landmarks.

    Returns math.inf when the frames differ in length or are empty.
    """
    if len(a) != len(b) or len(a) == 0:
        return math.inf
    diff = frame_to_array(a) - frame_to_array(b)
    return float(np.linalg.norm(diff, axis=1).mean())


class SampleAcceptancePolicy:
    """Decides whether a recorded frame is worth persisting."""

    def __init__(self, config: dict = None):
        config = config or {}
        self._min_presence = float(config.get("min_hand_presence", 0.5))
        self._min_visible = int(config.get("min_visible_landmarks", 5))
        self._distance_threshold = float(config.get("min_frame_distance", 0.02))

    @property
    def distance_threshold(self) -> float:
        return self._distance_threshold

    def evaluate(self, frame, last_saved=None) -> AcceptanceDecision:
        """Full decision with the values that drove it."""
        presence = presence_proxy(frame)
        if presence < self._min_presence:
            logger.debug("Rejected: presence %.3f < %.2f", presence, self._min_presence)
            return AcceptanceDecision(False, "low_presence", presence=presence)

        visible = visible_count(frame)
        if visible < self._min_visible:
            logger.debug("Rejected: only %d visible landmarks (< %d)", visible, self._min_visible)
            return AcceptanceDecision(False, "too_few_visible", presence=presence, visible=visible)

        if last_saved is None:
            return AcceptanceDecision(True, "first_sample", presence=presence, visible=visible)

        distance = mean_distance(frame, last_saved)
        if distance >= self._distance_threshold:
            return AcceptanceDecision(True, "novel", presence=presence,
                                      visible=visible, distance=distance)

        logger.debug("Rejected: mean distance %.4f < %.4f", distance, self._distance_threshold)
        return AcceptanceDecision(False, "too_similar", presence=presence,
                                  visible=visible, distance=distance)

    def should_save(self, frame, last_saved=None) -> bool:
        return self.evaluate(frame, last_saved).accepted
