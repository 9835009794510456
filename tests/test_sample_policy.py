"""
Tests for Sample Acceptance
===========================
"""

import math
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.types import make_frame
from modules.recording.sample_policy import (
    SampleAcceptancePolicy, mean_distance, presence_proxy, visible_count,
)


@pytest.fixture
def policy():
    return SampleAcceptancePolicy({
        "min_hand_presence": 0.5,
        "min_visible_landmarks": 5,
        "min_frame_distance": 0.02,
    })


def partially_outside(inside: int, total: int = 21):
    """Frame with ``inside`` points in the unit square and the rest off-screen."""
    points = [(0.5, 0.5, 0.0)] * inside + [(1.5, 0.5, 0.0)] * (total - inside)
    return make_frame(points)


class TestMeasures:
    """Test suite for presence, visibility and distance helpers."""

    def test_presence_proxy(self):
        assert presence_proxy(partially_outside(21)) == 1.0
        assert presence_proxy(partially_outside(7)) == pytest.approx(7 / 21)
        assert presence_proxy(()) == 0.0

    def test_visible_count_boundaries(self):
        """Points on the unit-square edge count as visible."""
        frame = make_frame([(0.0, 0.0), (1.0, 1.0), (-0.01, 0.5), (0.5, 1.01)])
        assert visible_count(frame) == 2

    def test_mean_distance(self):
        """Average of per-point 3D distances."""
        a = make_frame([(0.0, 0.0, 0.0), (0.0, 0.0, 0.0)])
        b = make_frame([(0.3, 0.4, 0.0), (0.0, 0.0, 0.0)])
        assert mean_distance(a, b) == pytest.approx(0.25)

    def test_mean_distance_count_mismatch(self, make_hand):
        """Different landmark counts are infinitely far apart."""
        assert mean_distance(make_hand(count=21), make_hand(count=20)) == math.inf


class TestSampleAcceptancePolicy:
    """Test suite for the save/skip decision."""

    def test_first_sample_always_accepted(self, policy, hand_frame):
        decision = policy.evaluate(hand_frame, None)
        assert decision.accepted
        assert decision.reason == "first_sample"

    def test_identical_frame_rejected(self, policy, hand_frame):
        """Distance 0 never passes a positive threshold."""
        decision = policy.evaluate(hand_frame, hand_frame)
        assert not decision.accepted
        assert decision.reason == "too_similar"
        assert decision.distance == 0.0

    def test_novel_frame_accepted(self, policy, make_hand):
        decision = policy.evaluate(make_hand(offset=0.05), make_hand())
        assert decision.accepted
        assert decision.reason == "novel"
        assert decision.distance >= policy.distance_threshold

    def test_small_motion_rejected(self, policy, make_hand):
        assert not policy.should_save(make_hand(offset=0.001), make_hand())

    def test_count_mismatch_accepted(self, policy, make_hand):
        """Mismatched counts are accepted instead of raising."""
        decision = policy.evaluate(make_hand(count=21), make_hand(count=15))
        assert decision.accepted
        assert decision.distance == math.inf

    def test_low_presence_rejected(self, policy):
        """Most of the hand off-screen fails the presence check."""
        decision = policy.evaluate(partially_outside(6), None)
        assert not decision.accepted
        assert decision.reason == "low_presence"

    def test_too_few_visible_rejected(self):
        """A tiny frame can pass presence but not the visible count."""
        policy = SampleAcceptancePolicy({"min_hand_presence": 0.5, "min_visible_landmarks": 5})
        decision = policy.evaluate(partially_outside(3, total=4), None)
        assert not decision.accepted
        assert decision.reason == "too_few_visible"
        assert decision.visible == 3

    def test_decision_is_truthy(self, policy, hand_frame):
        assert policy.evaluate(hand_frame)
        assert not policy.evaluate(hand_frame, hand_frame)
