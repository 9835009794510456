"""
Tests for Detector Input Adapters and Events
============================================
"""

import json
import sys
from pathlib import Path
from types import SimpleNamespace

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.events import EventBus, Events
from core.types import LandmarkPoint
from modules.capture.landmark_source import (
    detection_from_mediapipe, frame_from_mediapipe, parse_detection, read_detection_stream,
)


def mp_hand(n=21):
    """Object shaped like a MediaPipe NormalizedLandmarkList."""
    return SimpleNamespace(landmark=[SimpleNamespace(x=0.1 * (i % 10), y=0.5, z=0.0)
                                     for i in range(n)])


class TestMediaPipeAdapter:
    """Test suite for detector result conversion."""

    def test_frame_from_landmark_list(self):
        frame = frame_from_mediapipe(mp_hand())
        assert len(frame) == 21
        assert frame[3] == LandmarkPoint(0.1 * 3, 0.5, 0.0)

    def test_solutions_api_result(self):
        result = SimpleNamespace(multi_hand_landmarks=[mp_hand(), mp_hand()])
        detection = detection_from_mediapipe(result, 640, 480, timestamp=2.0)
        assert len(detection.hands) == 2
        assert detection.width == 640
        assert detection.timestamp == 2.0
        assert len(detection.primary_hand) == 21

    def test_tasks_api_result(self):
        hand = [SimpleNamespace(x=0.5, y=0.5, z=0.1)] * 21
        result = SimpleNamespace(hand_landmarks=[hand])
        assert detection_from_mediapipe(result).primary_hand[0].z == 0.1

    def test_no_hands(self):
        detection = detection_from_mediapipe(SimpleNamespace(multi_hand_landmarks=None))
        assert detection.primary_hand is None


class TestReplayStream:
    """Test suite for JSON-lines replay files."""

    def test_parse_detection(self):
        record = {"timestamp": 3.5, "width": 320, "orientation": "left",
                  "hands": [[{"x": 0.1, "y": 0.2, "z": 0.3}] * 21]}
        detection = parse_detection(record)
        assert detection.timestamp == 3.5
        assert detection.orientation == "left"
        assert detection.primary_hand[0] == LandmarkPoint(0.1, 0.2, 0.3)

    def test_bad_lines_skipped(self, tmp_path):
        path = tmp_path / "stream.jsonl"
        good = json.dumps({"timestamp": 1.0, "hands": []})
        path.write_text("\n".join([good, "{oops", "", good]) + "\n")
        frames = list(read_detection_stream(str(path)))
        assert len(frames) == 2


class TestEventBus:
    """Test suite for EventBus."""

    def test_priority_order(self):
        bus = EventBus()
        calls = []
        bus.subscribe(Events.STABLE_GESTURE, lambda **kw: calls.append("low"), priority=0)
        bus.subscribe(Events.STABLE_GESTURE, lambda **kw: calls.append("high"), priority=5)
        bus.emit(Events.STABLE_GESTURE, result=None)
        assert calls == ["high", "low"]

    def test_failing_listener_isolated(self):
        bus = EventBus()
        calls = []

        def broken(**kwargs):
            raise RuntimeError("listener bug")

        bus.subscribe(Events.HAND_LOST, broken, priority=1)
        bus.subscribe(Events.HAND_LOST, lambda **kw: calls.append(kw))
        bus.emit(Events.HAND_LOST, result="r")
        assert calls == [{"result": "r"}]

    def test_unsubscribe_and_disable(self):
        bus = EventBus()
        calls = []
        handler = lambda **kw: calls.append(1)  # noqa: E731
        bus.subscribe(Events.SAMPLE_SAVED, handler)
        bus.set_enabled(False)
        bus.emit(Events.SAMPLE_SAVED)
        bus.set_enabled(True)
        bus.unsubscribe(Events.SAMPLE_SAVED, handler)
        bus.emit(Events.SAMPLE_SAVED)
        assert calls == []
        assert bus.listener_count == 0

    def test_history(self):
        bus = EventBus(max_history=2)
        for name in (Events.HAND_LOST, Events.SAMPLE_SAVED, Events.STABLE_GESTURE):
            bus.emit(name, result=None)
        history = bus.get_history()
        assert [h["event"] for h in history] == [Events.SAMPLE_SAVED, Events.STABLE_GESTURE]
        assert history[0]["data_keys"] == ["result"]
