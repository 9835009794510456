"""
Input boundary adapters: detector output → DetectionFrame.

The hand-detection model is an external collaborator. These helpers convert
its per-frame output (MediaPipe-style objects) or a recorded JSON-lines
stream into DetectionFrames the pipeline consumes.

Replay file format, one JSON object per line::

    {"timestamp": 12.034, "width": 640, "height": 480, "orientation": "up",
     "hands": [[{"x": 0.5, "y": 0.6, "z": 0.0}, ...21 points...]]}
"""

import json
import logging

from core.types import DetectionFrame, LandmarkPoint, make_frame

logger = logging.getLogger(__name__)


def frame_from_mediapipe(hand_landmarks):
    """Convert one detected hand to a LandmarkFrame.

    Accepts a legacy ``NormalizedLandmarkList`` (``.landmark`` attribute) or a
    plain list of objects exposing x/y/z, as the tasks API returns.
    """
    points = getattr(hand_landmarks, "landmark", hand_landmarks)
    return tuple(LandmarkPoint(float(lm.x), float(lm.y), float(getattr(lm, "z", 0.0)))
                 for lm in points)


def detection_from_mediapipe(result, width: int = 0, height: int = 0,
                             orientation: str = "up", timestamp: float = None):
    """Build a DetectionFrame from a detector result object.

    Looks for ``multi_hand_landmarks`` (solutions API) then ``hand_landmarks``
    (tasks API); a result without hands yields an empty frame.
    """
    hands = getattr(result, "multi_hand_landmarks", None)
    if hands is None:
        hands = getattr(result, "hand_landmarks", None)
    hands = hands or []
    return DetectionFrame(
        hands=[frame_from_mediapipe(h) for h in hands],
        width=width, height=height, orientation=orientation, timestamp=timestamp,
    )


def parse_detection(record: dict) -> DetectionFrame:
    """Build a DetectionFrame from one decoded replay record."""
    return DetectionFrame(
        hands=[make_frame(hand) for hand in record.get("hands", [])],
        width=int(record.get("width", 0)),
        height=int(record.get("height", 0)),
        orientation=record.get("orientation", "up"),
        timestamp=record.get("timestamp"),
    )


def read_detection_stream(path: str):
    """Yield DetectionFrames from a JSON-lines replay file.

    Malformed lines are logged and skipped.
    """
    with open(path, "r") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield parse_detection(json.loads(line))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning("Skipping line %d of %s: %s", line_no, path, e)
