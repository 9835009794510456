"""
Shared domain types for the gesture stream pipeline.

Centralizes the value objects passed between the feature extractor,
classifier, temporal smoother and the recording path so that no module
has to import another just for a data container.
"""

import time
from dataclasses import dataclass, field
from typing import Optional, Tuple, Sequence, Dict, Any

import numpy as np


# Number of anatomical landmarks reported per hand by the detector
NUM_LANDMARKS = 21


# =============================================================================
# Landmarks
# =============================================================================

@dataclass(frozen=True)
class LandmarkPoint:
    """Normalized (x, y, z) landmark; x/y are typically in [0, 1]."""
    x: float
    y: float
    z: float = 0.0

    @property
    def in_frame(self) -> bool:
        """True when both x and y lie inside the unit square."""
        return 0.0 <= self.x <= 1.0 and 0.0 <= self.y <= 1.0

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LandmarkPoint":
        return cls(float(data["x"]), float(data["y"]), float(data.get("z", 0.0)))


# One hand in one frame, ordered by landmark index
LandmarkFrame = Tuple[LandmarkPoint, ...]


def make_frame(points: Sequence) -> LandmarkFrame:
    """Build a LandmarkFrame from LandmarkPoints, dicts or (x, y, z) rows."""
    frame = []
    for p in points:
        if isinstance(p, LandmarkPoint):
            frame.append(p)
        elif isinstance(p, dict):
            frame.append(LandmarkPoint.from_dict(p))
        else:
            x, y, *rest = p
            frame.append(LandmarkPoint(float(x), float(y), float(rest[0]) if rest else 0.0))
    return tuple(frame)


def frame_to_array(frame: LandmarkFrame) -> np.ndarray:
    """Convert a LandmarkFrame to an (N, 3) float64 array."""
    if len(frame) == 0:
        return np.zeros((0, 3), dtype=np.float64)
    return np.array([(p.x, p.y, p.z) for p in frame], dtype=np.float64)


# =============================================================================
# Predictions
# =============================================================================

@dataclass(frozen=True)
class PredictionRecord:
    """Single-frame classifier output."""
    label: str
    confidence: float
    timestamp: float = field(default_factory=time.monotonic)

    def __repr__(self):
        return "PredictionRecord(%s, conf=%.2f)" % (self.label, self.confidence)


@dataclass(frozen=True)
class StablePrediction:
    """Temporal smoother output.

    ``via`` names the branch that produced it: ``fast_path``, ``warmup``
    or ``consensus``.
    """
    label: str
    confidence: float
    via: str = "consensus"


@dataclass(frozen=True)
class SmoothingConfig:
    """Immutable snapshot of temporal smoothing parameters."""
    time_window: float = 1.5
    min_confidence_threshold: float = 0.5
    min_stable_frames: int = 2
    required_consensus_ratio: float = 0.5
    max_history: int = 50
    high_confidence_cutoff: float = 0.85

    def __post_init__(self):
        if not 0.0 < self.required_consensus_ratio <= 1.0:
            raise ValueError("required_consensus_ratio must be in (0, 1], got %r"
                             % self.required_consensus_ratio)
        if self.time_window <= 0:
            raise ValueError("time_window must be positive, got %r" % self.time_window)
        if self.max_history < 1:
            raise ValueError("max_history must be >= 1, got %r" % self.max_history)

    @classmethod
    def from_dict(cls, config: dict) -> "SmoothingConfig":
        """Create config from the ``temporal`` config section."""
        return cls(
            time_window=float(config.get("time_window", 1.5)),
            min_confidence_threshold=float(config.get("min_confidence_threshold", 0.5)),
            min_stable_frames=int(config.get("min_stable_frames", 2)),
            required_consensus_ratio=float(config.get("required_consensus_ratio", 0.5)),
            max_history=int(config.get("max_history", 50)),
            high_confidence_cutoff=float(config.get("high_confidence_cutoff", 0.85)),
        )


# =============================================================================
# Recording
# =============================================================================

@dataclass(frozen=True)
class LandmarkSample:
    """A labeled landmark frame captured during supervised recording."""
    label: str
    landmarks: LandmarkFrame

    def to_dict(self) -> dict:
        return {"label": self.label, "landmarks": [p.to_dict() for p in self.landmarks]}

    @classmethod
    def from_dict(cls, data: dict) -> "LandmarkSample":
        return cls(str(data["label"]), make_frame(data["landmarks"]))


@dataclass(frozen=True)
class AcceptanceDecision:
    """Why a recorded frame was (not) kept."""
    accepted: bool
    reason: str
    presence: float = 0.0
    visible: int = 0
    distance: Optional[float] = None

    def __bool__(self):
        return self.accepted


# =============================================================================
# Pipeline boundary
# =============================================================================

class DetectionFrame:
    """One detector callback: zero or more hands plus frame metadata.

    Uses __slots__ since one is created per camera frame.
    """

    __slots__ = ("hands", "width", "height", "orientation", "timestamp")

    def __init__(self, hands: Sequence[LandmarkFrame] = (), width: int = 0,
                 height: int = 0, orientation: str = "up",
                 timestamp: Optional[float] = None):
        self.hands = tuple(hands)
        self.width = width
        self.height = height
        self.orientation = orientation
        self.timestamp = time.monotonic() if timestamp is None else timestamp

    @property
    def primary_hand(self) -> Optional[LandmarkFrame]:
        """First detected hand; the pipeline ignores the rest."""
        return self.hands[0] if self.hands else None

    def __repr__(self):
        return "DetectionFrame(hands=%d, t=%.3f)" % (len(self.hands), self.timestamp)


class PipelineResult:
    """Result of a single pipeline iteration, delivered to consumers."""

    __slots__ = (
        "sequence", "timestamp", "mode", "hand_detected",
        "prediction", "raw_prediction", "discarded",
        "sample_saved", "decision", "error", "latency_ms",
    )

    def __init__(self, sequence: int = 0, timestamp: float = 0.0, mode: str = "predict"):
        self.sequence = sequence
        self.timestamp = timestamp
        self.mode = mode
        self.hand_detected = False
        self.prediction: Optional[StablePrediction] = None
        self.raw_prediction: Optional[PredictionRecord] = None
        self.discarded = False
        self.sample_saved = False
        self.decision: Optional[AcceptanceDecision] = None
        self.error: Optional[str] = None
        self.latency_ms = 0.0

    @property
    def label(self) -> Optional[str]:
        return self.prediction.label if self.prediction else None

    @property
    def confidence(self) -> float:
        return self.prediction.confidence if self.prediction else 0.0

    def __repr__(self):
        return "PipelineResult(#%d, %s, %s)" % (self.sequence, self.mode, self.prediction)
