"""
ShotMonitor — Data Models

Dataclasses for every piece of data flowing through the monitor.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np


# ---------------------------------------------------------------------------
# Monitor identity + severity
# ---------------------------------------------------------------------------

class MonitorKey(str, Enum):
    """Closed set of monitors shown on the dashboard."""
    ORIENTATION = "orientation"
    TALKING = "talking"
    FOCUS = "focus"
    LIGHTING = "lighting"
    PRESENCE = "presence"
    COMPOSITION = "composition"
    SCENE_CONTEXT = "sceneContext"


# Monitors fed by the landmark pass
LANDMARK_MONITORS: Tuple[MonitorKey, ...] = (
    MonitorKey.ORIENTATION,
    MonitorKey.TALKING,
    MonitorKey.FOCUS,
)

# Monitors fed by the shared detect call
DETECT_MONITORS: Tuple[MonitorKey, ...] = (
    MonitorKey.PRESENCE,
    MonitorKey.COMPOSITION,
)


class StatusClass(str, Enum):
    """Coarse severity bucket driving the card colour."""
    GOOD = "good"
    WARNING = "warning"
    BAD = "bad"
    DISABLED = "disabled"
    OFF = "off"


# ---------------------------------------------------------------------------
# Landmarks
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Landmark:
    """Normalized [0, 1] image coordinate; z is optional depth."""
    x: float
    y: float
    z: float = 0.0


# One detector callback worth of points. ``None`` marks an index the
# detector did not define in this frame.
LandmarkFrame = Tuple[Optional[Landmark], ...]
SmoothedLandmarks = Tuple[Optional[Landmark], ...]


class FaceIndex:
    """MediaPipe Face Mesh indices the analyzers read."""
    NOSE_TIP = 1
    LEFT_FACE = 234
    RIGHT_FACE = 454
    UPPER_LIP = 13
    LOWER_LIP = 14
    LEFT_EYE = 33
    RIGHT_EYE = 263


def landmark_at(landmarks: SmoothedLandmarks, index: int) -> Optional[Landmark]:
    """Index lookup that treats out-of-range as missing."""
    if 0 <= index < len(landmarks):
        return landmarks[index]
    return None


# ---------------------------------------------------------------------------
# Frames + detections
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Frame:
    """A captured still or video frame as an H×W×3 RGB uint8 array."""
    pixels: np.ndarray
    timestamp: float = field(default_factory=time.time)

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])


@dataclass(frozen=True)
class DetectionBox:
    """Bounding box returned by the remote detect call, normalized [0, 1]."""
    x_min: float
    y_min: float
    x_max: float
    y_max: float

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "DetectionBox":
        return cls(
            x_min=float(raw["x_min"]),
            y_min=float(raw["y_min"]),
            x_max=float(raw["x_max"]),
            y_max=float(raw["y_max"]),
        )

    @property
    def width(self) -> float:
        return self.x_max - self.x_min

    @property
    def height(self) -> float:
        return self.y_max - self.y_min

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x_min + self.x_max) / 2, (self.y_min + self.y_max) / 2


# ---------------------------------------------------------------------------
# Analyzer output + per-monitor state
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Reading:
    """What one analyzer pass decided: status text + severity."""
    status: str
    status_class: StatusClass


@dataclass
class MonitorState:
    key: MonitorKey
    enabled: bool = True
    status: str = "N/A"
    status_class: StatusClass = StatusClass.DISABLED

    @property
    def display_class(self) -> StatusClass:
        """Card treatment: a switched-off monitor is greyed out regardless of status."""
        return self.status_class if self.enabled else StatusClass.OFF

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key.value,
            "enabled": self.enabled,
            "status": self.status,
            "status_class": self.status_class.value,
            "display_class": self.display_class.value,
        }


@dataclass
class TalkingHysteresis:
    """Stored talking flag; flips are debounced, display is not."""
    is_talking: bool = False
    last_change: float = field(default_factory=time.monotonic)


@dataclass
class ThrottleClock:
    last_remote_call: float = float("-inf")


# ---------------------------------------------------------------------------
# Session telemetry
# ---------------------------------------------------------------------------

@dataclass
class MonitorTelemetry:
    """Per-session counters, returned by stop() and shown on the dashboard."""
    session_id: str = ""
    cycles_run: int = 0
    landmark_passes: int = 0
    landmark_passes_skipped: int = 0
    landmark_results: int = 0
    remote_batches: int = 0
    remote_failures: int = 0
    stale_results_dropped: int = 0
    phase: str = "idle"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
