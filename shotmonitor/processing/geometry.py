"""
ShotMonitor — Geometric Analyzers

Orientation and talking, both read straight off smoothed face landmarks.
Pure classification; the scheduler decides when they run and where the
reading goes.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

from ..core.config import ThresholdConfig, threshold_cfg, scheduler_cfg
from ..core.models import (
    FaceIndex,
    Reading,
    SmoothedLandmarks,
    StatusClass,
    TalkingHysteresis,
    landmark_at,
)

NO_FACE = Reading("NO FACE", StatusClass.BAD)
LANDMARK_ERROR = Reading("ERROR", StatusClass.WARNING)


# ---------------------------------------------------------------------------
# Orientation
# ---------------------------------------------------------------------------

def analyze_orientation(
    landmarks: SmoothedLandmarks,
    cfg: ThresholdConfig = threshold_cfg,
) -> Reading:
    """Compare nose-to-edge distances on both sides of the face."""
    nose = landmark_at(landmarks, FaceIndex.NOSE_TIP)
    left = landmark_at(landmarks, FaceIndex.LEFT_FACE)
    right = landmark_at(landmarks, FaceIndex.RIGHT_FACE)
    if nose is None or left is None or right is None:
        return LANDMARK_ERROR

    nose_to_left = abs(nose.x - left.x)
    nose_to_right = abs(nose.x - right.x)
    diff = abs(nose_to_left - nose_to_right)

    if diff <= cfg.orientation_max_diff:
        return Reading("STRAIGHT", StatusClass.GOOD)
    direction = "LEFT" if nose_to_left > nose_to_right else "RIGHT"
    return Reading(direction, StatusClass.BAD)


# ---------------------------------------------------------------------------
# Talking
# ---------------------------------------------------------------------------

class TalkingAnalyzer:
    """
    Lip-gap talking detector.

    The stored ``hysteresis.is_talking`` flag only flips once the debounce
    window has passed since the previous flip. The returned reading always
    reflects the instantaneous measurement.
    """

    def __init__(
        self,
        cfg: ThresholdConfig = threshold_cfg,
        debounce: float = scheduler_cfg.talking_debounce,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cfg = cfg
        self._debounce = debounce
        self._clock = clock
        self.hysteresis = TalkingHysteresis(last_change=clock())

    def reset(self) -> None:
        self.hysteresis = TalkingHysteresis(last_change=self._clock())

    def analyze(self, landmarks: SmoothedLandmarks, now: Optional[float] = None) -> Reading:
        upper = landmark_at(landmarks, FaceIndex.UPPER_LIP)
        lower = landmark_at(landmarks, FaceIndex.LOWER_LIP)
        if upper is None or lower is None:
            return LANDMARK_ERROR

        distance = abs(upper.y - lower.y)
        raw_talking = distance > self._cfg.talking_lip_gap
        now = self._clock() if now is None else now

        state = self.hysteresis
        if raw_talking != state.is_talking and now - state.last_change >= self._debounce:
            state.is_talking = raw_talking
            state.last_change = now

        if raw_talking:
            return Reading("TALKING", StatusClass.GOOD)
        return Reading("SILENT", StatusClass.WARNING)
