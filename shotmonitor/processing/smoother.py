"""
ShotMonitor — Landmark Smoother

Keeps the last few raw landmark frames and averages each landmark index
across them to take the jitter out of the geometric analyzers.
The average is recomputed from scratch on every push.
"""

from __future__ import annotations

from collections import deque
from typing import Deque, List, Optional, Tuple

from ..core.config import scheduler_cfg
from ..core.models import Landmark, LandmarkFrame, SmoothedLandmarks


class LandmarkSmoother:
    """Bounded FIFO of landmark frames with a per-index moving average."""

    def __init__(self, history_size: int = scheduler_cfg.landmark_history) -> None:
        self._history: Deque[LandmarkFrame] = deque(maxlen=history_size)
        self._current: SmoothedLandmarks = ()

    @property
    def history(self) -> Tuple[LandmarkFrame, ...]:
        return tuple(self._history)

    def current(self) -> SmoothedLandmarks:
        return self._current

    def push(self, frame: LandmarkFrame) -> SmoothedLandmarks:
        frame = tuple(frame)
        self._history.append(frame)

        smoothed: List[Optional[Landmark]] = []
        for i, raw in enumerate(frame):
            sum_x = sum_y = sum_z = 0.0
            count = 0
            for past in self._history:
                if i < len(past) and past[i] is not None:
                    sum_x += past[i].x
                    sum_y += past[i].y
                    sum_z += past[i].z
                    count += 1
            if count > 0:
                smoothed.append(Landmark(sum_x / count, sum_y / count, sum_z / count))
            else:
                smoothed.append(raw)

        self._current = tuple(smoothed)
        return self._current
