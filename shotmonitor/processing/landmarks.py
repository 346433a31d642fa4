"""
ShotMonitor — MediaPipe Landmark Detector

Face Mesh in a single-worker thread pool (CPU-heavy work off the event
loop). Returns the first face only, as normalized Landmark points.
"""

from __future__ import annotations

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional

import numpy as np

from ..core.models import Frame, Landmark, LandmarkFrame

try:
    import mediapipe as mp
except ImportError:
    mp = None  # type: ignore[assignment]

logger = logging.getLogger("shotmonitor.landmarks")


class MediaPipeLandmarkDetector:
    """Implements the LandmarkDetector protocol with MediaPipe Face Mesh."""

    def __init__(
        self,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
    ) -> None:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="face-mesh")
        self._min_detection_confidence = min_detection_confidence
        self._min_tracking_confidence = min_tracking_confidence
        self._face_mesh: Any = None
        self._initialized = False

        self.inference_count: int = 0
        self.last_inference_ms: float = 0.0

    @property
    def available(self) -> bool:
        return mp is not None

    def initialize(self) -> None:
        if self._initialized:
            return
        if mp is None:
            raise RuntimeError("MediaPipe is not installed")
        self._face_mesh = mp.solutions.face_mesh.FaceMesh(
            static_image_mode=False,
            max_num_faces=1,
            refine_landmarks=True,
            min_detection_confidence=self._min_detection_confidence,
            min_tracking_confidence=self._min_tracking_confidence,
        )
        self._initialized = True
        logger.info("MediaPipe Face Mesh loaded")

    async def detect(self, frame: Frame) -> Optional[LandmarkFrame]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self._detect_sync, frame.pixels)

    def _detect_sync(self, frame_rgb: np.ndarray) -> Optional[LandmarkFrame]:
        self.initialize()
        t0 = time.perf_counter()

        result = self._face_mesh.process(np.ascontiguousarray(frame_rgb[..., :3]))

        self.last_inference_ms = round((time.perf_counter() - t0) * 1000, 1)
        self.inference_count += 1

        if not result.multi_face_landmarks:
            return None
        points = result.multi_face_landmarks[0].landmark
        return tuple(Landmark(p.x, p.y, p.z or 0.0) for p in points)

    def close(self) -> None:
        self._executor.shutdown(wait=False)
        if self._face_mesh:
            self._face_mesh.close()
        logger.info("MediaPipe landmark detector closed")
