"""
Synthetic faces, frames and collaborators for monitor tests.

Landmarks follow MediaPipe Face Mesh indexing (478 points with refined
irises) in normalized coordinates. Frames are RGB uint8 arrays: a flat
mid-grey background, optionally with a high-contrast checkerboard around
the face centre so the focus patch is sharp.
"""

import asyncio
from typing import List, Optional

import numpy as np

from shotmonitor.core.models import DetectionBox, FaceIndex, Frame, Landmark

NUM_LANDMARKS = 478
FRAME_W, FRAME_H = 640, 480


def make_landmarks(
    nose_x: float = 0.5,
    left_x: float = 0.35,
    right_x: float = 0.65,
    lip_gap: float = 0.01,
    count: int = NUM_LANDMARKS,
):
    """Front-facing face centred in frame; mouth closed unless lip_gap is large."""
    points = [Landmark(0.5, 0.5, 0.0)] * count

    def put(index, x, y):
        if index < count:
            points[index] = Landmark(x, y, 0.0)

    put(FaceIndex.NOSE_TIP, nose_x, 0.52)
    put(FaceIndex.LEFT_FACE, left_x, 0.5)
    put(FaceIndex.RIGHT_FACE, right_x, 0.5)
    put(FaceIndex.UPPER_LIP, 0.5, 0.6)
    put(FaceIndex.LOWER_LIP, 0.5, 0.6 + lip_gap)
    put(FaceIndex.LEFT_EYE, 0.45, 0.45)
    put(FaceIndex.RIGHT_EYE, 0.55, 0.45)
    return tuple(points)


def make_pixels(
    brightness: int = 128,
    sharp: bool = True,
    width: int = FRAME_W,
    height: int = FRAME_H,
) -> np.ndarray:
    pixels = np.full((height, width, 3), brightness, dtype=np.uint8)
    if sharp:
        # 4 px checkerboard over the eye/nose region of make_landmarks()
        ys, xs = np.mgrid[180:270, 280:360]
        board = (((xs // 4) + (ys // 4)) % 2 * 255).astype(np.uint8)
        pixels[180:270, 280:360] = board[..., None]
    return pixels


def make_frame(brightness: int = 128, sharp: bool = True, width: int = FRAME_W, height: int = FRAME_H) -> Frame:
    return Frame(pixels=make_pixels(brightness, sharp, width, height))


def centered_face_box() -> DetectionBox:
    return DetectionBox(x_min=0.4, y_min=0.35, x_max=0.6, y_max=0.65)


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------

class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeFrameSource:
    def __init__(self, frame: Optional[Frame] = None, landmark_capable: bool = True):
        self.frame = frame
        self._capable = landmark_capable

    @property
    def landmark_capable(self) -> bool:
        return self._capable and self.frame is not None

    def current_frame(self) -> Optional[Frame]:
        return self.frame


class FakeLandmarkDetector:
    def __init__(self, landmarks=None, error: Optional[Exception] = None):
        self.landmarks = landmarks
        self.error = error
        self.calls = 0
        self.gate: Optional[asyncio.Event] = None

    async def detect(self, frame):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.landmarks


class FakeStatsBackend:
    def __init__(self, ready: bool = True, value: float = 20.0, error: Optional[Exception] = None):
        self._ready = ready
        self.value = value
        self.error = error
        self.patches: List[np.ndarray] = []

    @property
    def ready(self) -> bool:
        return self._ready

    def laplacian_variance(self, patch_rgb):
        self.patches.append(patch_rgb)
        if self.error is not None:
            raise self.error
        return self.value


class FakeVision:
    """
    Remote vision stand-in. Set ``gate`` to an asyncio.Event to hold every
    call in flight until the test releases it.
    """

    def __init__(
        self,
        boxes: Optional[List[DetectionBox]] = None,
        caption_text: str = "A person sitting at a desk facing the camera.",
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.boxes = [centered_face_box()] if boxes is None else boxes
        self.caption_text = caption_text
        self.error = error
        self.delay = delay
        self.gate: Optional[asyncio.Event] = None
        self.detect_calls: List[str] = []
        self.caption_calls = 0

    async def _wait(self):
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

    async def detect(self, frame, class_name):
        self.detect_calls.append(class_name)
        await self._wait()
        return list(self.boxes)

    async def caption(self, frame):
        self.caption_calls += 1
        await self._wait()
        return self.caption_text
