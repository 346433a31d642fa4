"""
ShotMonitor — Buffered Frame Source

Holds the most recent frame pushed by the client (webcam stream or an
uploaded still) and hands it to the monitor on demand.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Optional

import cv2
import numpy as np

from ..core.models import Frame

logger = logging.getLogger("shotmonitor.frames")


def decode_jpeg(image: str) -> Optional[np.ndarray]:
    """Base64 JPEG (bare or ``data:`` URL) → RGB array, or None if undecodable."""
    if image.startswith("data:"):
        _, _, image = image.partition(",")
    try:
        img_bytes = base64.b64decode(image, validate=False)
    except (binascii.Error, ValueError):
        return None
    nparr = np.frombuffer(img_bytes, np.uint8)
    if nparr.size == 0:
        return None
    frame_bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    if frame_bgr is None:
        return None
    return cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)


class BufferedFrameSource:
    """
    Implements the FrameSource protocol.

    ``streaming=True`` marks a live camera feed, which is what the landmark
    pass runs on; a still image only feeds the pixel and remote analyzers.
    """

    def __init__(self, streaming: bool = True) -> None:
        self._frame: Optional[Frame] = None
        self._streaming = streaming
        self.frames_received: int = 0

    @property
    def landmark_capable(self) -> bool:
        return self._streaming and self._frame is not None

    def set_streaming(self, streaming: bool) -> None:
        self._streaming = streaming

    def current_frame(self) -> Optional[Frame]:
        return self._frame

    def push_array(self, pixels_rgb: np.ndarray) -> Frame:
        self._frame = Frame(pixels=pixels_rgb)
        self.frames_received += 1
        return self._frame

    def push_jpeg(self, image: str) -> Optional[Frame]:
        pixels = decode_jpeg(image)
        if pixels is None:
            logger.debug("Dropped undecodable frame")
            return None
        return self.push_array(pixels)

    def clear(self) -> None:
        self._frame = None
