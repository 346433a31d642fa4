"""
ShotMonitor — Collaborator Interfaces

Protocol definitions for everything the monitor consumes but does not own:
  1. Frames     — current still/video frame on demand
  2. Landmarks  — asynchronous face-landmark detection
  3. Statistics — grayscale + Laplacian + variance over a small patch
  4. Reasoning  — remote detect / caption calls

The monitor only ever talks to these protocols, never to a concrete
camera, model, or HTTP client.
"""

from __future__ import annotations

from typing import List, Optional, Protocol, runtime_checkable

import numpy as np

from .models import DetectionBox, Frame, LandmarkFrame


@runtime_checkable
class FrameSource(Protocol):
    """Yields the frame currently on screen."""

    @property
    def landmark_capable(self) -> bool:
        """True when the source is a live stream worth running landmarks on."""
        ...

    def current_frame(self) -> Optional[Frame]:
        """Most recent frame, or None when nothing has been captured."""
        ...


@runtime_checkable
class LandmarkDetector(Protocol):
    """Single-face landmark detection. Zero or one face per call."""

    async def detect(self, frame: Frame) -> Optional[LandmarkFrame]:
        ...


@runtime_checkable
class PixelStatsBackend(Protocol):
    """Small-region statistics. Must report "not ready" distinctly from 0."""

    @property
    def ready(self) -> bool:
        ...

    def laplacian_variance(self, patch_rgb: np.ndarray) -> float:
        """Grayscale → discrete Laplacian → variance of the response."""
        ...


@runtime_checkable
class VisionService(Protocol):
    """Remote visual-reasoning API. Failures surface as exceptions."""

    async def detect(self, frame: Frame, class_name: str) -> List[DetectionBox]:
        ...

    async def caption(self, frame: Frame) -> str:
        ...
