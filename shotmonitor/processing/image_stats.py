"""
ShotMonitor — Image-Statistics Analyzers

Focus: variance of the Laplacian over a small patch around the face.
Lighting: mean luminance over the whole frame.

Both run locally on the frame's pixels. Every unmet precondition maps to
its own status text so the dashboard can tell "not ready" from "bad".
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Tuple

import numpy as np

from ..core.config import ThresholdConfig, threshold_cfg
from ..core.interfaces import PixelStatsBackend
from ..core.models import (
    FaceIndex,
    Frame,
    Reading,
    SmoothedLandmarks,
    StatusClass,
    landmark_at,
)

try:
    import cv2
except ImportError:
    cv2 = None  # type: ignore[assignment]

logger = logging.getLogger("shotmonitor.image_stats")

# ITU-R BT.601 luma weights, RGB order
_LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)


# ═══════════════════════════════════════════════════════════════════════════
# Pixel-statistics backend (OpenCV)
# ═══════════════════════════════════════════════════════════════════════════

class OpenCVStatsBackend:
    """Grayscale + Laplacian + variance via OpenCV. Not ready without cv2."""

    @property
    def ready(self) -> bool:
        return cv2 is not None

    def laplacian_variance(self, patch_rgb: np.ndarray) -> float:
        if cv2 is None:
            raise RuntimeError("OpenCV is not available")
        gray = cv2.cvtColor(np.ascontiguousarray(patch_rgb[..., :3]), cv2.COLOR_RGB2GRAY)
        lap = cv2.Laplacian(gray, cv2.CV_64F)
        _, std = cv2.meanStdDev(lap)
        return float(std[0][0]) ** 2


# ═══════════════════════════════════════════════════════════════════════════
# Focus
# ═══════════════════════════════════════════════════════════════════════════

def classify_focus(variance: float, cfg: ThresholdConfig = threshold_cfg) -> Reading:
    if variance > cfg.focus_sharp:
        return Reading("SHARP", StatusClass.GOOD)
    if variance > cfg.focus_ok:
        return Reading("OK", StatusClass.WARNING)
    return Reading("BLURRY", StatusClass.BAD)


def focus_patch_origin(
    frame: Frame,
    landmarks: SmoothedLandmarks,
    size: int,
) -> Optional[Tuple[int, int]]:
    """Top-left corner of the sample patch, or None if landmarks are missing."""
    left_eye = landmark_at(landmarks, FaceIndex.LEFT_EYE)
    right_eye = landmark_at(landmarks, FaceIndex.RIGHT_EYE)
    nose = landmark_at(landmarks, FaceIndex.NOSE_TIP)
    if left_eye is None or right_eye is None or nose is None:
        return None

    w, h = frame.width, frame.height
    center_x = (left_eye.x + right_eye.x + nose.x) / 3 * w
    center_y = (left_eye.y + right_eye.y + nose.y) / 3 * h
    x = max(0, min(math.floor(center_x - size / 2), w - size))
    y = max(0, min(math.floor(center_y - size / 2), h - size))
    return x, y


def analyze_focus(
    frame: Optional[Frame],
    landmarks: SmoothedLandmarks,
    backend: PixelStatsBackend,
    cfg: ThresholdConfig = threshold_cfg,
) -> Reading:
    if not backend.ready:
        return Reading("CV N/A", StatusClass.WARNING)

    size = cfg.focus_patch_size
    if any(landmark_at(landmarks, i) is None
           for i in (FaceIndex.LEFT_EYE, FaceIndex.RIGHT_EYE, FaceIndex.NOSE_TIP)):
        return Reading("NO DATA", StatusClass.WARNING)
    if frame is None:
        return Reading("NO SOURCE", StatusClass.WARNING)
    if frame.width < size or frame.height < size:
        return Reading("WAITING", StatusClass.WARNING)

    try:
        x, y = focus_patch_origin(frame, landmarks, size)
        patch = frame.pixels[y:y + size, x:x + size]
        variance = backend.laplacian_variance(patch)
    except Exception as e:
        logger.warning(f"Focus analysis error: {e}")
        return Reading("CV ERROR", StatusClass.WARNING)

    logger.debug(f"Focus variance {variance:.2f} at patch ({x}, {y})")
    return classify_focus(variance, cfg)


# ═══════════════════════════════════════════════════════════════════════════
# Lighting
# ═══════════════════════════════════════════════════════════════════════════

def average_luminance(pixels: np.ndarray) -> float:
    rgb = pixels[..., :3].astype(np.float64)
    return float((rgb @ _LUMA_WEIGHTS).mean())


def classify_lighting(luminance: float, cfg: ThresholdConfig = threshold_cfg) -> Reading:
    if luminance < cfg.lighting_dark:
        return Reading("DARK", StatusClass.BAD)
    if luminance < cfg.lighting_dim:
        return Reading("DIM", StatusClass.WARNING)
    if luminance > cfg.lighting_overexposed:
        return Reading("OVEREXPOSED", StatusClass.BAD)
    if luminance > cfg.lighting_bright:
        return Reading("BRIGHT", StatusClass.WARNING)
    return Reading("GOOD", StatusClass.GOOD)


def analyze_lighting(frame: Optional[Frame], cfg: ThresholdConfig = threshold_cfg) -> Reading:
    if frame is None or frame.width == 0 or frame.height == 0:
        return Reading("N/A", StatusClass.DISABLED)
    try:
        luminance = average_luminance(frame.pixels)
    except Exception as e:
        logger.warning(f"Lighting analysis error: {e}")
        return Reading("ERROR", StatusClass.WARNING)
    logger.debug(f"Average luminance {luminance:.1f}")
    return classify_lighting(luminance, cfg)
