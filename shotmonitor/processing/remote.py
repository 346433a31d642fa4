"""
ShotMonitor — Remote Reasoning Classifiers

Turns remote vision responses into monitor readings:
  • presence + composition share one "face" detect response
  • scene context forwards the caption text

The network call itself lives in the scheduler; these functions only
classify what came back.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

from ..core.config import ThresholdConfig, threshold_cfg
from ..core.models import DetectionBox, Reading, StatusClass

REMOTE_ERROR = Reading("ERROR", StatusClass.WARNING)
DEFAULT_DESCRIPTION = "No description"


def classify_presence(boxes: Sequence[DetectionBox]) -> Reading:
    if len(boxes) > 0:
        return Reading("PRESENT", StatusClass.GOOD)
    return Reading("ABSENT", StatusClass.BAD)


def composition_issues(box: DetectionBox, cfg: ThresholdConfig = threshold_cfg) -> List[str]:
    """Framing problems in fixed order: size, then horizontal, then vertical."""
    issues: List[str] = []
    center_x, center_y = box.center

    if box.width > cfg.too_close_width or box.height > cfg.too_close_height:
        issues.append("TOO CLOSE")
    elif box.width < cfg.too_far_width and box.height < cfg.too_far_height:
        issues.append("TOO FAR")

    if center_x < cfg.center_min_x:
        issues.append("→ RIGHT")
    elif center_x > cfg.center_max_x:
        issues.append("← LEFT")

    if center_y < cfg.center_min_y:
        issues.append("↓ DOWN")
    elif center_y > cfg.center_max_y:
        issues.append("↑ UP")

    return issues


def classify_composition(
    boxes: Sequence[DetectionBox],
    cfg: ThresholdConfig = threshold_cfg,
) -> Reading:
    if not boxes:
        return Reading("NO FACE", StatusClass.BAD)
    issues = composition_issues(boxes[0], cfg)
    if not issues:
        return Reading("GOOD", StatusClass.GOOD)
    return Reading(" ".join(issues), StatusClass.BAD)


def classify_caption(caption: str) -> Tuple[Reading, str]:
    """Reading for the scene card plus the text to display under it."""
    text = (caption or "").strip() or DEFAULT_DESCRIPTION
    return Reading("UPDATED", StatusClass.GOOD), text
