"""
ShotMonitor — Configuration

Centralised settings from environment variables.
All tuneable constants live here; the analyzers hold no magic numbers.
Every config object is frozen and passed explicitly into the component
that needs it, so nothing reads shared mutable state at analysis time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv
import certifi

os.environ.setdefault("SSL_CERT_FILE", certifi.where())
os.environ.setdefault("REQUESTS_CA_BUNDLE", certifi.where())

load_dotenv()


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ServerConfig:
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8080"))
    cors_origins: tuple[str, ...] = (
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:8080",
    )


# ---------------------------------------------------------------------------
# Remote visual-reasoning service
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VisionServiceConfig:
    """API key and transport knobs for the remote vision API."""
    api_key: str = os.getenv("MOONDREAM_API_KEY", "")
    base_url: str = os.getenv("MOONDREAM_API_BASE", "https://api.moondream.ai/v1")
    # Transport-level timeout per request (seconds)
    request_timeout: float = float(os.getenv("MOONDREAM_TIMEOUT_S", "30"))
    # JPEG quality for frames sent over the wire (0–100)
    jpeg_quality: int = 85
    caption_length: str = "normal"
    # Target class for the shared presence/composition detect call
    detect_class: str = "face"
    max_workers: int = 2

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)


# ---------------------------------------------------------------------------
# Classification thresholds
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ThresholdConfig:
    # Orientation: max nose-to-edge asymmetry still considered straight
    orientation_max_diff: float = 0.15
    # Talking: lip gap (normalized y) above which the mouth is open
    talking_lip_gap: float = 0.018
    # Focus: variance of Laplacian response
    focus_sharp: float = 12.0
    focus_ok: float = 6.0
    focus_patch_size: int = 40
    # Lighting: average luminance on the 0–255 scale
    lighting_dark: float = 50.0
    lighting_dim: float = 90.0
    lighting_bright: float = 180.0
    lighting_overexposed: float = 220.0
    # Composition: face box size (normalized)
    too_close_width: float = 0.5
    too_close_height: float = 0.6
    too_far_width: float = 0.15
    too_far_height: float = 0.2
    # Composition: face centre position (normalized)
    center_min_x: float = 0.3
    center_max_x: float = 0.7
    center_min_y: float = 0.25
    center_max_y: float = 0.75


# ---------------------------------------------------------------------------
# Scheduling tunables
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SchedulerConfig:
    # Fixed period between monitoring cycles (seconds)
    cycle_period: float = float(os.getenv("MONITOR_CYCLE_S", "1.5"))
    # Minimum gap between two batched remote calls (seconds)
    remote_throttle: float = float(os.getenv("MONITOR_THROTTLE_S", "2.0"))
    # Hard guard around a single remote call, on top of the transport timeout
    remote_timeout: float = float(os.getenv("MONITOR_REMOTE_TIMEOUT_S", "30"))
    # Bound on one local landmark pass (seconds)
    landmark_timeout: float = float(os.getenv("MONITOR_LANDMARK_TIMEOUT_S", "5"))
    # Landmark frames kept for smoothing
    landmark_history: int = 5
    # Minimum time between two stored talking-state flips (seconds)
    talking_debounce: float = 0.15


# ---------------------------------------------------------------------------
# Singletons
# ---------------------------------------------------------------------------

server_cfg = ServerConfig()
vision_cfg = VisionServiceConfig()
threshold_cfg = ThresholdConfig()
scheduler_cfg = SchedulerConfig()
