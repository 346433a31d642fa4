"""
ShotMonitor — Remote Vision Client

HTTP client for the Moondream visual-reasoning API.

  POST {base}/detect   {image_url, object}                → {objects: [...]}
  POST {base}/caption  {image_url, length, stream: false} → {caption: "..."}

Frames travel as base64 JPEG data URLs; the API key goes in the
``X-Moondream-Auth`` header. Requests are blocking (``requests``) and run in
a small thread pool so the event loop never waits on the network.

Every failure is raised as a VisionServiceError subclass; the monitor maps
them all to an ERROR card.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple

import requests

from ..core.config import VisionServiceConfig, vision_cfg
from ..core.models import DetectionBox, Frame

try:
    import cv2
except ImportError:
    cv2 = None  # type: ignore[assignment]

logger = logging.getLogger("shotmonitor.vision")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class VisionServiceError(Exception):
    """Any failure talking to the remote vision API."""


class VisionAuthError(VisionServiceError):
    """Missing or rejected API key (HTTP 401)."""


class VisionRateLimitError(VisionServiceError):
    """Too many requests (HTTP 429)."""


class VisionTimeoutError(VisionServiceError):
    """The request did not complete within the transport timeout."""


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class MoondreamClient:
    """
    Implements the VisionService protocol over HTTPS.

    Usage:
        client = MoondreamClient()
        boxes = await client.detect(frame, "face")
        text = await client.caption(frame)
        client.close()
    """

    def __init__(
        self,
        cfg: VisionServiceConfig = vision_cfg,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._cfg = cfg
        self._session = session or requests.Session()
        self._executor = ThreadPoolExecutor(
            max_workers=cfg.max_workers, thread_name_prefix="vision-http"
        )
        # Presence and caption calls in one batch share the same frame
        self._encoded: Optional[Tuple[Frame, str]] = None

        self.requests_sent: int = 0
        self.last_error: Optional[str] = None

    # ── public API ──────────────────────────────────────────────────────

    async def detect(self, frame: Frame, class_name: str) -> List[DetectionBox]:
        body = {"image_url": self.encode_frame(frame), "object": class_name}
        payload = await self._request("/detect", body)
        objects = payload.get("objects") or []
        try:
            return [DetectionBox.from_dict(obj) for obj in objects]
        except (KeyError, TypeError, ValueError) as e:
            raise VisionServiceError(f"Malformed detect response: {e}") from e

    async def caption(self, frame: Frame) -> str:
        body = {
            "image_url": self.encode_frame(frame),
            "length": self._cfg.caption_length,
            "stream": False,
        }
        payload = await self._request("/caption", body)
        return str(payload.get("caption") or "")

    def encode_frame(self, frame: Frame) -> str:
        """RGB frame → ``data:image/jpeg;base64,...``"""
        if self._encoded is not None and self._encoded[0] is frame:
            return self._encoded[1]
        if cv2 is None:
            raise VisionServiceError("OpenCV is not available to encode frames")

        bgr = cv2.cvtColor(frame.pixels[..., :3], cv2.COLOR_RGB2BGR)
        ok, buf = cv2.imencode(".jpg", bgr, [int(cv2.IMWRITE_JPEG_QUALITY), self._cfg.jpeg_quality])
        if not ok:
            raise VisionServiceError("JPEG encoding failed")
        data_url = "data:image/jpeg;base64," + base64.b64encode(buf.tobytes()).decode("ascii")
        self._encoded = (frame, data_url)
        return data_url

    def close(self) -> None:
        self._executor.shutdown(wait=False)
        self._session.close()
        logger.info("Vision client closed")

    # ── transport ───────────────────────────────────────────────────────

    async def _request(self, endpoint: str, body: Dict[str, Any]) -> Dict[str, Any]:
        if not self._cfg.has_api_key:
            raise VisionAuthError("API key not configured")
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, self._post, endpoint, body)
        except VisionServiceError as e:
            self.last_error = str(e)
            logger.warning(f"Vision {endpoint} failed: {e}")
            raise

    def _post(self, endpoint: str, body: Dict[str, Any]) -> Dict[str, Any]:
        self.requests_sent += 1
        try:
            resp = self._session.post(
                self._cfg.base_url.rstrip("/") + endpoint,
                json=body,
                headers={
                    "Content-Type": "application/json",
                    "X-Moondream-Auth": self._cfg.api_key,
                },
                timeout=self._cfg.request_timeout,
            )
        except requests.Timeout as e:
            raise VisionTimeoutError("Request timed out") from e
        except requests.RequestException as e:
            raise VisionServiceError(f"Network error: {e}") from e

        if resp.status_code == 401:
            raise VisionAuthError("Invalid API key")
        if resp.status_code == 429:
            raise VisionRateLimitError("Rate limit exceeded")
        if not 200 <= resp.status_code < 300:
            raise VisionServiceError(f"Request failed ({resp.status_code})")

        try:
            payload = resp.json()
        except ValueError as e:
            raise VisionServiceError("Invalid JSON response") from e
        if not isinstance(payload, dict):
            raise VisionServiceError("Invalid JSON response")
        return payload
