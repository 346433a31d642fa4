"""
ShotMonitor — FastAPI Server

================================================================================
Architecture:
  • One ShotMonitor per server process, fed by a BufferedFrameSource
  • Clients push webcam frames (base64 JPEG) over the WebSocket
  • MediaPipe Face Mesh runs locally for orientation / talking / focus
  • Moondream detect + caption run remotely for presence / composition /
    scene context, throttled by the monitor
  • Every status change is pushed to all connected dashboards
================================================================================

Endpoints:
  WS   /ws/monitor              — frame ingest + live status stream
  GET  /health                  — server health
  GET  /monitor                 — current snapshot
  POST /monitor/start           — IDLE → MONITORING (409 until a frame arrives)
  POST /monitor/stop            — MONITORING → IDLE
  POST /monitor/toggle/{key}    — enable/disable one monitor

Client → Server messages:
  { type: "frame", image: "<base64 jpeg or data URL>", streaming: true }
  { type: "start" } / { type: "stop" }     (start answers "error" without a frame)
  { type: "toggle", key: "focus" }
  { type: "ping" }

Server → Client messages:
  { type: "status", data: {...} }    → snapshot after every status change
  { type: "pong" }
  { type: "error", message: "..." }
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Set

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from .core.config import server_cfg, vision_cfg
from .core.models import MonitorKey, MonitorState
from .processing.landmarks import MediaPipeLandmarkDetector
from .services.frames import BufferedFrameSource
from .services.monitor import NO_FRAME_MESSAGE, ShotMonitor
from .services.vision_client import MoondreamClient

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("shotmonitor")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

# ---------------------------------------------------------------------------
# Dashboard wiring
# ---------------------------------------------------------------------------

_sockets: Set[WebSocket] = set()

frames = BufferedFrameSource()
vision = MoondreamClient()
_detector: Optional[MediaPipeLandmarkDetector] = MediaPipeLandmarkDetector()
if not _detector.available:
    logger.warning("MediaPipe not installed; orientation/talking/focus will stay idle")
    _detector = None


async def _broadcast(state: MonitorState) -> None:
    payload = json.dumps({"type": "status", "data": monitor.snapshot()})
    for ws in list(_sockets):
        try:
            await ws.send_text(payload)
        except Exception:
            _sockets.discard(ws)


monitor = ShotMonitor(
    frame_source=frames,
    vision=vision,
    landmark_detector=_detector,
    on_update=_broadcast,
)


def _parse_key(raw: str) -> MonitorKey:
    try:
        return MonitorKey(raw)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown monitor: {raw}")


# ---------------------------------------------------------------------------
# FastAPI Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 ShotMonitor starting...")
    logger.info(f"   Vision API key configured: {vision_cfg.has_api_key}")
    yield
    logger.info("🛑 Shutting down, stopping monitor...")
    await monitor.stop()
    vision.close()
    if _detector is not None:
        _detector.close()
    logger.info("🛑 ShotMonitor stopped")


# ---------------------------------------------------------------------------
# FastAPI App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="ShotMonitor — Live Shot-Quality Dashboard",
    version=VERSION,
    description=(
        "Fuses local face-landmark and image statistics with remote visual "
        "reasoning into a live production-quality status board."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(server_cfg.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# REST Endpoints
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    return {
        "status": "ok",
        "version": VERSION,
        "vision_key_configured": vision_cfg.has_api_key,
        "landmarks_available": _detector is not None,
        "monitoring": monitor.is_monitoring,
        "connected_dashboards": len(_sockets),
    }


@app.get("/monitor")
async def monitor_snapshot():
    return monitor.snapshot()


@app.post("/monitor/start")
async def monitor_start():
    if not monitor.is_monitoring and frames.current_frame() is None:
        raise HTTPException(status_code=409, detail=NO_FRAME_MESSAGE)
    started = await monitor.start()
    return {"started": started, **monitor.snapshot()}


@app.post("/monitor/stop")
async def monitor_stop():
    summary = await monitor.stop()
    return {"summary": summary, **monitor.snapshot()}


@app.post("/monitor/toggle/{key}")
async def monitor_toggle(key: str):
    enabled = monitor.toggle(_parse_key(key))
    return {"key": key, "enabled": enabled, "state": monitor.get(MonitorKey(key)).to_dict()}


# ---------------------------------------------------------------------------
# WebSocket: frame ingest + status stream
# ---------------------------------------------------------------------------

@app.websocket("/ws/monitor")
async def websocket_monitor(ws: WebSocket):
    await ws.accept()
    _sockets.add(ws)

    async def send(data: Dict[str, Any]) -> None:
        try:
            await ws.send_text(json.dumps(data))
        except Exception:
            pass

    await send({"type": "status", "data": monitor.snapshot()})

    try:
        while True:
            raw = await ws.receive_text()

            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                continue

            msg_type = message.get("type", "")

            if msg_type == "frame":
                image = message.get("image") or ""
                frames.set_streaming(bool(message.get("streaming", True)))
                if frames.push_jpeg(image) is None:
                    await send({"type": "error", "message": "Could not decode frame"})

            elif msg_type == "start":
                if not monitor.is_monitoring and frames.current_frame() is None:
                    await send({"type": "error", "message": NO_FRAME_MESSAGE})
                    continue
                await monitor.start()
                await send({"type": "status", "data": monitor.snapshot()})

            elif msg_type == "stop":
                await monitor.stop()
                await send({"type": "status", "data": monitor.snapshot()})

            elif msg_type == "toggle":
                try:
                    key = MonitorKey(message.get("key", ""))
                except ValueError:
                    await send({"type": "error", "message": f"Unknown monitor: {message.get('key')}"})
                    continue
                monitor.toggle(key)

            elif msg_type == "ping":
                await send({"type": "pong"})

    except WebSocketDisconnect:
        logger.info("Dashboard disconnected")
    except Exception as e:
        logger.error(f"WebSocket error: {e}", exc_info=True)
    finally:
        _sockets.discard(ws)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "shotmonitor.server:app",
        host=server_cfg.host,
        port=server_cfg.port,
        reload=True,
        log_level="info",
    )
