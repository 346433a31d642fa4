"""
API endpoint tests.

Uses the FastAPI test client. Does not require a running server or a vision
API key; remote calls fail fast on the missing key and only touch the
remote cards.
"""

import json
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import base64
import unittest

import cv2
import numpy as np


def _jpeg_b64(width=64, height=48):
    ok, buf = cv2.imencode(".jpg", np.full((height, width, 3), 128, dtype=np.uint8))
    assert ok
    return base64.b64encode(buf.tobytes()).decode("ascii")


class ServerTestCase(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        from fastapi.testclient import TestClient
        from shotmonitor import server
        cls.server = server
        cls._ctx = TestClient(server.app)
        cls.client = cls._ctx.__enter__()

    @classmethod
    def tearDownClass(cls):
        cls._ctx.__exit__(None, None, None)

    def setUp(self):
        self.server.frames.clear()
        self.server.frames.set_streaming(True)


class TestRestEndpoints(ServerTestCase):
    """Health, snapshot, lifecycle and toggles over REST."""

    def test_health(self):
        r = self.client.get("/health")
        self.assertEqual(r.status_code, 200)
        data = r.json()
        self.assertEqual(data["status"], "ok")
        self.assertEqual(data["version"], self.server.VERSION)
        self.assertIn("landmarks_available", data)

    def test_snapshot_lists_all_monitors(self):
        r = self.client.get("/monitor")
        self.assertEqual(r.status_code, 200)
        monitors = r.json()["monitors"]
        self.assertEqual(
            set(monitors),
            {"orientation", "talking", "focus", "lighting", "presence", "composition", "sceneContext"},
        )

    def test_toggle_unknown_monitor_is_404(self):
        r = self.client.post("/monitor/toggle/brightness")
        self.assertEqual(r.status_code, 404)

    def test_toggle_off_and_on(self):
        r = self.client.post("/monitor/toggle/focus")
        self.assertEqual(r.status_code, 200)
        data = r.json()
        self.assertFalse(data["enabled"])
        self.assertEqual(data["state"]["status"], "OFF")
        self.assertEqual(data["state"]["display_class"], "off")

        r = self.client.post("/monitor/toggle/focus")
        self.assertTrue(r.json()["enabled"])

    def test_start_without_frame_is_409(self):
        r = self.client.post("/monitor/start")
        self.assertEqual(r.status_code, 409)
        self.assertIn("upload an image", r.json()["detail"])
        self.assertEqual(self.client.get("/monitor").json()["phase"], "idle")

    def test_start_and_stop(self):
        self.server.frames.push_array(np.full((48, 64, 3), 128, dtype=np.uint8))
        r = self.client.post("/monitor/start")
        self.assertEqual(r.status_code, 200)
        data = r.json()
        self.assertTrue(data["started"])
        self.assertEqual(data["phase"], "monitoring")
        self.assertEqual(data["monitors"]["lighting"]["status"], "GOOD")

        r = self.client.post("/monitor/start")
        self.assertFalse(r.json()["started"])

        r = self.client.post("/monitor/stop")
        data = r.json()
        self.assertEqual(data["phase"], "idle")
        self.assertEqual(data["monitors"]["presence"]["status"], "N/A")
        self.assertGreaterEqual(data["summary"]["cycles_run"], 1)


class TestWebSocket(ServerTestCase):
    """Frame ingest and control messages over /ws/monitor."""

    def test_initial_status_and_ping(self):
        with self.client.websocket_connect("/ws/monitor") as ws:
            first = json.loads(ws.receive_text())
            self.assertEqual(first["type"], "status")
            self.assertIn("monitors", first["data"])
            ws.send_text(json.dumps({"type": "ping"}))
            self.assertEqual(json.loads(ws.receive_text())["type"], "pong")

    def test_frame_is_buffered(self):
        with self.client.websocket_connect("/ws/monitor") as ws:
            ws.receive_text()
            ws.send_text(json.dumps({
                "type": "frame",
                "image": "data:image/jpeg;base64," + _jpeg_b64(),
                "streaming": False,
            }))
            ws.send_text(json.dumps({"type": "ping"}))
            self.assertEqual(json.loads(ws.receive_text())["type"], "pong")

        frame = self.server.frames.current_frame()
        self.assertIsNotNone(frame)
        self.assertEqual((frame.width, frame.height), (64, 48))
        self.assertFalse(self.server.frames.landmark_capable)

    def test_bad_frame_reports_error(self):
        with self.client.websocket_connect("/ws/monitor") as ws:
            ws.receive_text()
            ws.send_text(json.dumps({"type": "frame", "image": "AAAA"}))
            msg = json.loads(ws.receive_text())
            self.assertEqual(msg["type"], "error")

    def test_unknown_toggle_key_reports_error(self):
        with self.client.websocket_connect("/ws/monitor") as ws:
            ws.receive_text()
            ws.send_text(json.dumps({"type": "toggle", "key": "nope"}))
            msg = json.loads(ws.receive_text())
            self.assertEqual(msg["type"], "error")
            self.assertIn("nope", msg["message"])

    def test_start_without_frame_reports_error(self):
        with self.client.websocket_connect("/ws/monitor") as ws:
            ws.receive_text()
            ws.send_text(json.dumps({"type": "start"}))
            msg = json.loads(ws.receive_text())
            self.assertEqual(msg["type"], "error")
            self.assertIn("upload an image", msg["message"])
        self.assertFalse(self.server.monitor.is_monitoring)

    def test_malformed_json_is_ignored(self):
        with self.client.websocket_connect("/ws/monitor") as ws:
            ws.receive_text()
            ws.send_text("{not json")
            ws.send_text(json.dumps({"type": "ping"}))
            self.assertEqual(json.loads(ws.receive_text())["type"], "pong")


if __name__ == "__main__":
    unittest.main()
