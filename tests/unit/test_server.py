"""Unit tests for the Flask operator surface."""

from __future__ import annotations

from collections import deque
from unittest.mock import MagicMock

import numpy as np
import pytest

from resq_eye.errors import InvalidTransition
from resq_eye.pipeline.types import Facing, SensingMode, SensingStatus
from resq_eye.server.app import create_app
from resq_eye.server.generator import gen_frames


def make_status(**overrides) -> SensingStatus:
    values = {
        "mode": SensingMode.LIVE_FEED,
        "is_busy": False,
        "is_danger": False,
        "status_text": "LIVE FEED ACQUIRED // SCANNING",
        "facing": Facing.FRONT,
        "audio_enabled": True,
    }
    values.update(overrides)
    return SensingStatus(**values)


@pytest.fixture
def runner():
    mock_runner = MagicMock()
    mock_runner.status.return_value = make_status()
    mock_runner.command.return_value = make_status(audio_enabled=False)
    return mock_runner


@pytest.fixture
def client(runner):
    app = create_app(runner, log_buffer=deque(["12:00:00 | INFO | ready"]))
    app.config["TESTING"] = True
    return app.test_client()


class TestRoutes:
    """Tests for the HTTP routes."""

    def test_index(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert b"toggle_voice_mode" in response.data

    def test_status(self, client):
        response = client.get("/status")
        payload = response.get_json()

        assert payload["mode"] == "live-feed"
        assert payload["facing"] == "front"
        assert payload["logs"] == ["12:00:00 | INFO | ready"]

    def test_command(self, client, runner):
        response = client.post("/command/toggle_audio")

        assert response.status_code == 200
        assert response.get_json()["audio_enabled"] is False
        runner.command.assert_called_once_with("toggle_audio")

    def test_unknown_command(self, client, runner):
        response = client.post("/command/self_destruct")

        assert response.status_code == 404
        runner.command.assert_not_called()

    def test_rejected_transition(self, client, runner):
        runner.command.side_effect = InvalidTransition("needs a live camera")

        response = client.post("/command/toggle_voice_mode")

        assert response.status_code == 409
        assert response.get_json()["error"] == "needs a live camera"

    def test_command_requires_post(self, client):
        assert client.get("/command/toggle_audio").status_code == 405


class TestGenFrames:
    """Tests for the MJPEG generator."""

    def test_yields_multipart_jpeg_chunks(self):
        runner = MagicMock()
        runner.get_frame.return_value = np.zeros((24, 32, 3), np.uint8)

        chunks = list(gen_frames(runner, frame_interval=0.0, max_frames=2))

        assert len(chunks) == 2
        assert chunks[0].startswith(b"--frame\r\nContent-Type: image/jpeg\r\n\r\n\xff\xd8")

    def test_waits_while_no_frame(self):
        runner = MagicMock()
        frame = np.zeros((24, 32, 3), np.uint8)
        runner.get_frame.side_effect = [None, None, frame]

        chunks = list(
            gen_frames(runner, frame_interval=0.0, wait_on_empty=0.0, max_frames=1)
        )

        assert len(chunks) == 1
        assert runner.get_frame.call_count == 3
