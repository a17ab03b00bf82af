"""HTTP operator surface for the live sensing controller."""

from __future__ import annotations

from resq_eye.server.app import create_app, run
from resq_eye.server.generator import gen_frames
from resq_eye.server.runner import ControllerRunner


__all__ = [
    "ControllerRunner",
    "create_app",
    "gen_frames",
    "run",
]
