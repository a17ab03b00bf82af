"""Helpers for streaming encoded preview frames."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import cv2
from loguru import logger


if TYPE_CHECKING:
    from collections.abc import Iterator

    from resq_eye.server.runner import ControllerRunner


def gen_frames(
    runner: ControllerRunner,
    jpeg_quality: int = 30,
    frame_interval: float = 0.1,
    wait_on_empty: float = 0.5,
    max_frames: int | None = None,
) -> Iterator[bytes]:
    """Yield MJPEG frame chunks suitable for multipart responses.

    The generator keeps running across source changes; while no source is
    active (signal lost, switching cameras) it simply waits.
    """
    logger.info("Starting preview stream...")
    sent = 0
    while max_frames is None or sent < max_frames:
        frame = runner.get_frame()
        if frame is None:
            logger.debug("No frame available; waiting.")
            time.sleep(wait_on_empty)
            continue

        ret, buffer = cv2.imencode(
            ".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, jpeg_quality]
        )
        if not ret:
            logger.warning("Frame encoding failed; skipping frame...")
            continue
        frame_bytes = buffer.tobytes()

        yield (
            b"--frame\r\nContent-Type: image/jpeg\r\n\r\n" + frame_bytes + b"\r\n\r\n"
        )
        sent += 1
        time.sleep(frame_interval)
