"""Procedural frame source used when no camera is available."""

from __future__ import annotations

import asyncio
import contextlib
import math
import time
from typing import TYPE_CHECKING

import cv2
import numpy as np
from loguru import logger


if TYPE_CHECKING:
    from collections.abc import Callable

    from resq_eye.config import SyntheticConfig


BACKGROUND_BGR = (23, 6, 2)
GRID_BGR = (59, 41, 30)
SWEEP_BGR = (22, 115, 249)
MARKER_BGR = (68, 68, 239)
SWEEP_ALPHA = 0.2
SWEEP_SPAN_RAD = 0.5


class SyntheticFrameGenerator:
    """Render a scrolling grid, a rotating sweep and sparse random markers.

    Frames are redrawn on their own task at ``fps`` so the analysis cadence
    never has to wait for rendering. ``stop`` is safe to call at any time and
    ``start`` may be called again afterwards.
    """

    def __init__(
        self,
        config: SyntheticConfig,
        clock: Callable[[], float] = time.time,
        rng: np.random.Generator | None = None,
    ) -> None:
        """Create a generator with a fixed render resolution."""
        self.config = config
        self.width = config.width
        self.height = config.height
        self._clock = clock
        self._rng = rng or np.random.default_rng()
        self._task: asyncio.Task | None = None
        self._latest: np.ndarray | None = None
        self.frames_rendered = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def render(self, t: float) -> np.ndarray:
        """Render one frame for wall-clock time ``t`` (seconds)."""
        w, h = self.width, self.height
        grid = self.config.grid_size
        frame = np.empty((h, w, 3), dtype=np.uint8)
        frame[:] = BACKGROUND_BGR

        offset = int((t * 20) % grid)
        for x in range(0, w, grid):
            cv2.line(frame, (x, 0), (x, h - 1), GRID_BGR, 1)
        for y in range(offset - grid, h, grid):
            cv2.line(frame, (0, y), (w - 1, y), GRID_BGR, 1)

        overlay = frame.copy()
        start_deg = math.degrees(t * 2) % 360
        radius = max(w, h)
        cv2.ellipse(
            overlay,
            (w // 2, h // 2),
            (radius, radius),
            0,
            start_deg,
            start_deg + math.degrees(SWEEP_SPAN_RAD),
            SWEEP_BGR,
            -1,
        )
        cv2.addWeighted(overlay, SWEEP_ALPHA, frame, 1 - SWEEP_ALPHA, 0, dst=frame)

        if self._rng.random() < self.config.marker_probability:
            cx = int(self._rng.random() * w)
            cy = int(self._rng.random() * h)
            cv2.circle(frame, (cx, cy), 5, MARKER_BGR, -1)

        self.frames_rendered += 1
        return frame

    def latest_frame(self) -> np.ndarray | None:
        """Return the most recently rendered frame."""
        return self._latest

    def start(self) -> None:
        """Begin the redraw loop; a no-op when already running."""
        if self.running:
            return
        self._latest = self.render(self._clock())
        self._task = asyncio.create_task(self._run(), name="synthetic-frames")
        logger.info(
            "Synthetic feed started: {}x{} @ {:.0f} FPS",
            self.width,
            self.height,
            self.config.fps,
        )

    async def stop(self) -> None:
        """Stop the redraw loop and drop the last frame."""
        task, self._task = self._task, None
        self._latest = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Synthetic feed stopped")

    async def _run(self) -> None:
        interval = 1.0 / self.config.fps
        while True:
            await asyncio.sleep(interval)
            self._latest = self.render(self._clock())
