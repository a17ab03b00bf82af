"""Self-throttling snapshot inference loop."""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from resq_eye.errors import InferenceError
from resq_eye.pipeline.metrics import InferenceStats
from resq_eye.pipeline.types import PollState


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from resq_eye.config import PollConfig
    from resq_eye.inference.client import InferenceClient
    from resq_eye.pipeline.capture.core import CaptureSourceManager
    from resq_eye.pipeline.lease import CaptureLease
    from resq_eye.pipeline.types import InferenceResult


@dataclass
class PollRun:
    """State owned by a single start-to-stop run of the scheduler."""

    generation: int
    active: bool = True
    cycles: int = 0


class AdaptivePollingScheduler:
    """Snapshot the capture source and submit it for inference, one at a time.

    The next cycle is only scheduled after the previous request resolved.
    Rate-limited responses stretch the delay by ``backoff_factor`` up to
    ``max_delay_ms``; healthy responses shrink it by ``recovery_factor`` back
    down to ``min_delay_ms``. Cycles without a frame are skipped and leave
    the delay untouched.
    """

    OWNER = "polling"

    def __init__(
        self,
        capture: CaptureSourceManager,
        client: InferenceClient,
        lease: CaptureLease,
        config: PollConfig,
        on_result: Callable[[InferenceResult], None] | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        stats: InferenceStats | None = None,
    ) -> None:
        self.config = config
        self.state = PollState(
            current_delay_ms=config.min_delay_ms,
            min_delay_ms=config.min_delay_ms,
            max_delay_ms=config.max_delay_ms,
            backoff_factor=config.backoff_factor,
            recovery_factor=config.recovery_factor,
        )
        self.stats = stats or InferenceStats()
        self.in_flight = 0
        self.max_in_flight = 0
        self._capture = capture
        self._client = client
        self._lease = lease
        self._on_result = on_result
        self._sleep = sleep
        self._run: PollRun | None = None
        self._task: asyncio.Task | None = None
        self._generation = 0

    @property
    def running(self) -> bool:
        return self._run is not None and self._run.active

    @property
    def is_busy(self) -> bool:
        return self.in_flight > 0

    async def start(self) -> None:
        """Take the capture lease and begin polling. No-op while running."""
        if self.running:
            return
        self._generation += 1
        run = PollRun(generation=self._generation)
        self._run = run

        await self._lease.acquire(self.OWNER, self.stop)
        if not run.active:
            self._lease.release(self.OWNER)
            return

        self._task = asyncio.create_task(
            self._loop(run), name=f"poll-{run.generation}"
        )
        logger.info(
            "Snapshot polling started (delay {:.0f} ms)", self.state.current_delay_ms
        )

    async def stop(self) -> None:
        """Cancel the pending cycle and release the capture lease."""
        run, self._run = self._run, None
        if run is not None:
            run.active = False
        task, self._task = self._task, None
        self._lease.release(self.OWNER)
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if run is not None:
            logger.info("Snapshot polling stopped after {} cycle(s)", run.cycles)

    async def _loop(self, run: PollRun) -> None:
        try:
            await self._sleep(self.config.warmup_s)
            while run.active:
                try:
                    await self._cycle(run)
                except Exception:
                    logger.exception("Poll cycle {} failed", run.cycles)
                    self.stats.add_failure()
                if not run.active:
                    break
                await self._sleep(self.state.current_delay_s)
        except Exception:
            logger.exception("Snapshot polling loop crashed")
        finally:
            if run.active:
                run.active = False
                self._lease.release(self.OWNER)
                logger.warning("Poll run {} ended unexpectedly", run.generation)

    async def _cycle(self, run: PollRun) -> None:
        run.cycles += 1
        snapshot = await self._capture.snapshot()
        if snapshot is None:
            logger.debug("No frame ready; skipping cycle")
            self.stats.add_skip()
            return
        if not run.active:
            return

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        started = time.perf_counter()
        try:
            result = await self._client.analyze_frame(snapshot)
        except InferenceError as exc:
            logger.warning("Frame analysis failed: {}", exc)
            self.stats.add_failure()
            return
        finally:
            self.in_flight -= 1

        if not run.active:
            logger.debug("Dropping result for stopped poll run {}", run.generation)
            return

        self.stats.add_request(
            (time.perf_counter() - started) * 1000.0,
            rate_limited=result.is_rate_limited,
        )
        self._adjust_delay(result)
        if self._on_result is not None:
            self._on_result(result)

    def _adjust_delay(self, result: InferenceResult) -> None:
        previous = self.state.current_delay_ms
        if result.is_rate_limited:
            current = self.state.back_off()
            logger.warning("Rate limited; backing off {:.0f} -> {:.0f} ms", previous, current)
        else:
            current = self.state.recover()
            if current != previous:
                logger.debug("Recovering poll delay {:.0f} -> {:.0f} ms", previous, current)
