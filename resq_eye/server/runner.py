"""Run the asyncio controller on a background thread for the Flask handlers."""

from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING, TypeVar

from loguru import logger


if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    import numpy as np

    from resq_eye.controller import LiveSensingController
    from resq_eye.pipeline.types import SensingStatus


T = TypeVar("T")


class ControllerRunner:
    """Own an event loop thread and the controller living on it.

    Flask request threads never touch controller state directly; every call
    is marshalled onto the loop with ``run_coroutine_threadsafe``.
    """

    def __init__(
        self,
        controller_factory: Callable[[], LiveSensingController],
        timeout: float = 10.0,
    ) -> None:
        self._factory = controller_factory
        self.timeout = timeout
        self.controller: LiveSensingController | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()
        self._startup_error: BaseException | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the loop thread and block until the controller is up."""
        if self.running:
            return
        self._ready.clear()
        self._startup_error = None
        self._thread = threading.Thread(
            target=self._run, name="resq-eye-loop", daemon=True
        )
        self._thread.start()
        self._ready.wait()
        if self._startup_error is not None:
            raise self._startup_error

    def _run(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        try:
            self.controller = self._factory()
            loop.run_until_complete(self.controller.start())
        except Exception as exc:
            logger.exception("Controller failed to start")
            self._startup_error = exc
            self._ready.set()
            loop.close()
            return

        self._ready.set()
        try:
            loop.run_forever()
        finally:
            loop.close()
            logger.info("Controller loop closed")

    def call(self, factory: Callable[[], Coroutine[object, object, T]]) -> T:
        """Run a coroutine on the controller loop and wait for its result."""
        if self._loop is None or not self.running:
            message = "Controller loop is not running"
            raise RuntimeError(message)
        future = asyncio.run_coroutine_threadsafe(factory(), self._loop)
        return future.result(self.timeout)

    def status(self) -> SensingStatus:
        async def _status() -> SensingStatus:
            return self.controller.status()

        return self.call(_status)

    def command(self, name: str) -> SensingStatus:
        """Execute an operator command and return the resulting status."""
        self.call(lambda: self.controller.execute(name))
        return self.status()

    def get_frame(self) -> np.ndarray | None:
        """Return the latest raw frame of the active source, if any."""
        return self.call(lambda: self.controller.capture.read_frame())

    def stop(self) -> None:
        """Shut the controller down and stop the loop thread."""
        if not self.running:
            return
        try:
            self.call(lambda: self.controller.shutdown())
        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout=self.timeout)
            self._thread = None
