"""Exclusive ownership of the capture source between frame consumers."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from loguru import logger


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


class CaptureLease:
    """Hand the capture source to exactly one consumer at a time.

    Acquiring for a new owner awaits the current holder's ``revoke``
    callback before the lease changes hands. ``revoke`` is expected to stop
    the holder and call ``release``; ``release`` never blocks so it can be
    called from inside a revoke callback.
    """

    def __init__(self) -> None:
        self._holder: str | None = None
        self._revoke: Callable[[], Awaitable[None]] | None = None
        self._lock = asyncio.Lock()
        self.handovers = 0

    @property
    def holder(self) -> str | None:
        return self._holder

    def is_held_by(self, owner: str) -> bool:
        return self._holder == owner

    async def acquire(self, owner: str, revoke: Callable[[], Awaitable[None]]) -> None:
        """Take the lease for ``owner``, revoking any other holder first."""
        async with self._lock:
            if self._holder == owner:
                self._revoke = revoke
                return
            if self._holder is not None and self._revoke is not None:
                previous = self._holder
                logger.debug("Revoking capture lease from {} for {}", previous, owner)
                await self._revoke()
                if self._holder == previous:
                    self._holder = None
                    self._revoke = None
                self.handovers += 1
            self._holder = owner
            self._revoke = revoke
            logger.debug("Capture lease held by {}", owner)

    def release(self, owner: str) -> None:
        """Give the lease up if ``owner`` holds it."""
        if self._holder == owner:
            self._holder = None
            self._revoke = None
            logger.debug("Capture lease released by {}", owner)
