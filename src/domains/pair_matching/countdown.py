# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Session countdown timer.

The countdown is the only long-lived timed operation of a session. It
ticks once per interval, fires its expiry callback exactly once when it
reaches zero, and must be cancelled as soon as the session leaves the
active state so a stray expiry cannot complete a finished session again.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class Countdown:
    """Cancellable asyncio countdown.

    ``tick()`` is public so callers (and tests) can drive the clock
    without the background task.

    Example:
        >>> countdown = Countdown(180, on_expire=engine_timeout)
        >>> countdown.start()
        >>> countdown.remaining
        180
        >>> countdown.cancel()
    """

    def __init__(
        self,
        seconds: int,
        on_expire: Callable[[], Awaitable[None]],
        tick_interval: float = 1.0,
        on_tick: Callable[[int], None] | None = None,
    ) -> None:
        self._remaining = seconds
        self._on_expire = on_expire
        self._on_tick = on_tick
        self._tick_interval = tick_interval
        self._task: asyncio.Task[None] | None = None
        self._expired = False
        self._cancelled = False

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking in a background task on the running loop."""
        if self._task is not None or self._cancelled or self._expired:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def tick(self) -> None:
        """Advance the clock by one unit; expires at zero."""
        if self._cancelled or self._expired:
            return

        self._remaining = max(0, self._remaining - 1)
        if self._on_tick is not None:
            self._on_tick(self._remaining)

        if self._remaining == 0:
            self._expired = True
            logger.debug("Countdown expired")
            await self._on_expire()

    def cancel(self) -> None:
        """Stop the countdown. Safe to call from inside the expiry callback."""
        self._cancelled = True
        task = self._task
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    async def wait(self) -> None:
        """Wait for the background task to finish (expiry or cancellation)."""
        if self._task is None:
            return
        await asyncio.wait({self._task})

    async def _run(self) -> None:
        while not (self._cancelled or self._expired):
            await asyncio.sleep(self._tick_interval)
            await self.tick()
