"""Fixed-period tick source for window slicing.

:class:`WindowScheduler` fires a callback every ``period_s`` seconds on an
event loop, independent of data arrival.  Ticks are anchored to the start
time, so callback runtime never accumulates drift; ticks that were missed
(e.g. the loop was blocked) are skipped rather than replayed.

The scheduler is a construction-time resource: once stopped it cannot be
started again.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

LOGGER = logging.getLogger(__name__)


class WindowScheduler:
    def __init__(
        self,
        period_s: float,
        callback: Callable[[], None],
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        name: str = "window-scheduler",
    ):
        if period_s <= 0:
            raise ValueError(f"period_s must be > 0, got {period_s!r}")
        self.period_s = float(period_s)
        self.name = name
        self._callback = callback
        self._loop = loop
        self._handle: asyncio.TimerHandle | None = None
        self._next_fire: float = 0.0
        self._started = False
        self._stopped = False
        self.tick_count: int = 0
        self.failure_count: int = 0

    @property
    def running(self) -> bool:
        return self._started and not self._stopped

    @property
    def stopped(self) -> bool:
        return self._stopped

    def start(self) -> None:
        """Schedule the first tick one period from now.  No-op if already running."""
        if self._stopped:
            raise RuntimeError(f"{self.name} was stopped and cannot be restarted")
        if self._started:
            return
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._started = True
        self._next_fire = self._loop.time() + self.period_s
        self._handle = self._loop.call_at(self._next_fire, self._fire)
        LOGGER.debug("%s started with period %.3fs", self.name, self.period_s)

    def stop(self) -> None:
        """Cancel future ticks.  Safe to call multiple times."""
        if self._stopped:
            return
        self._stopped = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        LOGGER.debug("%s stopped after %d ticks", self.name, self.tick_count)

    def _fire(self) -> None:
        self._handle = None
        if self._stopped:
            return
        self.tick_count += 1
        try:
            self._callback()
        except Exception:
            self.failure_count += 1
            LOGGER.warning("%s tick failed; will retry next period.", self.name, exc_info=True)
        if self._stopped or self._loop is None:
            return
        now = self._loop.time()
        self._next_fire += self.period_s
        if self._next_fire <= now:
            missed = int((now - self._next_fire) // self.period_s) + 1
            self._next_fire += missed * self.period_s
            LOGGER.debug("%s skipped %d late tick(s)", self.name, missed)
        self._handle = self._loop.call_at(self._next_fire, self._fire)
