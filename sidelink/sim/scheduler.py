"""Scheduler implementations backing the sidelink core."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional, Tuple

import simpy


class SimpyTimer:
    """Cancellable callback bound to a simpy timeout event."""

    def __init__(self, event: simpy.events.Timeout, callback: Callable[..., Any], args: Tuple[Any, ...]) -> None:
        self._callback = callback
        self._args = args
        self.cancelled = False
        event.callbacks.append(self._fire)

    def _fire(self, event: simpy.events.Event) -> None:
        if not self.cancelled:
            self.cancelled = True
            self._callback(*self._args)

    def cancel(self) -> None:
        self.cancelled = True


class SimpyScheduler:
    """
    Discrete-event clock on top of :class:`simpy.Environment`.

    Timeouts created for the same instant are processed in creation order,
    which gives the FIFO tie-break the sidelink handlers rely on.
    """

    def __init__(self, env: Optional[simpy.Environment] = None) -> None:
        self.env = env or simpy.Environment()

    @property
    def now(self) -> float:
        return float(self.env.now)

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> SimpyTimer:
        if delay < 0:
            raise ValueError("delay must be non-negative")
        return SimpyTimer(self.env.timeout(delay), callback, args)

    def run(self, until: Optional[float] = None) -> None:
        self.env.run(until=until)


class AsyncioScheduler:
    """Wall-clock scheduler on an asyncio event loop (``loop.call_later``)."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self.loop = loop or asyncio.get_running_loop()
        self._origin = self.loop.time()

    @property
    def now(self) -> float:
        return self.loop.time() - self._origin

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        if delay < 0:
            raise ValueError("delay must be non-negative")
        return self.loop.call_later(delay, callback, *args)
