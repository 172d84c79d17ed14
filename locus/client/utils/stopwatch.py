"""Deferred callback timer on the asyncio event loop."""

from __future__ import annotations

import asyncio
from collections.abc import Callable


class Stopwatch:
    """A single-shot timer that can be scheduled, rescheduled and cancelled.

    ``again()`` schedules the callback unless a run is already pending;
    ``reschedule()`` cancels any pending run first, so a burst of calls
    coalesces into one execution ``delay`` seconds after the last of them.
    Outside a running event loop there is nothing to defer against and the
    callback runs immediately.
    """

    def __init__(self, callback: Callable[[], object], delay: float = 0.0) -> None:
        self.callback = callback
        self.delay = delay
        self._handle: asyncio.TimerHandle | None = None

    @classmethod
    def later(cls, callback: Callable[[], object], delay: float = 0.0) -> Stopwatch:
        """Create an unscheduled timer."""
        return cls(callback, delay)

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def tick(self) -> None:
        self._handle = None
        self.callback()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def again(self, delay: float | None = None) -> None:
        if self._handle is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.tick()
            return
        self._handle = loop.call_later(self.delay if delay is None else delay, self.tick)

    def reschedule(self, delay: float | None = None) -> None:
        self.cancel()
        self.again(delay)

    def now(self) -> None:
        self.cancel()
        self.tick()
