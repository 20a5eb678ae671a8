"""
Schedulers for timed physical processes.

The session asks a scheduler to call it back when a process (drying,
cooling, gauge stabilization, ...) finishes. Two implementations:

- ManualScheduler: virtual clock advanced explicitly. Deterministic, used
  by tests and the CLI.
- AsyncioScheduler: wraps loop.call_later for a real event loop.

Cancelled handles never fire. The reducer's generation check still
guards against a callback that was already running when it was cancelled.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable

from logging_utils import get_logger

logger = get_logger(__name__)


@dataclass
class TimerHandle:
    """A scheduled callback."""
    name: str
    due: float
    callback: Callable[[], Any]
    cancelled: bool = False
    fired: bool = False
    _native: Any = field(default=None, repr=False)

    def cancel(self) -> None:
        if self.cancelled or self.fired:
            return
        self.cancelled = True
        if self._native is not None:
            self._native.cancel()
        logger.debug(f"Cancelled timer {self.name}")

    def fire(self) -> None:
        """Run the callback now, whether or not the handle was cancelled."""
        self.fired = True
        self.callback()


class ManualScheduler:
    """
    Scheduler driven by a virtual clock.

    Usage:
        scheduler = ManualScheduler()
        scheduler.call_later(6.5, on_done, name="drying")
        scheduler.advance(6.5)   # on_done runs here
    """

    def __init__(self):
        self.now = 0.0
        self.handles: list[TimerHandle] = []
        self.history: list[tuple[float, str]] = []

    def call_later(self, delay: float, callback: Callable[[], Any], name: str = "") -> TimerHandle:
        handle = TimerHandle(name=name, due=self.now + max(delay, 0.0), callback=callback)
        self.handles.append(handle)
        return handle

    def pending(self) -> list[TimerHandle]:
        """Handles that are neither cancelled nor fired, soonest first."""
        live = [h for h in self.handles if not h.cancelled and not h.fired]
        return sorted(live, key=lambda h: h.due)

    def advance(self, seconds: float) -> int:
        """
        Move the clock forward, firing every callback that falls due.

        Callbacks scheduled by other callbacks fire too if they are due
        before the new time. Returns the number of callbacks fired.
        """
        target = self.now + seconds
        fired = 0
        while True:
            due = [h for h in self.pending() if h.due <= target]
            if not due:
                break
            handle = due[0]
            self.now = handle.due
            self.history.append((self.now, handle.name))
            handle.fire()
            fired += 1
        self.now = target
        self.handles = [h for h in self.handles if not h.cancelled and not h.fired]
        return fired

    def run_all(self) -> int:
        """Fire callbacks until nothing is pending."""
        fired = 0
        while self.pending():
            fired += self.advance(self.pending()[0].due - self.now)
        return fired


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        """Without an explicit loop, must be created from inside a running one."""
        self.loop = loop or asyncio.get_running_loop()

    def call_later(self, delay: float, callback: Callable[[], Any], name: str = "") -> TimerHandle:
        handle = TimerHandle(name=name, due=self.loop.time() + delay, callback=callback)

        def _run():
            if not handle.cancelled:
                handle.fire()

        handle._native = self.loop.call_later(delay, _run)
        return handle
