from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol


class Clock(Protocol):
    """Monotonic clock abstraction.

    Core logic depends on this interface rather than calling real time directly.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


class WallClock:
    """Epoch seconds, used for session timestamps that outlive the process."""

    def now(self) -> float:
        return time.time()


@dataclass(eq=False, slots=True)
class TimerHandle:
    due_at: float
    callback: Callable[[], None]
    interval: float | None = None
    cancelled: bool = field(default=False)

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def active(self) -> bool:
        return not self.cancelled


class TimerQueue:
    """Cancellable one-shot and periodic callbacks driven by a Clock.

    Nothing fires on its own: the host loop calls :meth:`run_due` (once per
    frame, or after advancing a fake clock). Callbacks run synchronously, in
    due order, on the caller's thread.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._handles: list[TimerHandle] = []

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        if delay_s < 0:
            raise ValueError("delay_s must be >= 0")
        handle = TimerHandle(due_at=self._clock.now() + float(delay_s), callback=callback)
        self._handles.append(handle)
        return handle

    def call_every(self, interval_s: float, callback: Callable[[], None]) -> TimerHandle:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        handle = TimerHandle(
            due_at=self._clock.now() + float(interval_s),
            callback=callback,
            interval=float(interval_s),
        )
        self._handles.append(handle)
        return handle

    def pending(self) -> int:
        return sum(1 for h in self._handles if h.active)

    def run_due(self) -> int:
        """Fire every callback whose due time has passed. Returns the count fired."""

        fired = 0
        now = self._clock.now()
        while True:
            due = [h for h in self._handles if h.active and h.due_at <= now]
            if not due:
                break
            handle = min(due, key=lambda h: h.due_at)
            if handle.interval is None:
                handle.cancelled = True
            else:
                # Catch up one period at a time so a long frame still yields every tick.
                handle.due_at += handle.interval
            handle.callback()
            fired += 1
        self._handles = [h for h in self._handles if h.active]
        return fired
