"""Shared fixtures: a manual clock and timers that fire only when told to."""

from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest

from git_coalesce.scheduler import CommitScheduler, FileEvent, Operation


class ManualClock:
    """A monotonic clock that only moves when the test advances it."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class FakeTimer:
    def __init__(self, clock: ManualClock, delay: float, callback: Callable[[], None]):
        self.deadline = clock.now + delay
        self.callback = callback
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def pending(self) -> bool:
        return self.started and not self.cancelled and not self.fired


class FakeTimers:
    """Timer factory that records every timer instead of starting threads."""

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self.created: list[FakeTimer] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.clock, delay, callback)
        self.created.append(timer)
        return timer

    def pending(self) -> list[FakeTimer]:
        return [t for t in self.created if t.pending]


class Harness:
    """Drives a scheduler through simulated time.

    Timer callbacks are invoked in deadline order as the clock advances, and
    the scheduler's inbox is drained after every step, mirroring what the
    dedicated loop thread would do.
    """

    def __init__(self, interval: float, max_wait: float, extensions: frozenset[str]):
        self.clock = ManualClock()
        self.timers = FakeTimers(self.clock)
        self.executor = MagicMock()
        self.flushes: list[tuple[float, list[str], str]] = []

        def record(paths: list[str], reason: str) -> Any:
            self.flushes.append((self.clock.now, list(paths), reason))

        self.executor.execute.side_effect = record
        self.scheduler = CommitScheduler(
            self.executor,
            extensions,
            interval=interval,
            max_wait=max_wait,
            timer_factory=self.timers,
            clock=self.clock,
        )

    def advance(self, to: float) -> None:
        while True:
            due = [t for t in self.timers.pending() if t.deadline <= to]
            if not due:
                break
            timer = min(due, key=lambda t: t.deadline)
            self.clock.now = max(self.clock.now, timer.deadline)
            timer.fired = True
            timer.callback()
            self.scheduler.process_pending()
        self.clock.now = max(self.clock.now, to)

    def event(self, at: float, path: str, op: Operation = Operation.WRITE) -> None:
        self.advance(at)
        self.scheduler.submit_event(FileEvent(path, op))
        self.scheduler.process_pending()


@pytest.fixture
def harness_factory() -> Callable[..., Harness]:
    def make(
        interval: float = 2,
        max_wait: float = 100,
        extensions: frozenset[str] = frozenset({".asp"}),
    ) -> Harness:
        return Harness(interval, max_wait, extensions)

    return make
