"""Change coalescing for Git Coalesce.

All scheduling state (the pending change set and the two timers) belongs to a
single loop. The watcher, the timer threads and the signal handler never touch
that state directly; they post messages to the loop's inbox and the loop
applies them one at a time. A flush therefore always sees a consistent batch,
and an event that arrives while a commit is running simply waits in the inbox
and starts the next batch.
"""

import enum
import logging
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from .constants import APP_NAME
from .executor import CommitError, CommitExecutor
from .filters import matches_extension

logger = logging.getLogger(APP_NAME)

DEBOUNCE = "debounce"
MAX_WAIT = "max-wait"


class Operation(enum.Enum):
    """Kinds of filesystem change reported by the watcher."""

    CREATE = "create"
    WRITE = "write"
    RENAME = "rename"
    REMOVE = "remove"


RELEVANT_OPERATIONS = frozenset({Operation.CREATE, Operation.WRITE, Operation.RENAME})


@dataclass(frozen=True)
class FileEvent:
    path: str
    op: Operation


@dataclass(frozen=True)
class WatchError:
    error: BaseException
    context: str = ""


@dataclass(frozen=True)
class TimerFired:
    name: str
    generation: int


@dataclass(frozen=True)
class Shutdown:
    reason: str = "flush on exit"


class Cancellable(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], Cancellable]


def thread_timer(delay: float, callback: Callable[[], None]) -> Cancellable:
    """Default timer factory backed by a daemon `threading.Timer`."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


class ChangeSet:
    """The set of paths changed since the last flush."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._paths: set[str] = set()

    def add(self, path: str) -> bool:
        """Adds `path`, returning True if it made the set non-empty."""
        with self._lock:
            was_empty = not self._paths
            self._paths.add(path)
            return was_empty

    def drain(self) -> list[str]:
        """Empties the set and returns what it held."""
        with self._lock:
            paths, self._paths = self._paths, set()
        return sorted(paths)

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)


class TimerState(enum.Enum):
    DISARMED = "disarmed"
    ARMED = "armed"


class TimerHandle:
    """A named single-shot timer whose firings are delivered as messages.

    Every `arm` bumps the generation number. A `TimerFired` message is only
    honoured if it carries the current generation and the handle is still
    armed, so a firing that raced with a rearm or a flush is discarded.

    Attributes:
        name (str): Identifies the timer in `TimerFired` messages.
        state (TimerState): Whether a firing is pending.
        generation (int): Counter of arm operations.
        armed_at (float | None): Clock reading of the last arm.
    """

    def __init__(
        self,
        name: str,
        post: Callable[[TimerFired], None],
        factory: TimerFactory = thread_timer,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.state = TimerState.DISARMED
        self.generation = 0
        self.armed_at: float | None = None
        self._post = post
        self._factory = factory
        self._clock = clock
        self._timer: Cancellable | None = None

    @property
    def armed(self) -> bool:
        return self.state is TimerState.ARMED

    def arm(self, duration: float) -> None:
        """(Re)starts the timer, cancelling any pending firing."""
        self.disarm()
        self.generation += 1
        message = TimerFired(self.name, self.generation)
        self._timer = self._factory(duration, lambda: self._post(message))
        self.state = TimerState.ARMED
        self.armed_at = self._clock()
        self._timer.start()

    def disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.state = TimerState.DISARMED

    def accepts(self, message: TimerFired) -> bool:
        """Returns True if `message` is the pending firing of this timer."""
        return self.armed and message.generation == self.generation

    def consume(self) -> None:
        """Marks the pending firing as delivered."""
        self._timer = None
        self.state = TimerState.DISARMED


class CommitScheduler:
    """Coalesces file events into batches and hands them to the executor.

    States:
        Idle: no pending changes, both timers disarmed.
        Accumulating: pending changes, debounce armed (and max-wait if enabled).

    A relevant event rearms the debounce timer; the first event of a batch also
    arms the max-wait timer. Whichever timer fires first flushes the batch. A
    shutdown request flushes whatever is pending and stops the loop.

    Attributes:
        executor (CommitExecutor): Receives each flushed batch.
        extensions (frozenset[str]): Extensions that make a path relevant.
        interval (float): Debounce quiet period in seconds.
        max_wait (float): Upper bound on batch age in seconds; <= 0 disables it.
        changes (ChangeSet): Paths pending for the current batch.
    """

    def __init__(
        self,
        executor: CommitExecutor,
        extensions: frozenset[str],
        interval: float,
        max_wait: float = 0,
        timer_factory: TimerFactory = thread_timer,
        clock: Callable[[], float] = time.monotonic,
    ):
        if interval <= 0:
            raise ValueError(f"Debounce interval must be positive, got {interval}")
        self.executor = executor
        self.extensions = extensions
        self.interval = interval
        self.max_wait = max_wait
        self.changes = ChangeSet()
        self._clock = clock
        self._inbox: queue.Queue[Any] = queue.Queue()
        self._debounce = TimerHandle(DEBOUNCE, self._inbox.put, timer_factory, clock)
        self._max_wait = TimerHandle(MAX_WAIT, self._inbox.put, timer_factory, clock)
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None

    # --- Producer side (any thread) ---

    def submit_event(self, event: FileEvent) -> None:
        """Queues a filesystem event for the loop."""
        if self._stopped.is_set():
            logger.debug(f"Ignoring event after shutdown: {event.path}")
            return
        self._inbox.put(event)

    def report_error(self, error: BaseException, context: str = "") -> None:
        """Queues a watcher error so it is logged in order with events."""
        self._inbox.put(WatchError(error, context))

    def request_shutdown(self) -> None:
        """Asks the loop to flush pending changes and stop."""
        self._inbox.put(Shutdown())

    # --- Introspection ---

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    @property
    def debounce_armed(self) -> bool:
        return self._debounce.armed

    @property
    def max_wait_armed(self) -> bool:
        return self._max_wait.armed

    def wait_stopped(self, timeout: float | None = None) -> bool:
        return self._stopped.wait(timeout)

    # --- Loop ---

    def start(self) -> threading.Thread:
        """Runs the loop on a dedicated thread."""
        self._thread = threading.Thread(
            target=self.run, name=f"{APP_NAME}-scheduler", daemon=True
        )
        self._thread.start()
        return self._thread

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def run(self) -> None:
        """Processes messages until a shutdown request has been handled."""
        logger.debug("Scheduler loop started")
        try:
            while self._dispatch(self._inbox.get()):
                pass
        finally:
            self._finish()

    def process_pending(self) -> bool:
        """Handles every queued message without blocking.

        Returns:
            bool: False once a shutdown request has been handled.
        """
        if self._stopped.is_set():
            return False
        while True:
            try:
                message = self._inbox.get_nowait()
            except queue.Empty:
                return True
            if not self._dispatch(message):
                self._finish()
                return False

    def _finish(self) -> None:
        self._debounce.disarm()
        self._max_wait.disarm()
        self._stopped.set()
        dropped = 0
        while True:
            try:
                if isinstance(self._inbox.get_nowait(), FileEvent):
                    dropped += 1
            except queue.Empty:
                break
        if dropped:
            logger.debug(f"Discarded {dropped} event(s) received during shutdown")
        logger.debug("Scheduler loop stopped")

    def _dispatch(self, message: Any) -> bool:
        if isinstance(message, FileEvent):
            self._on_event(message)
        elif isinstance(message, TimerFired):
            self._on_timer(message)
        elif isinstance(message, WatchError):
            where = f" ({message.context})" if message.context else ""
            logger.warning(f"WATCH ERROR{where}: {message.error}")
        elif isinstance(message, Shutdown):
            self._debounce.disarm()
            self._max_wait.disarm()
            self._flush(message.reason, force=True)
            return False
        else:
            logger.warning(f"Unknown scheduler message: {message!r}")
        return True

    def _on_event(self, event: FileEvent) -> None:
        if event.op not in RELEVANT_OPERATIONS:
            return
        if not matches_extension(event.path, self.extensions):
            return

        first = self.changes.add(event.path)
        logger.info(f"CHANGE [{len(self.changes)}]: {event.path}")

        if first and self.max_wait > 0:
            self._max_wait.arm(self.max_wait)
            logger.debug(f"Max-wait timer armed: commit forced in {self.max_wait:g}s")
        self._debounce.arm(self.interval)

    def _on_timer(self, message: TimerFired) -> None:
        handle = self._debounce if message.name == DEBOUNCE else self._max_wait
        if not handle.accepts(message):
            logger.debug(f"Stale {message.name} timer firing ignored")
            return
        handle.consume()

        if handle is self._debounce:
            self._flush("debounce complete")
        else:
            started = handle.armed_at if handle.armed_at is not None else self._clock()
            elapsed = self._clock() - started
            self._flush(f"max-wait reached ({elapsed:.0f}s)")

    def _flush(self, reason: str, force: bool = False) -> None:
        """Drains the batch, resets both timers, then commits the batch.

        Args:
            reason (str): Why the flush happened, for the logs.
            force (bool): Call the executor even for an empty batch.
        """
        self._debounce.disarm()
        self._max_wait.disarm()
        batch = self.changes.drain()

        if not batch and not force:
            logger.debug(f"{reason}: no pending changes")
            return

        try:
            self.executor.execute(batch, reason)
        except CommitError as e:
            logger.error(f"{e.stage.upper()} ERROR ({reason}): {e}")
        except Exception:
            logger.exception(f"FLUSH ERROR ({reason}): {len(batch)} file(s) lost")
