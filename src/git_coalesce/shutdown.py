import logging
import signal
from types import FrameType
from typing import Any

from .constants import APP_NAME
from .scheduler import CommitScheduler

logger = logging.getLogger(APP_NAME)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownCoordinator:
    """Turns termination signals into one final flush of the scheduler.

    The signal handler only posts a shutdown request; the flush itself runs on
    the scheduler's own thread. `wait()` keeps the main thread responsive to
    signals while it waits for that flush to finish.

    Must be installed from the main thread, as required by `signal.signal`.

    Attributes:
        scheduler (CommitScheduler): The loop to stop.
        received (signal.Signals | None): The first signal caught, if any.
    """

    def __init__(self, scheduler: CommitScheduler, poll_interval: float = 0.5):
        self.scheduler = scheduler
        self.received: signal.Signals | None = None
        self._poll_interval = poll_interval
        self._previous: dict[int, Any] = {}

    def install(self) -> None:
        for sig in HANDLED_SIGNALS:
            self._previous[sig] = signal.signal(sig, self._handle)

    def restore(self) -> None:
        for sig, handler in self._previous.items():
            signal.signal(sig, handler)
        self._previous.clear()

    def __enter__(self) -> "ShutdownCoordinator":
        self.install()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.restore()

    def _handle(self, signum: int, _frame: FrameType | None) -> None:
        sig = signal.Signals(signum)
        if self.received is not None:
            logger.warning(f"Signal {sig.name} received again, already shutting down")
            return
        self.received = sig
        logger.info(f"Signal {sig.name} received, flushing pending changes...")
        self.scheduler.request_shutdown()

    def trigger(self) -> None:
        """Starts a shutdown without a signal (e.g. when the watcher dies)."""
        if self.received is None:
            self.scheduler.request_shutdown()

    def wait(self, timeout: float | None = None) -> bool:
        """Blocks until the scheduler has performed its final flush.

        Waits in short slices so Python can run signal handlers in between.

        Args:
            timeout (float | None): Give up after this many seconds.

        Returns:
            bool: True if the scheduler stopped.
        """
        remaining = timeout
        while not self.scheduler.stopped:
            step = self._poll_interval
            if remaining is not None:
                if remaining <= 0:
                    return False
                step = min(step, remaining)
                remaining -= step
            if self.scheduler.wait_stopped(step):
                break
        self.scheduler.join()
        return True
