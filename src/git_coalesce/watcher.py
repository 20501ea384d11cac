import logging
import os
from collections.abc import Iterable
from pathlib import Path, PurePath

from watchdog.events import (
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from .constants import APP_NAME, IGNORED_DIRS
from .scheduler import CommitScheduler, FileEvent, Operation

logger = logging.getLogger(APP_NAME)


def _as_str(path: str | bytes) -> str:
    return os.fsdecode(path)


def to_file_event(event: FileSystemEvent) -> FileEvent | None:
    """Translates a watchdog event into a scheduler event.

    Directory events and open/close notifications map to None. Moves are
    reported at their destination.
    """
    if event.is_directory:
        return None
    if isinstance(event, FileMovedEvent):
        return FileEvent(_as_str(event.dest_path), Operation.RENAME)
    if isinstance(event, FileCreatedEvent):
        return FileEvent(_as_str(event.src_path), Operation.CREATE)
    if isinstance(event, FileModifiedEvent):
        return FileEvent(_as_str(event.src_path), Operation.WRITE)
    if isinstance(event, FileDeletedEvent):
        return FileEvent(_as_str(event.src_path), Operation.REMOVE)
    return None


class _ForwardingHandler(FileSystemEventHandler):
    """Hands every watchdog event to the owning `DirectoryWatcher`."""

    def __init__(self, watcher: "DirectoryWatcher"):
        super().__init__()
        self._watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        try:
            self._watcher.handle(event)
        except Exception as e:
            self._watcher.scheduler.report_error(e, f"handling {event.src_path!r}")


class DirectoryWatcher:
    """Watches a directory tree with a single recursive watchdog schedule.

    The observer follows directories created, moved or recreated under the
    root on its own. Events under an ignored directory name (`.git`,
    `node_modules`, ...) are dropped here before they reach the scheduler.
    Files written into a brand-new directory before the observer has picked
    it up may still go unreported.

    Attributes:
        root (Path): The directory tree being watched.
        scheduler (CommitScheduler): Receives file events and watch errors.
        ignore_dirs (frozenset[str]): Directory names whose contents are ignored.
    """

    def __init__(
        self,
        root: Path,
        scheduler: CommitScheduler,
        ignore_dirs: Iterable[str] = (),
        observer: BaseObserver | None = None,
    ):
        self.root = root
        self.scheduler = scheduler
        self.ignore_dirs = IGNORED_DIRS | frozenset(ignore_dirs)
        self._observer = observer if observer is not None else Observer()
        self._handler = _ForwardingHandler(self)

    def start(self) -> None:
        """Schedules the root and starts the observer thread.

        Raises:
            OSError: If the root cannot be watched or the observer cannot start.
        """
        self._observer.schedule(self._handler, str(self.root), recursive=True)
        self._observer.start()
        logger.info(f"Watching {self.root} (recursive)")

    def stop(self) -> None:
        if self._observer.is_alive():
            self._observer.stop()
            self._observer.join()

    def is_ignored(self, path: str | PurePath) -> bool:
        """Returns True if any directory of `path` below the root is ignored."""
        pure = PurePath(path)
        try:
            parts = pure.relative_to(self.root).parent.parts
        except ValueError:
            parts = pure.parent.parts
        return any(part in self.ignore_dirs for part in parts)

    def handle(self, event: FileSystemEvent) -> None:
        """Routes one watchdog event."""
        file_event = to_file_event(event)
        if file_event is None:
            return
        if self.is_ignored(file_event.path):
            return
        self.scheduler.submit_event(file_event)
