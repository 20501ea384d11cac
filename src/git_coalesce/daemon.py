import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import Config
from .constants import APP_NAME
from .executor import CommitExecutor
from .git_wrapper import GitRepo, is_git_repo
from .scheduler import CommitScheduler
from .shutdown import ShutdownCoordinator
from .watcher import DirectoryWatcher

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)


class StartupError(RuntimeError):
    """Raised when the watcher cannot start; nothing has been watched yet."""


def setup_logging(
    verbose: bool = False, log_file: Path | None = None, max_bytes: int = 5 * 1024**2
) -> None:
    """Configures the logging subsystem.

    Args:
        verbose (bool): Log at DEBUG level instead of INFO.
        log_file (Path | None): If given, also log to this file with rotation.
        max_bytes (int): Rotation size for the log file.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Drop handlers from a previous call so repeated setup does not duplicate lines.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=5
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def resolve_paths(config: Config, repo_path: Path) -> tuple[Path, Path]:
    """Validates and resolves the repository and watch roots.

    Args:
        config (Config): The effective configuration.
        repo_path (Path): The repository directory.

    Returns:
        tuple[Path, Path]: The resolved (repo, watch) directories.

    Raises:
        StartupError: If either path is unusable.
    """
    repo = repo_path.expanduser().resolve()
    if not is_git_repo(repo):
        raise StartupError(f"{repo} is not a valid git repository")

    watch_dir = Path(config.watch.dir).expanduser()
    if not watch_dir.is_absolute():
        watch_dir = repo / watch_dir
    watch_dir = watch_dir.resolve()
    if not watch_dir.is_dir():
        raise StartupError(f"Watch directory does not exist: {watch_dir}")
    return repo, watch_dir


def build(config: Config, repo_path: Path) -> tuple[CommitScheduler, DirectoryWatcher]:
    """Wires the executor, scheduler and watcher for one repository."""
    repo_dir, watch_dir = resolve_paths(config, repo_path)
    executor = CommitExecutor(
        GitRepo(repo_dir), remote=config.git.remote, push=config.git.push
    )
    scheduler = CommitScheduler(
        executor,
        config.watch.extension_set,
        interval=config.schedule.interval,
        max_wait=config.schedule.max_wait,
    )
    watcher = DirectoryWatcher(watch_dir, scheduler, config.watch.ignore_dirs)
    return scheduler, watcher


def run(config: Config, repo_path: Path) -> None:
    """Watches the configured tree and commits changes until a signal arrives.

    Args:
        config (Config): The effective configuration.
        repo_path (Path): The repository to commit into.

    Raises:
        StartupError: If the repository or the watcher cannot be set up.
    """
    scheduler, watcher = build(config, repo_path)
    max_wait = config.schedule.max_wait

    logger.info("Git Coalesce started")
    logger.info(f"Watching: {watcher.root}")
    logger.info(f"Repository: {scheduler.executor.repo.path}")
    logger.info(
        f"Debounce: {config.schedule.interval:g}s | "
        f"Max-wait: {f'{max_wait:g}s' if max_wait > 0 else 'disabled'}"
    )
    logger.info(f"Extensions: {', '.join(sorted(scheduler.extensions))}")

    with ShutdownCoordinator(scheduler) as coordinator:
        scheduler.start()
        try:
            watcher.start()
        except OSError as e:
            coordinator.trigger()
            coordinator.wait()
            raise StartupError(f"Could not start file watcher: {e}") from e

        try:
            coordinator.wait()
        finally:
            watcher.stop()

    logger.info("Git Coalesce stopped")
