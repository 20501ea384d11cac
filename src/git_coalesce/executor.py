import datetime
import enum
import logging
import os
import time
from collections.abc import Callable, Sequence
from pathlib import PurePath

from .constants import APP_NAME, COMMIT_PREFIX, NO_CHANGES_MARKERS, SUMMARY_THRESHOLD
from .git_wrapper import GitCommandError, GitRepo

logger = logging.getLogger(APP_NAME)


class CommitOutcome(enum.Enum):
    """How a flushed batch ended up."""

    SKIPPED = "skipped"
    NO_CHANGES = "no-changes"
    COMMITTED = "committed"
    PUSHED = "pushed"


class CommitError(RuntimeError):
    """Raised when a stage of the commit pipeline fails.

    Attributes:
        stage (str): The failing step: 'stage', 'status', 'commit' or 'push'.
        output (str): Captured git output for diagnosis.
        paths (list[str]): The batch that was being committed.
    """

    def __init__(self, stage: str, output: str, paths: Sequence[str]):
        self.stage = stage
        self.output = output
        self.paths = list(paths)
        super().__init__(
            f"git {stage} failed for {len(self.paths)} file(s): {output.strip()}"
        )


def is_no_changes(output: str) -> bool:
    """Returns True if git output only says there was nothing to commit."""
    lowered = output.lower()
    return any(marker in lowered for marker in NO_CHANGES_MARKERS)


def build_commit_message(paths: Sequence[str], now: datetime.datetime) -> str:
    """Composes a commit message for a batch.

    Small batches list their file names; larger ones are summarized as a count.

    Args:
        paths (Sequence[str]): The batch of changed paths.
        now (datetime.datetime): The commit time stamped into the message.

    Returns:
        str: e.g. ``Auto-commit: a.asp, b.asp [2024-01-01 12:00:00]``.
    """
    if len(paths) <= SUMMARY_THRESHOLD:
        file_list = ", ".join(sorted(PurePath(p).name for p in paths))
    else:
        file_list = f"{len(paths)} files"
    return f"{COMMIT_PREFIX}: {file_list} [{now.strftime('%Y-%m-%d %H:%M:%S')}]"


class CommitExecutor:
    """Turns a flushed batch into a commit and a push.

    The executor never retries. A failed batch is reported through
    `CommitError` and forgotten; its files are picked up again only if they
    change again.

    Attributes:
        repo (GitRepo): The repository commits are made in.
        remote (str | None): Remote passed to `git push`.
        push_enabled (bool): Whether successful commits are pushed.
    """

    def __init__(
        self,
        repo: GitRepo,
        remote: str | None = None,
        push: bool = True,
        clock: Callable[[], datetime.datetime] = datetime.datetime.now,
    ):
        self.repo = repo
        self.remote = remote
        self.push_enabled = push
        self._clock = clock

    def execute(self, paths: Sequence[str], reason: str) -> CommitOutcome:
        """Stages, commits and pushes `paths`.

        Args:
            paths (Sequence[str]): Distinct changed paths of the batch.
            reason (str): Why the batch was flushed; used for logging only.

        Returns:
            CommitOutcome: What happened to the batch.

        Raises:
            CommitError: If staging, status, commit or push fails.
        """
        if not paths:
            logger.debug(f"{reason}: no pending changes")
            return CommitOutcome.SKIPPED

        files = sorted(paths)
        logger.info(f"COMMIT ({reason}): {len(files)} file(s)")
        start = time.monotonic()

        # 1. Stage the whole batch at once, minus files git never saw that are gone.
        files = self._stageable(files)
        if not files:
            logger.info(f"NO CHANGES ({reason}): every file in the batch vanished")
            return CommitOutcome.NO_CHANGES
        try:
            self.repo.stage(files)
        except GitCommandError as e:
            raise CommitError("stage", e.output, files) from e

        # 2. Skip the commit when the batch only contained no-op edits.
        try:
            if not self.repo.has_staged_changes():
                logger.info(f"NO CHANGES ({reason}): nothing staged")
                return CommitOutcome.NO_CHANGES
        except GitCommandError as e:
            raise CommitError("status", e.output, files) from e

        # 3. Commit.
        message = build_commit_message(files, self._clock())
        try:
            self.repo.commit(message)
        except GitCommandError as e:
            if is_no_changes(e.output):
                logger.info(f"NO CHANGES ({reason}): commit had nothing to record")
                return CommitOutcome.NO_CHANGES
            raise CommitError("commit", e.output, files) from e

        if not self.push_enabled:
            logger.info(
                f"SUCCESS: Committed in {time.monotonic() - start:.2f}s. Push disabled."
            )
            return CommitOutcome.COMMITTED

        # 4. Push. The local commit stays even if this fails.
        try:
            self.repo.push(self.remote)
        except GitCommandError as e:
            raise CommitError("push", e.output, files) from e

        logger.info(f"SUCCESS: Committed and pushed in {time.monotonic() - start:.2f}s")
        return CommitOutcome.PUSHED

    def _stageable(self, files: list[str]) -> list[str]:
        """Drops paths that no longer exist and are not tracked.

        `git add` rejects such a path and would fail the whole batch with it.
        Deleted tracked files are kept so their removal is committed.

        Raises:
            CommitError: If git cannot list the tracked files.
        """
        missing = [p for p in files if not os.path.lexists(p)]
        if not missing:
            return files
        try:
            tracked = self.repo.tracked(missing)
        except GitCommandError as e:
            raise CommitError("stage", e.output, files) from e

        vanished = {p for p in missing if p not in tracked}
        if vanished:
            logger.warning(
                f"SKIP: {len(vanished)} untracked file(s) vanished before staging: "
                f"{', '.join(sorted(vanished))}"
            )
        return [p for p in files if p not in vanished]
