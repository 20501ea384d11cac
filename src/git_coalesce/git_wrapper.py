import logging
import os
import subprocess
from collections.abc import Sequence
from pathlib import Path

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)

# Status codes in the index column of `git status --porcelain` that mean
# something is staged for the next commit.
_STAGED_CODES = frozenset("MADRCT")


class GitCommandError(RuntimeError):
    """Raised when a git invocation exits with a non-zero status.

    Attributes:
        args_list (list[str]): The git arguments that were run.
        output (str): Combined stdout and stderr of the command.
        returncode (int): The process exit code.
    """

    def __init__(self, args_list: list[str], output: str, returncode: int):
        self.args_list = args_list
        self.output = output
        self.returncode = returncode
        detail = output.strip() or f"exit status {returncode}"
        super().__init__(f"git {' '.join(args_list[:1])} failed: {detail}")


def is_git_repo(path: Path) -> bool:
    """Returns True if `path` has a `.git` directory or worktree file."""
    return (path / ".git").exists()


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    Exposes the four operations the commit pipeline needs (stage, status, commit,
    push). Each runs `git` synchronously, capturing combined output, and raises
    `GitCommandError` on failure so callers keep the diagnostic text.

    Attributes:
        path (Path): The file system path to the repository root.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.

        Raises:
            ValueError: If the specified path does not contain a .git directory.
        """
        self.path = path
        if not is_git_repo(self.path):
            raise ValueError(f"Not a git repository: {self.path}")

    def _run(self, args: list[str], env: dict | None = None) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            env (dict | None, optional): Environment variables to pass to the
                                         subprocess. Defaults to None.

        Returns:
            str: The combined stdout/stderr of the command.

        Raises:
            GitCommandError: If the git command returns a non-zero exit code.
        """
        logger.debug(f"Running: git {' '.join(args)}")
        res = subprocess.run(
            ["git", *args],
            cwd=self.path,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            env=env,
        )
        if res.returncode != 0:
            raise GitCommandError(args, res.stdout or "", res.returncode)
        return res.stdout or ""

    def stage(self, paths: Sequence[str]) -> None:
        """Stages the given paths in a single `git add` call.

        Args:
            paths (Sequence[str]): File paths, absolute or relative to the repo root.
        """
        if not paths:
            return
        self._run(["add", "--", *paths])

    def tracked(self, paths: Sequence[str]) -> set[str]:
        """Returns the subset of `paths` that git already tracks.

        Args:
            paths (Sequence[str]): File paths, absolute or relative to the repo root.

        Returns:
            set[str]: The entries of `paths`, unchanged, that appear in `git ls-files`.
        """
        if not paths:
            return set()
        output = self._run(["ls-files", "-z", "--full-name", "--", *paths])
        listed = {str(self.path / name) for name in output.split("\0") if name}
        return {p for p in paths if str(self.path / p) in listed}

    def status_porcelain(self) -> list[str]:
        """Returns the porcelain (machine-readable) status of the repository.

        Returns:
            list[str]: A list of status lines returned by `git status --porcelain`.
        """
        output = self._run(["status", "--porcelain"])
        return [line for line in output.splitlines() if line.strip()]

    def has_staged_changes(self) -> bool:
        """Returns True if the index differs from HEAD."""
        return any(
            line[:1] in _STAGED_CODES for line in self.status_porcelain() if line
        )

    def commit(self, message: str) -> str:
        """Creates a new commit with the provided message.

        Args:
            message (str): The commit message.

        Returns:
            str: The output of `git commit`.
        """
        return self._run(["commit", "-m", message])

    def push(self, remote: str | None = None) -> str:
        """Pushes the current branch without ever prompting for credentials.

        Args:
            remote (str | None, optional): The remote to push to. Defaults to the
                                           branch's configured upstream.

        Returns:
            str: The output of `git push`.
        """
        env = os.environ.copy()
        env["GIT_SSH_COMMAND"] = "ssh -o BatchMode=yes"
        env["GIT_TERMINAL_PROMPT"] = "0"
        cmd = ["push"]
        if remote:
            cmd.append(remote)
        return self._run(cmd, env=env)
