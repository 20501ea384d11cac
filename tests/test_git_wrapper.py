import shutil
import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_coalesce.executor import CommitExecutor, CommitOutcome
from git_coalesce.git_wrapper import GitCommandError, GitRepo, is_git_repo


def completed(returncode: int = 0, stdout: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=["git"], returncode=returncode, stdout=stdout)


def test_requires_git_directory(tmp_path: Path) -> None:
    """Verifies that GitRepo refuses a directory without .git."""
    assert not is_git_repo(tmp_path)
    with pytest.raises(ValueError, match="Not a git repository"):
        GitRepo(tmp_path)


def test_stage_uses_single_add_call(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies that the whole batch is staged with one `git add --` invocation."""
    (tmp_path / ".git").mkdir()
    mock_run = mocker.patch("subprocess.run", return_value=completed())
    repo = GitRepo(tmp_path)

    repo.stage(["a.asp", "sub/b.asp"])

    mock_run.assert_called_once()
    args, kwargs = mock_run.call_args
    assert args[0] == ["git", "add", "--", "a.asp", "sub/b.asp"]
    assert kwargs["cwd"] == tmp_path
    assert kwargs["stderr"] == subprocess.STDOUT


def test_stage_with_no_paths_is_noop(mocker: MagicMock, tmp_path: Path) -> None:
    (tmp_path / ".git").mkdir()
    mock_run = mocker.patch("subprocess.run")

    GitRepo(tmp_path).stage([])

    mock_run.assert_not_called()


def test_failure_raises_with_captured_output(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies that git failures keep their combined output for diagnosis."""
    (tmp_path / ".git").mkdir()
    mocker.patch(
        "subprocess.run",
        return_value=completed(1, "error: failed to push some refs"),
    )

    with pytest.raises(GitCommandError) as excinfo:
        GitRepo(tmp_path).push("origin")

    assert excinfo.value.returncode == 1
    assert excinfo.value.output == "error: failed to push some refs"
    assert excinfo.value.args_list == ["push", "origin"]


def test_push_never_prompts(mocker: MagicMock, tmp_path: Path) -> None:
    (tmp_path / ".git").mkdir()
    mock_run = mocker.patch("subprocess.run", return_value=completed())

    GitRepo(tmp_path).push()

    args, kwargs = mock_run.call_args
    assert args[0] == ["git", "push"]
    assert kwargs["env"]["GIT_SSH_COMMAND"] == "ssh -o BatchMode=yes"
    assert kwargs["env"]["GIT_TERMINAL_PROMPT"] == "0"


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        ("", False),
        (" M page.asp\n?? new.asp\n", False),
        ("M  page.asp\n", True),
        ("A  new.asp\n M other.asp\n", True),
        ("D  old.asp\n", True),
        ("R  a.asp -> b.asp\n", True),
    ],
)
def test_has_staged_changes_reads_index_column(
    mocker: MagicMock, tmp_path: Path, status: str, expected: bool
) -> None:
    (tmp_path / ".git").mkdir()
    mocker.patch("subprocess.run", return_value=completed(0, status))

    assert GitRepo(tmp_path).has_staged_changes() is expected


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_executor_against_real_repository(tmp_path: Path) -> None:
    """Commits a batch into a throwaway repository without pushing."""

    def git(*args: str) -> str:
        return subprocess.run(
            ["git", *args], cwd=tmp_path, check=True, capture_output=True, text=True
        ).stdout

    git("init", "-q")
    git("config", "user.email", "test@example.com")
    git("config", "user.name", "Test")
    git("config", "commit.gpgsign", "false")

    page = tmp_path / "index.asp"
    page.write_text("<% Response.Write(1) %>\n")

    executor = CommitExecutor(GitRepo(tmp_path), push=False)
    assert executor.execute([str(page)], "debounce complete") is CommitOutcome.COMMITTED
    assert git("log", "--format=%s").startswith("Auto-commit: index.asp [")

    # Re-staging an unchanged file finds nothing to commit.
    assert executor.execute([str(page)], "debounce complete") is CommitOutcome.NO_CHANGES


def test_tracked_maps_ls_files_back_to_given_paths(
    mocker: MagicMock, tmp_path: Path
) -> None:
    (tmp_path / ".git").mkdir()
    mock_run = mocker.patch(
        "subprocess.run", return_value=completed(0, "site/a.asp\0")
    )
    a, b = str(tmp_path / "site" / "a.asp"), str(tmp_path / "b.asp")

    assert GitRepo(tmp_path).tracked([a, b]) == {a}
    assert mock_run.call_args.args[0] == ["git", "ls-files", "-z", "--full-name", "--", a, b]


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_executor_skips_vanished_untracked_file(tmp_path: Path) -> None:
    """A created-then-deleted file is dropped; a deleted tracked file is committed."""
    tmp_path = tmp_path.resolve()

    def git(*args: str) -> str:
        return subprocess.run(
            ["git", *args], cwd=tmp_path, check=True, capture_output=True, text=True
        ).stdout

    git("init", "-q")
    git("config", "user.email", "test@example.com")
    git("config", "user.name", "Test")
    git("config", "commit.gpgsign", "false")
    old = tmp_path / "old.asp"
    old.write_text("old")
    git("add", "old.asp")
    git("commit", "-q", "-m", "init")

    old.unlink()
    fresh = tmp_path / "fresh.asp"
    fresh.write_text("fresh")
    ghost = tmp_path / "ghost.asp"

    executor = CommitExecutor(GitRepo(tmp_path), push=False)
    outcome = executor.execute([str(old), str(fresh), str(ghost)], "debounce complete")

    assert outcome is CommitOutcome.COMMITTED
    assert git("ls-files").split() == ["fresh.asp"]
