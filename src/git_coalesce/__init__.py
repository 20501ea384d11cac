"""Git Coalesce: commit bursts of file changes as single git commits.

This package watches a directory tree, coalesces changes to files of interest
into batches bounded by a debounce interval and a maximum wait, and commits
and pushes each batch. It also ships a small static checker for ASP pages.
"""

from . import (
    cli,
    config,
    constants,
    daemon,
    executor,
    filters,
    git_wrapper,
    lint,
    scheduler,
    shutdown,
    watcher,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "daemon",
    "executor",
    "filters",
    "git_wrapper",
    "lint",
    "scheduler",
    "shutdown",
    "watcher",
]
