import os
from pathlib import Path

"""Global constants and path definitions for Git Coalesce.

This module defines the configuration file layout (adhering to XDG standards where
applicable), application identifiers, and the default watch and scheduling values
used across the application.
"""

# --- Identity ---
APP_NAME = "git-coalesce"
"""str: The human-readable application name, also used as the logger name."""

# --- Configuration Paths ---
_XDG_CONFIG = os.environ.get("XDG_CONFIG_HOME")
_BASE_CONFIG = Path(_XDG_CONFIG) if _XDG_CONFIG else Path.home() / ".config"

CONFIG_DIR: Path = _BASE_CONFIG / "git-coalesce"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The global configuration file path."""

LOCAL_CONFIG_NAME = "coalesce.toml"
"""str: The repository-local configuration file name."""

PYPROJECT_SECTION = "tool.coalesce"
"""str: The pyproject.toml section holding repository-local configuration."""

# --- Watch / Scheduling Defaults ---
DEFAULT_INTERVAL = 180
"""int: Seconds of quiet required before a debounced commit."""

DEFAULT_MAX_WAIT = 900
"""int: Seconds after the first change of a batch before a commit is forced."""

DEFAULT_EXTENSIONS = ".asp"
"""str: Comma-separated extensions watched when none are configured."""

IGNORED_DIRS = frozenset({".git", "node_modules", "logs", "tmp", "temp"})
"""frozenset[str]: Directory names never registered with the watcher."""

# --- Git ---
NO_CHANGES_MARKERS = (
    "nothing to commit",
    "no changes added to commit",
)
"""tuple[str, ...]: Lowercase fragments of benign `git commit` failure output."""

COMMIT_PREFIX = "Auto-commit"
"""str: Leading text of every generated commit message."""

SUMMARY_THRESHOLD = 3
"""int: Batches larger than this are summarized as a file count."""
