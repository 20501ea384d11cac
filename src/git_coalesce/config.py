import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_EXTENSIONS,
    DEFAULT_INTERVAL,
    DEFAULT_MAX_WAIT,
    LOCAL_CONFIG_NAME,
    PYPROJECT_SECTION,
)
from .filters import parse_extensions

logger = logging.getLogger(APP_NAME)


class ConfigError(ValueError):
    """Raised when an explicitly supplied setting cannot be used."""


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | float | str) -> float:
    """Converts human-readable time strings (e.g., '1hr', '30m', '0.5s') to seconds.

    Bare numbers (including numeric strings) are taken as seconds. Negative
    values are allowed so that a max-wait of ``-1`` can disable the timer.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid time format '{value}'")
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().lower()
    match = re.match(r"^(-?\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)?s?$", text)
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2) or "s"
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return num * multiplier[unit]


@dataclass
class WatchConfig:
    """Filesystem watch settings.

    Attributes:
        dir (str): Root directory to watch. Relative paths resolve against the repo.
        extensions (str): Comma-separated list of extensions to track.
        ignore_dirs (list[str]): Extra directory names to skip (added to the defaults).
    """

    dir: str = "."
    extensions: str = DEFAULT_EXTENSIONS
    ignore_dirs: list[str] = field(default_factory=list)

    @property
    def extension_set(self) -> frozenset[str]:
        return parse_extensions(self.extensions)


@dataclass
class ScheduleConfig:
    """Commit scheduling settings.

    Attributes:
        interval (float): Seconds of quiet before a debounced commit.
        max_wait (float): Seconds from the first change before a forced commit.
            Zero or negative disables the limit.
    """

    interval: float = DEFAULT_INTERVAL
    max_wait: float = DEFAULT_MAX_WAIT


@dataclass
class GitConfig:
    """Version-control settings.

    Attributes:
        remote (str | None): Remote to push to. None uses the branch upstream.
        push (bool): Whether to push after each commit.
    """

    remote: str | None = None
    push: bool = True


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


@dataclass
class LoggingConfig:
    """Logging settings.

    Attributes:
        verbose (bool): Enables debug output.
        file (str | None): Optional rotating log file path.
    """

    verbose: bool = False
    file: str | None = None


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        watch (WatchConfig): What to watch.
        schedule (ScheduleConfig): When to commit.
        git (GitConfig): How to commit and push.
        limits (LimitsConfig): Resource limits.
        logging (LoggingConfig): Log output settings.
    """

    watch: WatchConfig = field(default_factory=WatchConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    git: GitConfig = field(default_factory=GitConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Cache for the base global configuration
    _global_cache: "Config | None" = None

    @classmethod
    def load(cls, repo_path: Path | None = None) -> "Config":
        """Loads and merges configuration from defaults, global, and local sources.

        Args:
            repo_path (Path | None): The repository root to search for local config.

        Returns:
            Config: The fully merged configuration object.
        """
        # 1. Load or Retrieve Global Config
        if cls._global_cache is None:
            instance = cls()
            if CONFIG_FILE.exists():
                instance._merge_from_file(CONFIG_FILE)
            cls._global_cache = instance

        # Copy every section so callers can mutate without touching the cache.
        base = cls._global_cache
        instance = replace(
            base,
            watch=replace(base.watch, ignore_dirs=list(base.watch.ignore_dirs)),
            schedule=replace(base.schedule),
            git=replace(base.git),
            limits=replace(base.limits),
            logging=replace(base.logging),
        )

        # 2. Load Local Config (if applicable)
        if repo_path:
            local_toml = repo_path / LOCAL_CONFIG_NAME
            pyproject = repo_path / "pyproject.toml"

            if local_toml.exists():
                instance._merge_from_file(local_toml)
            elif pyproject.exists():
                instance._merge_from_file(pyproject, section=PYPROJECT_SECTION)

        return instance

    def apply_overrides(
        self,
        watch_dir: str | None = None,
        interval: str | float | None = None,
        max_wait: str | float | None = None,
        extensions: str | None = None,
        verbose: bool | None = None,
        push: bool | None = None,
        log_file: str | None = None,
    ) -> None:
        """Applies command-line values on top of the loaded configuration.

        Unlike file settings, bad command-line values are not silently replaced
        by defaults.

        Raises:
            ConfigError: If a value cannot be parsed or is out of range.
        """
        if watch_dir is not None:
            self.watch.dir = watch_dir
        if extensions is not None:
            if not parse_extensions(extensions):
                raise ConfigError(f"No usable extensions in '{extensions}'")
            self.watch.extensions = extensions
        try:
            if interval is not None:
                self.schedule.interval = parse_time(interval)
            if max_wait is not None:
                self.schedule.max_wait = parse_time(max_wait)
        except ValueError as e:
            raise ConfigError(str(e)) from e
        if self.schedule.interval <= 0:
            raise ConfigError(
                f"Interval must be positive, got {self.schedule.interval:g}"
            )
        if verbose:
            self.logging.verbose = True
        if push is not None:
            self.git.push = push
        if log_file is not None:
            self.logging.file = log_file

    def _merge_from_file(self, path: Path, section: str | None = None) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
            section (str | None): Dot-separated section path (e.g., 'tool.coalesce').
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if section:
                for key in section.split("."):
                    data = data.get(key, {})

            if not data:
                return

            if "schedule" in data:
                self.schedule = self._update_dataclass(
                    "schedule", self.schedule, data["schedule"]
                )
                if self.schedule.interval <= 0:
                    logger.warning(
                        f"Config error in [schedule].interval: must be positive. "
                        f"Falling back to {DEFAULT_INTERVAL}s."
                    )
                    self.schedule.interval = DEFAULT_INTERVAL
            if "git" in data:
                self.git = self._update_dataclass("git", self.git, data["git"])
            if "limits" in data:
                self.limits = self._update_dataclass(
                    "limits", self.limits, data["limits"]
                )
            if "logging" in data:
                self.logging = self._update_dataclass(
                    "logging", self.logging, data["logging"]
                )
            if "watch" in data:
                watch_data = dict(data["watch"])
                # Extract ignore list to prevent it from being overwritten during dataclass update
                new_ignores = watch_data.pop("ignore_dirs", [])
                self.watch = self._update_dataclass("watch", self.watch, watch_data)
                if not self.watch.extension_set:
                    logger.warning(
                        f"Config error in [watch].extensions: no usable extensions. "
                        f"Falling back to '{DEFAULT_EXTENSIONS}'."
                    )
                    self.watch.extensions = DEFAULT_EXTENSIONS
                if new_ignores:
                    self.watch.ignore_dirs = list(
                        dict.fromkeys([*self.watch.ignore_dirs, *new_ignores])
                    )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: "
                f"{', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k in ["interval", "max_wait"]:
                    filtered_updates[k] = parse_time(v)
                elif k == "extensions" and isinstance(v, list):
                    filtered_updates[k] = ",".join(str(item) for item in v)
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
