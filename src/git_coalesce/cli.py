import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from . import daemon, lint
from .config import Config, ConfigError
from .constants import APP_NAME, CONFIG_FILE, IGNORED_DIRS

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)


def load_config(args: argparse.Namespace) -> Config:
    """Builds the effective configuration from files and command-line flags.

    Raises:
        ConfigError: If a flag carries an unusable value.
    """
    config = Config.load(Path(args.repo).expanduser())
    config.apply_overrides(
        watch_dir=args.dir,
        interval=args.interval,
        max_wait=args.max_wait,
        extensions=args.ext,
        verbose=args.verbose,
        push=False if args.no_push else None,
        log_file=args.log_file,
    )
    return config


def run_watch(args: argparse.Namespace) -> int:
    """Runs the watcher in the foreground until SIGINT/SIGTERM."""
    try:
        config = load_config(args)
    except ConfigError as e:
        err_console.print(f"[bold red]Config Error:[/bold red] {e}", soft_wrap=True)
        return 1

    log_file = Path(config.logging.file).expanduser() if config.logging.file else None
    daemon.setup_logging(config.logging.verbose, log_file, config.limits.max_log_size)

    try:
        daemon.run(config, Path(args.repo))
    except daemon.StartupError as e:
        logger.critical(f"FATAL: {e}")
        err_console.print(f"[bold red]FATAL:[/bold red] {e}", soft_wrap=True)
        return 1
    return 0


def run_lint(args: argparse.Namespace) -> int:
    """Prints lint diagnostics for the given files."""
    errors = lint.validate_asp_files(args.files)
    if args.cscript:
        errors.extend(lint.validate_with_cscript(args.files))

    if not errors:
        console.print("[bold green]✔ No problems found.[/bold green]")
        return 0

    for line in errors:
        console.print(line, markup=False, highlight=False, soft_wrap=True)
    console.print(f"[bold red]{len(errors)} problem(s) found.[/bold red]")
    return 1


def show_config(args: argparse.Namespace) -> int:
    """Displays the effective configuration as a table."""
    try:
        config = load_config(args)
    except ConfigError as e:
        err_console.print(f"[bold red]Config Error:[/bold red] {e}", soft_wrap=True)
        return 1

    max_wait = config.schedule.max_wait
    ignore_dirs = sorted(IGNORED_DIRS | set(config.watch.ignore_dirs))

    table = Table(title="Git Coalesce Configuration", show_lines=True)
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Value", style="yellow")

    table.add_row("watch", "dir", config.watch.dir)
    table.add_row("", "extensions", ", ".join(sorted(config.watch.extension_set)))
    table.add_row("", "ignore_dirs", ", ".join(ignore_dirs))
    table.add_row("schedule", "interval", f"{config.schedule.interval:g}s")
    table.add_row(
        "", "max_wait", f"{max_wait:g}s" if max_wait > 0 else "disabled"
    )
    table.add_row("git", "remote", config.git.remote or "(upstream)")
    table.add_row("", "push", str(config.git.push).lower())
    table.add_row("limits", "max_log_size", str(config.limits.max_log_size))
    table.add_row("logging", "verbose", str(config.logging.verbose).lower())
    table.add_row("", "file", config.logging.file or "(stderr only)")

    console.print(table)
    console.print(f"[dim]Global config: {CONFIG_FILE}[/dim]")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description=(
            "Watch a directory and coalesce bursts of file changes into single "
            "git commits."
        ),
    )

    # Watch flags (used when no subcommand is given, and by `config`).
    parser.add_argument("--dir", help="Directory to watch (default: repo root)")
    parser.add_argument("--repo", default=".", help="Git repository (default: .)")
    parser.add_argument(
        "--interval",
        help="Quiet period before committing, e.g. 180, '3m' (default: 180s)",
    )
    parser.add_argument(
        "--max-wait",
        help="Force a commit this long after the first change; <=0 disables "
        "(default: 900s)",
    )
    parser.add_argument(
        "--ext", help="Comma-separated extensions to watch (default: .asp)"
    )
    parser.add_argument(
        "--no-push", action="store_true", help="Commit locally without pushing"
    )
    parser.add_argument("--log-file", help="Also log to this file (rotated)")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("watch", help="Watch and auto-commit (default)")

    lint_parser = subparsers.add_parser("lint", help="Check ASP files for problems")
    lint_parser.add_argument("files", nargs="+", help="Files to check")
    lint_parser.add_argument(
        "--cscript",
        action="store_true",
        help="Also run each file through cscript.exe (Windows)",
    )

    subparsers.add_parser("config", help="Show the effective configuration")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the Git Coalesce CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "lint":
        sys.exit(run_lint(args))
    elif args.command == "config":
        sys.exit(show_config(args))

    # Default Action
    sys.exit(run_watch(args))


if __name__ == "__main__":
    main()
