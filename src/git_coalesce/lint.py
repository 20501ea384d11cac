"""Static checks for classic ASP pages.

This is independent from the watcher: it reads the given files and reports
problems as human-readable strings, one per violation.
"""

import re
import shutil
import subprocess
from collections.abc import Iterable
from pathlib import Path

ASP_SUFFIX = ".asp"

INCLUDE_RE = re.compile(r'<!--#include (file|virtual)="([^"]+)"-->')
IF_RE = re.compile(r"\bif\b", re.IGNORECASE)
END_IF_RE = re.compile(r"\bend if\b", re.IGNORECASE)
FOR_RE = re.compile(r"\bfor\b", re.IGNORECASE)
EXIT_FOR_RE = re.compile(r"\bexit for\b", re.IGNORECASE)
NEXT_RE = re.compile(r"\bnext\b", re.IGNORECASE)
CURLY_QUOTES = ("“", "”")


def _asp_files(paths: Iterable[str | Path]) -> list[Path]:
    return [Path(p) for p in paths if Path(p).suffix.lower() == ASP_SUFFIX]


def check_includes(path: Path, text: str) -> list[str]:
    """Reports include directives whose target does not exist.

    Targets are resolved relative to the including file's directory.
    """
    errors = []
    for match in INCLUDE_RE.finditer(text):
        target = match.group(2)
        if not (path.parent / target).exists():
            errors.append(f"[INCLUDE] In {path} → file not found: {target}")
    return errors


def check_blocks(path: Path, text: str) -> list[str]:
    """Reports unbalanced If/End If and For/Next counts.

    Counting is purely lexical. The closing ``end if`` and the ``exit for``
    statement contain the opener keyword, so they are not counted as openers.
    """
    errors = []
    end_if_count = len(END_IF_RE.findall(text))
    if_count = len(IF_RE.findall(text)) - end_if_count
    if if_count != end_if_count:
        errors.append(
            f"[SYNTAX] In {path} → IF ({if_count}) and END IF ({end_if_count}) do not match"
        )

    for_count = len(FOR_RE.findall(text)) - len(EXIT_FOR_RE.findall(text))
    next_count = len(NEXT_RE.findall(text))
    if for_count != next_count:
        errors.append(
            f"[SYNTAX] In {path} → FOR ({for_count}) and NEXT ({next_count}) do not match"
        )
    return errors


def check_quotes(path: Path, text: str) -> list[str]:
    if any(quote in text for quote in CURLY_QUOTES):
        return [f"[UNICODE] In {path} → invalid curly quotes detected"]
    return []


def validate_asp_files(paths: Iterable[str | Path]) -> list[str]:
    """Runs every static check on the `.asp` files among `paths`.

    Args:
        paths (Iterable[str | Path]): Files to check; other extensions are skipped.

    Returns:
        list[str]: One diagnostic per violation, in file order.
    """
    errors: list[str] = []
    for path in _asp_files(paths):
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            errors.append(f"[ERROR] Could not read {path}: {e}")
            continue

        errors.extend(check_includes(path, text))
        errors.extend(check_blocks(path, text))
        errors.extend(check_quotes(path, text))
    return errors


def validate_with_cscript(paths: Iterable[str | Path]) -> list[str]:
    """Runs each `.asp` file through Windows Script Host (`cscript.exe`).

    Returns:
        list[str]: One diagnostic per file that cscript rejected, or a single
                   diagnostic if cscript is not available.
    """
    files = _asp_files(paths)
    if not files:
        return []
    cscript = shutil.which("cscript.exe") or shutil.which("cscript")
    if cscript is None:
        return ["[CSCRIPT] cscript.exe not found on PATH"]

    errors = []
    for path in files:
        res = subprocess.run(
            [cscript, "//nologo", str(path)],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
        if res.returncode != 0:
            errors.append(
                f"[CSCRIPT] {path} → exit status {res.returncode}\n{res.stdout}"
            )
    return errors
