"""Tests for the ASP static checker."""

from pathlib import Path
from unittest.mock import MagicMock

from git_coalesce import lint

CLEAN_PAGE = """<!--#include file="inc/header.inc"-->
<%
If user = "" Then
    Response.Write("hi")
End If
For i = 1 To 3
    If i = 2 Then
        Exit For
    End If
Next
%>
"""


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_clean_page_has_no_diagnostics(tmp_path: Path) -> None:
    write(tmp_path / "inc" / "header.inc", "")
    page = write(tmp_path / "default.asp", CLEAN_PAGE)

    assert lint.validate_asp_files([page]) == []


def test_missing_include_is_reported_relative_to_page(tmp_path: Path) -> None:
    page = write(
        tmp_path / "sub" / "page.asp",
        '<!--#include virtual="../lib/db.inc"-->\n<!--#include file="ok.inc"-->\n',
    )
    write(tmp_path / "sub" / "ok.inc", "")

    errors = lint.validate_asp_files([page])

    assert errors == [f"[INCLUDE] In {page} → file not found: ../lib/db.inc"]


def test_unbalanced_if_and_for(tmp_path: Path) -> None:
    page = write(
        tmp_path / "bad.asp",
        "<%\nIf a Then\nFor i = 1 To 2\nIF b THEN\nEND IF\n%>\n",
    )

    errors = lint.validate_asp_files([page])

    assert f"[SYNTAX] In {page} → IF (2) and END IF (1) do not match" in errors
    assert f"[SYNTAX] In {page} → FOR (1) and NEXT (0) do not match" in errors
    assert len(errors) == 2


def test_curly_quotes_are_reported(tmp_path: Path) -> None:
    page = write(tmp_path / "q.asp", "<% Response.Write(“hi”) %>")

    assert lint.validate_asp_files([page]) == [
        f"[UNICODE] In {page} → invalid curly quotes detected"
    ]


def test_non_asp_files_are_skipped(tmp_path: Path) -> None:
    other = write(tmp_path / "notes.txt", "If without end“")

    assert lint.validate_asp_files([other, tmp_path / "missing.inc"]) == []


def test_unreadable_file_is_reported(tmp_path: Path) -> None:
    missing = tmp_path / "gone.asp"

    errors = lint.validate_asp_files([missing])

    assert len(errors) == 1
    assert errors[0].startswith(f"[ERROR] Could not read {missing}")


def test_cscript_missing(mocker: MagicMock, tmp_path: Path) -> None:
    mocker.patch("shutil.which", return_value=None)

    assert lint.validate_with_cscript([tmp_path / "a.asp"]) == [
        "[CSCRIPT] cscript.exe not found on PATH"
    ]
    assert lint.validate_with_cscript([tmp_path / "a.txt"]) == []


def test_cscript_failures_are_collected(mocker: MagicMock, tmp_path: Path) -> None:
    mocker.patch("shutil.which", return_value="cscript.exe")
    mock_run = mocker.patch("subprocess.run")
    mock_run.side_effect = [
        MagicMock(returncode=0, stdout=""),
        MagicMock(returncode=1, stdout="Microsoft VBScript compilation error"),
    ]

    errors = lint.validate_with_cscript([tmp_path / "ok.asp", tmp_path / "bad.asp"])

    assert len(errors) == 1
    assert errors[0].startswith(f"[CSCRIPT] {tmp_path / 'bad.asp'} → exit status 1")
    assert "compilation error" in errors[0]
