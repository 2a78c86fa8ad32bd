"""
Shared pytest fixtures for Revision Search tests.

Provides builders for git grep style output, fake collaborators for the
search orchestrator, and isolation of the exception logger singleton.
"""

import subprocess
from pathlib import Path
from typing import Dict, Iterator, List, Optional

import pytest

from revision_search.utils.exception_logger import ExceptionLogger

FILENAME_COLOR = "\x1b[35m"
LINENO_COLOR = "\x1b[32m"
SEP_COLOR = "\x1b[36m"
MATCH_COLOR = "\x1b[1;31m"
SELECTED_COLOR = "\x1b[34m"
RESET = "\x1b[m"


def highlight(text: str) -> str:
    """Wrap ``text`` the way git grep highlights a match."""
    return f"{MATCH_COLOR}{text}{RESET}"


def selected(text: str) -> str:
    """Wrap ``text`` in the selected-line colour the executor pins."""
    return f"{SELECTED_COLOR}{text}{RESET}"


def grep_line(path: str, line_number: Optional[int], content: str) -> bytes:
    """Build one line of ``git grep --color=always -n -z`` output."""
    line = f"{FILENAME_COLOR}{path}{RESET}\0"
    if line_number is not None:
        line += f"{LINENO_COLOR}{line_number}{RESET}\0"
    return (line + content + "\n").encode("utf-8")


def hunk_separator() -> bytes:
    return f"{SEP_COLOR}--{RESET}\n".encode("utf-8")


class RecordingStream:
    """Iterable of output lines that records how far it was read."""

    def __init__(self, lines: List[bytes]):
        self.lines = lines
        self.consumed = 0
        self.closed = False

    def __iter__(self) -> Iterator[bytes]:
        for line in self.lines:
            self.consumed += 1
            yield line

    def close(self) -> None:
        self.closed = True


class FakeRevisionSource:
    """In-memory RevisionSource recording every call."""

    def __init__(
        self,
        files: Optional[Dict[str, List[str]]] = None,
        changed: Optional[Dict[str, List[str]]] = None,
        fail_checkout: bool = False,
    ):
        self.files = files or {}
        self.changed = changed or {}
        self.fail_checkout = fail_checkout
        self.calls: List[tuple] = []

    def list_files(self, repository: Path, revision: str) -> List[str]:
        self.calls.append(("list_files", revision))
        if revision not in self.files:
            raise subprocess.CalledProcessError(
                128,
                ["git", "ls-tree", revision],
                stderr=f"fatal: Not a valid object name {revision}",
            )
        return list(self.files[revision])

    def list_changed_files(
        self, repository: Path, revision: str, base_revision: str
    ) -> List[str]:
        self.calls.append(("list_changed_files", revision, base_revision))
        key = f"{base_revision}..{revision}"
        if key not in self.changed:
            raise subprocess.CalledProcessError(
                128, ["git", "diff", base_revision, revision], stderr="fatal: bad revision"
            )
        return list(self.changed[key])

    def run(self, repository: Path, *args: str) -> str:
        self.calls.append(("run",) + args)
        if self.fail_checkout:
            raise subprocess.CalledProcessError(
                1, ["git", *args], stderr="error: pathspec did not match"
            )
        return ""


class FakeExecutor:
    """ContentSearchExecutor returning canned output."""

    def __init__(self, lines: Optional[List[bytes]] = None, error: Optional[Exception] = None):
        self.lines = lines or []
        self.error = error
        self.calls: List[dict] = []
        self.stream: Optional[RecordingStream] = None

    def execute(self, repository, files, query, case_sensitive, regex, context_lines):
        self.calls.append(
            {
                "repository": repository,
                "files": list(files),
                "query": query,
                "case_sensitive": case_sensitive,
                "regex": regex,
                "context_lines": context_lines,
            }
        )
        if self.error is not None:
            raise self.error
        self.stream = RecordingStream(self.lines)
        return self.stream


@pytest.fixture(autouse=True)
def reset_exception_logger():
    """Keep the ExceptionLogger singleton from leaking between tests."""
    ExceptionLogger.reset()
    yield
    ExceptionLogger.reset()


@pytest.fixture
def make_repo_files(tmp_path):
    """Create empty files (relative paths) under tmp_path and return tmp_path."""

    def _make(paths: List[str]) -> Path:
        for rel in paths:
            target = tmp_path / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text("content\n")
        return tmp_path

    return _make
