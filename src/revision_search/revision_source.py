"""
Revision source: the version-control backend a search runs against.

Lists the files present at a revision, lists the files changed between two
revisions, and runs arbitrary git commands (used to check out the revision
being searched). Uses run_git_command() from git_runner for all git
operations.
"""

import logging
from pathlib import Path
from typing import List, Protocol

from .utils.git_runner import run_git_command

logger = logging.getLogger(__name__)


class RevisionSource(Protocol):
    """Backend able to enumerate and materialize revisions of a repository."""

    def list_files(self, repository: Path, revision: str) -> List[str]:
        """Return every file path at ``revision``, repository-relative."""
        ...

    def list_changed_files(
        self, repository: Path, revision: str, base_revision: str
    ) -> List[str]:
        """Return paths changed between ``base_revision`` and ``revision``."""
        ...

    def run(self, repository: Path, *args: str) -> str:
        """Run a backend command in ``repository`` and return its output."""
        ...


class GitRevisionSource:
    """RevisionSource backed by the git command line."""

    def __init__(self, timeout: float = 60.0):
        self.timeout = timeout

    def list_files(self, repository: Path, revision: str) -> List[str]:
        """List blobs at ``revision`` via ``git ls-tree``.

        Submodule entries (gitlinks) are not files of this repository and
        are left out.

        Raises:
            subprocess.CalledProcessError: If the revision cannot be resolved
        """
        output = self.run(
            repository, "ls-tree", "-r", "-z", "--full-tree", revision
        )
        files = []
        for entry in output.split("\0"):
            if not entry:
                continue
            meta, _, path = entry.partition("\t")
            if meta.split(" ")[1:2] == ["blob"]:
                files.append(path)
        logger.debug(f"{len(files)} files at {revision} in {repository}")
        return files

    def list_changed_files(
        self, repository: Path, revision: str, base_revision: str
    ) -> List[str]:
        """List files added or modified between ``base_revision`` and ``revision``.

        Deleted files do not exist at ``revision`` and are excluded.

        Raises:
            subprocess.CalledProcessError: If either revision cannot be resolved
        """
        output = self.run(
            repository,
            "diff",
            "--name-only",
            "-z",
            "--no-renames",
            "--diff-filter=d",
            base_revision,
            revision,
            "--",
        )
        files = [path for path in output.split("\0") if path]
        logger.debug(
            f"{len(files)} files changed between {base_revision} and {revision}"
        )
        return files

    def run(self, repository: Path, *args: str) -> str:
        """Run ``git <args>`` in ``repository`` and return stdout.

        Raises:
            subprocess.CalledProcessError: If git exits non-zero
            subprocess.TimeoutExpired: If the command exceeds the timeout
            FileNotFoundError: If git is not installed
        """
        result = run_git_command(
            ["git", *args],
            cwd=repository,
            check=True,
            timeout=self.timeout,
        )
        return str(result.stdout)
