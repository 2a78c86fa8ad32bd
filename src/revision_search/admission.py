"""File admission: decide which candidate paths a search may look at."""

import logging
import os
import stat
from pathlib import Path
from typing import Iterable, List, Optional

import pathspec

from .errors import FilterError
from .models import FileFilter

logger = logging.getLogger(__name__)

# git grep prints "--" between hunks; a file by that name is never searched.
RESERVED_PATH = "--"


def admit_files(
    repository: Path,
    candidates: Iterable[str],
    file_filter: Optional[FileFilter] = None,
) -> List[str]:
    """Filter candidate paths down to the files that may be searched.

    Symlinks are skipped so the search never follows a link out of the
    repository. The checked-out tree must match the revision the candidates
    came from.

    Args:
        repository: Root of the checked-out repository
        candidates: Repository-relative paths, in search order
        file_filter: Optional predicate; False excludes a path

    Returns:
        Admitted paths in candidate order, without duplicates

    Raises:
        FilterError: If a path cannot be stat'ed or the predicate raises
    """
    admitted: List[str] = []
    seen = set()

    for path in candidates:
        if path in seen:
            continue
        seen.add(path)

        resolved_path = repository / path
        try:
            info = os.lstat(resolved_path)
        except OSError as e:
            raise FilterError(f"failed to stat file {str(resolved_path)!r}: {e}", e)
        if stat.S_ISLNK(info.st_mode):
            logger.debug(f"Skipping symlink {path}")
            continue

        if path == RESERVED_PATH:
            logger.debug(f"Skipping reserved path {path!r}")
            continue

        if file_filter is not None:
            try:
                allow = file_filter(path)
            except Exception as e:
                raise FilterError(f"failed to evaluate file {path!r}: {e}", e)
            if not allow:
                continue

        admitted.append(path)

    return admitted


def exclude_filter(patterns: List[str]) -> FileFilter:
    """Build a file filter rejecting paths that match gitwildmatch ``patterns``."""
    exclude_spec = pathspec.PathSpec.from_lines("gitwildmatch", patterns)

    def allow(path: str) -> bool:
        return not exclude_spec.match_file(path)

    return allow
