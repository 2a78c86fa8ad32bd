"""Exception hierarchy for revision search.

Every error names the pipeline stage that failed and keeps the underlying
exception (if any) as ``cause`` so callers can diagnose a failed query
without parsing messages.
"""

from typing import Optional


class RevisionSearchError(Exception):
    """Base class for all search failures."""

    stage = "search"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"{self.stage}: {message}")
        self.detail = message
        self.cause = cause


class RevisionResolutionError(RevisionSearchError):
    """The revision (or base revision) could not be resolved to a file list."""

    stage = "resolve"


class CheckoutError(RevisionSearchError):
    """The target revision could not be checked out."""

    stage = "checkout"


class FilterError(RevisionSearchError):
    """A candidate file could not be admitted (stat or predicate failure)."""

    stage = "admission"


class QueryCompileError(RevisionSearchError):
    """The query is not a valid regular expression."""

    stage = "path_match"


class ExecutionError(RevisionSearchError):
    """The content search process could not be started or exited abnormally."""

    stage = "content_search"


class ParseError(RevisionSearchError):
    """The content search output did not have the expected structure."""

    stage = "parse"
