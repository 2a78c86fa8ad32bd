"""
Revision Search - search a git repository as it existed at a given revision.

Matches the query against file paths and file contents at a target revision
(optionally restricted to the files changed since a base revision) and
returns path and line matches under a single result limit.
"""

__version__ = "1.0.0"

from .errors import (
    CheckoutError,
    ExecutionError,
    FilterError,
    ParseError,
    QueryCompileError,
    RevisionResolutionError,
    RevisionSearchError,
)
from .models import (
    ContextLine,
    MatchKind,
    MatchSpan,
    SearchOptions,
    SearchResponse,
    SearchResult,
)
from .search import RevisionSearcher, search

__all__ = [
    "CheckoutError",
    "ContextLine",
    "ExecutionError",
    "FilterError",
    "MatchKind",
    "MatchSpan",
    "ParseError",
    "QueryCompileError",
    "RevisionResolutionError",
    "RevisionSearchError",
    "RevisionSearcher",
    "SearchOptions",
    "SearchResponse",
    "SearchResult",
    "search",
]
