"""Data model for revision search queries and results."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import SearchConfig


class MatchKind(Enum):
    """Where the query matched."""

    PATH = "path"
    CONTENT = "content"


@dataclass(frozen=True)
class MatchSpan:
    """Half-open character range [start, end) within a snippet."""

    start: int
    end: int


@dataclass(frozen=True)
class ContextLine:
    """A line reported around a content match."""

    line_number: int
    text: str


@dataclass
class SearchResult:
    """A single path or content match."""

    path: str
    kind: MatchKind
    snippet: str
    line_number: Optional[int] = None
    match_spans: List[MatchSpan] = field(default_factory=list)
    context_before: List[ContextLine] = field(default_factory=list)
    context_after: List[ContextLine] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "path": self.path,
            "kind": self.kind.value,
            "line_number": self.line_number,
            "snippet": self.snippet,
            "match_spans": [[s.start, s.end] for s in self.match_spans],
            "context_before": [
                {"line_number": c.line_number, "text": c.text}
                for c in self.context_before
            ],
            "context_after": [
                {"line_number": c.line_number, "text": c.text}
                for c in self.context_after
            ],
        }


@dataclass
class SearchResponse:
    """Results of one search plus the number of matches found.

    ``total_match_count`` counts path matches plus matching content lines
    seen before the limit was reached. Unpacks as
    ``results, total_match_count``.
    """

    results: List[SearchResult]
    total_match_count: int
    admitted_file_count: int = 0
    truncated: bool = False

    def __iter__(self) -> Iterator[Any]:
        yield self.results
        yield self.total_match_count


FileFilter = Callable[[str], bool]


class SearchOptions(BaseModel):
    """Immutable settings for a single query."""

    model_config = ConfigDict(frozen=True)

    base_revision: str = Field(
        default="",
        description="When set, only files changed between this revision and the target are searched",
    )
    case_sensitive: bool = Field(default=True)
    regex: bool = Field(default=False, description="Treat the query as a regex")
    limit: int = Field(default=100, description="Maximum number of results")
    context_lines: int = Field(
        default=0, description="Lines of context before and after each content match"
    )
    search_path: bool = Field(default=True, description="Match the query against paths")
    search_content: bool = Field(
        default=True, description="Match the query against file contents"
    )
    # Returning False excludes the path; raising aborts the search.
    file_filter: Optional[FileFilter] = Field(default=None, exclude=True)

    @field_validator("limit")
    @classmethod
    def limit_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"limit must be greater than 0, got {v}")
        return v

    @field_validator("context_lines")
    @classmethod
    def context_must_not_be_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"context_lines must not be negative, got {v}")
        return v

    @classmethod
    def from_config(cls, config: SearchConfig, **overrides: Any) -> "SearchOptions":
        """Build options from configured defaults, applying explicit overrides."""
        values: Dict[str, Any] = {
            "case_sensitive": config.default_case_sensitive,
            "regex": config.default_regex,
            "limit": config.default_limit,
            "context_lines": config.default_context_lines,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
