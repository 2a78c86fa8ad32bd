"""
Search orchestration: resolve, check out, admit, then match paths and content.

Path matches and content matches share one result limit. Path matching runs
first with the whole limit; content matching only runs if budget is left.

A search checks out the target revision in the repository's working tree,
so two searches must never run concurrently against the same repository.
"""

import logging
import re
import time
from pathlib import Path
from typing import List, Optional, Pattern, Tuple, Union

from .admission import admit_files
from .config import SearchConfig
from .content_executor import ContentSearchExecutor, GitGrepExecutor
from .errors import (
    CheckoutError,
    ExecutionError,
    QueryCompileError,
    RevisionResolutionError,
    RevisionSearchError,
)
from .models import SearchOptions, SearchResponse, SearchResult
from .path_matcher import find_path_matches
from .revision_source import GitRevisionSource, RevisionSource
from .stream_parser import MatchStreamParser
from .utils.exception_logger import ExceptionLogger

logger = logging.getLogger(__name__)


def _describe_failure(e: BaseException) -> str:
    stderr = getattr(e, "stderr", None)
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    if stderr:
        return f"{e}: {stderr.strip()}"
    return str(e)


class RevisionSearcher:
    """Runs revision-scoped searches against a revision source."""

    def __init__(
        self,
        revision_source: Optional[RevisionSource] = None,
        executor: Optional[ContentSearchExecutor] = None,
        config: Optional[SearchConfig] = None,
    ):
        self.config = config or SearchConfig()
        self.revision_source = revision_source or GitRevisionSource(
            timeout=self.config.git_timeout_seconds
        )
        self.executor = executor or GitGrepExecutor(
            max_files_per_invocation=self.config.max_files_per_invocation
        )

    def search(
        self,
        repository: Union[str, Path],
        revision: str,
        query: str,
        options: Optional[SearchOptions] = None,
    ) -> SearchResponse:
        """Find ``query`` in paths and/or contents of ``repository`` at ``revision``.

        Args:
            repository: Path to the repository working tree
            revision: Revision to search (commit SHA, branch, tag, ...)
            query: Literal text, or a regex when ``options.regex`` is set
            options: Query settings; defaults come from the config

        Returns:
            SearchResponse with path matches first, then content matches

        Raises:
            RevisionSearchError: Any stage failing aborts the whole search
        """
        repo_path = Path(repository)
        if options is None:
            options = SearchOptions.from_config(self.config)

        start_time = time.time()
        try:
            response = self._search(repo_path, revision, query, options)
        except RevisionSearchError as e:
            logger.error(f"Search for {query!r} at {revision} failed: {e}")
            self._log_failure(e, repo_path, revision, query, options)
            raise

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Search for {query!r} at {revision} found {response.total_match_count} "
            f"matches in {response.admitted_file_count} files ({elapsed_ms:.0f} ms)"
        )
        return response

    def _search(
        self,
        repo_path: Path,
        revision: str,
        query: str,
        options: SearchOptions,
    ) -> SearchResponse:
        candidates = self._resolve_files(repo_path, revision, options.base_revision)
        self._checkout(repo_path, revision)

        files = admit_files(repo_path, candidates, options.file_filter)
        logger.debug(f"Admitted {len(files)} of {len(candidates)} candidate files")

        results: List[SearchResult] = []
        num_matches = 0

        if options.search_path:
            query_re = self._compile_query(query, options) if options.regex else None
            path_results = find_path_matches(
                files, query, options.case_sensitive, query_re, options.limit
            )
            results.extend(path_results)
            num_matches += len(path_results)

        if options.search_content and num_matches < options.limit and files:
            content_results, num_lines = self._search_content(
                repo_path, files, query, options, options.limit - num_matches
            )
            results.extend(content_results)
            num_matches += num_lines

        return SearchResponse(
            results=results,
            total_match_count=num_matches,
            admitted_file_count=len(files),
            truncated=len(results) >= options.limit,
        )

    def _resolve_files(
        self, repo_path: Path, revision: str, base_revision: str
    ) -> List[str]:
        try:
            if base_revision:
                return self.revision_source.list_changed_files(
                    repo_path, revision, base_revision
                )
            return self.revision_source.list_files(repo_path, revision)
        except RevisionSearchError:
            raise
        except Exception as e:
            if base_revision:
                message = f"failed to list files changed between {base_revision!r} and {revision!r}"
            else:
                message = f"failed to list files at {revision!r}"
            raise RevisionResolutionError(f"{message}: {_describe_failure(e)}", e) from e

    def _checkout(self, repo_path: Path, revision: str) -> None:
        # Symlink checks and git grep both read the working tree
        try:
            self.revision_source.run(repo_path, "checkout", "--quiet", revision, "--")
        except RevisionSearchError:
            raise
        except Exception as e:
            raise CheckoutError(
                f"failed to checkout revision {revision!r}: {_describe_failure(e)}", e
            ) from e

    def _compile_query(self, query: str, options: SearchOptions) -> Pattern[str]:
        flags = 0 if options.case_sensitive else re.IGNORECASE
        try:
            return re.compile(query, flags)
        except re.error as e:
            raise QueryCompileError(f"invalid regular expression {query!r}: {e}", e) from e

    def _search_content(
        self,
        repo_path: Path,
        files: List[str],
        query: str,
        options: SearchOptions,
        budget: int,
    ) -> Tuple[List[SearchResult], int]:
        parser = MatchStreamParser(
            budget,
            context_lines=options.context_lines,
            max_line_length=self.config.max_line_length,
        )
        try:
            stream = self.executor.execute(
                repo_path,
                files,
                query,
                options.case_sensitive,
                options.regex,
                options.context_lines,
            )
            return parser.parse(stream)
        except RevisionSearchError:
            raise
        except Exception as e:
            raise ExecutionError(
                f"failed to execute search in {str(repo_path)!r}: {e}", e
            ) from e

    def _log_failure(
        self,
        error: RevisionSearchError,
        repo_path: Path,
        revision: str,
        query: str,
        options: SearchOptions,
    ) -> None:
        exception_logger = ExceptionLogger.get_instance()
        if exception_logger:
            exception_logger.log_exception(
                error,
                context={
                    "stage": error.stage,
                    "repository": str(repo_path),
                    "revision": revision,
                    "query": query,
                    "options": options.model_dump(),
                    "cause": repr(error.cause) if error.cause else None,
                },
            )


def search(
    repository: Union[str, Path],
    revision: str,
    query: str,
    options: Optional[SearchOptions] = None,
    revision_source: Optional[RevisionSource] = None,
    executor: Optional[ContentSearchExecutor] = None,
    config: Optional[SearchConfig] = None,
) -> SearchResponse:
    """Search ``repository`` at ``revision`` for ``query``.

    Convenience wrapper around RevisionSearcher; ``revision_source`` and
    ``executor`` default to the git-backed implementations.
    """
    searcher = RevisionSearcher(revision_source, executor, config)
    return searcher.search(repository, revision, query, options)
