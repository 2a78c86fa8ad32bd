"""
Tests for RevisionSearcher orchestration.

A fake revision source and executor stand in for git so budget sharing,
stage ordering and error propagation can be checked in isolation.
"""

import json
import subprocess

import pytest

from conftest import FakeExecutor, FakeRevisionSource, grep_line, highlight
from revision_search import search as search_function
from revision_search.config import SearchConfig
from revision_search.errors import (
    CheckoutError,
    ExecutionError,
    FilterError,
    ParseError,
    QueryCompileError,
    RevisionResolutionError,
)
from revision_search.models import MatchKind, SearchOptions
from revision_search.search import RevisionSearcher
from revision_search.utils.exception_logger import ExceptionLogger


def content_lines(count, path="notes.txt"):
    return [grep_line(path, n, f"a {highlight('foo')} line") for n in range(1, count + 1)]


class TestBudgetSharing:
    """Test how path and content matches share the result limit."""

    def test_path_matches_come_first_then_content(self, make_repo_files):
        files = ["foo.py", "notes.txt"]
        repo = make_repo_files(files)
        source = FakeRevisionSource(files={"R": files})
        executor = FakeExecutor(lines=content_lines(2))

        response = RevisionSearcher(source, executor).search(
            repo, "R", "foo", SearchOptions(limit=10)
        )

        kinds = [r.kind for r in response.results]
        assert kinds == [MatchKind.PATH, MatchKind.CONTENT, MatchKind.CONTENT]
        assert response.total_match_count == 3
        assert response.admitted_file_count == 2
        assert response.truncated is False

    def test_content_search_skipped_when_paths_fill_limit(self, make_repo_files):
        files = ["foo1.txt", "foo2.txt", "foo3.txt"]
        repo = make_repo_files(files)
        source = FakeRevisionSource(files={"R": files})
        executor = FakeExecutor(lines=content_lines(5))

        response = RevisionSearcher(source, executor).search(
            repo, "R", "foo", SearchOptions(limit=2)
        )

        assert [r.path for r in response.results] == ["foo1.txt", "foo2.txt"]
        assert response.total_match_count == 2
        assert response.truncated is True
        assert executor.calls == []

    def test_content_search_gets_remaining_budget(self, make_repo_files):
        files = ["foo.txt", "notes.txt"]
        repo = make_repo_files(files)
        source = FakeRevisionSource(files={"R": files})
        executor = FakeExecutor(lines=content_lines(10))

        response = RevisionSearcher(source, executor).search(
            repo, "R", "foo", SearchOptions(limit=4)
        )

        assert len(response.results) == 4
        assert [r.kind for r in response.results].count(MatchKind.CONTENT) == 3
        assert response.total_match_count == 4
        assert executor.stream.consumed == 3
        assert executor.stream.closed is True

    @pytest.mark.parametrize("limit", [1, 2, 3, 5, 8])
    def test_results_never_exceed_limit(self, make_repo_files, limit):
        files = ["foo_a.txt", "foo_b.txt", "notes.txt"]
        repo = make_repo_files(files)
        source = FakeRevisionSource(files={"R": files})
        executor = FakeExecutor(lines=content_lines(6))

        response = RevisionSearcher(source, executor).search(
            repo, "R", "foo", SearchOptions(limit=limit)
        )

        assert len(response.results) <= limit
        assert response.total_match_count == len(response.results)

    def test_path_search_disabled(self, make_repo_files):
        files = ["foo.txt"]
        repo = make_repo_files(files)
        source = FakeRevisionSource(files={"R": files})
        executor = FakeExecutor(lines=content_lines(1, path="foo.txt"))

        response = RevisionSearcher(source, executor).search(
            repo, "R", "foo", SearchOptions(search_path=False)
        )

        assert [r.kind for r in response.results] == [MatchKind.CONTENT]

    def test_content_search_disabled(self, make_repo_files):
        files = ["foo.txt"]
        repo = make_repo_files(files)
        source = FakeRevisionSource(files={"R": files})
        executor = FakeExecutor(lines=content_lines(1, path="foo.txt"))

        response = RevisionSearcher(source, executor).search(
            repo, "R", "foo", SearchOptions(search_content=False)
        )

        assert [r.kind for r in response.results] == [MatchKind.PATH]
        assert executor.calls == []

    def test_no_matches_anywhere(self, make_repo_files):
        files = ["a.txt", "b/c.txt"]
        repo = make_repo_files(files)
        source = FakeRevisionSource(files={"R": files})
        executor = FakeExecutor(lines=[])

        response = RevisionSearcher(source, executor).search(
            repo, "R", "foo", SearchOptions(limit=10)
        )

        assert response.results == []
        assert response.total_match_count == 0
        assert response.truncated is False

    def test_response_unpacks_to_results_and_total(self, make_repo_files):
        files = ["foo.txt"]
        repo = make_repo_files(files)
        source = FakeRevisionSource(files={"R": files})

        results, total = RevisionSearcher(source, FakeExecutor()).search(
            repo, "R", "foo"
        )

        assert [r.path for r in results] == ["foo.txt"]
        assert total == 1


class TestStages:
    """Test resolution, checkout and admission wiring."""

    def test_checks_out_target_revision(self, make_repo_files):
        repo = make_repo_files(["a.txt"])
        source = FakeRevisionSource(files={"v1.0": ["a.txt"]})

        RevisionSearcher(source, FakeExecutor()).search(repo, "v1.0", "foo")

        assert source.calls == [
            ("list_files", "v1.0"),
            ("run", "checkout", "--quiet", "v1.0", "--"),
        ]

    def test_base_revision_searches_changed_files_only(self, make_repo_files):
        repo = make_repo_files(["a.txt", "changed.txt"])
        source = FakeRevisionSource(
            files={"R": ["a.txt", "changed.txt"]},
            changed={"B..R": ["changed.txt"]},
        )
        executor = FakeExecutor()

        RevisionSearcher(source, executor).search(
            repo, "R", "foo", SearchOptions(base_revision="B")
        )

        assert ("list_changed_files", "R", "B") in source.calls
        assert ("list_files", "R") not in source.calls
        assert executor.calls[0]["files"] == ["changed.txt"]

    def test_executor_receives_only_admitted_files(self, make_repo_files):
        repo = make_repo_files(["keep.py", "skip.md"])
        source = FakeRevisionSource(files={"R": ["keep.py", "skip.md"]})
        executor = FakeExecutor()
        options = SearchOptions(file_filter=lambda p: p.endswith(".py"))

        response = RevisionSearcher(source, executor).search(repo, "R", "x", options)

        assert executor.calls[0]["files"] == ["keep.py"]
        assert response.admitted_file_count == 1

    def test_query_settings_are_passed_to_executor(self, make_repo_files):
        repo = make_repo_files(["a.txt"])
        source = FakeRevisionSource(files={"R": ["a.txt"]})
        executor = FakeExecutor()
        options = SearchOptions(case_sensitive=False, regex=True, context_lines=2)

        RevisionSearcher(source, executor).search(repo, "R", "fo+", options)

        call = executor.calls[0]
        assert call["query"] == "fo+"
        assert call["case_sensitive"] is False
        assert call["regex"] is True
        assert call["context_lines"] == 2

    def test_empty_admitted_set_skips_content_search(self, make_repo_files):
        repo = make_repo_files([])
        source = FakeRevisionSource(files={"R": []})
        executor = FakeExecutor()

        response = RevisionSearcher(source, executor).search(repo, "R", "foo")

        assert response.results == []
        assert executor.calls == []

    def test_options_default_from_config(self, make_repo_files):
        files = ["foo1", "foo2", "foo3"]
        repo = make_repo_files(files)
        source = FakeRevisionSource(files={"R": files})
        config = SearchConfig(default_limit=2, default_case_sensitive=False)

        response = RevisionSearcher(source, FakeExecutor(), config).search(
            repo, "R", "FOO"
        )

        assert [r.path for r in response.results] == ["foo1", "foo2"]

    def test_config_line_length_cap_applies(self, make_repo_files):
        repo = make_repo_files(["notes.txt"])
        source = FakeRevisionSource(files={"R": ["notes.txt"]})
        executor = FakeExecutor(
            lines=[grep_line("notes.txt", 1, "x" * 40 + highlight("bar"))]
        )
        config = SearchConfig(max_line_length=20)

        response = RevisionSearcher(source, executor, config).search(
            repo, "R", "bar"
        )

        assert response.results == []
        assert response.total_match_count == 0

    def test_module_level_search(self, make_repo_files):
        repo = make_repo_files(["foo.txt"])
        source = FakeRevisionSource(files={"R": ["foo.txt"]})

        response = search_function(
            repo, "R", "foo", revision_source=source, executor=FakeExecutor()
        )

        assert response.total_match_count == 1


class TestErrors:
    """Test that every stage failure aborts the search with a typed error."""

    def test_unknown_revision_raises_resolution_error(self, make_repo_files):
        repo = make_repo_files(["a.txt"])
        source = FakeRevisionSource(files={"R": ["a.txt"]})

        with pytest.raises(RevisionResolutionError) as exc_info:
            RevisionSearcher(source, FakeExecutor()).search(repo, "nope", "foo")

        assert exc_info.value.stage == "resolve"
        assert "Not a valid object name" in str(exc_info.value)
        assert isinstance(exc_info.value.cause, subprocess.CalledProcessError)
        assert not any(call[0] == "run" for call in source.calls)

    def test_unknown_base_revision_raises_resolution_error(self, make_repo_files):
        repo = make_repo_files(["a.txt"])
        source = FakeRevisionSource(files={"R": ["a.txt"]})

        with pytest.raises(RevisionResolutionError):
            RevisionSearcher(source, FakeExecutor()).search(
                repo, "R", "foo", SearchOptions(base_revision="missing")
            )

    def test_checkout_failure_raises_checkout_error(self, make_repo_files):
        repo = make_repo_files(["a.txt"])
        source = FakeRevisionSource(files={"R": ["a.txt"]}, fail_checkout=True)
        executor = FakeExecutor()

        with pytest.raises(CheckoutError) as exc_info:
            RevisionSearcher(source, executor).search(repo, "R", "foo")

        assert "pathspec did not match" in str(exc_info.value)
        assert executor.calls == []

    def test_admission_failure_raises_filter_error(self, make_repo_files):
        repo = make_repo_files(["a.txt"])
        source = FakeRevisionSource(files={"R": ["a.txt", "ghost.txt"]})

        with pytest.raises(FilterError):
            RevisionSearcher(source, FakeExecutor()).search(repo, "R", "foo")

    def test_invalid_regex_raises_query_compile_error(self, make_repo_files):
        repo = make_repo_files(["a.txt"])
        source = FakeRevisionSource(files={"R": ["a.txt"]})

        with pytest.raises(QueryCompileError) as exc_info:
            RevisionSearcher(source, FakeExecutor()).search(
                repo, "R", "(", SearchOptions(regex=True)
            )

        assert exc_info.value.stage == "path_match"

    def test_executor_error_propagates(self, make_repo_files):
        repo = make_repo_files(["a.txt"])
        source = FakeRevisionSource(files={"R": ["a.txt"]})
        executor = FakeExecutor(error=ExecutionError("git grep exited with status 2"))

        with pytest.raises(ExecutionError):
            RevisionSearcher(source, executor).search(repo, "R", "foo")

    def test_unexpected_executor_failure_is_wrapped(self, make_repo_files):
        repo = make_repo_files(["a.txt"])
        source = FakeRevisionSource(files={"R": ["a.txt"]})
        executor = FakeExecutor(error=FileNotFoundError("git"))

        with pytest.raises(ExecutionError) as exc_info:
            RevisionSearcher(source, executor).search(repo, "R", "foo")

        assert isinstance(exc_info.value.cause, FileNotFoundError)

    def test_malformed_output_raises_parse_error(self, make_repo_files):
        repo = make_repo_files(["a.txt"])
        source = FakeRevisionSource(files={"R": ["a.txt"]})
        executor = FakeExecutor(lines=[b"garbage without separators\n"])

        with pytest.raises(ParseError):
            RevisionSearcher(source, executor).search(repo, "R", "foo")

    def test_failure_is_written_to_exception_log(self, make_repo_files, tmp_path):
        repo = make_repo_files(["a.txt"])
        source = FakeRevisionSource(files={"R": ["a.txt"]}, fail_checkout=True)
        log_root = tmp_path / "logs"
        log_root.mkdir()
        exception_logger = ExceptionLogger.initialize(log_root)

        with pytest.raises(CheckoutError):
            RevisionSearcher(source, FakeExecutor()).search(repo, "R", "foo")

        content = exception_logger.log_file_path.read_text()
        entry = json.loads(content.split("\n---\n")[0])
        assert entry["exception_type"] == "CheckoutError"
        assert entry["context"]["stage"] == "checkout"
        assert entry["context"]["revision"] == "R"
        assert entry["context"]["query"] == "foo"
