"""
Content search executor: run git grep over the admitted files.

The executor only produces the raw, colour-annotated output; turning it into
results is the job of stream_parser. Output is yielded line by line while
git is still running so the parser can stop early, at which point the
process is terminated.
"""

import logging
import subprocess
import tempfile
from pathlib import Path
from typing import IO, Iterator, List, Protocol

from .errors import ExecutionError
from .utils.git_runner import get_git_environment

logger = logging.getLogger(__name__)

# git grep exit status when nothing matched
NO_MATCH_RETURNCODE = 1

# git colours pinned for every search so user or repository config cannot
# change the output the parser reads. SELECTED_LINE_COLOR renders as
# stream_parser.SELECTED_LINE_SGR.
MATCH_COLOR = "bold red"
SELECTED_LINE_COLOR = "blue"

GREP_CONFIG_OVERRIDES = [
    f"color.grep.matchSelected={MATCH_COLOR}",
    f"color.grep.selected={SELECTED_LINE_COLOR}",
    "color.grep.matchContext=",
    "color.grep.context=",
    "color.grep.function=",
    "grep.column=false",
]


class ContentSearchExecutor(Protocol):
    """Runs the external line matcher and returns its raw output lines."""

    def execute(
        self,
        repository: Path,
        files: List[str],
        query: str,
        case_sensitive: bool,
        regex: bool,
        context_lines: int,
    ) -> Iterator[bytes]:
        ...


class GitGrepExecutor:
    """ContentSearchExecutor backed by ``git grep --color=always``."""

    def __init__(self, max_files_per_invocation: int = 1000):
        if max_files_per_invocation <= 0:
            raise ValueError("max_files_per_invocation must be greater than 0")
        self.max_files_per_invocation = max_files_per_invocation

    def build_command(
        self,
        query: str,
        case_sensitive: bool,
        regex: bool,
        context_lines: int,
    ) -> List[str]:
        """Build the git grep command line, without the file arguments.

        Paths are passed as literal pathspecs so names containing glob or
        pathspec magic characters only match themselves. With ``-z`` git
        separates path, line number and content with NUL bytes, so matching
        lines are told apart from context by the pinned colours alone.
        """
        cmd = ["git", "--literal-pathspecs"]
        for setting in GREP_CONFIG_OVERRIDES:
            cmd.extend(["-c", setting])
        cmd += [
            "grep",
            "--color=always",
            "-I",
            "-n",
            "-z",
            "--full-name",
        ]
        if not case_sensitive:
            cmd.append("-i")
        cmd.append("-E" if regex else "-F")
        if context_lines > 0:
            cmd.extend(["-C", str(context_lines)])
        cmd.extend(["-e", query])
        return cmd

    def execute(
        self,
        repository: Path,
        files: List[str],
        query: str,
        case_sensitive: bool,
        regex: bool,
        context_lines: int,
    ) -> Iterator[bytes]:
        """Start searching ``files`` and return an iterator over output lines.

        Files are split into batches of ``max_files_per_invocation`` and
        searched by consecutive git grep processes whose output is chained.
        Closing the returned iterator terminates the running process.

        Raises:
            ExecutionError: If no files are given; later, while iterating, if
                git cannot be started or exits with an error
        """
        if not files:
            raise ExecutionError("no files to search")

        cmd = self.build_command(query, case_sensitive, regex, context_lines)
        return self._stream(repository, cmd, files)

    def _stream(
        self, repository: Path, cmd: List[str], files: List[str]
    ) -> Iterator[bytes]:
        batch_size = self.max_files_per_invocation
        for start in range(0, len(files), batch_size):
            batch = files[start : start + batch_size]
            logger.debug(
                f"git grep over files {start + 1}-{start + len(batch)} of {len(files)}"
            )
            yield from self._run_batch(repository, cmd + ["--"] + batch)

    def _run_batch(self, repository: Path, cmd: List[str]) -> Iterator[bytes]:
        # stderr goes to a temp file so a chatty git cannot block on a full pipe
        with tempfile.TemporaryFile(prefix="git_grep_stderr_") as stderr_file:
            try:
                process = subprocess.Popen(
                    cmd,
                    cwd=repository,
                    stdout=subprocess.PIPE,
                    stderr=stderr_file,
                    env=get_git_environment(repository),
                )
            except OSError as e:
                raise ExecutionError(f"failed to start git grep: {e}", e)

            try:
                stdout: IO[bytes] = process.stdout  # type: ignore[assignment]
                for line in stdout:
                    yield line
                returncode = process.wait()
            finally:
                if process.poll() is None:
                    process.kill()
                    process.wait()
                if process.stdout is not None:
                    process.stdout.close()

            if returncode not in (0, NO_MATCH_RETURNCODE):
                stderr_file.seek(0)
                stderr = stderr_file.read().decode("utf-8", errors="replace").strip()
                raise ExecutionError(
                    f"git grep exited with status {returncode}: {stderr}"
                )
