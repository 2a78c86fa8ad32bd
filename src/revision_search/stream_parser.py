"""
Parser for colour-annotated git grep output.

git grep is run with ``--color=always -n -z``, so each output line looks like

    <path> NUL <line number> NUL <content>

and ``--`` on its own separates non-adjacent hunks. A sign in place of the
second NUL (``:`` for a matching line, ``-`` or ``=`` for context) is also
accepted. The path, line number and separators may themselves be wrapped in
colour sequences.

``-z`` drops the sign, so the executor pins git's colours: context lines are
printed without escapes, and every selected line carries the
SELECTED_LINE_SGR marker even when its match is zero-width and nothing is
highlighted. Within a selected line, each matched substring is opened by an
SGR sequence and closed by an SGR reset. Which colour opens a span is not
fixed, so any non-reset SGR other than the marker is accepted.
"""

import logging
import re
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Iterable, List, Optional, Tuple

from .errors import ParseError
from .models import ContextLine, MatchKind, MatchSpan, SearchResult

logger = logging.getLogger(__name__)

# Maximum characters in a reported line. Longer matching lines are dropped.
SNIPPET_LINE_LENGTH_MAX = 300

# Escape git emits for color.grep.selected=blue (see content_executor).
SELECTED_LINE_SGR = "\x1b[34m"

_CSI = r"\x1b\[[0-?]*[ -/]*[@-~]"

CSI_RE = re.compile(_CSI)

SGR_RESET_RE = re.compile(r"\x1b\[0*m")

LINE_PREFIX_RE = re.compile(
    rf"(?:{_CSI})*(\d+)(?:{_CSI})*(?:\0|([:=-])(?:\x1b\[0?m)?)"
)

HUNK_SEPARATOR = "--"


def strip_escapes(text: str) -> str:
    """Remove every CSI escape sequence from ``text``."""
    return CSI_RE.sub("", text)


def extract_highlights(text: str) -> Tuple[str, List[MatchSpan]]:
    """Split an annotated line into clean text and highlighted spans.

    Scans escape sequences one at a time with two states: an SGR reset
    moves outside a highlight, any other SGR moves inside. Non-SGR
    sequences (``ESC[K``) and the selected-line marker change nothing.
    Offsets index into the clean text.

    Raises:
        ParseError: If the line ends inside a highlight
    """
    clean_parts: List[str] = []
    spans: List[MatchSpan] = []
    offset = 0
    span_start: Optional[int] = None
    pos = 0

    for m in CSI_RE.finditer(text):
        segment = text[pos : m.start()]
        clean_parts.append(segment)
        offset += len(segment)
        pos = m.end()

        sequence = m.group()
        if not sequence.endswith("m") or sequence == SELECTED_LINE_SGR:
            continue
        if SGR_RESET_RE.fullmatch(sequence):
            if span_start is not None and offset > span_start:
                spans.append(MatchSpan(span_start, offset))
            span_start = None
        elif span_start is None:
            span_start = offset

    if span_start is not None:
        raise ParseError(
            f"highlight escape sequence is missing its closing half: {text[:80]!r}"
        )

    clean_parts.append(text[pos:])
    return "".join(clean_parts), spans


@dataclass
class _PendingContext:
    """A match still collecting lines for its context_after."""

    result: SearchResult
    remaining: int


@dataclass
class ParserState:
    """Mutable state for one parse() call."""

    remaining: int
    context_buffer: Deque[ContextLine]
    current_file: Optional[str] = None
    line_number: int = 0
    matching_lines: int = 0
    pending: List[_PendingContext] = field(default_factory=list)


class MatchStreamParser:
    """Turns raw git grep output into content SearchResults.

    One result is produced per matching line, carrying all of its
    highlighted spans. Parsing stops once ``budget`` results exist; after
    that the stream is only read far enough to complete the context_after
    of results already produced.
    """

    def __init__(
        self,
        budget: int,
        context_lines: int = 0,
        max_line_length: int = SNIPPET_LINE_LENGTH_MAX,
    ):
        self.budget = budget
        self.context_lines = context_lines
        self.max_line_length = max_line_length

    def parse(self, stream: Iterable[bytes]) -> Tuple[List[SearchResult], int]:
        """Parse ``stream`` and return (results, number of matching lines).

        The stream is closed (if it supports it) when parsing ends, including
        when it ends early or with an error.

        Raises:
            ParseError: If the stream contains a line of unknown structure
        """
        results: List[SearchResult] = []
        state = ParserState(
            remaining=self.budget,
            context_buffer=deque(maxlen=self.context_lines),
        )

        try:
            if state.remaining > 0:
                for raw in stream:
                    line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                    self._consume(line, state, results)
                    if state.remaining <= 0 and not state.pending:
                        break
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()

        logger.debug(
            f"Parsed {state.matching_lines} matching lines into {len(results)} results"
        )
        return results, state.matching_lines

    def _consume(
        self, line: str, state: ParserState, results: List[SearchResult]
    ) -> None:
        if "\0" not in line:
            clean = strip_escapes(line)
            if clean == HUNK_SEPARATOR:
                self._end_hunk(state)
                return
            if not clean.strip():
                return
            raise ParseError(f"unexpected line in search output: {clean[:80]!r}")

        path_part, _, rest = line.partition("\0")
        path = strip_escapes(path_part)
        if not path:
            raise ParseError(f"search output line has no path: {line[:80]!r}")

        if path != state.current_file:
            self._end_hunk(state)
            state.current_file = path
            state.line_number = 0

        prefix = LINE_PREFIX_RE.match(rest)
        if prefix:
            number = int(prefix.group(1))
            if state.line_number and number != state.line_number + 1:
                self._end_hunk(state)
            state.line_number = number
            content = rest[prefix.end() :]
            sign = prefix.group(2)
            if sign is None:
                # context lines are printed bare; selected lines carry at
                # least the line marker
                is_match = CSI_RE.search(content) is not None
            else:
                is_match = sign == ":"
        else:
            state.line_number += 1
            content = rest
            is_match = CSI_RE.search(content) is not None

        if is_match and state.remaining > 0:
            self._handle_match(path, content, state, results)
        else:
            context = ContextLine(state.line_number, strip_escapes(content))
            self._add_context(context, state)

    def _handle_match(
        self,
        path: str,
        content: str,
        state: ParserState,
        results: List[SearchResult],
    ) -> None:
        snippet, spans = extract_highlights(content)
        line = ContextLine(state.line_number, snippet)

        if len(snippet) > self.max_line_length:
            logger.debug(
                f"Dropping {path}:{state.line_number}, "
                f"{len(snippet)} characters exceeds {self.max_line_length}"
            )
            self._add_context(line, state)
            return

        state.matching_lines += 1
        result = SearchResult(
            path=path,
            kind=MatchKind.CONTENT,
            snippet=snippet,
            line_number=state.line_number,
            match_spans=spans,
            context_before=list(state.context_buffer),
        )
        results.append(result)
        state.remaining -= 1

        self._add_context(line, state)
        if self.context_lines > 0:
            state.pending.append(_PendingContext(result, self.context_lines))

    def _add_context(self, line: ContextLine, state: ParserState) -> None:
        """Record ``line`` as after-context for pending matches and before-context
        for the next one."""
        for pending in state.pending:
            pending.result.context_after.append(line)
            pending.remaining -= 1
        state.pending = [p for p in state.pending if p.remaining > 0]
        state.context_buffer.append(line)

    def _end_hunk(self, state: ParserState) -> None:
        state.pending.clear()
        state.context_buffer.clear()
