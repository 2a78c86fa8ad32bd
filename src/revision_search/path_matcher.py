"""Match the query against admitted file paths."""

from typing import List, Optional, Pattern, Tuple

from .models import MatchKind, MatchSpan, SearchResult


def _fold(path: str, case_sensitive: bool) -> Tuple[str, List[int]]:
    """Return ``path`` case-folded plus, per folded character, its source index.

    casefold() can expand a character ("ß" -> "ss"), so folded offsets are
    mapped back through the index list.
    """
    if case_sensitive:
        return path, list(range(len(path)))
    folded: List[str] = []
    origin: List[int] = []
    for index, char in enumerate(path):
        for folded_char in char.casefold():
            folded.append(folded_char)
            origin.append(index)
    return "".join(folded), origin


def _literal_spans(path: str, query: str, case_sensitive: bool) -> List[MatchSpan]:
    folded_path, origin = _fold(path, case_sensitive)
    spans: List[MatchSpan] = []
    start = folded_path.find(query)
    while start != -1:
        end = start + len(query)
        spans.append(MatchSpan(origin[start], origin[end - 1] + 1))
        start = folded_path.find(query, end)
    return spans


def find_path_matches(
    files: List[str],
    query: str,
    case_sensitive: bool,
    query_re: Optional[Pattern[str]],
    budget: int,
) -> List[SearchResult]:
    """Return up to ``budget`` path matches, in file order.

    With ``query_re`` a path matches when the regex matches anywhere in it;
    otherwise the query is a plain substring, case-folded on both sides when
    ``case_sensitive`` is False. Spans are computed by the same comparison
    that decided the match.
    """
    results: List[SearchResult] = []
    if budget <= 0:
        return results

    folded_query = query if case_sensitive else query.casefold()

    for path in files:
        if query_re is not None:
            if query_re.search(path) is None:
                continue
            spans = [
                MatchSpan(m.start(), m.end())
                for m in query_re.finditer(path)
                if m.end() > m.start()
            ]
        elif folded_query:
            spans = _literal_spans(path, folded_query, case_sensitive)
            if not spans:
                continue
        else:
            # the empty string is a substring of every path
            spans = []

        results.append(
            SearchResult(
                path=path,
                kind=MatchKind.PATH,
                snippet=path,
                match_spans=spans,
            )
        )
        if len(results) >= budget:
            break

    return results
