"""SERP helpers: position lookup, top-result formatting, ranking snapshots."""

from typing import Optional, Sequence

from rank_monitor.modules.rank_tracker.state import SearchResult

# Size of the search window requested from the provider.
SEARCH_WINDOW = 20
TOP_RESULTS_LIMIT = 5


def find_domain_position(results: Sequence[SearchResult], domain: Optional[str]) -> int:
    """Return the 1-based rank of the first result whose URL contains ``domain``.

    Plain case-sensitive substring match; no scheme, ``www.`` or trailing
    slash normalisation. Returns ``-1`` when nothing matches.

    Examples:
        >>> rows = [SearchResult("a.com"), SearchResult("target.com")]
        >>> find_domain_position(rows, "target.com")
        2
    """
    if not domain:
        return -1
    for index, result in enumerate(results, 1):
        if domain in result.url:
            return index
    return -1


def describe_position(position: int) -> str:
    """Human-readable position used in the recommendation prompt."""
    if position > 0:
        return f"at position {position}"
    return f"not in the top {SEARCH_WINDOW}"


def format_top_results(results: Sequence[SearchResult], limit: int = TOP_RESULTS_LIMIT) -> str:
    """One ``"{rank}. {title} ({url})"`` line per result, in rank order."""
    return "\n".join(
        f"{rank}. {result.title or 'Untitled'} ({result.url})"
        for rank, result in enumerate(results[:limit], 1)
    )


def build_position_snapshot(
    results: Sequence[SearchResult],
    domain: Optional[str],
) -> list[dict]:
    """Per-result ranking snapshot stored alongside each check."""
    return [
        {
            "url": result.url,
            "title": result.title,
            "position": rank,
            "is_our_site": bool(domain) and domain in result.url,
        }
        for rank, result in enumerate(results, 1)
    ]
