"""Monitoring state record, search result record, and the merge policy."""

import logging
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

# Attribute name -> wire (JSON) name
_WIRE_NAMES = {
    "domain": "domain",
    "keyword": "keyword",
    "region": "region",
    "search_results": "searchResults",
    "our_position": "ourPosition",
    "analysis": "analysis",
    "error": "error",
}


@dataclass(frozen=True)
class SearchResult:
    """One ranked entry returned by the search provider."""

    url: str
    title: Optional[str] = None
    content: Optional[str] = None
    score: Optional[float] = None
    raw_content: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Any) -> "SearchResult":
        """Build a result from a provider payload entry.

        Raises:
            ValueError: if the entry is not a mapping or has no usable URL.
        """
        if isinstance(raw, SearchResult):
            return raw
        if not isinstance(raw, Mapping):
            raise ValueError(f"Search result entry is not a mapping: {type(raw).__name__}")
        url = raw.get("url")
        if not isinstance(url, str) or not url.strip():
            raise ValueError("Search result entry has no URL")

        score = raw.get("score")
        try:
            score = float(score) if score is not None else None
        except (TypeError, ValueError):
            score = None

        raw_content = raw.get("raw_content", raw.get("rawContent"))
        return cls(
            url=url.strip(),
            title=_optional_str(raw.get("title")),
            content=_optional_str(raw.get("content")),
            score=score,
            raw_content=_optional_str(raw_content),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"url": self.url}
        if self.title is not None:
            data["title"] = self.title
        if self.content is not None:
            data["content"] = self.content
        if self.score is not None:
            data["score"] = self.score
        if self.raw_content is not None:
            data["rawContent"] = self.raw_content
        return data


@dataclass(frozen=True)
class MonitoringState:
    """State threaded through the position check pipeline.

    ``None`` means "absent". Instances are never mutated; every stage
    update produces a new record through :func:`merge_state`.
    """

    domain: Optional[str] = None
    keyword: Optional[str] = None
    region: Optional[str] = None
    search_results: Optional[tuple[SearchResult, ...]] = None
    our_position: Optional[int] = None
    analysis: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_input(
        cls,
        keyword: Optional[str] = None,
        domain: Optional[str] = None,
        region: Optional[str] = None,
    ) -> "MonitoringState":
        """Initial state from caller input; blank strings count as absent."""
        return cls(
            keyword=_blank_to_none(keyword),
            domain=_blank_to_none(domain),
            region=_blank_to_none(region),
        )

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        """Wire form: camelCase keys, absent fields omitted."""
        data: dict[str, Any] = {}
        for name, wire_name in _WIRE_NAMES.items():
            value = getattr(self, name)
            if value is None:
                continue
            if name == "search_results":
                value = [result.to_dict() for result in value]
            data[wire_name] = value
        return data


STATE_FIELDS = frozenset(f.name for f in fields(MonitoringState))


@dataclass(frozen=True)
class PositionRecord:
    """Structured record handed to the result store after a successful run."""

    keyword_ref: str
    domain: str
    timestamp: datetime
    positions: list[dict[str, Any]] = field(default_factory=list)
    our_position: int = -1
    analysis: str = ""
    region: Optional[str] = None


def merge_state(prev: MonitoringState, update: Mapping[str, Any]) -> MonitoringState:
    """Fold a partial update into ``prev``.

    Per field: a non-``None`` value replaces the previous one, ``None``
    leaves it untouched. Fields missing from ``update`` are untouched.

    Raises:
        ValueError: if ``update`` names a field the state does not have.
    """
    unknown = set(update) - STATE_FIELDS
    if unknown:
        raise ValueError(f"Unknown state field(s) in update: {sorted(unknown)}")

    changes: dict[str, Any] = {}
    for name, value in update.items():
        if value is None:
            continue
        if name == "search_results":
            value = tuple(SearchResult.from_raw(item) for item in value)
        changes[name] = value

    if not changes:
        return prev
    return replace(prev, **changes)


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def coerce_results(items: Iterable[Any]) -> list[SearchResult]:
    """Validate provider entries in rank order, dropping malformed ones."""
    results: list[SearchResult] = []
    for rank, raw in enumerate(items, 1):
        try:
            results.append(SearchResult.from_raw(raw))
        except ValueError as exc:
            logger.warning("Dropping malformed search result #%d: %s", rank, exc)
    return results
