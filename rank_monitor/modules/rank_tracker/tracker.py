"""Rank Tracker: the four stages of a keyword position check."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol, Sequence

from rank_monitor.modules.rank_tracker.pipeline import Stage, StateUpdate, pipeline_stage
from rank_monitor.modules.rank_tracker.serp_analyzer import (
    build_position_snapshot,
    describe_position,
    find_domain_position,
    format_top_results,
)
from rank_monitor.modules.rank_tracker.state import (
    MonitoringState,
    PositionRecord,
    SearchResult,
    coerce_results,
)
from rank_monitor.utils.helpers import call_with_timeout

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_ENGINE = "yandex.ru"
SEARCH_DEPTH = "advanced"

RECOMMENDATION_PROMPT = """You are an SEO specialist. Analyze the position of the site {domain}
for the keyword: "{keyword}".

Current position: {position}
Top 5 results:
{top_results}

Give recommendations for improving the position. Be specific and suggest practical steps.
Assess the urgency and importance of each recommendation.
"""


class SearchProvider(Protocol):
    async def search(
        self,
        query: str,
        search_depth: str,
        include_domains: Sequence[str],
    ) -> Sequence[Any]: ...


class RecommendationProvider(Protocol):
    async def generate_text(self, prompt: str) -> str: ...


class ResultStore(Protocol):
    def save(self, record: PositionRecord) -> int: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_recommendation_prompt(state: MonitoringState) -> str:
    """Prompt for the language model: domain, keyword, position, top 5."""
    return RECOMMENDATION_PROMPT.format(
        domain=state.domain,
        keyword=state.keyword,
        position=describe_position(state.our_position),
        top_results=format_top_results(state.search_results or ()),
    )


def _log_failed_run(state: MonitoringState) -> None:
    logger.warning("[%s] Error: %s", state.keyword, state.error)


class PositionTracker:
    """Run the stages of one position check against injected collaborators.

    Each stage takes the current state and returns a partial update; the
    workflow runner merges the updates. Search and recommendation calls are
    bounded by their timeouts. A save is not: it runs in a worker thread that
    cannot be stopped once started, so the store bounds its own lock waits.

    Usage::

        tracker = PositionTracker(search_client, llm_client, store)
        update = await tracker.search(MonitoringState.from_input("kitchens", "example.com"))
    """

    def __init__(
        self,
        search_provider: SearchProvider,
        recommender: RecommendationProvider,
        store: Optional[ResultStore] = None,
        search_engine: str = DEFAULT_SEARCH_ENGINE,
        search_timeout: Optional[float] = 30.0,
        llm_timeout: Optional[float] = 60.0,
    ):
        self._search_provider = search_provider
        self._recommender = recommender
        self._store = store
        self._search_engine = search_engine
        self._search_timeout = search_timeout
        self._llm_timeout = llm_timeout

    def stages(self) -> list[Stage]:
        """Stages in execution order."""
        return [
            self.search,
            self.analyze_position,
            self.generate_recommendations,
            self.persist_results,
        ]

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    @pipeline_stage("search", "Search failed: ")
    async def search(self, state: MonitoringState) -> StateUpdate:
        if not state.keyword:
            return {"error": "Keyword is required"}

        logger.info("Searching %r on %s", state.keyword, self._search_engine)
        raw_results = await call_with_timeout(
            self._search_provider.search(
                query=state.keyword,
                search_depth=SEARCH_DEPTH,
                include_domains=[self._search_engine],
            ),
            self._search_timeout,
            "Search request",
        )
        results = coerce_results(raw_results)
        logger.info("Search for %r returned %d results", state.keyword, len(results))
        return {"search_results": results}

    @pipeline_stage("analyze_position", "Position analysis failed: ")
    async def analyze_position(self, state: MonitoringState) -> StateUpdate:
        if not state.search_results:
            return {"error": "No search results"}
        if not state.domain:
            return {"error": "domain is required"}

        position = find_domain_position(state.search_results, state.domain)
        logger.info("Keyword %r position=%d for %r", state.keyword, position, state.domain)
        return {"our_position": position}

    @pipeline_stage("generate_recommendations", "GigaChat failed: ")
    async def generate_recommendations(self, state: MonitoringState) -> StateUpdate:
        if state.our_position is None:
            return {"error": "Position not calculated"}
        if not state.search_results:
            return {"error": "No search results"}

        prompt = build_recommendation_prompt(state)
        analysis = await call_with_timeout(
            self._recommender.generate_text(prompt),
            self._llm_timeout,
            "Recommendation request",
        )
        if not isinstance(analysis, str):
            raise TypeError(f"Recommendation provider returned {type(analysis).__name__}, expected str")
        return {"analysis": analysis}

    @pipeline_stage("persist_results", "Save failed: ", on_short_circuit=_log_failed_run)
    async def persist_results(self, state: MonitoringState) -> StateUpdate:
        if self._store is None:
            logger.debug("No result store configured; skipping persistence.")
            return {}

        record = self.build_record(state)
        loop = asyncio.get_running_loop()
        check_id = await loop.run_in_executor(None, self._store.save, record)
        logger.info("Position check for %r stored as #%s", state.keyword, check_id)
        return {}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def build_record(state: MonitoringState) -> PositionRecord:
        """Snapshot of a finished run for the result store."""
        results: Sequence[SearchResult] = state.search_results or ()
        return PositionRecord(
            keyword_ref=state.keyword or "",
            domain=state.domain or "",
            region=state.region,
            timestamp=_utcnow(),
            positions=build_position_snapshot(results, state.domain),
            our_position=state.our_position if state.our_position is not None else -1,
            analysis=state.analysis or "",
        )
