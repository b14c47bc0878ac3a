"""Tests for the individual position check stages and SERP helpers."""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from rank_monitor.modules.rank_tracker import (
    MonitoringState,
    PositionRecord,
    PositionTracker,
    SearchResult,
)
from rank_monitor.modules.rank_tracker.serp_analyzer import (
    build_position_snapshot,
    describe_position,
    find_domain_position,
    format_top_results,
)
from rank_monitor.modules.rank_tracker.tracker import build_recommendation_prompt


def _results(*urls):
    return tuple(SearchResult(url=url, title="Title " + str(i)) for i, url in enumerate(urls, 1))


def _searched_state(domain="target.com", position=None):
    return MonitoringState(
        keyword="kitchen renovation",
        domain=domain,
        search_results=_results("https://a.com", "https://target.com/x", "https://b.com"),
        our_position=position,
    )


# ===========================================================================
# SERP helpers
# ===========================================================================
class TestFindDomainPosition:

    def test_second_result(self):
        assert find_domain_position(_results("a.com", "target.com", "b.com"), "target.com") == 2

    def test_first_match_wins(self):
        results = _results("https://a.com", "https://target.com/1", "https://target.com/2")
        assert find_domain_position(results, "target.com") == 2

    def test_no_match(self):
        assert find_domain_position(_results("a.com", "b.com"), "target.com") == -1

    def test_substring_match_is_literal(self):
        assert find_domain_position(_results("https://www.shop.com/p"), "shop.com") == 1
        assert find_domain_position(_results("https://SHOP.com/p"), "shop.com") == -1

    def test_empty_domain(self):
        assert find_domain_position(_results("a.com"), "") == -1


class TestFormatting:

    def test_describe_position(self):
        assert describe_position(3) == "at position 3"
        assert describe_position(-1) == "not in the top 20"

    def test_format_top_results_limit_and_layout(self):
        results = tuple(SearchResult(url=f"https://s{i}.com", title=f"T{i}") for i in range(1, 8))
        lines = format_top_results(results).splitlines()
        assert len(lines) == 5
        assert lines[0] == "1. T1 (https://s1.com)"
        assert lines[4] == "5. T5 (https://s5.com)"

    def test_format_top_results_untitled(self):
        assert format_top_results((SearchResult(url="https://x.com"),)) == "1. Untitled (https://x.com)"

    def test_position_snapshot(self):
        snapshot = build_position_snapshot(_results("https://a.com", "https://target.com"), "target.com")
        assert snapshot[1] == {
            "url": "https://target.com",
            "title": "Title 2",
            "position": 2,
            "is_our_site": True,
        }
        assert snapshot[0]["is_our_site"] is False

    def test_prompt_mentions_inputs(self):
        prompt = build_recommendation_prompt(_searched_state(position=-1))
        assert "target.com" in prompt
        assert '"kitchen renovation"' in prompt
        assert "not in the top 20" in prompt
        assert "1. Title 1 (https://a.com)" in prompt


# ===========================================================================
# Error pass-through (every stage)
# ===========================================================================
class TestErrorPassThrough:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stage_name", [
        "search",
        "analyze_position",
        "generate_recommendations",
        "persist_results",
    ])
    async def test_stage_echoes_existing_error(
        self, tracker, mock_search_client, mock_llm_client, mock_store, stage_name
    ):
        state = MonitoringState(keyword="k", domain="d.com", error="Search failed: boom")
        update = await getattr(tracker, stage_name)(state)
        assert update == {"error": "Search failed: boom"}
        mock_search_client.search.assert_not_called()
        mock_llm_client.generate_text.assert_not_called()
        mock_store.save.assert_not_called()


# ===========================================================================
# search
# ===========================================================================
class TestSearchStage:

    @pytest.mark.asyncio
    async def test_returns_results_in_order(self, tracker, mock_search_client):
        update = await tracker.search(MonitoringState.from_input("kitchen renovation", "target.com"))
        urls = [r.url for r in update["search_results"]]
        assert urls == [
            "https://a.com/kitchens",
            "https://target.com/services/kitchens",
            "https://b.com/forum/kitchens",
        ]
        mock_search_client.search.assert_awaited_once_with(
            query="kitchen renovation",
            search_depth="advanced",
            include_domains=["yandex.ru"],
        )

    @pytest.mark.asyncio
    async def test_missing_keyword(self, tracker, mock_search_client):
        update = await tracker.search(MonitoringState.from_input(None, "target.com"))
        assert update == {"error": "Keyword is required"}
        mock_search_client.search.assert_not_called()

    @pytest.mark.asyncio
    async def test_provider_failure(self, tracker, mock_search_client):
        mock_search_client.search.side_effect = ConnectionError("connection reset")
        update = await tracker.search(MonitoringState.from_input("k", "d.com"))
        assert update == {"error": "Search failed: connection reset"}

    @pytest.mark.asyncio
    async def test_provider_failure_without_message(self, tracker, mock_search_client):
        mock_search_client.search.side_effect = RuntimeError()
        update = await tracker.search(MonitoringState.from_input("k", "d.com"))
        assert update == {"error": "Search failed: Unknown error"}

    @pytest.mark.asyncio
    async def test_timeout(self, mock_llm_client):
        async def slow_search(**kwargs):
            await asyncio.sleep(1)
            return []

        search_client = MagicMock()
        search_client.search = slow_search
        tracker = PositionTracker(search_client, mock_llm_client, search_timeout=0.01)
        update = await tracker.search(MonitoringState.from_input("k", "d.com"))
        assert update == {"error": "Search failed: Search request timed out after 0.01s"}

    @pytest.mark.asyncio
    async def test_custom_search_engine(self, mock_search_client, mock_llm_client):
        tracker = PositionTracker(mock_search_client, mock_llm_client, search_engine="google.com")
        await tracker.search(MonitoringState.from_input("k", "d.com"))
        assert mock_search_client.search.await_args.kwargs["include_domains"] == ["google.com"]

    @pytest.mark.asyncio
    async def test_empty_results_not_an_error(self, tracker, mock_search_client):
        mock_search_client.search.return_value = []
        update = await tracker.search(MonitoringState.from_input("k", "d.com"))
        assert update == {"search_results": []}


# ===========================================================================
# analyze_position
# ===========================================================================
class TestAnalyzePositionStage:

    @pytest.mark.asyncio
    async def test_found(self, tracker):
        update = await tracker.analyze_position(_searched_state())
        assert update == {"our_position": 2}

    @pytest.mark.asyncio
    async def test_not_found(self, tracker):
        update = await tracker.analyze_position(_searched_state(domain="missing.com"))
        assert update == {"our_position": -1}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("results", [None, ()])
    async def test_no_results(self, tracker, results):
        state = MonitoringState(keyword="k", domain="d.com", search_results=results)
        update = await tracker.analyze_position(state)
        assert update == {"error": "No search results"}

    @pytest.mark.asyncio
    async def test_missing_domain(self, tracker):
        update = await tracker.analyze_position(_searched_state(domain=None))
        assert update == {"error": "domain is required"}

    @pytest.mark.asyncio
    async def test_no_results_checked_before_domain(self, tracker):
        update = await tracker.analyze_position(MonitoringState(keyword="k"))
        assert update == {"error": "No search results"}


# ===========================================================================
# generate_recommendations
# ===========================================================================
class TestGenerateRecommendationsStage:

    @pytest.mark.asyncio
    async def test_returns_analysis(self, tracker, mock_llm_client):
        update = await tracker.generate_recommendations(_searched_state(position=2))
        assert update == {"analysis": "1. Improve the title tag.\n2. Build local links."}
        prompt = mock_llm_client.generate_text.await_args.args[0]
        assert "at position 2" in prompt

    @pytest.mark.asyncio
    async def test_runs_when_not_ranked(self, tracker, mock_llm_client):
        update = await tracker.generate_recommendations(_searched_state(position=-1))
        assert "analysis" in update
        assert "not in the top 20" in mock_llm_client.generate_text.await_args.args[0]

    @pytest.mark.asyncio
    async def test_position_missing(self, tracker, mock_llm_client):
        update = await tracker.generate_recommendations(_searched_state(position=None))
        assert update == {"error": "Position not calculated"}
        mock_llm_client.generate_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_results_missing(self, tracker):
        state = MonitoringState(keyword="k", domain="d.com", our_position=1)
        update = await tracker.generate_recommendations(state)
        assert update == {"error": "No search results"}

    @pytest.mark.asyncio
    async def test_llm_failure(self, tracker, mock_llm_client):
        mock_llm_client.generate_text.side_effect = RuntimeError("No LLM provider configured. Set GIGACHAT_ACCESS_TOKEN.")
        update = await tracker.generate_recommendations(_searched_state(position=2))
        assert update == {
            "error": "GigaChat failed: No LLM provider configured. Set GIGACHAT_ACCESS_TOKEN."
        }

    @pytest.mark.asyncio
    async def test_non_text_response(self, tracker, mock_llm_client):
        mock_llm_client.generate_text.return_value = {"text": "nope"}
        update = await tracker.generate_recommendations(_searched_state(position=2))
        assert update["error"].startswith("GigaChat failed: ")


# ===========================================================================
# persist_results
# ===========================================================================
class TestPersistResultsStage:

    @pytest.mark.asyncio
    async def test_saves_record(self, tracker, mock_store):
        state = MonitoringState(
            keyword="k",
            domain="target.com",
            region="msk",
            search_results=_results("https://a.com", "https://target.com"),
            our_position=2,
            analysis="Do things.",
        )
        update = await tracker.persist_results(state)
        assert update == {}
        record = mock_store.save.call_args.args[0]
        assert isinstance(record, PositionRecord)
        assert record.keyword_ref == "k"
        assert record.domain == "target.com"
        assert record.region == "msk"
        assert record.our_position == 2
        assert record.analysis == "Do things."
        assert [p["position"] for p in record.positions] == [1, 2]
        assert record.timestamp.tzinfo is not None

    def test_record_defaults(self):
        record = PositionTracker.build_record(MonitoringState(keyword="k", domain="d.com"))
        assert record.our_position == -1
        assert record.analysis == ""
        assert record.positions == []

    @pytest.mark.asyncio
    async def test_no_store(self, mock_search_client, mock_llm_client):
        tracker = PositionTracker(mock_search_client, mock_llm_client, store=None)
        update = await tracker.persist_results(_searched_state(position=2))
        assert update == {}

    @pytest.mark.asyncio
    async def test_store_failure(self, tracker, mock_store):
        mock_store.save.side_effect = OSError("disk full")
        update = await tracker.persist_results(_searched_state(position=2))
        assert update == {"error": "Save failed: disk full"}

    @pytest.mark.asyncio
    async def test_slow_store_finishes(self, mock_search_client, mock_llm_client):
        saved = []

        def slow_save(record):
            time.sleep(0.2)
            saved.append(record)
            return 7

        store = MagicMock()
        store.save = MagicMock(side_effect=slow_save)
        tracker = PositionTracker(mock_search_client, mock_llm_client, store)

        update = await tracker.persist_results(_searched_state(position=2))

        assert update == {}
        assert len(saved) == 1

    @pytest.mark.asyncio
    async def test_failed_run_is_logged_not_saved(self, tracker, mock_store, caplog):
        state = MonitoringState(keyword="k", domain="d.com", error="No search results")
        with caplog.at_level("WARNING"):
            update = await tracker.persist_results(state)
        assert update == {"error": "No search results"}
        mock_store.save.assert_not_called()
        assert "[k] Error: No search results" in caplog.text


# ===========================================================================
# Stage metadata
# ===========================================================================
class TestStageOrder:

    def test_stage_names(self, tracker):
        names = [stage.stage_name for stage in tracker.stages()]
        assert names == ["search", "analyze_position", "generate_recommendations", "persist_results"]

    @pytest.mark.asyncio
    async def test_stage_does_not_mutate_input(self, tracker):
        state = _searched_state()
        await tracker.analyze_position(state)
        assert state.our_position is None

    @pytest.mark.asyncio
    async def test_mock_llm_is_awaited(self, tracker, mock_llm_client):
        assert isinstance(mock_llm_client.generate_text, AsyncMock)
        await tracker.generate_recommendations(_searched_state(position=2))
        mock_llm_client.generate_text.assert_awaited_once()
