"""Tests for the monitoring state, result parsing, and the merge policy."""

import pytest

from rank_monitor.modules.rank_tracker.state import (
    MonitoringState,
    SearchResult,
    coerce_results,
    merge_state,
)


class TestMergeState:
    """Per-field "non-None wins" merging."""

    def test_none_keeps_previous_value(self):
        prev = MonitoringState(keyword="k", our_position=5)
        merged = merge_state(prev, {"our_position": None})
        assert merged.our_position == 5

    def test_new_value_replaces_previous(self):
        prev = MonitoringState(keyword="k", our_position=5)
        merged = merge_state(prev, {"our_position": 3})
        assert merged.our_position == 3

    def test_error_survives_later_updates(self):
        state = merge_state(MonitoringState(keyword="k"), {"error": "X"})
        state = merge_state(state, {"our_position": 3})
        assert state.error == "X"
        assert state.our_position == 3

    def test_empty_update_returns_same_state(self):
        prev = MonitoringState(keyword="k")
        assert merge_state(prev, {}) is prev

    def test_fields_not_in_update_untouched(self):
        prev = MonitoringState(keyword="k", domain="d.com", analysis="text")
        merged = merge_state(prev, {"our_position": 1})
        assert merged.keyword == "k"
        assert merged.domain == "d.com"
        assert merged.analysis == "text"

    def test_does_not_mutate_previous(self):
        prev = MonitoringState(keyword="k")
        merge_state(prev, {"our_position": 2})
        assert prev.our_position is None

    def test_search_results_coerced(self):
        merged = merge_state(MonitoringState(), {"search_results": [{"url": "https://a.com", "title": "A"}]})
        assert merged.search_results == (SearchResult(url="https://a.com", title="A"),)

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError, match="Unknown state field"):
            merge_state(MonitoringState(), {"position": 1})


class TestMonitoringState:

    def test_from_input_blank_is_absent(self):
        state = MonitoringState.from_input("  ", "example.com", "")
        assert state.keyword is None
        assert state.domain == "example.com"
        assert state.region is None

    def test_from_input_strips(self):
        state = MonitoringState.from_input(" kitchens ", " example.com ")
        assert state.keyword == "kitchens"
        assert state.domain == "example.com"

    def test_failed_property(self):
        assert not MonitoringState().failed
        assert MonitoringState(error="boom").failed

    def test_to_dict_omits_absent_and_uses_wire_names(self):
        state = MonitoringState(
            keyword="k",
            domain="d.com",
            search_results=(SearchResult(url="https://d.com", raw_content="<p>"),),
            our_position=1,
        )
        data = state.to_dict()
        assert data == {
            "keyword": "k",
            "domain": "d.com",
            "searchResults": [{"url": "https://d.com", "rawContent": "<p>"}],
            "ourPosition": 1,
        }
        assert "analysis" not in data
        assert "error" not in data


class TestSearchResult:

    def test_from_raw_full_entry(self):
        result = SearchResult.from_raw({
            "url": " https://a.com ",
            "title": "A",
            "content": "snippet",
            "score": "0.5",
            "rawContent": "raw",
        })
        assert result.url == "https://a.com"
        assert result.title == "A"
        assert result.score == 0.5
        assert result.raw_content == "raw"

    def test_from_raw_bad_score_dropped(self):
        result = SearchResult.from_raw({"url": "https://a.com", "score": "high"})
        assert result.score is None

    @pytest.mark.parametrize("raw", [
        {"title": "no url"},
        {"url": ""},
        {"url": 42},
        "https://a.com",
        None,
    ])
    def test_from_raw_rejects_malformed(self, raw):
        with pytest.raises(ValueError):
            SearchResult.from_raw(raw)

    def test_coerce_results_drops_malformed_keeps_order(self):
        results = coerce_results([
            {"url": "https://a.com"},
            {"title": "missing url"},
            {"url": "https://b.com"},
        ])
        assert [r.url for r in results] == ["https://a.com", "https://b.com"]
