"""Rank Tracker module: keyword position checks and SEO recommendations."""

from rank_monitor.modules.rank_tracker.pipeline import Failed, Ok, WorkflowDefinitionError, pipeline_stage
from rank_monitor.modules.rank_tracker.state import MonitoringState, PositionRecord, SearchResult, merge_state
from rank_monitor.modules.rank_tracker.tracker import PositionTracker

__all__ = [
    "Failed",
    "MonitoringState",
    "Ok",
    "PositionRecord",
    "PositionTracker",
    "SearchResult",
    "WorkflowDefinitionError",
    "merge_state",
    "pipeline_stage",
]
