"""Shared pytest fixtures for SEO Rank Monitor tests."""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Ensure project root is on sys.path so 'rank_monitor' is importable.
_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)


@pytest.fixture(autouse=True)
def _reset_db_engine():
    """Autouse fixture: reset the global DB engine before and after every test.

    This prevents cross-test pollution when tests create their own in-memory
    databases.
    """
    from rank_monitor.database import reset_engine
    reset_engine()
    yield
    reset_engine()


@pytest.fixture()
def test_db():
    """Provide an in-memory SQLite database with all tables created.

    Yields a database URL string. The engine is automatically torn down
    after the test by the autouse ``_reset_db_engine`` fixture.
    """
    from rank_monitor.database import reset_engine, init_db
    reset_engine()
    db_url = "sqlite:///:memory:"
    init_db(database_url=db_url, echo=False)
    yield db_url


@pytest.fixture()
def serp_results():
    """Canned Tavily result entries, in rank order."""
    return [
        {
            "title": "Kitchen renovation ideas",
            "url": "https://a.com/kitchens",
            "content": "Ideas for every budget.",
            "score": 0.91,
        },
        {
            "title": "Kitchen renovation in Moscow",
            "url": "https://target.com/services/kitchens",
            "content": "Turnkey kitchen renovation.",
            "score": 0.88,
            "raw_content": "<html>...</html>",
        },
        {
            "title": "Renovation forum",
            "url": "https://b.com/forum/kitchens",
            "content": "Discussion thread.",
            "score": 0.5,
        },
    ]


@pytest.fixture()
def mock_search_client(serp_results):
    """Return a mock search client that returns canned results."""
    client = MagicMock()
    client.search = AsyncMock(return_value=serp_results)
    client.is_configured = True
    return client


@pytest.fixture()
def mock_llm_client():
    """Return a mock LLMClient that returns canned recommendations."""
    client = MagicMock()
    client.generate_text = AsyncMock(return_value="1. Improve the title tag.\n2. Build local links.")
    client.close = AsyncMock()
    client.is_configured = True
    client.get_usage_summary = MagicMock(return_value={
        "provider": "gigachat",
        "model": "GigaChat-2",
        "total_requests": 0,
        "total_cost_usd": 0.0,
    })
    return client


@pytest.fixture()
def mock_store():
    """Return a mock result store recording saved records."""
    store = MagicMock()
    store.save = MagicMock(return_value=1)
    store.get_history = MagicMock(return_value=[])
    return store


@pytest.fixture()
def tracker(mock_search_client, mock_llm_client, mock_store):
    """PositionTracker wired to the mock collaborators."""
    from rank_monitor.modules.rank_tracker import PositionTracker
    return PositionTracker(mock_search_client, mock_llm_client, mock_store)
