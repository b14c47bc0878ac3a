"""Main application object: configuration, collaborators, and the workflow."""

import logging
import os
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

import yaml
from dotenv import load_dotenv

from rank_monitor.modules.rank_tracker.state import MonitoringState
from rank_monitor.modules.rank_tracker.tracker import (
    DEFAULT_SEARCH_ENGINE,
    PositionTracker,
    RecommendationProvider,
    ResultStore,
    SearchProvider,
)
from rank_monitor.workflows import PositionCheckWorkflow

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/settings.yaml"


class RankMonitor:
    """Central application class that wires the collaborators into the workflow.

    Collaborators are built once in :meth:`initialize` and reused by every
    check. Tests and embedding code can inject their own.

    Usage::

        monitor = RankMonitor()
        monitor.initialize()
        state = await monitor.check("kitchens", "example.com")
    """

    def __init__(
        self,
        config_path: str = DEFAULT_CONFIG_PATH,
        env_path: str = ".env",
        search_provider: Optional[SearchProvider] = None,
        recommender: Optional[RecommendationProvider] = None,
        store: Optional[ResultStore] = None,
        config: Optional[dict[str, Any]] = None,
    ):
        self._config_path = config_path
        self._env_path = env_path
        self.config: dict[str, Any] = config or {}
        self._config_given = config is not None
        self._search_provider = search_provider
        self._recommender = recommender
        self._store = store
        self._workflow: Optional[PositionCheckWorkflow] = None
        self._initialized = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Load environment and configuration, prepare storage, build the workflow."""
        if self._initialized:
            return

        env_file = Path(self._env_path)
        if env_file.exists():
            load_dotenv(env_file)
            logger.info("Loaded environment from %s", self._env_path)

        if not self._config_given:
            self.config = self._load_config()

        data_dir = self.config.get("app", {}).get("data_dir", "")
        if data_dir:
            Path(data_dir).mkdir(parents=True, exist_ok=True)

        if self._store is None and self.persistence_enabled:
            self._store = self._create_store()
        if self._search_provider is None:
            self._search_provider = self._create_search_client()
        if self._recommender is None:
            self._recommender = self._create_llm_client()

        search_cfg = self.config.get("search", {})
        llm_cfg = self.config.get("llm", {})
        tracker = PositionTracker(
            search_provider=self._search_provider,
            recommender=self._recommender,
            store=self._store,
            search_engine=search_cfg.get("engine_domain", DEFAULT_SEARCH_ENGINE),
            search_timeout=search_cfg.get("timeout", 30),
            llm_timeout=llm_cfg.get("timeout", 60),
        )
        self._workflow = PositionCheckWorkflow(tracker)

        self._initialized = True
        logger.info("RankMonitor initialised (persistence=%s).", self._store is not None)

    def _load_config(self) -> dict[str, Any]:
        """Load the YAML configuration file."""
        config_file = Path(self._config_path)
        if not config_file.exists():
            logger.warning("Config file not found: %s, using defaults.", self._config_path)
            return {}
        with open(config_file, "r", encoding="utf-8") as fh:
            config = yaml.safe_load(fh) or {}
        logger.info("Configuration loaded from %s", self._config_path)
        return config

    @property
    def persistence_enabled(self) -> bool:
        return bool(self.config.get("persistence", {}).get("enabled", False))

    def _create_store(self):
        from rank_monitor.database import init_db
        from rank_monitor.integrations.result_store import SQLResultStore

        db_cfg = self.config.get("database", {})
        database_url = os.getenv("DATABASE_URL") or db_cfg.get("url")
        init_db(
            database_url=database_url,
            echo=db_cfg.get("echo", False),
            busy_timeout=self.config.get("persistence", {}).get("timeout", 10),
        )
        return SQLResultStore()

    def _create_search_client(self):
        from rank_monitor.integrations.search_client import TavilySearchClient

        search_cfg = self.config.get("search", {})
        return TavilySearchClient(
            max_results=search_cfg.get("max_results", 20),
            include_raw_content=search_cfg.get("include_raw_content", True),
        )

    def _create_llm_client(self):
        from rank_monitor.integrations.llm_client import LLMClient

        llm_cfg = self.config.get("llm", {})
        budget_cfg = llm_cfg.get("budget", {})
        return LLMClient(
            provider=llm_cfg.get("provider", "gigachat"),
            model=llm_cfg.get("model"),
            base_url=llm_cfg.get("base_url"),
            scope=llm_cfg.get("scope", "GIGACHAT_API_PERS"),
            max_tokens=llm_cfg.get("max_tokens", 2048),
            temperature=llm_cfg.get("temperature", 0.3),
            timeout=llm_cfg.get("timeout", 60),
            verify_ssl=llm_cfg.get("verify_ssl", True),
            max_monthly_budget=budget_cfg.get("max_monthly_usd", 100.0),
            budget_warning_pct=budget_cfg.get("warning_threshold_pct", 80.0),
        )

    async def close(self) -> None:
        """Release network clients."""
        close = getattr(self._recommender, "close", None)
        if close is not None:
            await close()

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    @property
    def workflow(self) -> PositionCheckWorkflow:
        if self._workflow is None:
            self.initialize()
        return self._workflow

    async def check(
        self,
        keyword: Optional[str],
        domain: Optional[str],
        region: Optional[str] = None,
    ) -> MonitoringState:
        """Run one position check."""
        return await self.workflow.run(keyword=keyword, domain=domain, region=region)

    async def check_many(self, requests: Iterable[Mapping[str, Any]]) -> list[MonitoringState]:
        """Run several independent checks concurrently."""
        return await self.workflow.run_many(requests)

    def get_history(self, keyword: str, domain: str, limit: int = 30) -> list[dict[str, Any]]:
        """Stored checks for a keyword; empty when persistence is off."""
        self.initialize()
        get_history = getattr(self._store, "get_history", None)
        if get_history is None:
            return []
        return get_history(keyword, domain, limit=limit)

    def get_status(self) -> dict[str, Any]:
        """Configuration and collaborator overview."""
        self.initialize()
        search_cfg = self.config.get("search", {})
        status: dict[str, Any] = {
            "search_engine": search_cfg.get("engine_domain", DEFAULT_SEARCH_ENGINE),
            "search_configured": getattr(self._search_provider, "is_configured", True),
            "llm_configured": getattr(self._recommender, "is_configured", True),
            "persistence": self._store is not None,
            "stages": self.workflow.stage_names,
            "runs": self.workflow.get_pipeline_status(),
        }
        usage = getattr(self._recommender, "get_usage_summary", None)
        if usage is not None:
            status["llm_usage"] = usage()
        return status
