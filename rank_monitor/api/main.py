"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rank_monitor.api.routes import agent, health
from rank_monitor.app import RankMonitor

logger = logging.getLogger(__name__)


def create_app(monitor: Optional[RankMonitor] = None) -> FastAPI:
    """Build the API around ``monitor``; a default one is created on startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup / shutdown hooks."""
        if getattr(app.state, "monitor", None) is None:
            app.state.monitor = RankMonitor()
        app.state.monitor.initialize()
        logger.info("Rank Monitor API started")
        yield
        await app.state.monitor.close()
        logger.info("Rank Monitor API shutting down")

    app = FastAPI(
        title="SEO Rank Monitor API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.monitor = monitor

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        logger.warning("Rejected request to %s: %s", request.url.path, exc.errors())
        return JSONResponse(status_code=400, content={"error": agent.MISSING_INPUT_ERROR})

    app.include_router(health.router)
    app.include_router(agent.router)

    return app


def run_server(monitor: Optional[RankMonitor] = None, host: str = "0.0.0.0", port: int = 8000) -> None:
    """Serve the API with uvicorn until interrupted."""
    uvicorn.run(create_app(monitor), host=host, port=port)
