"""Position check route: run the workflow for one keyword and domain."""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from rank_monitor.api.schemas import AgentRequest, ErrorResponse

logger = logging.getLogger(__name__)
router = APIRouter()

MISSING_INPUT_ERROR = "Keyword and domain are required"


@router.post(
    "/api/agent",
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def run_agent(payload: AgentRequest, request: Request):
    """Return the final monitoring state, including a recorded ``error``."""
    keyword = (payload.keyword or "").strip()
    domain = (payload.domain or "").strip()
    if not keyword or not domain:
        return JSONResponse(status_code=400, content={"error": MISSING_INPUT_ERROR})

    monitor = request.app.state.monitor
    try:
        state = await monitor.check(keyword=keyword, domain=domain, region=payload.region)
    except Exception:
        logger.exception("SEO analysis error for %r / %r", keyword, domain)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})
    return state.to_dict()
