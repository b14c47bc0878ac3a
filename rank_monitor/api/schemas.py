"""Request/response Pydantic models for the API."""

from typing import Optional

from pydantic import BaseModel


# ── Requests ──────────────────────────────────────────────────────────────

class AgentRequest(BaseModel):
    """One position check. Blank values are rejected by the route, not here."""
    keyword: Optional[str] = None
    domain: Optional[str] = None
    region: Optional[str] = None


# ── Responses ─────────────────────────────────────────────────────────────

class ErrorResponse(BaseModel):
    error: str
