"""General-purpose helper utilities for the rank monitor."""

import asyncio
import json
from typing import Any, Awaitable, Optional, TypeVar

T = TypeVar("T")

UNKNOWN_ERROR = "Unknown error"


class CollaboratorTimeout(Exception):
    """An external call did not finish within its time budget."""


async def call_with_timeout(awaitable: Awaitable[T], timeout: Optional[float], label: str) -> T:
    """Await ``awaitable``, bounded by ``timeout`` seconds.

    A falsy timeout disables the bound.

    Raises:
        CollaboratorTimeout: when the bound is exceeded.
    """
    if not timeout:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as exc:
        raise CollaboratorTimeout(f"{label} timed out after {timeout:g}s") from exc


def describe_error(exc: Optional[BaseException]) -> str:
    """Best human-readable message for an exception.

    Preference order: the error's own ``message`` attribute (API client
    errors carry one), ``str(exc)``, a JSON dump of the error's attributes
    or args, and finally ``"Unknown error"``.
    """
    if exc is None:
        return UNKNOWN_ERROR

    message = getattr(exc, "message", None)
    if isinstance(message, str) and message.strip():
        return message.strip()

    text = str(exc).strip()
    if text:
        return text

    payload: Any = getattr(exc, "__dict__", None) or list(exc.args)
    try:
        serialized = json.dumps(payload, default=str)
    except (TypeError, ValueError):
        serialized = ""
    if serialized and serialized not in ("{}", "[]", "null"):
        return serialized
    return UNKNOWN_ERROR


def truncate_text(text: str, max_length: int = 160, suffix: str = "...") -> str:
    """Truncate text to a maximum length, breaking at word boundaries.

    Args:
        text: Input text.
        max_length: Maximum allowed length including suffix.
        suffix: String appended when truncation occurs.

    Returns:
        Truncated text with suffix if it was shortened.
    """
    if len(text) <= max_length:
        return text
    truncated = text[: max_length - len(suffix)]
    last_space = truncated.rfind(" ")
    if last_space > 0:
        truncated = truncated[:last_space]
    return truncated.rstrip(".,;:!? ") + suffix
