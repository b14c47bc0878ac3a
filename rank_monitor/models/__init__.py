"""SQLAlchemy ORM models. Import every model so Base.metadata is populated."""

from rank_monitor.models.ranking import (
    TrackedKeyword,
    PositionCheck,
)

__all__ = [
    "TrackedKeyword",
    "PositionCheck",
]
