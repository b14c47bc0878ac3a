"""Tracked keyword and position check SQLAlchemy models."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import ForeignKey, Integer, String, DateTime, JSON, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rank_monitor.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrackedKeyword(Base):
    """A keyword monitored for one domain."""

    __tablename__ = "tracked_keywords"
    __table_args__ = (UniqueConstraint("text", "domain", name="uq_tracked_keyword_domain"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    text: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    domain: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    region: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    checks: Mapped[list["PositionCheck"]] = relationship(
        back_populates="keyword", cascade="all, delete-orphan", lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<TrackedKeyword id={self.id} text={self.text!r} domain={self.domain!r}>"


class PositionCheck(Base):
    """Result of one pipeline run: ranking snapshot, position and advice."""

    __tablename__ = "position_checks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    keyword_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tracked_keywords.id", ondelete="CASCADE"), nullable=False, index=True
    )
    checked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    positions: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    our_position: Mapped[int] = mapped_column(Integer, nullable=False, default=-1)
    analysis: Mapped[str] = mapped_column(Text, nullable=False, default="")

    keyword: Mapped["TrackedKeyword"] = relationship(back_populates="checks")

    def __repr__(self) -> str:
        return (
            f"<PositionCheck id={self.id} kw_id={self.keyword_id} "
            f"pos={self.our_position}>"
        )
