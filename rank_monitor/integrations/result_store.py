"""SQLAlchemy-backed store for position check results."""

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rank_monitor.database import get_session
from rank_monitor.models.ranking import PositionCheck, TrackedKeyword
from rank_monitor.modules.rank_tracker.state import PositionRecord

logger = logging.getLogger(__name__)


def _find_keyword(session: Session, text: str, domain: str):
    return (
        session.query(TrackedKeyword)
        .filter(TrackedKeyword.text == text, TrackedKeyword.domain == domain)
        .one_or_none()
    )


class SQLResultStore:
    """Persist position checks and read back their history.

    Uses the process-wide engine from :mod:`rank_monitor.database`; call
    :func:`rank_monitor.database.init_db` before the first ``save``.
    ``save`` is safe to call from several threads at once, including for
    a keyword that has never been stored.

    Usage::

        store = SQLResultStore()
        check_id = store.save(record)
        history = store.get_history("kitchens", "example.com")
    """

    def save(self, record: PositionRecord) -> int:
        """Store one check, creating the tracked keyword on first sight.

        Returns the id of the new ``position_checks`` row.
        """
        with get_session() as session:
            keyword = self._get_or_create_keyword(session, record)
            check = PositionCheck(
                keyword_id=keyword.id,
                checked_at=record.timestamp,
                positions=list(record.positions),
                our_position=record.our_position,
                analysis=record.analysis,
            )
            session.add(check)
            session.flush()
            check_id = check.id

        logger.info(
            "Saved position check #%d for %r / %r (position=%d)",
            check_id, record.keyword_ref, record.domain, record.our_position,
        )
        return check_id

    @staticmethod
    def _get_or_create_keyword(session: Session, record: PositionRecord) -> TrackedKeyword:
        keyword = _find_keyword(session, record.keyword_ref, record.domain)
        if keyword is not None:
            return keyword

        # A concurrent save may insert the same pair between the lookup and
        # the insert; the savepoint keeps the outer session usable.
        try:
            with session.begin_nested():
                keyword = TrackedKeyword(
                    text=record.keyword_ref,
                    domain=record.domain,
                    region=record.region,
                )
                session.add(keyword)
        except IntegrityError:
            logger.debug(
                "Keyword %r for %r was created concurrently; reusing it",
                record.keyword_ref, record.domain,
            )
            return _find_keyword(session, record.keyword_ref, record.domain)

        logger.info("Tracking new keyword %r for %r", record.keyword_ref, record.domain)
        return keyword

    def get_history(self, keyword: str, domain: str, limit: int = 30) -> list[dict[str, Any]]:
        """Return the most recent checks for a keyword, oldest first."""
        with get_session() as session:
            rows = (
                session.query(PositionCheck)
                .join(TrackedKeyword)
                .filter(
                    TrackedKeyword.text == keyword,
                    TrackedKeyword.domain == domain,
                )
                .order_by(PositionCheck.checked_at.desc(), PositionCheck.id.desc())
                .limit(limit)
                .all()
            )
            history = [
                {
                    "id": row.id,
                    "keyword": keyword,
                    "domain": domain,
                    "position": row.our_position,
                    "analysis": row.analysis,
                    "results": len(row.positions or []),
                    "date": row.checked_at.isoformat() if row.checked_at else None,
                }
                for row in rows
            ]

        history.reverse()
        logger.info("History for %r / %r: %d records", keyword, domain, len(history))
        return history
