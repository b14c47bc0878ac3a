"""Storage backend for position check history.

A single engine and session factory are shared by the whole process. The
result store writes from executor threads, so SQLite connections are opened
with ``check_same_thread`` off, WAL journaling, and a busy timeout that makes
a writer wait for the lock instead of failing at once. The busy timeout is
the only bound on a save: a save that is still running is never abandoned
while its thread goes on to commit.
"""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///data/rank_monitor.db"
DEFAULT_BUSY_TIMEOUT = 10.0


class Base(DeclarativeBase):
    """Declarative base for the tracked keyword and position check tables."""
    pass


_engine = None
_SessionFactory: sessionmaker | None = None


def _sqlite_pragmas(busy_timeout: float):
    """Connect hook applying the SQLite settings every store connection needs."""
    busy_ms = int(busy_timeout * 1000)

    def on_connect(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.execute(f"PRAGMA busy_timeout={busy_ms};")
        cursor.close()

    return on_connect


def _prepare_sqlite_file(database_url: str) -> None:
    if database_url.startswith("sqlite:///") and ":memory:" not in database_url:
        Path(database_url.replace("sqlite:///", "")).parent.mkdir(parents=True, exist_ok=True)


def get_engine(
    database_url: str | None = None,
    echo: bool = False,
    busy_timeout: float = DEFAULT_BUSY_TIMEOUT,
):
    """Return the process-wide engine, creating it on first use.

    Args:
        database_url: Connection string. Defaults to ``DATABASE_URL`` from
            the environment, then to ``data/rank_monitor.db``.
        echo: Log every SQL statement.
        busy_timeout: Seconds a SQLite connection waits for a locked
            database before the statement fails.
    """
    global _engine
    if _engine is not None:
        return _engine

    if database_url is None:
        database_url = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)

    engine_kwargs = {"echo": echo, "pool_pre_ping": True}
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        _prepare_sqlite_file(database_url)
        engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": busy_timeout}
    if ":memory:" in database_url:
        # An in-memory database lives and dies with its connection.
        engine_kwargs["poolclass"] = StaticPool

    _engine = create_engine(database_url, **engine_kwargs)
    if is_sqlite:
        event.listen(_engine, "connect", _sqlite_pragmas(busy_timeout))
    logger.info("Result database at %s (busy timeout %.1fs)", database_url, busy_timeout)
    return _engine


def get_session_factory(engine=None) -> sessionmaker:
    """Return the shared session factory bound to :func:`get_engine`."""
    global _SessionFactory
    if _SessionFactory is None:
        _SessionFactory = sessionmaker(bind=engine or get_engine(), expire_on_commit=False)
    return _SessionFactory


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """One unit of work: committed on success, rolled back on any exception.

    Usage::

        with get_session() as session:
            session.add(check)
    """
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(
    database_url: str | None = None,
    echo: bool = False,
    busy_timeout: float = DEFAULT_BUSY_TIMEOUT,
) -> None:
    """Open the result database and create the ranking tables if missing."""
    engine = get_engine(database_url=database_url, echo=echo, busy_timeout=busy_timeout)
    import rank_monitor.models  # noqa: F401  (registers the ranking tables)
    Base.metadata.create_all(bind=engine)
    logger.info("Ranking tables ready.")


def reset_db(database_url: str | None = None) -> None:
    """Drop and recreate the ranking tables, losing all history."""
    engine = get_engine(database_url=database_url)
    import rank_monitor.models  # noqa: F401
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    logger.warning("Ranking history wiped: tables dropped and recreated.")


def reset_engine() -> None:
    """Forget the shared engine so the next call opens a fresh one."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None
