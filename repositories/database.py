"""
MergeGuard - Database engine and session management.
"""

import os
from collections.abc import Iterator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from models.tables import Base


def build_engine(database_url: str) -> Engine:
    """
    Create a SQLAlchemy engine for ``database_url``.

    SQLite files get their parent directory created; in-memory SQLite uses a
    single shared connection so every session sees the same database.
    """
    url = make_url(database_url)
    kwargs: dict = {}

    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        else:
            directory = os.path.dirname(url.database)
            if directory:
                os.makedirs(directory, exist_ok=True)
    else:
        kwargs["pool_pre_ping"] = True

    return create_engine(url, **kwargs)


class Database:
    """Engine plus session factory shared by the repositories."""

    def __init__(self, database_url: str) -> None:
        self.engine = build_engine(database_url)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_all(self) -> None:
        """Create missing tables."""
        Base.metadata.create_all(self.engine)
        logger.info(f"Database schema ready ({self.engine.url.get_backend_name()})")

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        Yield a session wrapped in a transaction.

        Commits when the block exits normally, rolls back and re-raises on
        any exception.
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


_database: Database | None = None


def get_database(database_url: str | None = None) -> Database:
    """
    Get the process-wide database, creating it on first use.

    Args:
        database_url: URL used on first call (defaults to Config().DATABASE_URL)
    """
    global _database
    if _database is None:
        if database_url is None:
            from utils.config import Config

            database_url = Config().DATABASE_URL
        _database = Database(database_url)
        _database.create_all()
    return _database


def reset_database(database: Database | None = None) -> None:
    """Replace the process-wide database (used by tests and on reconfiguration)."""
    global _database
    _database = database
