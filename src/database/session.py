"""Centralized session factory helpers for the import log store.

This is the CANONICAL source for log-store session management. Import
session-related functions from here, not from base.py.

Thread Safety:
    SQLAlchemy sessions are NOT thread-safe. When recording results from
    QThread workers or other background threads, create a new session via the
    factory - never share a session across threads.

Usage:
    factory = log_session_factory()          # default data/import_logs.db
    with session_scope(factory) as session:
        repo = ImportLogRepository(session)
        logs = repo.get_logs()
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Union

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from .base import (
    create_log_schema,
    create_target_engine,
    dispose_all_engines,
    get_log_session,
    init_log_db,
)

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]

__all__ = [
    "SessionFactory",
    "log_session_factory",
    "engine_session_factory",
    "session_scope",
    "create_target_engine",
    "dispose_all_engines",
]


def log_session_factory(url: Union[str, Path, None] = None) -> SessionFactory:
    """Return a session factory bound to the import log store at ``url``."""

    def _factory() -> Session:
        init_log_db(url)
        return get_log_session(url)

    return _factory


def engine_session_factory(engine: Engine, create_schema: bool = True) -> SessionFactory:
    """Return a session factory for an engine the caller already owns."""
    if create_schema:
        create_log_schema(engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return SessionLocal


@contextmanager
def session_scope(factory: SessionFactory) -> Iterator[Session]:
    """Context manager for commit/rollback semantics around a session factory."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.warning(f"Log store session rolled back: {e}")
        raise
    finally:
        session.close()
