"""Engine helpers for the target database and the import log store."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Union

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import NullPool, StaticPool


DATA_DIR = Path(__file__).parent.parent.parent / "data"
LOG_DB_PATH = DATA_DIR / "import_logs.db"

# Declarative base for the import log store only; target tables are reflected.
LogBase = declarative_base()

# -----------------------------------------------------------------------------
# Engine registry for proper cleanup
# -----------------------------------------------------------------------------

_engines: Dict[str, Engine] = {}


def enable_sqlite_savepoints(engine: Engine) -> Engine:
    """Let SQLAlchemy own BEGIN on pysqlite so SAVEPOINT/RELEASE nest correctly.

    pysqlite otherwise starts transactions lazily on its own, and releasing
    the first savepoint would commit the whole run.
    """

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(connection):
        connection.exec_driver_sql("BEGIN")

    return engine


def create_target_engine(url: Union[str, Path], **kwargs) -> Engine:
    """Create an engine for an import target database.

    Plain paths are treated as SQLite files. SQLite engines get the
    savepoint recipe so per-row savepoints work.
    """
    if isinstance(url, Path) or "://" not in str(url):
        db_path = Path(url)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        url = f"sqlite:///{db_path}"

    parsed = make_url(str(url))
    if parsed.get_backend_name() == "sqlite":
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        if parsed.database in (None, "", ":memory:"):
            # one shared in-memory database across threads
            kwargs.setdefault("poolclass", StaticPool)
        else:
            kwargs.setdefault("poolclass", NullPool)  # No connection pooling - closes connections immediately
        return enable_sqlite_savepoints(create_engine(parsed, echo=False, **kwargs))

    kwargs.setdefault("pool_pre_ping", True)
    return create_engine(parsed, echo=False, **kwargs)


def _get_or_create_engine(url: str) -> Engine:
    """Get or create a cached engine for the log store URL."""
    if url in _engines:
        return _engines[url]
    engine = create_target_engine(url)
    _engines[url] = engine
    return engine


def get_log_engine(url: Union[str, Path, None] = None) -> Engine:
    if url is None:
        DATA_DIR.mkdir(parents=True, exist_ok=True)
        url = LOG_DB_PATH
    if isinstance(url, Path) or "://" not in str(url):
        url = f"sqlite:///{Path(url)}"
    return _get_or_create_engine(str(url))


def init_log_db(url: Union[str, Path, None] = None) -> None:
    create_log_schema(get_log_engine(url))


def create_log_schema(engine: Engine) -> None:
    """Create the import log tables on ``engine`` if missing."""
    from . import models  # noqa: F401  registers the log tables on LogBase

    LogBase.metadata.create_all(bind=engine)


def get_log_session(url: Union[str, Path, None] = None) -> Session:
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_log_engine(url))
    return SessionLocal()


def dispose_all_engines() -> None:
    for engine in list(_engines.values()):
        engine.dispose()
    _engines.clear()
