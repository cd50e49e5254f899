"""
Engine and session management.

One process-wide engine and session factory, set up by
``init_engine_from_url``.  Services receive a Session and only flush;
``session_scope`` is where a unit of work is committed or rolled back.

SQLite (file or ``sqlite://`` in-memory) is used for tests and local runs;
any other URL gets a pooled engine at READ COMMITTED.  This module imports
the model packages only inside ``create_tables``.
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from workflow_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the engine and session factory, replacing any existing ones.

    Pool settings apply to server databases only.
    """
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()

    dialect = make_url(database_url).get_backend_name()
    if dialect == "sqlite":
        engine = create_engine(database_url, echo=echo)
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _engine = engine
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": dialect, "echo": echo})
    return engine


def _require_factory() -> sessionmaker[Session]:
    if _session_factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _session_factory


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """A new Session bound to the current engine."""
    return _require_factory()()


def get_session_factory() -> sessionmaker[Session]:
    """The factory itself, for callers that open one session per worker."""
    return _require_factory()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    One unit of work: commit on success, roll back and re-raise on error.

        with session_scope() as session:
            engine = WorkflowEngine.from_session(session)
            engine.save_progress(screening_id, responses, 40)
    """
    session = get_session()
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create every workflow table on the current engine."""
    from workflow_kernel.db.base import Base
    import workflow_kernel.models  # noqa: F401
    import workflow_ingestion.models  # noqa: F401

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """Drop every workflow table.  Tests only."""
    from workflow_kernel.db.base import Base

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
