"""
Shared fixtures.

Each test gets a fresh in-memory SQLite database unless it asks for
``file_session_factory``, which two-session concurrency tests use.  Time is
driven by a DeterministicClock and the packaged policy is loaded once.
"""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from workflow_config import get_active_policy
from workflow_ingestion.models import register_staging_immutability_listeners
from workflow_kernel.db.engine import (
    create_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from workflow_kernel.db.immutability import register_immutability_listeners
from workflow_kernel.domain.clock import DeterministicClock
from workflow_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from workflow_services import WorkflowEngine

ACTOR_ID = uuid4()


def _prepare_database(url: str):
    engine = init_engine_from_url(url)
    create_tables()
    register_immutability_listeners()
    register_staging_immutability_listeners()
    return engine


# -- logging ----------------------------------------------------------------


@pytest.fixture(autouse=True, scope="session")
def _json_logging():
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _fresh_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Callable returning every workflow_kernel record emitted so far, decoded.

        def test_start(captured_logs, engine):
            engine.start_screening("child-1", "asq-3")
            assert any(r["message"] == "screening_transition" for r in captured_logs())
    """
    buffer = StringIO()
    capture = logging.StreamHandler(buffer)
    capture.setFormatter(StructuredFormatter())
    kernel_logger = logging.getLogger("workflow_kernel")
    saved_level = kernel_logger.level
    kernel_logger.setLevel(logging.DEBUG)
    kernel_logger.addHandler(capture)

    yield lambda: [json.loads(raw) for raw in buffer.getvalue().splitlines() if raw]

    kernel_logger.removeHandler(capture)
    kernel_logger.setLevel(saved_level)


# -- database ---------------------------------------------------------------


@pytest.fixture
def db_engine():
    yield _prepare_database("sqlite://")
    reset_engine()


@pytest.fixture
def session(db_engine):
    session = get_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def file_session_factory(tmp_path):
    """Sessions on a SQLite file: each one has its own connection and sees
    the others' commits as a separate process would."""
    _prepare_database(f"sqlite:///{tmp_path / 'workflow.db'}")
    yield get_session_factory()
    reset_engine()


# -- workflow ---------------------------------------------------------------


@pytest.fixture
def test_actor_id():
    return ACTOR_ID


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture(scope="session")
def policy():
    return get_active_policy()


@pytest.fixture
def engine(session, clock, policy, test_actor_id):
    return WorkflowEngine(session, policy, clock, test_actor_id)
