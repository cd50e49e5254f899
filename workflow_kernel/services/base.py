"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel layer.  Concrete services receive a
    SQLAlchemy ``Session`` and use ``session.flush()`` -- never
    ``session.commit()``.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or roll back themselves.  The caller
    (``session_scope()``, the engine facade's owner, or a test) owns
    commit/rollback.  A rejected operation raises before anything is
    flushed, so it never writes.
"""

from abc import ABC
from uuid import UUID

from sqlalchemy.orm import Session

from workflow_kernel.domain.clock import Clock, SystemClock
from workflow_kernel.domain.policy_clock import PolicyClock
from workflow_kernel.domain.transitions import require_transition
from workflow_kernel.domain.types import EntityKind
from workflow_kernel.exceptions import InvalidStateError, UnknownEventError
from workflow_kernel.logging_config import get_logger
from workflow_kernel.services.auditor_service import AuditorService
from workflow_kernel.services.entity_store import EntityStore

logger = get_logger("services.base")

# Actor recorded for writes no person asked for (auto-consent, expiry).
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000000")


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session``, an optional ``Clock``, and the
        EntityStore / AuditorService it writes through (built on the same
        session when omitted).

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        store: EntityStore | None = None,
        auditor: AuditorService | None = None,
    ):
        """
        Preconditions:
            - ``session`` is a valid, open SQLAlchemy session.
            - ``store`` and ``auditor``, when given, are bound to ``session``.
        """
        self.session = session
        self._clock = clock or SystemClock()
        self._policy_clock = PolicyClock(self._clock)
        self._store = store or EntityStore(session)
        self._auditor = auditor or AuditorService(session, self._clock)

    def _require_transition(
        self,
        kind: EntityKind,
        entity_id: object,
        current_state: object,
        event: str,
    ) -> str:
        """Next state for ``event``; logs and re-raises a rejection."""
        try:
            return require_transition(kind, entity_id, current_state, event)
        except (InvalidStateError, UnknownEventError) as exc:
            logger.warning(
                "transition_rejected",
                extra={
                    "kind": kind.value,
                    "entity_id": str(entity_id),
                    "current_state": getattr(current_state, "value", current_state),
                    "event": event,
                    "error_code": exc.code,
                },
            )
            raise
