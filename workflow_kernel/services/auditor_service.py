"""
AuditorService -- append-only workflow audit trail.

Responsibility:
    Records one WorkflowAuditEvent per accepted state transition and serves
    the ordered trail for an entity.

Architecture position:
    Kernel > Services -- called by the screening, consent, case and import
    services right after the entity write it describes, inside the same
    transaction.

Invariants enforced:
    - Append-only: WorkflowAuditEvent rows are never modified or deleted
      (ORM listeners in db/immutability.py).
    - ``seq`` is allocated per entity as one past the highest recorded
      value, so an entity's trail reads back in write order.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from workflow_kernel.domain.clock import Clock, SystemClock
from workflow_kernel.domain.types import AuditEventRecord
from workflow_kernel.logging_config import get_logger
from workflow_kernel.models.audit_event import WorkflowAuditEvent

logger = get_logger("services.auditor")


def _state(value: Any) -> str | None:
    if value is None:
        return None
    return getattr(value, "value", value)


class AuditorService:
    """
    Service for recording and reading the workflow audit trail.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def _next_seq(self, entity_id: UUID) -> int:
        current = self._session.scalar(
            select(func.max(WorkflowAuditEvent.seq)).where(
                WorkflowAuditEvent.entity_id == entity_id
            )
        )
        return (current or 0) + 1

    def record_transition(
        self,
        entity_type: str,
        entity_id: UUID,
        action: str,
        from_state: Any,
        to_state: Any,
        actor_id: UUID,
        details: dict[str, Any] | None = None,
    ) -> AuditEventRecord:
        """Append one audit event and flush it."""
        event = WorkflowAuditEvent(
            seq=self._next_seq(entity_id),
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            from_state=_state(from_state),
            to_state=_state(to_state),
            actor_id=actor_id,
            occurred_at=self._clock.now_utc(),
            details=details or None,
        )
        self._session.add(event)
        self._session.flush()

        logger.info(
            "audit_event_recorded",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action,
                "from_state": event.from_state,
                "to_state": event.to_state,
                "seq": event.seq,
            },
        )
        return event.to_dto()

    def trail(self, entity_id: UUID) -> list[AuditEventRecord]:
        """All audit events for ``entity_id`` in the order they were recorded."""
        rows = self._session.scalars(
            select(WorkflowAuditEvent)
            .where(WorkflowAuditEvent.entity_id == entity_id)
            .order_by(WorkflowAuditEvent.seq)
        ).all()
        return [row.to_dto() for row in rows]
