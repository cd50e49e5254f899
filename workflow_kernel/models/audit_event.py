"""
Module: workflow_kernel.models.audit_event
Responsibility: ORM persistence for the workflow audit trail.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM listeners in
      db/immutability.py).
    - ``seq`` orders events for one entity in the order they were written.

Audit relevance:
    Every accepted state transition of a screening, consent record, import
    batch or case file produces one WorkflowAuditEvent.  Auto-consent and
    expiry are recorded the same way as explicit decisions, with the system
    actor.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from workflow_kernel.db.base import Base, UUIDString


class WorkflowAuditEvent(Base):
    """
    One audit trail entry.

    Contract:
        Rows are append-only -- never updated or deleted.
    """

    __tablename__ = "workflow_audit_events"

    __table_args__ = (
        Index("idx_workflow_audit_entity", "entity_id", "seq"),
        Index("idx_workflow_audit_occurred", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    from_state: Mapped[str | None] = mapped_column(String(30), nullable=True)
    to_state: Mapped[str] = mapped_column(String(30), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<WorkflowAuditEvent #{self.seq} {self.entity_type}:{self.entity_id} "
            f"{self.action} {self.from_state}->{self.to_state}>"
        )

    def to_dto(self):
        from workflow_kernel.domain.types import AuditEventRecord

        return AuditEventRecord(
            event_id=self.id,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            action=self.action,
            from_state=self.from_state,
            to_state=self.to_state,
            actor_id=self.actor_id,
            occurred_at=self.occurred_at,
            details=dict(self.details or {}),
        )
