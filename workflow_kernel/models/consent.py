"""
Module: workflow_kernel.models.consent
Responsibility: ORM persistence for consent requests.
Architecture position: Kernel > Models.

Invariants enforced:
    - Consent rows are never deleted.  A new request for the same
      (subject_id, consent_type) is a new row; the previous one keeps its
      history and points forward through ``superseded_by_id``.
    - Optimistic versioning via ``version``.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from workflow_kernel.db.base import TrackedBase, UUIDString
from workflow_kernel.domain.types import ConsentRecord, ConsentStatus, ConsentType


class ConsentRecordModel(TrackedBase):
    """Persistent consent request.  ``id`` is the consent_id."""

    __tablename__ = "consent_records"

    __table_args__ = (
        Index("ix_consent_subject_type", "subject_id", "consent_type"),
    )

    parent_attribute = "subject_id"
    list_order = ("requested_on",)

    subject_id: Mapped[str] = mapped_column(String(100), nullable=False)
    consent_type: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    requested_on: Mapped[datetime] = mapped_column(nullable=False)
    auto_consent_window_days: Mapped[int] = mapped_column(Integer, nullable=False)
    resolved_on: Mapped[datetime | None] = mapped_column(nullable=True)
    valid_until: Mapped[datetime | None] = mapped_column(nullable=True)
    auto_granted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    superseded_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<ConsentRecord {self.id} subject={self.subject_id} "
            f"type={self.consent_type} status={self.status}>"
        )

    def to_dto(self) -> ConsentRecord:
        return ConsentRecord(
            consent_id=self.id,
            subject_id=self.subject_id,
            consent_type=ConsentType(self.consent_type),
            status=ConsentStatus(self.status),
            requested_on=self.requested_on,
            auto_consent_window_days=self.auto_consent_window_days,
            resolved_on=self.resolved_on,
            valid_until=self.valid_until,
            auto_granted=self.auto_granted,
            superseded_by_id=self.superseded_by_id,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: ConsentRecord, created_by_id: UUID) -> ConsentRecordModel:
        model = cls(id=dto.consent_id, created_by_id=created_by_id)
        model.apply_dto(dto, None)
        return model

    def apply_dto(self, dto: ConsentRecord, updated_by_id: UUID | None) -> None:
        self.subject_id = dto.subject_id
        self.consent_type = dto.consent_type.value
        self.status = dto.status.value
        self.requested_on = dto.requested_on
        self.auto_consent_window_days = dto.auto_consent_window_days
        self.resolved_on = dto.resolved_on
        self.valid_until = dto.valid_until
        self.auto_granted = dto.auto_granted
        self.superseded_by_id = dto.superseded_by_id
        self.updated_by_id = updated_by_id
