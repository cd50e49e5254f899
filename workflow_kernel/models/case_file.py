"""
Module: workflow_kernel.models.case_file
Responsibility: ORM persistence for discharge / case-closure workflows.
Architecture position: Kernel > Models.

Invariants enforced:
    - Closed cases are terminal.  Reactivation inserts a new row whose
      ``predecessor_case_id`` points at the closed one.
    - Optimistic versioning via ``version``.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from workflow_kernel.db.base import TrackedBase, UUIDString
from workflow_kernel.domain.types import CaseFile, CaseStatus, ClosureType


class CaseFileModel(TrackedBase):
    """Persistent case file.  ``id`` is the case_id."""

    __tablename__ = "case_files"

    __table_args__ = (
        Index("ix_case_files_subject", "subject_id"),
    )

    parent_attribute = "subject_id"
    list_order = ("opened_at",)

    subject_id: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    closure_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    checklist: Mapped[dict[str, bool]] = mapped_column(JSON, nullable=False, default=dict)
    opened_at: Mapped[datetime | None] = mapped_column(nullable=True)
    signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    predecessor_case_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<CaseFile {self.id} subject={self.subject_id} status={self.status}>"

    def to_dto(self) -> CaseFile:
        return CaseFile(
            case_id=self.id,
            subject_id=self.subject_id,
            status=CaseStatus(self.status),
            closure_type=ClosureType(self.closure_type) if self.closure_type else None,
            checklist=dict(self.checklist or {}),
            opened_at=self.opened_at,
            signature=self.signature,
            closed_at=self.closed_at,
            predecessor_case_id=self.predecessor_case_id,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: CaseFile, created_by_id: UUID) -> CaseFileModel:
        model = cls(id=dto.case_id, created_by_id=created_by_id)
        model.apply_dto(dto, None)
        return model

    def apply_dto(self, dto: CaseFile, updated_by_id: UUID | None) -> None:
        self.subject_id = dto.subject_id
        self.status = dto.status.value
        self.closure_type = dto.closure_type.value if dto.closure_type else None
        self.checklist = dict(dto.checklist)
        self.opened_at = dto.opened_at
        self.signature = dto.signature
        self.closed_at = dto.closed_at
        self.predecessor_case_id = dto.predecessor_case_id
        self.updated_by_id = updated_by_id
