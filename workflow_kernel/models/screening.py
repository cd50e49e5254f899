"""
Module: workflow_kernel.models.screening
Responsibility: ORM persistence for developmental screenings.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/types.py only.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - At most one in-progress screening per (child_id, screening_type_id):
      partial unique index ``uq_screenings_open_per_type``.  A second
      concurrent start loses at INSERT with IntegrityError.
    - Optimistic versioning: ``version`` is the mapper's version_id_col.

Failure modes:
    - IntegrityError on a second open screening of the same type.
    - StaleDataError on a stale UPDATE.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from workflow_kernel.db.base import TrackedBase
from workflow_kernel.domain.types import Screening, ScreeningStatus


class ScreeningModel(TrackedBase):
    """Persistent screening.  ``id`` is the screening_id."""

    __tablename__ = "screenings"

    __table_args__ = (
        Index("ix_screenings_child", "child_id"),
        Index(
            "uq_screenings_open_per_type",
            "child_id", "screening_type_id",
            unique=True,
            sqlite_where=text("status = 'in_progress'"),
            postgresql_where=text("status = 'in_progress'"),
        ),
    )

    parent_attribute = "child_id"
    list_order = ("started_at",)

    child_id: Mapped[str] = mapped_column(String(100), nullable=False)
    screening_type_id: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    responses: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    progress_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    abandoned_at: Mapped[datetime | None] = mapped_column(nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<Screening {self.id} child={self.child_id} "
            f"type={self.screening_type_id} status={self.status} v{self.version}>"
        )

    def to_dto(self) -> Screening:
        return Screening(
            screening_id=self.id,
            child_id=self.child_id,
            screening_type_id=self.screening_type_id,
            status=ScreeningStatus(self.status),
            responses=dict(self.responses or {}),
            progress_percent=self.progress_percent,
            started_at=self.started_at,
            completed_at=self.completed_at,
            abandoned_at=self.abandoned_at,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: Screening, created_by_id: UUID) -> ScreeningModel:
        model = cls(id=dto.screening_id, created_by_id=created_by_id)
        model.apply_dto(dto, None)
        return model

    def apply_dto(self, dto: Screening, updated_by_id: UUID | None) -> None:
        self.child_id = dto.child_id
        self.screening_type_id = dto.screening_type_id
        self.status = dto.status.value
        self.responses = dict(dto.responses)
        self.progress_percent = dto.progress_percent
        self.started_at = dto.started_at
        self.completed_at = dto.completed_at
        self.abandoned_at = dto.abandoned_at
        self.updated_by_id = updated_by_id
