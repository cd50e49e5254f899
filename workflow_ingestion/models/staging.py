"""
Staging ORM models for bulk student import.

Contract:
    ImportBatchModel and ImportRowModel persist an uploaded batch and its rows
    with the raw ``fields`` exactly as uploaded, the validation verdict per
    row, and the commit outcome.  Rows are fixed at upload; later writes only
    change their verdict and outcome.  Cells are JSON scalars (the import
    service refuses anything else), so ``fields`` reads back equal to what
    was stored.

Architecture: workflow_ingestion/models. Imports from workflow_kernel.db.base only.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workflow_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from workflow_ingestion.domain.types import ImportBatch, ImportRow


def _issues_to_json(issues: tuple) -> list[dict] | None:
    if not issues:
        return None
    return [
        {
            "code": i.code,
            "message": i.message,
            "severity": i.severity.value,
            "field": i.field,
            "details": dict(i.details) if i.details is not None else None,
        }
        for i in issues
    ]


def _json_to_issues(data: list | None):
    if not data:
        return ()
    from workflow_ingestion.domain.types import IssueSeverity, ValidationIssue

    return tuple(
        ValidationIssue(
            code=item["code"],
            message=item["message"],
            severity=IssueSeverity(item["severity"]),
            field=item.get("field"),
            details=item.get("details"),
        )
        for item in data
    )


class ImportBatchModel(TrackedBase):
    """Staging batch for one uploaded file.  ``id`` is the batch_id."""

    __tablename__ = "import_batches"

    __table_args__ = (
        Index("ix_import_batches_school", "school_id"),
        Index("ix_import_batches_content_hash", "content_hash"),
    )

    parent_attribute = "school_id"
    list_order = ("uploaded_at",)

    school_id: Mapped[str] = mapped_column(String(100), nullable=False)
    uploaded_filename: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    conflict_policy: Mapped[str] = mapped_column(String(20), nullable=False)
    total_rows: Mapped[int] = mapped_column(default=0, nullable=False)
    valid_count: Mapped[int] = mapped_column(default=0, nullable=False)
    warning_count: Mapped[int] = mapped_column(default=0, nullable=False)
    error_count: Mapped[int] = mapped_column(default=0, nullable=False)
    duplicate_count: Mapped[int] = mapped_column(default=0, nullable=False)
    content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    uploaded_at: Mapped[datetime | None] = mapped_column(nullable=True)
    validated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    committed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    rows: Mapped[list["ImportRowModel"]] = relationship(
        "ImportRowModel",
        back_populates="batch",
        order_by="ImportRowModel.row_index",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<ImportBatch {self.id} school={self.school_id} "
            f"status={self.status} rows={self.total_rows}>"
        )

    def to_dto(self) -> ImportBatch:
        from workflow_ingestion.domain.types import (
            ConflictPolicy,
            ImportBatch,
            ImportBatchStatus,
        )

        return ImportBatch(
            batch_id=self.id,
            school_id=self.school_id,
            uploaded_filename=self.uploaded_filename,
            status=ImportBatchStatus(self.status),
            conflict_policy=ConflictPolicy(self.conflict_policy),
            rows=tuple(row.to_dto() for row in self.rows),
            total_rows=self.total_rows,
            valid_count=self.valid_count,
            warning_count=self.warning_count,
            error_count=self.error_count,
            duplicate_count=self.duplicate_count,
            content_hash=self.content_hash,
            failure_reason=self.failure_reason,
            uploaded_at=self.uploaded_at,
            validated_at=self.validated_at,
            committed_at=self.committed_at,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: ImportBatch, created_by_id: UUID) -> ImportBatchModel:
        model = cls(id=dto.batch_id, created_by_id=created_by_id)
        model._apply_batch_fields(dto, None)
        model.rows = [ImportRowModel.from_dto(row, created_by_id) for row in dto.rows]
        return model

    def apply_dto(self, dto: ImportBatch, updated_by_id: UUID | None) -> None:
        self._apply_batch_fields(dto, updated_by_id)
        by_index = {row.row_index: row for row in self.rows}
        for row in dto.rows:
            by_index[row.row_index].apply_dto(row)

    def _apply_batch_fields(self, dto: ImportBatch, updated_by_id: UUID | None) -> None:
        self.school_id = dto.school_id
        self.uploaded_filename = dto.uploaded_filename
        self.status = dto.status.value
        self.conflict_policy = dto.conflict_policy.value
        self.total_rows = dto.total_rows
        self.valid_count = dto.valid_count
        self.warning_count = dto.warning_count
        self.error_count = dto.error_count
        self.duplicate_count = dto.duplicate_count
        self.content_hash = dto.content_hash
        self.failure_reason = dto.failure_reason
        self.uploaded_at = dto.uploaded_at
        self.validated_at = dto.validated_at
        self.committed_at = dto.committed_at
        self.updated_by_id = updated_by_id


class ImportRowModel(TrackedBase):
    """Single uploaded row within a batch."""

    __tablename__ = "import_rows"

    __table_args__ = (
        UniqueConstraint("batch_id", "row_index", name="uq_import_rows_batch_index"),
        Index("ix_import_rows_batch_status", "batch_id", "validation_status"),
    )

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("import_batches.id", ondelete="CASCADE"),
        nullable=False,
    )
    row_index: Mapped[int] = mapped_column(nullable=False)
    fields: Mapped[dict] = mapped_column(JSON, nullable=False)
    validation_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    issues: Mapped[list | None] = mapped_column(JSON, nullable=True)
    duplicate_of_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    duplicate_of_row: Mapped[int | None] = mapped_column(nullable=True)
    outcome: Mapped[str | None] = mapped_column(String(20), nullable=True)

    batch: Mapped["ImportBatchModel"] = relationship(
        "ImportBatchModel",
        back_populates="rows",
    )

    def to_dto(self) -> ImportRow:
        from workflow_ingestion.domain.types import ImportRow, RowOutcome, RowValidationStatus

        return ImportRow(
            row_index=self.row_index,
            fields=dict(self.fields),
            validation_status=(
                RowValidationStatus(self.validation_status)
                if self.validation_status else None
            ),
            issues=_json_to_issues(self.issues),
            duplicate_of_id=self.duplicate_of_id,
            duplicate_of_row=self.duplicate_of_row,
            outcome=RowOutcome(self.outcome) if self.outcome else None,
        )

    @classmethod
    def from_dto(cls, dto: ImportRow, created_by_id: UUID) -> ImportRowModel:
        model = cls(
            row_index=dto.row_index,
            fields=dict(dto.fields),
            created_by_id=created_by_id,
        )
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto: ImportRow) -> None:
        self.validation_status = dto.validation_status.value if dto.validation_status else None
        self.issues = _issues_to_json(dto.issues)
        self.duplicate_of_id = dto.duplicate_of_id
        self.duplicate_of_row = dto.duplicate_of_row
        self.outcome = dto.outcome.value if dto.outcome else None
