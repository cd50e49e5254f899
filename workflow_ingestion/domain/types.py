"""
workflow_ingestion.domain.types -- Pure frozen dataclasses for bulk student import.

ZERO I/O. Imports only from workflow_kernel/domain/.

Reuses:
    - ImportBatchStatus from workflow_kernel.domain.types (the batch state
      machine lives in the kernel transition table)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from workflow_kernel.domain.types import ImportBatchStatus


# =============================================================================
# Status enums
# =============================================================================


class RowValidationStatus(str, Enum):
    """Per-row verdict of the validation pipeline."""

    VALID = "valid"
    WARNING = "warning"  # Importable, but flagged for review
    ERROR = "error"  # Blocks the whole batch


class IssueSeverity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


class ConflictPolicy(str, Enum):
    """What commit does with a row matching an existing student."""

    SKIP = "skip"  # Leave the existing record untouched
    UPDATE = "update"  # Overwrite the existing record with the row


class RowOutcome(str, Enum):
    """What commit did with a row."""

    INSERTED = "inserted"
    UPDATED = "updated"
    SKIPPED = "skipped"


# =============================================================================
# Validation results
# =============================================================================


@dataclass(frozen=True)
class ValidationIssue:
    """One finding against one row."""

    code: str
    message: str
    severity: IssueSeverity
    field: str | None = None
    details: dict[str, Any] | None = None


@dataclass(frozen=True)
class RowReport:
    """Validation verdict for one row."""

    row_index: int
    status: RowValidationStatus
    issues: tuple[ValidationIssue, ...] = ()
    duplicate_of_id: UUID | None = None  # Existing student with the same key
    duplicate_of_row: int | None = None  # Earlier row in this file with the same key

    @property
    def is_duplicate(self) -> bool:
        return self.duplicate_of_id is not None or self.duplicate_of_row is not None

    @property
    def error_reason(self) -> str | None:
        errors = [i.message for i in self.issues if i.severity == IssueSeverity.ERROR]
        return "; ".join(errors) if errors else None


@dataclass(frozen=True)
class ValidationReport:
    """Result of validating a whole batch; rows sorted by index."""

    rows: tuple[RowReport, ...]
    total_rows: int
    valid_count: int
    warning_count: int
    error_count: int
    duplicate_count: int

    @classmethod
    def from_rows(cls, rows: tuple[RowReport, ...]) -> ValidationReport:
        rows = tuple(sorted(rows, key=lambda r: r.row_index))
        return cls(
            rows=rows,
            total_rows=len(rows),
            valid_count=sum(1 for r in rows if r.status == RowValidationStatus.VALID),
            warning_count=sum(1 for r in rows if r.status == RowValidationStatus.WARNING),
            error_count=sum(1 for r in rows if r.status == RowValidationStatus.ERROR),
            duplicate_count=sum(1 for r in rows if r.is_duplicate),
        )

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0


# =============================================================================
# Rules
# =============================================================================


@dataclass(frozen=True)
class ImportRules:
    """Validation rules for student rows (built from configuration)."""

    required_fields: tuple[str, ...] = ("name", "grade", "guardian")
    grade_min: int = 0
    grade_max: int = 5
    grade_aliases: dict[str, int] = field(default_factory=lambda: {"k": 0})
    duplicate_key_fields: tuple[str, ...] = ("name", "grade")


# =============================================================================
# Batch and row DTOs
# =============================================================================


@dataclass(frozen=True)
class ImportRow:
    """Immutable snapshot of one uploaded row (1-indexed ``row_index``)."""

    row_index: int
    fields: dict[str, Any]
    validation_status: RowValidationStatus | None = None
    issues: tuple[ValidationIssue, ...] = ()
    duplicate_of_id: UUID | None = None
    duplicate_of_row: int | None = None
    outcome: RowOutcome | None = None

    @property
    def error_reason(self) -> str | None:
        errors = [i.message for i in self.issues if i.severity == IssueSeverity.ERROR]
        return "; ".join(errors) if errors else None

    def with_report(self, report: RowReport) -> ImportRow:
        return ImportRow(
            row_index=self.row_index,
            fields=self.fields,
            validation_status=report.status,
            issues=report.issues,
            duplicate_of_id=report.duplicate_of_id,
            duplicate_of_row=report.duplicate_of_row,
            outcome=self.outcome,
        )

    def to_report(self) -> RowReport:
        return RowReport(
            row_index=self.row_index,
            status=self.validation_status or RowValidationStatus.VALID,
            issues=self.issues,
            duplicate_of_id=self.duplicate_of_id,
            duplicate_of_row=self.duplicate_of_row,
        )


@dataclass(frozen=True)
class ImportBatch:
    """Immutable snapshot of an import batch."""

    batch_id: UUID
    school_id: str
    uploaded_filename: str
    status: ImportBatchStatus
    conflict_policy: ConflictPolicy
    rows: tuple[ImportRow, ...] = ()
    total_rows: int = 0
    valid_count: int = 0
    warning_count: int = 0
    error_count: int = 0
    duplicate_count: int = 0
    content_hash: str | None = None  # SHA-256 of the canonical rows
    failure_reason: str | None = None
    uploaded_at: datetime | None = None
    validated_at: datetime | None = None
    committed_at: datetime | None = None
    version: int = 0

    @property
    def entity_id(self) -> UUID:
        return self.batch_id

    @property
    def report(self) -> ValidationReport:
        """The stored validation report, rebuilt from the rows."""
        return ValidationReport.from_rows(tuple(row.to_report() for row in self.rows))
