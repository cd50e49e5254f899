"""Pure import domain: row/batch snapshots and the validation pipeline."""

from workflow_ingestion.domain.types import (
    ConflictPolicy,
    ImportBatch,
    ImportBatchStatus,
    ImportRow,
    ImportRules,
    IssueSeverity,
    RowOutcome,
    RowReport,
    RowValidationStatus,
    ValidationIssue,
    ValidationReport,
)
from workflow_ingestion.domain.validators import (
    normalized_key,
    parse_grade,
    validate_batch,
)

__all__ = [
    "ConflictPolicy",
    "ImportBatch",
    "ImportBatchStatus",
    "ImportRow",
    "ImportRules",
    "IssueSeverity",
    "RowOutcome",
    "RowReport",
    "RowValidationStatus",
    "ValidationIssue",
    "ValidationReport",
    "normalized_key",
    "parse_grade",
    "validate_batch",
]
