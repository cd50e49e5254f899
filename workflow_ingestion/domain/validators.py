"""
Validation pipeline for uploaded student rows.

Row-level checks run on one row at a time and never short-circuit: every
problem on a row is reported.  Batch-level duplicate detection compares a
normalized key against the existing roster and against earlier rows of the
same file.  Duplicates are tagged here and resolved at commit time by the
batch's conflict policy.

Architecture: workflow_ingestion/domain. ZERO I/O. Imports only from
workflow_kernel/domain/.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from workflow_kernel.domain.types import StudentRecord

from workflow_ingestion.domain.types import (
    ImportRow,
    ImportRules,
    IssueSeverity,
    RowReport,
    RowValidationStatus,
    ValidationIssue,
    ValidationReport,
)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _collapse(value: Any) -> str:
    return " ".join(str(value).split()).casefold()


# -----------------------------------------------------------------------------
# Field helpers
# -----------------------------------------------------------------------------


def parse_grade(value: Any, rules: ImportRules) -> int | None:
    """
    Read a grade as an integer, or None when it cannot be read.

    Integers pass through; strings are stripped, matched against the
    configured aliases ("K" -> 0) case-insensitively, then read as
    base-10 integers.  Anything else (floats, "3rd", booleans) is unreadable.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    alias = rules.grade_aliases.get(text.casefold())
    if alias is not None:
        return alias
    digits = text[1:] if text[:1] in "+-" else text
    if not (digits.isascii() and digits.isdigit()):
        return None
    return int(text)


def normalized_key(
    fields: Mapping[str, Any],
    rules: ImportRules,
) -> tuple[str, ...] | None:
    """
    Duplicate-detection key for a row or record.

    Text is case-folded with whitespace collapsed; the grade is compared as
    its parsed integer, so "K" and "0" match.  Returns None when a key field
    is missing or the grade cannot be read (such rows are never duplicates).
    """
    parts: list[str] = []
    for field_name in rules.duplicate_key_fields:
        value = fields.get(field_name)
        if _is_blank(value):
            return None
        if field_name == "grade":
            grade = parse_grade(value, rules)
            if grade is None:
                return None
            parts.append(str(grade))
        else:
            parts.append(_collapse(value))
    return tuple(parts)


def record_key(record: StudentRecord, rules: ImportRules) -> tuple[str, ...] | None:
    """``normalized_key`` for an existing roster entry."""
    return normalized_key(
        {
            "name": record.name,
            "grade": record.grade,
            "guardian": record.guardian,
            "contact": record.contact,
        },
        rules,
    )


# -----------------------------------------------------------------------------
# Row-level validators (one row at a time)
# -----------------------------------------------------------------------------


def validate_required_fields(
    fields: Mapping[str, Any],
    rules: ImportRules,
) -> list[ValidationIssue]:
    """Every required field must be present and non-blank."""
    issues: list[ValidationIssue] = []
    for field_name in rules.required_fields:
        if _is_blank(fields.get(field_name)):
            issues.append(
                ValidationIssue(
                    code="MISSING_REQUIRED_FIELD",
                    message=f"Missing required field {field_name!r}",
                    severity=IssueSeverity.ERROR,
                    field=field_name,
                )
            )
    return issues


def validate_grade(
    fields: Mapping[str, Any],
    rules: ImportRules,
) -> list[ValidationIssue]:
    """An unreadable grade is an error; a readable one outside the range is a warning."""
    value = fields.get("grade")
    if _is_blank(value):
        return []  # Reported by validate_required_fields when required
    grade = parse_grade(value, rules)
    if grade is None:
        return [
            ValidationIssue(
                code="INVALID_GRADE",
                message=f"Grade {value!r} cannot be read",
                severity=IssueSeverity.ERROR,
                field="grade",
            )
        ]
    if not rules.grade_min <= grade <= rules.grade_max:
        return [
            ValidationIssue(
                code="GRADE_OUT_OF_RANGE",
                message=(
                    f"Grade {grade} outside {rules.grade_min}..{rules.grade_max}"
                ),
                severity=IssueSeverity.WARNING,
                field="grade",
                details={"grade": grade},
            )
        ]
    return []


ROW_VALIDATORS = (validate_required_fields, validate_grade)


def _status_for(issues: Sequence[ValidationIssue]) -> RowValidationStatus:
    if any(i.severity == IssueSeverity.ERROR for i in issues):
        return RowValidationStatus.ERROR
    if issues:
        return RowValidationStatus.WARNING
    return RowValidationStatus.VALID


def validate_row(row: ImportRow, rules: ImportRules) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for validator in ROW_VALIDATORS:
        issues.extend(validator(row.fields, rules))
    return issues


# -----------------------------------------------------------------------------
# Batch pipeline
# -----------------------------------------------------------------------------


def validate_batch(
    rows: Sequence[ImportRow],
    existing_records: Sequence[StudentRecord],
    rules: ImportRules,
) -> ValidationReport:
    """
    Validate every row, then tag duplicates.

    ``existing_records`` is the current roster; when several existing
    records share a key the first one in the given order is reported.
    Identical input yields an identical report.

    Raises:
        ValueError: Two rows share a row_index.
    """
    ordered = sorted(rows, key=lambda r: r.row_index)
    indexes = [r.row_index for r in ordered]
    if len(set(indexes)) != len(indexes):
        raise ValueError("Row indexes must be unique within a batch")

    existing_by_key: dict[tuple[str, ...], StudentRecord] = {}
    for record in existing_records:
        key = record_key(record, rules)
        if key is not None:
            existing_by_key.setdefault(key, record)

    first_row_by_key: dict[tuple[str, ...], int] = {}
    reports: list[RowReport] = []
    for row in ordered:
        issues = validate_row(row, rules)
        duplicate_of_id = None
        duplicate_of_row = None

        key = normalized_key(row.fields, rules)
        if key is not None:
            match = existing_by_key.get(key)
            if match is not None:
                duplicate_of_id = match.student_id
            if key in first_row_by_key:
                duplicate_of_row = first_row_by_key[key]
                issues.append(
                    ValidationIssue(
                        code="DUPLICATE_IN_FILE",
                        message=f"Same student as row {duplicate_of_row}",
                        severity=IssueSeverity.WARNING,
                        details={"row_index": duplicate_of_row},
                    )
                )
            else:
                first_row_by_key[key] = row.row_index

        reports.append(
            RowReport(
                row_index=row.row_index,
                status=_status_for(issues),
                issues=tuple(issues),
                duplicate_of_id=duplicate_of_id,
                duplicate_of_row=duplicate_of_row,
            )
        )

    return ValidationReport.from_rows(tuple(reports))
