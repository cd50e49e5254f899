"""
Student promoter: validated import row -> roster StudentRecord.

Applies the batch's conflict policy against the record the row matches,
if any.  Runs inside the commit SAVEPOINT managed by ImportService.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any
from uuid import UUID, uuid4

from workflow_kernel.domain.types import StudentRecord

from workflow_ingestion.domain.types import ConflictPolicy, ImportRules, RowOutcome
from workflow_ingestion.domain.validators import parse_grade


def _str(d: dict[str, Any], key: str, default: str = "") -> str:
    v = d.get(key)
    return " ".join(str(v).split()) if v is not None else default


def _optional_str(d: dict[str, Any], key: str) -> str | None:
    v = d.get(key)
    if v is None or (isinstance(v, str) and not v.strip()):
        return None
    return str(v).strip()


@dataclass(frozen=True)
class PromoteResult:
    """What promotion decided for one row.

    ``record`` is the snapshot to write, or None when the row is skipped.
    """

    outcome: RowOutcome
    record: StudentRecord | None = None


class StudentPromoter:
    """Builds the roster write for one row.  Pure; the caller stores it."""

    def __init__(self, rules: ImportRules):
        self._rules = rules

    def promote(
        self,
        fields: dict[str, Any],
        school_id: str,
        batch_id: UUID,
        match: StudentRecord | None,
        policy: ConflictPolicy,
    ) -> PromoteResult:
        grade = parse_grade(fields.get("grade"), self._rules)
        if grade is None:
            raise ValueError(f"Unreadable grade {fields.get('grade')!r} reached commit")

        values = {
            "name": _str(fields, "name"),
            "grade": grade,
            "guardian": _str(fields, "guardian"),
            "contact": _optional_str(fields, "contact"),
            "source_batch_id": batch_id,
        }

        if match is None:
            return PromoteResult(
                outcome=RowOutcome.INSERTED,
                record=StudentRecord(student_id=uuid4(), school_id=school_id, **values),
            )
        if policy == ConflictPolicy.SKIP:
            return PromoteResult(outcome=RowOutcome.SKIPPED)
        return PromoteResult(outcome=RowOutcome.UPDATED, record=replace(match, **values))
