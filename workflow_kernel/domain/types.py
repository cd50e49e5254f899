"""
Workflow entity types (``workflow_kernel.domain.types``).

Responsibility
--------------
Frozen snapshots of the workflow entities the kernel owns (Screening,
ConsentRecord, CaseFile) and of audit events, plus the status enums their
state machines run on.  Services return these, never ORM rows.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``version`` is the optimistic-lock counter the entity was read at;
  0 means the snapshot has never been persisted.
* Snapshots are replaced, never mutated (``dataclasses.replace``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class EntityKind(str, Enum):
    """Entity kinds that have a transition table."""

    SCREENING = "screening"
    CONSENT = "consent"
    IMPORT_BATCH = "import_batch"
    CASE_FILE = "case_file"


# =========================================================================
# Screening
# =========================================================================


class ScreeningStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class Screening:
    """Snapshot of a developmental screening.

    ``progress_percent == 100`` iff ``status`` is COMPLETED, and
    ``completed_at`` is set iff COMPLETED.
    """

    screening_id: UUID
    child_id: str
    screening_type_id: str
    status: ScreeningStatus
    responses: dict[str, Any] = field(default_factory=dict)
    progress_percent: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    abandoned_at: datetime | None = None
    version: int = 0

    @property
    def entity_id(self) -> UUID:
        return self.screening_id

    @property
    def is_open(self) -> bool:
        return self.status == ScreeningStatus.IN_PROGRESS


@dataclass(frozen=True)
class ScreeningSla:
    """Read-time SLA view of a screening."""

    screening_id: UUID
    elapsed_days: int
    sla_days: int
    breached: bool


# =========================================================================
# Consent
# =========================================================================


class ConsentType(str, Enum):
    SCREENING = "screening"
    REFERRAL = "referral"
    DATA_SHARING = "data_sharing"


class ConsentStatus(str, Enum):
    PENDING = "pending"
    GRANTED = "granted"
    DENIED = "denied"
    EXPIRED = "expired"


class ConsentDecision(str, Enum):
    """Explicit decisions a guardian can make on a pending request."""

    GRANT = "grant"
    DENY = "deny"


@dataclass(frozen=True)
class ConsentRecord:
    """Snapshot of a consent request.

    ``valid_until`` is set only once the record has been granted.
    ``auto_granted`` marks grants produced by the waiting-period rule
    rather than by an explicit decision.
    """

    consent_id: UUID
    subject_id: str
    consent_type: ConsentType
    status: ConsentStatus
    requested_on: datetime
    auto_consent_window_days: int = 7
    resolved_on: datetime | None = None
    valid_until: datetime | None = None
    auto_granted: bool = False
    superseded_by_id: UUID | None = None
    version: int = 0

    @property
    def entity_id(self) -> UUID:
        return self.consent_id


# =========================================================================
# Import batch
# =========================================================================


class ImportBatchStatus(str, Enum):
    """Batch lifecycle; the row-level vocabulary lives in workflow_ingestion."""

    VALIDATING = "validating"
    READY_TO_COMMIT = "ready_to_commit"
    COMMITTING = "committing"
    COMMITTED = "committed"
    FAILED = "failed"


# =========================================================================
# Case file
# =========================================================================


class CaseStatus(str, Enum):
    ACTIVE = "active"
    PENDING_CLOSURE = "pending_closure"
    CLOSED = "closed"


class ClosureType(str, Enum):
    SUCCESS = "success"
    TRANSFER = "transfer"
    DISCONTINUE = "discontinue"


@dataclass(frozen=True)
class CaseFile:
    """Snapshot of a discharge / case-closure workflow."""

    case_id: UUID
    subject_id: str
    status: CaseStatus
    closure_type: ClosureType | None = None
    checklist: dict[str, bool] = field(default_factory=dict)
    opened_at: datetime | None = None
    signature: str | None = None
    closed_at: datetime | None = None
    predecessor_case_id: UUID | None = None
    version: int = 0

    @property
    def entity_id(self) -> UUID:
        return self.case_id

    @property
    def unchecked_items(self) -> tuple[str, ...]:
        return tuple(sorted(name for name, done in self.checklist.items() if not done))


# =========================================================================
# Student roster
# =========================================================================


@dataclass(frozen=True)
class StudentRecord:
    """Snapshot of a roster entry; the target an import batch writes to."""

    student_id: UUID
    school_id: str
    name: str
    grade: int
    guardian: str
    contact: str | None = None
    source_batch_id: UUID | None = None
    version: int = 0

    @property
    def entity_id(self) -> UUID:
        return self.student_id


# =========================================================================
# Audit
# =========================================================================


@dataclass(frozen=True)
class AuditEventRecord:
    """One entry of the append-only workflow audit trail."""

    event_id: UUID
    entity_type: str
    entity_id: UUID
    action: str
    from_state: str | None
    to_state: str
    actor_id: UUID
    occurred_at: datetime
    details: dict[str, Any] = field(default_factory=dict)
