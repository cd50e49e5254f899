"""Pure domain layer: clocks, transition tables, entity snapshots."""

from workflow_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from workflow_kernel.domain.policy_clock import PolicyClock
from workflow_kernel.domain.transitions import (
    Accepted,
    Rejected,
    RejectionReason,
    is_terminal,
    require_transition,
    transition,
)
from workflow_kernel.domain.types import (
    AuditEventRecord,
    CaseFile,
    CaseStatus,
    ClosureType,
    ConsentDecision,
    ConsentRecord,
    ConsentStatus,
    ConsentType,
    EntityKind,
    ImportBatchStatus,
    Screening,
    ScreeningSla,
    ScreeningStatus,
    StudentRecord,
)

__all__ = [
    "Accepted",
    "AuditEventRecord",
    "CaseFile",
    "CaseStatus",
    "Clock",
    "ClosureType",
    "ConsentDecision",
    "ConsentRecord",
    "ConsentStatus",
    "ConsentType",
    "DeterministicClock",
    "EntityKind",
    "ImportBatchStatus",
    "PolicyClock",
    "Rejected",
    "RejectionReason",
    "Screening",
    "ScreeningSla",
    "ScreeningStatus",
    "StudentRecord",
    "SystemClock",
    "is_terminal",
    "require_transition",
    "transition",
]
