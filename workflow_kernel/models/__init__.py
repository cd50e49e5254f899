"""Kernel ORM models for workflow entities and the audit trail."""

from workflow_kernel.domain.types import CaseFile, ConsentRecord, Screening, StudentRecord
from workflow_kernel.models.audit_event import WorkflowAuditEvent
from workflow_kernel.models.case_file import CaseFileModel
from workflow_kernel.models.consent import ConsentRecordModel
from workflow_kernel.models.screening import ScreeningModel
from workflow_kernel.models.student import StudentRecordModel


def default_model_registry() -> dict[type, type]:
    """Return a dict of snapshot type -> ORM model for all kernel entities."""
    return {
        Screening: ScreeningModel,
        ConsentRecord: ConsentRecordModel,
        CaseFile: CaseFileModel,
        StudentRecord: StudentRecordModel,
    }


__all__ = [
    "CaseFileModel",
    "ConsentRecordModel",
    "ScreeningModel",
    "StudentRecordModel",
    "WorkflowAuditEvent",
    "default_model_registry",
]
