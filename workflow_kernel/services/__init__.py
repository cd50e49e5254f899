"""Kernel services: entity store, audit trail, workflow lifecycles."""

from workflow_kernel.services.auditor_service import AuditorService
from workflow_kernel.services.base import SYSTEM_ACTOR_ID, BaseService
from workflow_kernel.services.case_service import CaseService
from workflow_kernel.services.consent_service import ConsentService
from workflow_kernel.services.entity_store import EntityStore
from workflow_kernel.services.screening_service import ScreeningService

__all__ = [
    "AuditorService",
    "BaseService",
    "CaseService",
    "ConsentService",
    "EntityStore",
    "SYSTEM_ACTOR_ID",
    "ScreeningService",
]
