"""
workflow_services.workflow_engine -- Facade over the workflow services.

Responsibility:
    Creates every workflow service exactly once from a Session and a
    ``WorkflowPolicy`` and exposes the lifecycle operations (screening,
    consent, import, case, audit) as one object.  Policy values are
    translated into service arguments here, so the kernel never sees
    ``workflow_config``.

Architecture position:
    Services -- top of the stack.  Depends on workflow_kernel,
    workflow_ingestion and workflow_config; nothing depends on it.

Invariants enforced:
    - Single-instance lifecycle: one EntityStore, one AuditorService and
      one of each lifecycle service per engine, all on the same Session
      and Clock.
    - Immutability listeners (audit events, terminal screenings, cases
      and batches) are registered before any operation runs.

Failure modes:
    - Every typed WorkflowError raised by the services propagates
      unchanged; the engine never catches them.
    - ValueError from ``get_active_policy`` if the policy is invalid.

Usage:
    from workflow_kernel.db.engine import session_scope
    from workflow_services import WorkflowEngine

    with session_scope() as session:
        engine = WorkflowEngine.from_session(session, actor_id=user_id)
        screening = engine.start_screening("child-1", "asq-3")
        engine.save_progress(screening.screening_id, {"q1": "yes"}, 10)
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from workflow_config import WorkflowPolicy, get_active_policy
from workflow_ingestion.domain.types import (
    ConflictPolicy,
    ImportBatch,
    ImportRules,
    ValidationReport,
)
from workflow_ingestion.models import (
    ingestion_model_registry,
    register_staging_immutability_listeners,
)
from workflow_ingestion.services.import_service import ImportService
from workflow_kernel.db.immutability import register_immutability_listeners
from workflow_kernel.domain.clock import Clock, SystemClock
from workflow_kernel.domain.types import (
    AuditEventRecord,
    CaseFile,
    ClosureType,
    ConsentDecision,
    ConsentRecord,
    ConsentType,
    Screening,
    ScreeningSla,
    StudentRecord,
)
from workflow_kernel.logging_config import LogContext, get_logger
from workflow_kernel.services.auditor_service import AuditorService
from workflow_kernel.services.base import SYSTEM_ACTOR_ID
from workflow_kernel.services.case_service import CaseService
from workflow_kernel.services.consent_service import ConsentService
from workflow_kernel.services.entity_store import EntityStore
from workflow_kernel.services.screening_service import ScreeningService

logger = get_logger("services.workflow_engine")


def import_rules_from_policy(policy: WorkflowPolicy) -> ImportRules:
    """Translate the import section of the policy into validation rules."""
    rules = policy.import_rules
    return ImportRules(
        required_fields=rules.required_fields,
        grade_min=rules.grade_min,
        grade_max=rules.grade_max,
        grade_aliases={alias.casefold(): grade for alias, grade in rules.grade_aliases},
        duplicate_key_fields=rules.duplicate_key_fields,
    )


def checklists_from_policy(policy: WorkflowPolicy) -> dict[ClosureType, tuple[str, ...]]:
    return {
        ClosureType(closure_type): items
        for closure_type, items in policy.case.checklists
    }


class WorkflowEngine:
    """Single entry point for the workflow lifecycles.

    Contract:
        Every mutating operation takes an optional ``actor_id``; when it is
        omitted the engine's own actor is recorded.  Reads never take one.

    Non-goals:
        - Does NOT manage transaction boundaries (caller's responsibility).
        - Does NOT own the Session lifecycle (no commit/rollback).
    """

    def __init__(
        self,
        session: Session,
        policy: WorkflowPolicy,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self.policy = policy
        self.actor_id = actor_id or SYSTEM_ACTOR_ID

        register_immutability_listeners()
        register_staging_immutability_listeners()

        # Shared foundations
        self.store = EntityStore(session, ingestion_model_registry())
        self.auditor = AuditorService(session, self._clock)

        self.screenings = ScreeningService(
            session, self._clock, self.store, self.auditor,
            sla_days=policy.screening.sla_days,
        )
        self.consents = ConsentService(
            session, self._clock, self.store, self.auditor,
            auto_consent_window_days=policy.consent.auto_consent_window_days,
            validity_days=policy.consent.validity_days,
        )
        self.cases = CaseService(
            session, checklists_from_policy(policy),
            self._clock, self.store, self.auditor,
        )
        self.imports = ImportService(
            session, self._clock, self.store, self.auditor,
            rules=import_rules_from_policy(policy),
        )

        logger.debug(
            "workflow_engine_created",
            extra={"policy_checksum": policy.checksum, "actor_id": str(self.actor_id)},
        )

    @classmethod
    def from_session(
        cls,
        session: Session,
        clock: Clock | None = None,
        policy: WorkflowPolicy | None = None,
        actor_id: UUID | None = None,
    ) -> WorkflowEngine:
        """Build an engine; loads the packaged policy when none is given."""
        return cls(session, policy or get_active_policy(), clock, actor_id)

    def _actor(self, actor_id: UUID | None) -> UUID:
        return actor_id or self.actor_id

    def _context(self, actor_id: UUID, producer: str) -> Any:
        return LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor_id),
            producer=producer,
        )

    # ------------------------------------------------------------------
    # Screening
    # ------------------------------------------------------------------

    def start_screening(
        self, child_id: str, screening_type_id: str, actor_id: UUID | None = None,
    ) -> Screening:
        actor = self._actor(actor_id)
        with self._context(actor, "screening"):
            return self.screenings.start_screening(child_id, screening_type_id, actor)

    def save_progress(
        self,
        screening_id: UUID,
        responses: dict[str, Any],
        progress_percent: int,
        actor_id: UUID | None = None,
    ) -> Screening:
        actor = self._actor(actor_id)
        with self._context(actor, "screening"):
            return self.screenings.save_progress(
                screening_id, responses, progress_percent, actor,
            )

    def complete_screening(
        self,
        screening_id: UUID,
        final_responses: dict[str, Any] | None = None,
        actor_id: UUID | None = None,
    ) -> Screening:
        actor = self._actor(actor_id)
        with self._context(actor, "screening"):
            return self.screenings.complete_screening(
                screening_id, final_responses or {}, actor,
            )

    def abandon_screening(
        self, screening_id: UUID, actor_id: UUID | None = None,
    ) -> Screening:
        actor = self._actor(actor_id)
        with self._context(actor, "screening"):
            return self.screenings.abandon_screening(screening_id, actor)

    def get_screening(self, screening_id: UUID) -> Screening:
        return self.screenings.get_screening(screening_id)

    def list_screenings(self, child_id: str) -> list[Screening]:
        return self.screenings.list_screenings(child_id)

    def check_screening_sla(self, screening_id: UUID) -> ScreeningSla:
        return self.screenings.check_screening_sla(screening_id)

    # ------------------------------------------------------------------
    # Consent
    # ------------------------------------------------------------------

    def request_consent(
        self,
        subject_id: str,
        consent_type: ConsentType | str,
        auto_consent_window_days: int | None = None,
        actor_id: UUID | None = None,
    ) -> ConsentRecord:
        actor = self._actor(actor_id)
        with self._context(actor, "consent"):
            return self.consents.request_consent(
                subject_id, consent_type, actor, auto_consent_window_days,
            )

    def evaluate_consent(self, consent_id: UUID) -> ConsentRecord:
        with self._context(SYSTEM_ACTOR_ID, "consent"):
            return self.consents.evaluate_consent(consent_id)

    def resolve_consent(
        self,
        consent_id: UUID,
        decision: ConsentDecision | str,
        actor_id: UUID | None = None,
    ) -> ConsentRecord:
        actor = self._actor(actor_id)
        with self._context(actor, "consent"):
            return self.consents.resolve_consent(consent_id, decision, actor)

    def get_consent(self, consent_id: UUID) -> ConsentRecord:
        return self.consents.get_consent(consent_id)

    def list_consents(self, subject_id: str) -> list[ConsentRecord]:
        return self.consents.list_consents(subject_id)

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def upload_import(
        self,
        school_id: str,
        uploaded_filename: str,
        rows: Sequence[Mapping[str, Any]],
        conflict_policy: ConflictPolicy | str = ConflictPolicy.SKIP,
        actor_id: UUID | None = None,
    ) -> ImportBatch:
        actor = self._actor(actor_id)
        with self._context(actor, "ingestion"):
            return self.imports.upload_import(
                school_id, uploaded_filename, rows, conflict_policy, actor,
            )

    def validate_import(
        self, batch_id: UUID, actor_id: UUID | None = None,
    ) -> ValidationReport:
        actor = self._actor(actor_id)
        with self._context(actor, "ingestion"):
            return self.imports.validate_import(batch_id, actor)

    def commit_import(self, batch_id: UUID, actor_id: UUID | None = None) -> ImportBatch:
        actor = self._actor(actor_id)
        with self._context(actor, "ingestion"):
            return self.imports.commit_import(batch_id, actor)

    def get_import_batch(self, batch_id: UUID) -> ImportBatch:
        return self.imports.get_import_batch(batch_id)

    def list_import_batches(self, school_id: str) -> list[ImportBatch]:
        return self.imports.list_import_batches(school_id)

    def list_students(self, school_id: str) -> list[StudentRecord]:
        return self.imports.list_students(school_id)

    # ------------------------------------------------------------------
    # Case
    # ------------------------------------------------------------------

    def open_case(self, subject_id: str, actor_id: UUID | None = None) -> CaseFile:
        actor = self._actor(actor_id)
        with self._context(actor, "case"):
            return self.cases.open_case(subject_id, actor)

    def advance_case(
        self,
        case_id: UUID,
        closure_type: ClosureType | str,
        actor_id: UUID | None = None,
    ) -> CaseFile:
        actor = self._actor(actor_id)
        with self._context(actor, "case"):
            return self.cases.advance_case(case_id, closure_type, actor)

    def record_checklist(
        self,
        case_id: UUID,
        answers: Mapping[str, bool],
        actor_id: UUID | None = None,
    ) -> CaseFile:
        actor = self._actor(actor_id)
        with self._context(actor, "case"):
            return self.cases.record_checklist(case_id, answers, actor)

    def finalize_case(
        self,
        case_id: UUID,
        checklist_answers: Mapping[str, bool],
        signature: str | None,
        actor_id: UUID | None = None,
    ) -> CaseFile:
        actor = self._actor(actor_id)
        with self._context(actor, "case"):
            return self.cases.finalize_case(case_id, checklist_answers, signature, actor)

    def reactivate_case(self, case_id: UUID, actor_id: UUID | None = None) -> CaseFile:
        actor = self._actor(actor_id)
        with self._context(actor, "case"):
            return self.cases.reactivate_case(case_id, actor)

    def get_case(self, case_id: UUID) -> CaseFile:
        return self.cases.get_case(case_id)

    def list_cases(self, subject_id: str) -> list[CaseFile]:
        return self.cases.list_cases(subject_id)

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def audit_trail(self, entity_id: UUID) -> list[AuditEventRecord]:
        return self.auditor.trail(entity_id)
