"""Tests for the WorkflowEngine facade and transaction scope."""

from typing import get_type_hints
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from workflow_ingestion.services.import_service import ImportService
from workflow_kernel.db.engine import session_scope
from workflow_kernel.domain.clock import Clock
from workflow_kernel.domain.types import CaseStatus, ScreeningStatus
from workflow_kernel.exceptions import DuplicateActiveScreeningError
from workflow_kernel.services.auditor_service import AuditorService
from workflow_kernel.services.base import SYSTEM_ACTOR_ID
from workflow_kernel.services.case_service import CaseService
from workflow_kernel.services.consent_service import ConsentService
from workflow_kernel.services.entity_store import EntityStore
from workflow_kernel.services.screening_service import ScreeningService
from workflow_services import WorkflowEngine


class TestConstruction:
    def test_from_session_loads_packaged_policy(self, session, clock):
        engine = WorkflowEngine.from_session(session, clock=clock)
        assert engine.policy.consent.auto_consent_window_days == 7
        assert engine.actor_id == SYSTEM_ACTOR_ID

    def test_services_share_store_and_auditor(self, engine):
        assert engine.screenings._store is engine.store
        assert engine.consents._store is engine.store
        assert engine.cases._auditor is engine.auditor
        assert engine.imports._store is engine.store

    @pytest.mark.parametrize(
        "service_cls", [ScreeningService, ConsentService, CaseService, ImportService],
    )
    def test_service_constructors_typed_like_base(self, service_cls):
        hints = get_type_hints(service_cls.__init__)
        assert hints["session"] is Session
        assert hints["clock"] == Clock | None
        assert hints["store"] == EntityStore | None
        assert hints["auditor"] == AuditorService | None


class TestActors:
    def test_engine_actor_recorded(self, engine, test_actor_id):
        case = engine.open_case("child-1")
        assert engine.audit_trail(case.case_id)[0].actor_id == test_actor_id

    def test_per_call_actor_override(self, engine):
        reviewer = uuid4()
        case = engine.open_case("child-1", actor_id=reviewer)
        assert engine.audit_trail(case.case_id)[0].actor_id == reviewer


class TestSessionScope:
    def test_commit_on_success(self, file_session_factory, clock, policy):
        with session_scope() as session:
            screening = WorkflowEngine(session, policy, clock).start_screening(
                "child-1", "asq-3",
            )

        with session_scope() as session:
            stored = WorkflowEngine(session, policy, clock).get_screening(
                screening.screening_id,
            )
        assert stored.status == ScreeningStatus.IN_PROGRESS

    def test_rollback_on_error(self, file_session_factory, clock, policy):
        with pytest.raises(DuplicateActiveScreeningError):
            with session_scope() as session:
                engine = WorkflowEngine(session, policy, clock)
                engine.open_case("child-1")
                engine.start_screening("child-1", "asq-3")
                engine.start_screening("child-1", "asq-3")

        with session_scope() as session:
            engine = WorkflowEngine(session, policy, clock)
            assert engine.list_cases("child-1") == []
            assert engine.list_screenings("child-1") == []


class TestEndToEnd:
    def test_child_journey(self, engine, clock):
        consent = engine.request_consent("child-1", "screening")
        clock.advance_days(8)
        assert engine.get_consent(consent.consent_id).auto_granted

        screening = engine.start_screening("child-1", "asq-3")
        engine.save_progress(screening.screening_id, {"q1": "yes"}, 60)
        engine.complete_screening(screening.screening_id, {"q2": "no"})

        case = engine.open_case("child-1")
        pending = engine.advance_case(case.case_id, "success")
        closed = engine.finalize_case(
            case.case_id, {item: True for item in pending.checklist}, "Dr. Rivera",
        )
        assert closed.status == CaseStatus.CLOSED
        assert [e.action for e in engine.audit_trail(case.case_id)] == [
            "open", "choose_closure", "finalize",
        ]
