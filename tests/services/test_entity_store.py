"""Tests for EntityStore: versioned snapshot persistence."""

from dataclasses import replace
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from workflow_ingestion.domain.types import (
    ConflictPolicy,
    ImportBatch,
    ImportRow,
    RowValidationStatus,
    ValidationIssue,
    IssueSeverity,
)
from workflow_ingestion.models import ingestion_model_registry
from workflow_kernel.domain.types import (
    CaseFile,
    CaseStatus,
    ClosureType,
    ConsentRecord,
    ConsentStatus,
    ConsentType,
    ImportBatchStatus,
    Screening,
    ScreeningStatus,
    StudentRecord,
)
from workflow_kernel.exceptions import ConcurrentModificationError, EntityNotFoundError
from workflow_kernel.services.entity_store import EntityStore

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(session):
    return EntityStore(session, ingestion_model_registry())


class TestRoundTrip:
    def test_screening(self, store, test_actor_id):
        screening = Screening(
            screening_id=uuid4(), child_id="child-1", screening_type_id="asq-3",
            status=ScreeningStatus.IN_PROGRESS, responses={"q1": "yes", "q2": 3},
            progress_percent=40, started_at=NOW,
        )
        stored = store.put(screening, test_actor_id)
        assert stored.version == 1
        assert store.get(Screening, screening.screening_id) == stored
        assert replace(stored, version=0) == screening

    def test_consent(self, store, test_actor_id):
        record = ConsentRecord(
            consent_id=uuid4(), subject_id="child-1", consent_type=ConsentType.REFERRAL,
            status=ConsentStatus.GRANTED, requested_on=NOW, auto_consent_window_days=10,
            resolved_on=NOW, valid_until=NOW.replace(year=2025), auto_granted=True,
        )
        stored = store.put(record, test_actor_id)
        assert replace(store.get(ConsentRecord, record.consent_id), version=0) == record
        assert stored.version == 1

    def test_case(self, store, test_actor_id):
        case = CaseFile(
            case_id=uuid4(), subject_id="child-1", status=CaseStatus.PENDING_CLOSURE,
            closure_type=ClosureType.TRANSFER, checklist={"a": True, "b": False},
            opened_at=NOW, predecessor_case_id=uuid4(),
        )
        store.put(case, test_actor_id)
        assert replace(store.get(CaseFile, case.case_id), version=0) == case

    def test_student(self, store, test_actor_id):
        student = StudentRecord(
            student_id=uuid4(), school_id="school-1", name="Ann", grade=2,
            guardian="Pat", contact="555-0100", source_batch_id=uuid4(),
        )
        store.put(student, test_actor_id)
        assert replace(store.get(StudentRecord, student.student_id), version=0) == student

    def test_import_batch_with_rows(self, store, test_actor_id):
        issue = ValidationIssue(
            code="GRADE_OUT_OF_RANGE", message="Grade 9 outside 0..5",
            severity=IssueSeverity.WARNING, field="grade", details={"grade": 9},
        )
        batch = ImportBatch(
            batch_id=uuid4(), school_id="school-1", uploaded_filename="roster.csv",
            status=ImportBatchStatus.READY_TO_COMMIT, conflict_policy=ConflictPolicy.UPDATE,
            rows=(
                ImportRow(1, {"name": "Ann", "grade": "9"}, RowValidationStatus.WARNING, (issue,)),
                ImportRow(2, {"name": "Bo", "grade": "1"}, RowValidationStatus.VALID),
            ),
            total_rows=2, valid_count=1, warning_count=1, content_hash="abc",
            uploaded_at=NOW, validated_at=NOW,
        )
        store.put(batch, test_actor_id)
        assert replace(store.get(ImportBatch, batch.batch_id), version=0) == batch


class TestVersioning:
    def test_update_increments_version(self, store, test_actor_id):
        student = StudentRecord(
            student_id=uuid4(), school_id="s", name="Ann", grade=1, guardian="Pat",
        )
        v1 = store.put(student, test_actor_id)
        v2 = store.put(replace(v1, grade=2), test_actor_id)
        assert (v1.version, v2.version) == (1, 2)
        assert store.get(StudentRecord, student.student_id).grade == 2

    def test_stale_snapshot_rejected(self, store, test_actor_id):
        student = StudentRecord(
            student_id=uuid4(), school_id="s", name="Ann", grade=1, guardian="Pat",
        )
        v1 = store.put(student, test_actor_id)
        store.put(replace(v1, grade=2), test_actor_id)
        with pytest.raises(ConcurrentModificationError) as exc_info:
            store.put(replace(v1, grade=3), test_actor_id)
        assert exc_info.value.retryable is True
        assert store.get(StudentRecord, student.student_id).grade == 2

    def test_duplicate_insert_is_concurrent_modification(self, session, test_actor_id):
        store = EntityStore(session)
        draft = Screening(
            screening_id=uuid4(), child_id="child-1", screening_type_id="asq-3",
            status=ScreeningStatus.IN_PROGRESS, started_at=NOW,
        )
        store.put(draft, test_actor_id)
        rival = replace(draft, screening_id=uuid4())
        with pytest.raises(ConcurrentModificationError):
            store.put(rival, test_actor_id)


class TestReads:
    def test_get_unknown(self, store):
        with pytest.raises(EntityNotFoundError):
            store.get(Screening, uuid4())

    def test_find_unknown_is_none(self, store):
        assert store.find(CaseFile, uuid4()) is None

    def test_unregistered_type(self, session):
        store = EntityStore(session)
        with pytest.raises(KeyError):
            store.find(ImportBatch, uuid4())

    def test_list_by_parent_ordered(self, store, test_actor_id):
        for name, grade in [("Cy", 1), ("Ann", 3), ("Ann", 1)]:
            store.put(
                StudentRecord(uuid4(), "school-1", name, grade, "Pat"), test_actor_id,
            )
        store.put(StudentRecord(uuid4(), "school-2", "Zed", 1, "Pat"), test_actor_id)
        listed = store.list_by_parent(StudentRecord, "school-1")
        assert [(s.name, s.grade) for s in listed] == [("Ann", 1), ("Ann", 3), ("Cy", 1)]
