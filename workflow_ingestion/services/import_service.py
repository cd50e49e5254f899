"""
Import service: upload -> validate -> commit for bulk student rows.

Orchestrates the validation pipeline, the student promoter and the entity
store.  Uses structured logging (LogContext, get_logger("ingestion.*")).

Invariants enforced:
    - A batch is validated in the same call that creates it, so it is never
      observable in ``validating``.
    - Only a batch with ``error_count == 0`` reaches ``ready_to_commit``, and
      only ``ready_to_commit`` batches can be committed.
    - Commit writes every roster change inside one SAVEPOINT.  If any row
      write fails, all of them are rolled back and the batch ends ``failed``
      with ``failure_reason``; nothing it wrote to the roster survives.
    - A ConcurrentModificationError during commit is re-raised instead, so
      the caller can roll back and retry.
    - Committed and failed batches are terminal.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping, Sequence
from dataclasses import replace
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from workflow_kernel.domain.clock import Clock
from workflow_kernel.domain.types import EntityKind, StudentRecord
from workflow_kernel.exceptions import (
    ConcurrentModificationError,
    ValidationFailedError,
    WorkflowError,
)
from workflow_kernel.logging_config import LogContext, get_logger
from workflow_kernel.services.auditor_service import AuditorService
from workflow_kernel.services.base import BaseService
from workflow_kernel.services.entity_store import EntityStore

from workflow_ingestion.domain.types import (
    ConflictPolicy,
    ImportBatch,
    ImportBatchStatus,
    ImportRow,
    ImportRules,
    RowOutcome,
    ValidationReport,
)
from workflow_ingestion.domain.validators import normalized_key, record_key, validate_batch
from workflow_ingestion.models import ingestion_model_registry
from workflow_ingestion.promoters.student import StudentPromoter

logger = get_logger("ingestion.import_service")


# Cell values a JSON column gives back unchanged.
CELL_TYPES = (str, int, float, bool, type(None))


def check_cells(row_index: int, fields: Mapping[str, Any]) -> None:
    """Raise ValueError for a key or cell value that would not read back as uploaded."""
    for key, value in fields.items():
        if type(key) is not str:
            raise ValueError(f"Row {row_index}: field name {key!r} is not a string")
        if type(value) not in CELL_TYPES:
            raise ValueError(
                f"Row {row_index}: field {key!r} holds {type(value).__name__}; "
                "convert cells to str, int, float, bool or None before upload"
            )


def content_hash(rows: Sequence[ImportRow]) -> str:
    """SHA-256 over the canonical JSON of the rows; identifies re-uploads."""
    canonical = json.dumps(
        [{"row_index": r.row_index, "fields": r.fields} for r in rows],
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class ImportService(BaseService):
    """Bulk student import: validating -> ready_to_commit -> committing -> committed."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        store: EntityStore | None = None,
        auditor: AuditorService | None = None,
        rules: ImportRules | None = None,
    ):
        super().__init__(
            session,
            clock,
            store or EntityStore(session, ingestion_model_registry()),
            auditor,
        )
        self._rules = rules or ImportRules()
        self._promoter = StudentPromoter(self._rules)

    def _record(
        self,
        before: ImportBatch | None,
        after: ImportBatch,
        event: str,
        actor_id: UUID,
        details: dict[str, Any] | None = None,
    ) -> None:
        from_state = before.status if before is not None else None
        self._auditor.record_transition(
            "ImportBatch", after.batch_id, event, from_state, after.status,
            actor_id, details,
        )
        logger.info(
            "import_batch_transition",
            extra={
                "event": event,
                "from_state": from_state.value if from_state else None,
                "to_state": after.status.value,
            },
        )

    # ------------------------------------------------------------------
    # Upload and validation
    # ------------------------------------------------------------------

    def upload_import(
        self,
        school_id: str,
        uploaded_filename: str,
        rows: Sequence[Mapping[str, Any]],
        conflict_policy: ConflictPolicy | str,
        actor_id: UUID,
    ) -> ImportBatch:
        """
        Create a batch from already-parsed rows and validate it.

        Rows are numbered from 1 in the order given.  The returned batch is
        ``ready_to_commit`` or ``failed``.

        Raises:
            ValueError: Empty school id or filename, unknown conflict policy,
                a row that is not a mapping, or a cell that is not a plain
                JSON scalar (dates and Decimals must be converted first).
        """
        if not school_id or not uploaded_filename:
            raise ValueError("school_id and uploaded_filename are required")
        conflict_policy = ConflictPolicy(conflict_policy)
        import_rows = []
        for index, fields in enumerate(rows, start=1):
            if not isinstance(fields, Mapping):
                raise ValueError(f"Row {index} is not a mapping of field -> value")
            check_cells(index, fields)
            import_rows.append(ImportRow(row_index=index, fields=dict(fields)))

        batch_id = uuid4()
        with LogContext.bind(
            correlation_id=str(batch_id), producer="ingestion", actor_id=str(actor_id),
        ):
            draft = ImportBatch(
                batch_id=batch_id,
                school_id=school_id,
                uploaded_filename=uploaded_filename,
                status=ImportBatchStatus.VALIDATING,
                conflict_policy=conflict_policy,
                rows=tuple(import_rows),
                total_rows=len(import_rows),
                content_hash=content_hash(import_rows),
                uploaded_at=self._clock.now_utc(),
            )
            created = self._store.put(draft, actor_id)
            self._record(
                None, created, "upload", actor_id,
                {"uploaded_filename": uploaded_filename, "total_rows": len(import_rows),
                 "content_hash": created.content_hash},
            )
            logger.info(
                "batch_uploaded",
                extra={
                    "school_id": school_id,
                    "uploaded_filename": uploaded_filename,
                    "total_rows": len(import_rows),
                },
            )

            self._validate(created, actor_id)
            return self._store.get(ImportBatch, batch_id)

    def validate_import(self, batch_id: UUID, actor_id: UUID) -> ValidationReport:
        """
        Run the validation pipeline against the current roster.

        Stores the report on the batch and moves it to ``ready_to_commit``
        (no errors) or ``failed``.

        Raises:
            EntityNotFoundError: Unknown batch.
            InvalidStateError: Batch is past validation.
        """
        batch = self._store.get(ImportBatch, batch_id)
        with LogContext.bind(
            correlation_id=str(batch_id), producer="ingestion", actor_id=str(actor_id),
        ):
            return self._validate(batch, actor_id)

    def _validate(self, batch: ImportBatch, actor_id: UUID) -> ValidationReport:
        first_pass = batch.status == ImportBatchStatus.VALIDATING
        ok_event = "validated" if first_pass else "revalidate"
        fail_event = "validation_failed" if first_pass else "revalidation_failed"
        self._require_transition(EntityKind.IMPORT_BATCH, batch.batch_id, batch.status, ok_event)

        existing = self._store.list_by_parent(StudentRecord, batch.school_id)
        report = validate_batch(batch.rows, existing, self._rules)

        event = fail_event if report.has_errors else ok_event
        next_state = self._require_transition(
            EntityKind.IMPORT_BATCH, batch.batch_id, batch.status, event,
        )
        by_index = {r.row_index: r for r in report.rows}
        validated = replace(
            batch,
            status=ImportBatchStatus(next_state),
            rows=tuple(row.with_report(by_index[row.row_index]) for row in batch.rows),
            total_rows=report.total_rows,
            valid_count=report.valid_count,
            warning_count=report.warning_count,
            error_count=report.error_count,
            duplicate_count=report.duplicate_count,
            failure_reason=(
                f"{report.error_count} row(s) failed validation" if report.has_errors else None
            ),
            validated_at=self._clock.now_utc(),
        )
        stored = self._store.put(validated, actor_id)
        self._record(
            batch, stored, event, actor_id,
            {"valid_count": report.valid_count, "warning_count": report.warning_count,
             "error_count": report.error_count, "duplicate_count": report.duplicate_count},
        )
        logger.info(
            "batch_validated",
            extra={
                "total_rows": report.total_rows,
                "valid_count": report.valid_count,
                "warning_count": report.warning_count,
                "error_count": report.error_count,
                "duplicate_count": report.duplicate_count,
            },
        )
        return report

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def commit_import(self, batch_id: UUID, actor_id: UUID) -> ImportBatch:
        """
        Write the batch's rows to the roster under its conflict policy.

        Rows are applied in index order.  ``skip`` leaves a matching record
        untouched; ``update`` overwrites it with the row.  A row write failure
        rolls back every roster write of this commit and returns the batch
        in ``failed`` with ``failure_reason``.  A lost concurrent roster
        write is the exception: its ConcurrentModificationError propagates
        after the SAVEPOINT rollback, and the caller rolls back and retries.

        Raises:
            EntityNotFoundError: Unknown batch.
            ValidationFailedError: Batch failed validation (carries the report).
            InvalidStateError: Batch is not ready_to_commit.
            ConcurrentModificationError: A roster record changed underneath
                the commit (retryable).
        """
        batch = self._store.get(ImportBatch, batch_id)
        with LogContext.bind(
            correlation_id=str(batch_id), producer="ingestion", actor_id=str(actor_id),
        ):
            if batch.status == ImportBatchStatus.FAILED and batch.error_count > 0:
                logger.warning(
                    "commit_rejected_validation_failed",
                    extra={"error_count": batch.error_count},
                )
                raise ValidationFailedError(str(batch_id), batch.status.value, batch.report)
            next_state = self._require_transition(
                EntityKind.IMPORT_BATCH, batch_id, batch.status, "commit",
            )

            # Flushing the status change opens the outer transaction before
            # the SAVEPOINT (required for SAVEPOINT semantics on pysqlite).
            committing = self._store.put(
                replace(batch, status=ImportBatchStatus(next_state)), actor_id,
            )
            self._record(batch, committing, "commit", actor_id)

            try:
                with self.session.begin_nested():
                    rows = self._write_students(committing, actor_id)
            except ConcurrentModificationError:
                # Retryable: the SAVEPOINT is gone, the caller rolls back the
                # committing status and may commit the batch again.
                logger.warning("batch_commit_lost_race", exc_info=True)
                raise
            except (SQLAlchemyError, WorkflowError, ValueError) as exc:
                logger.error(
                    "batch_commit_failed",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                next_state = self._require_transition(
                    EntityKind.IMPORT_BATCH, batch_id, committing.status, "commit_failed",
                )
                failed = self._store.put(
                    replace(
                        committing,
                        status=ImportBatchStatus(next_state),
                        failure_reason=f"{type(exc).__name__}: {exc}",
                    ),
                    actor_id,
                )
                self._record(
                    committing, failed, "commit_failed", actor_id,
                    {"failure_reason": failed.failure_reason},
                )
                return failed

            next_state = self._require_transition(
                EntityKind.IMPORT_BATCH, batch_id, committing.status, "committed",
            )
            committed = self._store.put(
                replace(
                    committing,
                    status=ImportBatchStatus(next_state),
                    rows=rows,
                    committed_at=self._clock.now_utc(),
                ),
                actor_id,
            )
            outcomes = {o.value: sum(1 for r in rows if r.outcome == o) for o in RowOutcome}
            self._record(committing, committed, "committed", actor_id, outcomes)
            logger.info("batch_committed", extra=outcomes)
            return committed

    def _write_students(self, batch: ImportBatch, actor_id: UUID) -> tuple[ImportRow, ...]:
        """Apply each row to the roster; returns the rows with their outcomes."""
        by_key: dict[tuple[str, ...], StudentRecord] = {}
        for record in self._store.list_by_parent(StudentRecord, batch.school_id):
            key = record_key(record, self._rules)
            if key is not None:
                by_key.setdefault(key, record)

        written: list[ImportRow] = []
        for row in sorted(batch.rows, key=lambda r: r.row_index):
            key = normalized_key(row.fields, self._rules)
            result = self._promoter.promote(
                row.fields,
                batch.school_id,
                batch.batch_id,
                by_key.get(key) if key is not None else None,
                batch.conflict_policy,
            )
            if result.record is not None:
                stored = self._store.put(result.record, actor_id)
                if key is not None:
                    by_key[key] = stored
            logger.debug(
                "row_committed",
                extra={"row_index": row.row_index, "outcome": result.outcome.value},
            )
            written.append(replace(row, outcome=result.outcome))
        return tuple(written)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_import_batch(self, batch_id: UUID) -> ImportBatch:
        return self._store.get(ImportBatch, batch_id)

    def list_import_batches(self, school_id: str) -> list[ImportBatch]:
        return self._store.list_by_parent(ImportBatch, school_id)

    def list_students(self, school_id: str) -> list[StudentRecord]:
        return self._store.list_by_parent(StudentRecord, school_id)
