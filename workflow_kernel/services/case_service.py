"""
CaseService -- discharge / case-closure workflow.

Responsibility:
    Open cases, choose a closure type, track the closure checklist, and
    finalize (close) a case once every item is done and it is signed.

Architecture position:
    Kernel > Services.  The checklist per closure type is supplied by the
    caller (the engine reads it from configuration).

Invariants enforced:
    - A case closes only with every checklist item true and a non-empty
      signature.  The checklist is checked before the signature.
    - Closed is terminal.  Reactivation opens a new case that points back
      at the closed one through ``predecessor_case_id``.
    - A rejected finalize writes nothing: the case stays pending_closure
      with its previously recorded checklist.
"""

from collections.abc import Mapping
from dataclasses import replace
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from workflow_kernel.domain.clock import Clock
from workflow_kernel.domain.types import CaseFile, CaseStatus, ClosureType, EntityKind
from workflow_kernel.exceptions import (
    ChecklistIncompleteError,
    InvalidStateError,
    MissingSignatureError,
)
from workflow_kernel.logging_config import get_logger
from workflow_kernel.services.auditor_service import AuditorService
from workflow_kernel.services.base import BaseService
from workflow_kernel.services.entity_store import EntityStore

logger = get_logger("services.case")


class CaseService(BaseService):
    """Case lifecycle: active -> pending_closure -> closed."""

    def __init__(
        self,
        session: Session,
        checklists: Mapping[ClosureType, tuple[str, ...]],
        clock: Clock | None = None,
        store: EntityStore | None = None,
        auditor: AuditorService | None = None,
    ):
        super().__init__(session, clock, store, auditor)
        self._checklists = {ClosureType(k): tuple(v) for k, v in checklists.items()}

    def _store_transition(
        self,
        before: CaseFile | None,
        after: CaseFile,
        event: str,
        actor_id: UUID,
    ) -> CaseFile:
        stored = self._store.put(after, actor_id)
        from_state = before.status if before is not None else None
        self._auditor.record_transition(
            "CaseFile", stored.case_id, event, from_state, stored.status, actor_id,
            {"closure_type": stored.closure_type.value} if stored.closure_type else None,
        )
        logger.info(
            "case_transition",
            extra={
                "case_id": str(stored.case_id),
                "event": event,
                "from_state": from_state.value if from_state else None,
                "to_state": stored.status.value,
            },
        )
        return stored

    def _merge_answers(self, case: CaseFile, answers: Mapping[str, bool]) -> dict[str, bool]:
        unknown = sorted(set(answers) - set(case.checklist))
        if unknown:
            raise ValueError(
                f"Unknown checklist items for case {case.case_id}: {', '.join(unknown)}"
            )
        return {**case.checklist, **{k: bool(v) for k, v in answers.items()}}

    def open_case(self, subject_id: str, actor_id: UUID) -> CaseFile:
        if not subject_id:
            raise ValueError("subject_id is required")
        case = CaseFile(
            case_id=uuid4(),
            subject_id=subject_id,
            status=CaseStatus.ACTIVE,
            opened_at=self._clock.now_utc(),
        )
        return self._store_transition(None, case, "open", actor_id)

    def advance_case(
        self, case_id: UUID, closure_type: ClosureType | str, actor_id: UUID,
    ) -> CaseFile:
        """
        Choose how the case will close and start its checklist.

        Every item required for ``closure_type`` starts out unchecked.
        """
        closure_type = ClosureType(closure_type)
        case = self._store.get(CaseFile, case_id)
        next_state = self._require_transition(
            EntityKind.CASE_FILE, case_id, case.status, "choose_closure",
        )
        pending = replace(
            case,
            status=CaseStatus(next_state),
            closure_type=closure_type,
            checklist={item: False for item in self._checklists[closure_type]},
        )
        return self._store_transition(case, pending, "choose_closure", actor_id)

    def record_checklist(
        self, case_id: UUID, answers: Mapping[str, bool], actor_id: UUID,
    ) -> CaseFile:
        """Save checklist progress without closing.

        Raises:
            InvalidStateError: Case is not pending closure.
            ValueError: ``answers`` names an item not on the checklist.
        """
        case = self._store.get(CaseFile, case_id)
        next_state = self._require_transition(
            EntityKind.CASE_FILE, case_id, case.status, "record_checklist",
        )
        updated = replace(
            case,
            status=CaseStatus(next_state),
            checklist=self._merge_answers(case, answers),
        )
        return self._store_transition(case, updated, "record_checklist", actor_id)

    def finalize_case(
        self,
        case_id: UUID,
        checklist_answers: Mapping[str, bool],
        signature: str | None,
        actor_id: UUID,
    ) -> CaseFile:
        """
        Close the case.

        ``checklist_answers`` are merged over the recorded checklist before
        the check; they are saved only if the case closes.

        Raises:
            InvalidStateError: Case is not pending closure.
            ValueError: ``checklist_answers`` names an unknown item.
            ChecklistIncompleteError: Any item is still false.
            MissingSignatureError: ``signature`` is empty or blank.
        """
        case = self._store.get(CaseFile, case_id)
        next_state = self._require_transition(
            EntityKind.CASE_FILE, case_id, case.status, "finalize",
        )
        checklist = self._merge_answers(case, checklist_answers)

        missing = tuple(sorted(item for item, done in checklist.items() if not done))
        if missing:
            logger.warning(
                "case_finalize_rejected",
                extra={"case_id": str(case_id), "missing_items": list(missing)},
            )
            raise ChecklistIncompleteError(str(case_id), missing)

        signature = (signature or "").strip()
        if not signature:
            logger.warning(
                "case_finalize_rejected",
                extra={"case_id": str(case_id), "missing_items": ["signature"]},
            )
            raise MissingSignatureError(str(case_id))

        closed = replace(
            case,
            status=CaseStatus(next_state),
            checklist=checklist,
            signature=signature,
            closed_at=self._clock.now_utc(),
        )
        return self._store_transition(case, closed, "finalize", actor_id)

    def reactivate_case(self, case_id: UUID, actor_id: UUID) -> CaseFile:
        """
        Open a new active case continuing a closed one.

        The closed case is left untouched.

        Raises:
            InvalidStateError: The case is not closed.
        """
        case = self._store.get(CaseFile, case_id)
        if case.status != CaseStatus.CLOSED:
            logger.warning(
                "case_reactivation_rejected",
                extra={"case_id": str(case_id), "current_state": case.status.value},
            )
            raise InvalidStateError("CaseFile", str(case_id), case.status.value, "reactivate")

        successor = CaseFile(
            case_id=uuid4(),
            subject_id=case.subject_id,
            status=CaseStatus.ACTIVE,
            opened_at=self._clock.now_utc(),
            predecessor_case_id=case.case_id,
        )
        return self._store_transition(None, successor, "reactivate", actor_id)

    def get_case(self, case_id: UUID) -> CaseFile:
        return self._store.get(CaseFile, case_id)

    def list_cases(self, subject_id: str) -> list[CaseFile]:
        return self._store.list_by_parent(CaseFile, subject_id)
