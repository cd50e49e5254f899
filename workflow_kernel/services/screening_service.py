"""
ScreeningService -- resumable developmental screenings.

Responsibility:
    Start, save, complete and abandon screenings, and report SLA breaches.

Architecture position:
    Kernel > Services.  Writes through EntityStore, audits through
    AuditorService.

Invariants enforced:
    - Progress is non-decreasing while in progress, and stays in 0..99
      until completion; completion sets it to 100.
    - Responses are merged on save (new keys overwrite) and frozen once the
      screening completes or is abandoned.
    - One in-progress screening per (child, screening type).  Checked up
      front; a concurrent start that slips past the check loses at the
      partial unique index and surfaces as ConcurrentModificationError.

Failure modes:
    - EntityNotFoundError, InvalidStateError, RegressingProgressError,
      InvalidProgressError, DuplicateActiveScreeningError.
"""

from dataclasses import replace
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from workflow_kernel.domain.clock import Clock
from workflow_kernel.domain.types import (
    EntityKind,
    Screening,
    ScreeningSla,
    ScreeningStatus,
)
from workflow_kernel.exceptions import (
    DuplicateActiveScreeningError,
    InvalidProgressError,
    RegressingProgressError,
)
from workflow_kernel.logging_config import get_logger
from workflow_kernel.models.screening import ScreeningModel
from workflow_kernel.services.auditor_service import AuditorService
from workflow_kernel.services.base import BaseService
from workflow_kernel.services.entity_store import EntityStore

logger = get_logger("services.screening")

DEFAULT_SLA_DAYS = 30


class ScreeningService(BaseService):
    """Screening lifecycle: not_started -> in_progress -> completed | abandoned."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        store: EntityStore | None = None,
        auditor: AuditorService | None = None,
        sla_days: int = DEFAULT_SLA_DAYS,
    ):
        super().__init__(session, clock, store, auditor)
        self._sla_days = sla_days

    def _open_screening_id(self, child_id: str, screening_type_id: str) -> UUID | None:
        return self.session.scalar(
            select(ScreeningModel.id).where(
                ScreeningModel.child_id == child_id,
                ScreeningModel.screening_type_id == screening_type_id,
                ScreeningModel.status == ScreeningStatus.IN_PROGRESS.value,
            )
        )

    def _store_transition(
        self,
        before: Screening,
        after: Screening,
        event: str,
        actor_id: UUID,
        details: dict[str, Any] | None = None,
    ) -> Screening:
        stored = self._store.put(after, actor_id)
        self._auditor.record_transition(
            "Screening", stored.screening_id, event,
            before.status, stored.status, actor_id, details,
        )
        logger.info(
            "screening_transition",
            extra={
                "screening_id": str(stored.screening_id),
                "event": event,
                "from_state": before.status.value,
                "to_state": stored.status.value,
                "progress_percent": stored.progress_percent,
            },
        )
        return stored

    def start_screening(
        self, child_id: str, screening_type_id: str, actor_id: UUID,
    ) -> Screening:
        """
        Start a new screening for ``child_id``.

        Raises:
            ValueError: Empty child or screening type id.
            DuplicateActiveScreeningError: An in-progress screening of the
                same type already exists for the child.
        """
        if not child_id or not screening_type_id:
            raise ValueError("child_id and screening_type_id are required")

        existing_id = self._open_screening_id(child_id, screening_type_id)
        if existing_id is not None:
            logger.warning(
                "duplicate_active_screening",
                extra={"child_id": child_id, "existing_id": str(existing_id)},
            )
            raise DuplicateActiveScreeningError(
                child_id, screening_type_id, str(existing_id),
            )

        draft = Screening(
            screening_id=uuid4(),
            child_id=child_id,
            screening_type_id=screening_type_id,
            status=ScreeningStatus.NOT_STARTED,
        )
        next_state = self._require_transition(
            EntityKind.SCREENING, draft.screening_id, draft.status, "start",
        )
        started = replace(
            draft,
            status=ScreeningStatus(next_state),
            progress_percent=0,
            started_at=self._clock.now_utc(),
        )
        return self._store_transition(draft, started, "start", actor_id)

    def save_progress(
        self,
        screening_id: UUID,
        responses: dict[str, Any],
        progress_percent: int,
        actor_id: UUID,
    ) -> Screening:
        """
        Merge ``responses`` into the screening and move progress forward.

        Raises:
            EntityNotFoundError: Unknown screening.
            InvalidStateError: Screening is not in progress.
            InvalidProgressError: ``progress_percent`` outside 0..99.
            RegressingProgressError: ``progress_percent`` below the stored value.
        """
        current = self._store.get(Screening, screening_id)
        next_state = self._require_transition(
            EntityKind.SCREENING, screening_id, current.status, "save",
        )

        if not 0 <= progress_percent < 100:
            raise InvalidProgressError(str(screening_id), progress_percent)
        if progress_percent < current.progress_percent:
            logger.warning(
                "screening_progress_regressed",
                extra={
                    "screening_id": str(screening_id),
                    "current": current.progress_percent,
                    "requested": progress_percent,
                },
            )
            raise RegressingProgressError(
                str(screening_id), current.progress_percent, progress_percent,
            )

        saved = replace(
            current,
            status=ScreeningStatus(next_state),
            responses={**current.responses, **responses},
            progress_percent=progress_percent,
        )
        return self._store_transition(
            current, saved, "save", actor_id,
            {"progress_percent": progress_percent},
        )

    def complete_screening(
        self,
        screening_id: UUID,
        final_responses: dict[str, Any],
        actor_id: UUID,
    ) -> Screening:
        """
        Complete the screening: progress 100, completed_at stamped,
        responses frozen from here on.

        Raises:
            EntityNotFoundError: Unknown screening.
            InvalidStateError: Screening is not in progress.
        """
        current = self._store.get(Screening, screening_id)
        next_state = self._require_transition(
            EntityKind.SCREENING, screening_id, current.status, "complete",
        )
        completed = replace(
            current,
            status=ScreeningStatus(next_state),
            responses={**current.responses, **final_responses},
            progress_percent=100,
            completed_at=self._clock.now_utc(),
        )
        return self._store_transition(current, completed, "complete", actor_id)

    def abandon_screening(self, screening_id: UUID, actor_id: UUID) -> Screening:
        """Abandon an in-progress screening; frees the child's slot for the type."""
        current = self._store.get(Screening, screening_id)
        next_state = self._require_transition(
            EntityKind.SCREENING, screening_id, current.status, "abandon",
        )
        abandoned = replace(
            current,
            status=ScreeningStatus(next_state),
            abandoned_at=self._clock.now_utc(),
        )
        return self._store_transition(current, abandoned, "abandon", actor_id)

    def get_screening(self, screening_id: UUID) -> Screening:
        return self._store.get(Screening, screening_id)

    def list_screenings(self, child_id: str) -> list[Screening]:
        return self._store.list_by_parent(Screening, child_id)

    def check_screening_sla(self, screening_id: UUID) -> ScreeningSla:
        """
        Days since the screening started, and whether an open screening has
        run past the SLA.  Computed at call time; nothing is written.
        """
        screening = self._store.get(Screening, screening_id)
        started = screening.started_at
        elapsed = self._policy_clock.elapsed_days(started) if started else 0
        breached = (
            screening.is_open
            and started is not None
            and self._policy_clock.has_expired(started, self._sla_days)
        )
        return ScreeningSla(
            screening_id=screening.screening_id,
            elapsed_days=elapsed,
            sla_days=self._sla_days,
            breached=breached,
        )
