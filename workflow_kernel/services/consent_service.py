"""
ConsentService -- consent requests with auto-consent and expiry.

Responsibility:
    Create consent requests, apply the waiting-period and validity rules at
    read time, and record explicit guardian decisions.

Architecture position:
    Kernel > Services.  Time comes from the injected Clock through
    PolicyClock; nothing is scheduled.

Invariants enforced:
    - A pending request older than its auto-consent window (strictly
      greater) becomes granted on the next evaluation, never denied.
    - A granted record whose ``valid_until`` has passed becomes expired on
      the next evaluation.
    - Evaluation is idempotent: a second call finds nothing to change and
      writes nothing.
    - Explicit decisions run the same evaluation first, in memory.  A
      record that has already auto-granted rejects both grant and deny,
      and the rejection writes nothing.
    - Records are never deleted.  A new request for a subject and consent
      type links the one earlier record without a successor forward via
      ``superseded_by_id``, so the history stays a single chain.

Failure modes:
    - EntityNotFoundError for an unknown consent id.
    - InvalidStateError for a decision on a non-pending record, or a new
      request while a pending or granted record of that type is open.
    - ConsentChainError when the history already has two records without
      a successor.
"""

from dataclasses import replace
from datetime import timedelta
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from workflow_kernel.domain.clock import Clock
from workflow_kernel.domain.transitions import transition
from workflow_kernel.domain.types import (
    ConsentDecision,
    ConsentRecord,
    ConsentStatus,
    ConsentType,
    EntityKind,
)
from workflow_kernel.exceptions import ConsentChainError, InvalidStateError
from workflow_kernel.logging_config import get_logger
from workflow_kernel.services.auditor_service import AuditorService
from workflow_kernel.services.base import SYSTEM_ACTOR_ID, BaseService
from workflow_kernel.services.entity_store import EntityStore

logger = get_logger("services.consent")

DEFAULT_AUTO_CONSENT_WINDOW_DAYS = 7
DEFAULT_VALIDITY_DAYS = 365

_OPEN_STATUSES = (ConsentStatus.PENDING, ConsentStatus.GRANTED)


class ConsentService(BaseService):
    """Consent lifecycle: pending -> granted | denied; granted -> expired."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        store: EntityStore | None = None,
        auditor: AuditorService | None = None,
        auto_consent_window_days: int = DEFAULT_AUTO_CONSENT_WINDOW_DAYS,
        validity_days: int = DEFAULT_VALIDITY_DAYS,
    ):
        super().__init__(session, clock, store, auditor)
        self._auto_consent_window_days = auto_consent_window_days
        self._validity_days = validity_days

    # ------------------------------------------------------------------
    # Evaluation (pure over the clock)
    # ------------------------------------------------------------------

    def _evaluate(self, record: ConsentRecord) -> list[tuple[str, ConsentRecord]]:
        """
        Policy steps due for ``record`` right now, in order.

        Each step is ``(event, record_after)``; an empty list means the
        record is up to date.
        """
        steps: list[tuple[str, ConsentRecord]] = []
        current = record
        while True:
            now = self._policy_clock.now()
            if (
                current.status == ConsentStatus.PENDING
                and self._policy_clock.has_expired(
                    current.requested_on, current.auto_consent_window_days
                )
            ):
                event = "auto_grant"
                after = replace(
                    current,
                    resolved_on=now,
                    valid_until=now + timedelta(days=self._validity_days),
                    auto_granted=True,
                )
            elif (
                current.status == ConsentStatus.GRANTED
                and current.valid_until is not None
                and self._policy_clock.has_passed(current.valid_until)
            ):
                event = "expire"
                after = current
            else:
                return steps

            result = transition(EntityKind.CONSENT, current.status, event)
            current = replace(after, status=ConsentStatus(result.next_state))
            steps.append((event, current))

    def _persist(
        self,
        before: ConsentRecord,
        after: ConsentRecord,
        event: str,
        actor_id: UUID,
    ) -> ConsentRecord:
        created = before.version == 0
        stored = self._store.put(after, actor_id)
        if created or before.status != stored.status:
            self._auditor.record_transition(
                "ConsentRecord", stored.consent_id, event,
                None if created else before.status, stored.status,
                actor_id,
                {"consent_type": stored.consent_type.value,
                 "auto_granted": stored.auto_granted},
            )
        logger.info(
            "consent_transition",
            extra={
                "consent_id": str(stored.consent_id),
                "event": event,
                "from_state": before.status.value,
                "to_state": stored.status.value,
            },
        )
        return stored

    def _apply_steps(
        self,
        record: ConsentRecord,
        steps: list[tuple[str, ConsentRecord]],
    ) -> ConsentRecord:
        current = record
        for event, after in steps:
            current = self._persist(current, replace(after, version=current.version),
                                    event, SYSTEM_ACTOR_ID)
        return current

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def request_consent(
        self,
        subject_id: str,
        consent_type: ConsentType | str,
        actor_id: UUID,
        auto_consent_window_days: int | None = None,
    ) -> ConsentRecord:
        """
        Open a new pending consent request for ``subject_id``.

        Earlier records of the same type are evaluated first.  If one is
        still pending, or granted and unexpired, the request is refused.
        Otherwise the one earlier record without a successor is linked to
        the new request through ``superseded_by_id``.

        Raises:
            ValueError: Empty subject id or non-positive window.
            InvalidStateError: An open record of this type exists.
            ConsentChainError: More than one earlier record lacks a successor.
        """
        if not subject_id:
            raise ValueError("subject_id is required")
        consent_type = ConsentType(consent_type)
        window = (
            self._auto_consent_window_days
            if auto_consent_window_days is None
            else auto_consent_window_days
        )
        if window <= 0:
            raise ValueError(f"auto_consent_window_days must be positive, got {window}")

        history = [
            record
            for record in self._store.list_by_parent(ConsentRecord, subject_id)
            if record.consent_type == consent_type
        ]
        evaluated = []
        for record in history:
            steps = self._evaluate(record)
            latest = steps[-1][1] if steps else record
            if latest.status in _OPEN_STATUSES:
                logger.warning(
                    "consent_request_rejected",
                    extra={
                        "subject_id": subject_id,
                        "consent_type": consent_type.value,
                        "open_consent_id": str(record.consent_id),
                    },
                )
                raise InvalidStateError(
                    "ConsentRecord", str(record.consent_id),
                    latest.status.value, "request",
                )
            evaluated.append((record, steps))

        refreshed = [self._apply_steps(record, steps) for record, steps in evaluated]
        heads = [record for record in refreshed if record.superseded_by_id is None]
        if len(heads) > 1:
            logger.error(
                "consent_chain_broken",
                extra={
                    "subject_id": subject_id,
                    "consent_type": consent_type.value,
                    "unsuperseded_ids": [str(r.consent_id) for r in heads],
                },
            )
            raise ConsentChainError(
                subject_id, consent_type.value, tuple(str(r.consent_id) for r in heads),
            )

        now = self._clock.now_utc()
        draft = ConsentRecord(
            consent_id=uuid4(),
            subject_id=subject_id,
            consent_type=consent_type,
            status=ConsentStatus.PENDING,
            requested_on=now,
            auto_consent_window_days=window,
        )
        created = self._persist(draft, draft, "request", actor_id)

        if heads:
            self._store.put(replace(heads[0], superseded_by_id=created.consent_id), actor_id)

        return created

    def evaluate_consent(self, consent_id: UUID) -> ConsentRecord:
        """
        Apply auto-consent and expiry as of now.

        Writes only when the status changes; calling twice in succession
        yields the same record.
        """
        record = self._store.get(ConsentRecord, consent_id)
        steps = self._evaluate(record)
        if not steps:
            return record
        return self._apply_steps(record, steps)

    def resolve_consent(
        self,
        consent_id: UUID,
        decision: ConsentDecision | str,
        actor_id: UUID,
    ) -> ConsentRecord:
        """
        Record an explicit grant or deny on a pending request.

        Raises:
            ValueError: ``decision`` is not grant or deny.
            EntityNotFoundError: Unknown consent id.
            InvalidStateError: The record, evaluated as of now, is not
                pending (including one that auto-granted).  Nothing is written.
        """
        decision = ConsentDecision(decision)
        record = self._store.get(ConsentRecord, consent_id)
        steps = self._evaluate(record)
        evaluated = steps[-1][1] if steps else record

        next_state = self._require_transition(
            EntityKind.CONSENT, consent_id, evaluated.status, decision.value,
        )

        now = self._clock.now_utc()
        resolved = replace(
            record,
            status=ConsentStatus(next_state),
            resolved_on=now,
            valid_until=(
                now + timedelta(days=self._validity_days)
                if decision == ConsentDecision.GRANT
                else None
            ),
            auto_granted=False,
        )
        return self._persist(record, resolved, decision.value, actor_id)

    def get_consent(self, consent_id: UUID) -> ConsentRecord:
        """Read a consent record, evaluated as of now."""
        return self.evaluate_consent(consent_id)

    def list_consents(self, subject_id: str) -> list[ConsentRecord]:
        """All of a subject's consent records, each evaluated as of now."""
        return [
            self.evaluate_consent(record.consent_id)
            for record in self._store.list_by_parent(ConsentRecord, subject_id)
        ]
