"""
Transition table (``workflow_kernel.domain.transitions``).

Responsibility
--------------
Declares, per entity kind, which events are legal from which state and
where they lead.  ``transition()`` is the single lookup: pure, total over
the declared events, no clock and no I/O.  *When* a move is allowed
(waiting periods, checklists, progress guards) is decided by the services
on top of this table.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``models/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
* ``granted --deny--> denied`` is not declared: an explicit denial cannot
  revert a grant, auto-consent grants included.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from workflow_kernel.domain.types import (
    CaseStatus,
    ConsentStatus,
    EntityKind,
    ImportBatchStatus,
    ScreeningStatus,
)
from workflow_kernel.exceptions import InvalidStateError, UnknownEventError


@dataclass(frozen=True)
class Transition:
    """A valid state transition.  Contract: frozen."""
    from_state: str
    to_state: str
    event: str


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for one entity kind.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``.
    """
    name: str
    entity_type: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"{self.name}: initial state {self.initial_state!r} not in states"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(f"{self.name}: transition {t} references unknown state")
            if t.from_state in self.terminal_states:
                raise ValueError(f"{self.name}: terminal state {t.from_state!r} has exits")

    @property
    def events(self) -> frozenset[str]:
        return frozenset(t.event for t in self.transitions)

    def find(self, from_state: str, event: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.event == event:
                return t
        return None


def _t(from_state: Enum, event: str, to_state: Enum) -> Transition:
    return Transition(from_state=from_state.value, to_state=to_state.value, event=event)


def _states(enum_type: type[Enum]) -> tuple[str, ...]:
    return tuple(member.value for member in enum_type)


# =========================================================================
# Tables
# =========================================================================

SCREENING_WORKFLOW = Workflow(
    name="screening",
    entity_type="Screening",
    initial_state=ScreeningStatus.NOT_STARTED.value,
    states=_states(ScreeningStatus),
    transitions=(
        _t(ScreeningStatus.NOT_STARTED, "start", ScreeningStatus.IN_PROGRESS),
        _t(ScreeningStatus.IN_PROGRESS, "save", ScreeningStatus.IN_PROGRESS),
        _t(ScreeningStatus.IN_PROGRESS, "complete", ScreeningStatus.COMPLETED),
        _t(ScreeningStatus.IN_PROGRESS, "abandon", ScreeningStatus.ABANDONED),
    ),
    terminal_states=(ScreeningStatus.COMPLETED.value, ScreeningStatus.ABANDONED.value),
)

CONSENT_WORKFLOW = Workflow(
    name="consent",
    entity_type="ConsentRecord",
    initial_state=ConsentStatus.PENDING.value,
    states=_states(ConsentStatus),
    transitions=(
        _t(ConsentStatus.PENDING, "grant", ConsentStatus.GRANTED),
        _t(ConsentStatus.PENDING, "deny", ConsentStatus.DENIED),
        _t(ConsentStatus.PENDING, "auto_grant", ConsentStatus.GRANTED),
        _t(ConsentStatus.GRANTED, "expire", ConsentStatus.EXPIRED),
    ),
    terminal_states=(ConsentStatus.DENIED.value, ConsentStatus.EXPIRED.value),
)

IMPORT_BATCH_WORKFLOW = Workflow(
    name="import_batch",
    entity_type="ImportBatch",
    initial_state=ImportBatchStatus.VALIDATING.value,
    states=_states(ImportBatchStatus),
    transitions=(
        _t(ImportBatchStatus.VALIDATING, "validated", ImportBatchStatus.READY_TO_COMMIT),
        _t(ImportBatchStatus.VALIDATING, "validation_failed", ImportBatchStatus.FAILED),
        _t(ImportBatchStatus.READY_TO_COMMIT, "revalidate", ImportBatchStatus.READY_TO_COMMIT),
        _t(ImportBatchStatus.READY_TO_COMMIT, "revalidation_failed", ImportBatchStatus.FAILED),
        _t(ImportBatchStatus.READY_TO_COMMIT, "commit", ImportBatchStatus.COMMITTING),
        _t(ImportBatchStatus.COMMITTING, "committed", ImportBatchStatus.COMMITTED),
        _t(ImportBatchStatus.COMMITTING, "commit_failed", ImportBatchStatus.FAILED),
    ),
    terminal_states=(ImportBatchStatus.COMMITTED.value, ImportBatchStatus.FAILED.value),
)

CASE_FILE_WORKFLOW = Workflow(
    name="case_file",
    entity_type="CaseFile",
    initial_state=CaseStatus.ACTIVE.value,
    states=_states(CaseStatus),
    transitions=(
        _t(CaseStatus.ACTIVE, "choose_closure", CaseStatus.PENDING_CLOSURE),
        _t(CaseStatus.PENDING_CLOSURE, "record_checklist", CaseStatus.PENDING_CLOSURE),
        _t(CaseStatus.PENDING_CLOSURE, "finalize", CaseStatus.CLOSED),
    ),
    terminal_states=(CaseStatus.CLOSED.value,),
)

WORKFLOWS: dict[EntityKind, Workflow] = {
    EntityKind.SCREENING: SCREENING_WORKFLOW,
    EntityKind.CONSENT: CONSENT_WORKFLOW,
    EntityKind.IMPORT_BATCH: IMPORT_BATCH_WORKFLOW,
    EntityKind.CASE_FILE: CASE_FILE_WORKFLOW,
}


# =========================================================================
# Lookup
# =========================================================================


class RejectionReason(str, Enum):
    UNKNOWN_EVENT = "unknown_event"
    ILLEGAL_TRANSITION = "illegal_transition"


@dataclass(frozen=True)
class Accepted:
    next_state: str

    @property
    def accepted(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected:
    reason: RejectionReason
    current_state: str
    event: str

    @property
    def accepted(self) -> bool:
        return False


TransitionResult = Accepted | Rejected


def _value(state: str | Enum) -> str:
    # str-valued enums hash by member name, so normalize before lookups
    return state.value if isinstance(state, Enum) else state


def workflow_for(kind: EntityKind | str) -> Workflow:
    return WORKFLOWS[EntityKind(_value(kind))]


def transition(kind: EntityKind | str, current_state: str | Enum, event: str) -> TransitionResult:
    """Look up ``event`` from ``current_state`` in the table for ``kind``.

    Returns ``Accepted(next_state)`` for a declared move.  Otherwise returns
    ``Rejected`` with ``unknown_event`` when the event is not declared for
    the kind at all, or ``illegal_transition`` when it is declared but not
    from this state.  Never raises for a known kind.
    """
    workflow = workflow_for(kind)
    state = _value(current_state)
    if event not in workflow.events:
        return Rejected(RejectionReason.UNKNOWN_EVENT, state, event)
    found = workflow.find(state, event)
    if found is None:
        return Rejected(RejectionReason.ILLEGAL_TRANSITION, state, event)
    return Accepted(found.to_state)


def require_transition(
    kind: EntityKind | str,
    entity_id: object,
    current_state: str | Enum,
    event: str,
) -> str:
    """``transition()`` that raises on rejection; returns the next state.

    Raises:
        UnknownEventError: event not declared for the kind.
        InvalidStateError: event illegal from ``current_state``.
    """
    workflow = workflow_for(kind)
    result = transition(kind, current_state, event)
    if isinstance(result, Accepted):
        return result.next_state
    if result.reason == RejectionReason.UNKNOWN_EVENT:
        raise UnknownEventError(workflow.name, event)
    raise InvalidStateError(
        workflow.entity_type, str(entity_id), result.current_state, event,
    )


def is_terminal(kind: EntityKind | str, state: str | Enum) -> bool:
    return _value(state) in workflow_for(kind).terminal_states
