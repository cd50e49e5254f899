"""
Typed Exception Hierarchy for the Workflow Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (API handlers, UI adapters) must react to a rejected operation by
kind, not by parsing message text:

  - A NOT_FOUND maps to a 404.
  - An INVALID_STATE means "re-fetch and show the current state".
  - A CONCURRENT_MODIFICATION means "re-read and retry".

Every exception therefore has:
  1. A TYPED class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

Example:
    try:
        engine.finalize_case(case_id, answers, signature)
    except ChecklistIncompleteError as e:
        return {"error": e.code, "missing": list(e.missing_items)}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    WorkflowError (base)
    |
    +-- EntityNotFoundError
    |
    +-- InvalidStateError
    |   +-- ValidationFailedError
    |
    +-- UnknownEventError
    |
    +-- ConsentChainError
    |
    +-- GuardError
    |   +-- ChecklistIncompleteError
    |   +-- MissingSignatureError
    |   +-- RegressingProgressError
    |   +-- InvalidProgressError
    |   +-- DuplicateActiveScreeningError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                        | When Raised                            | Retry?
----------------------------|----------------------------------------|-------
NOT_FOUND                   | Entity id does not exist               | no
INVALID_STATE               | Operation illegal from current state   | no
VALIDATION_FAILED           | Commit of a batch that has row errors  | no
UNKNOWN_EVENT               | Event not declared for the entity kind | no
CONSENT_CHAIN_BROKEN        | Two consent records lack a successor   | no
CHECKLIST_INCOMPLETE        | Finalize with a false checklist item   | no
MISSING_SIGNATURE           | Finalize without a signature           | no
REGRESSING_PROGRESS         | Progress lower than the stored value   | no
INVALID_PROGRESS            | Progress outside 0..99 while saving    | no
DUPLICATE_ACTIVE_SCREENING  | Second open screening of the same type | no
CONCURRENT_MODIFICATION     | Write lost an optimistic-version race  | YES
IMMUTABILITY_VIOLATION      | Update/delete of an audit record       | no

Only ConcurrentModificationError sets ``retryable = True``.
"""

from typing import Any


class WorkflowError(Exception):
    """
    Base exception for all workflow kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "WORKFLOW_ERROR"
    retryable: bool = False


class EntityNotFoundError(WorkflowError):
    """Referenced entity id does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class InvalidStateError(WorkflowError):
    """Operation is not legal from the entity's current state."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        operation: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_state = current_state
        self.operation = operation
        super().__init__(
            f"Cannot {operation} {entity_type} {entity_id} "
            f"in state {current_state!r}"
        )


class ValidationFailedError(InvalidStateError):
    """
    Import batch failed validation and cannot be committed.

    Is-a InvalidStateError: the batch sits in ``failed``.  Carries the full
    validation report so the caller can correct the file and re-upload.
    """

    code: str = "VALIDATION_FAILED"

    def __init__(self, batch_id: str, current_state: str, report: Any):
        self.report = report
        super().__init__("ImportBatch", batch_id, current_state, "commit")


class UnknownEventError(WorkflowError):
    """Event is not declared for the entity kind."""

    code: str = "UNKNOWN_EVENT"

    def __init__(self, kind: str, event: str):
        self.kind = kind
        self.event = event
        super().__init__(f"Unknown event {event!r} for {kind}")


class ConsentChainError(WorkflowError):
    """
    Consent history for a subject and type is not a single chain.

    Every closed record but the newest must name its successor in
    ``superseded_by_id``; finding several without one means the history
    was written outside the service.
    """

    code: str = "CONSENT_CHAIN_BROKEN"

    def __init__(self, subject_id: str, consent_type: str, unsuperseded_ids: tuple[str, ...]):
        self.subject_id = subject_id
        self.consent_type = consent_type
        self.unsuperseded_ids = unsuperseded_ids
        super().__init__(
            f"{consent_type} consent history for {subject_id} has "
            f"{len(unsuperseded_ids)} records without a successor"
        )


# Guard-related exceptions


class GuardError(WorkflowError):
    """Base exception for domain guard violations."""

    code: str = "GUARD_ERROR"


class ChecklistIncompleteError(GuardError):
    """Finalize attempted while required checklist items are unchecked."""

    code: str = "CHECKLIST_INCOMPLETE"

    def __init__(self, case_id: str, missing_items: tuple[str, ...]):
        self.case_id = case_id
        self.missing_items = missing_items
        super().__init__(
            f"Case {case_id} checklist incomplete: {', '.join(missing_items)}"
        )


class MissingSignatureError(GuardError):
    """Finalize attempted without a signature."""

    code: str = "MISSING_SIGNATURE"

    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__(f"Case {case_id} requires a signature to close")


class RegressingProgressError(GuardError):
    """Screening progress may not decrease."""

    code: str = "REGRESSING_PROGRESS"

    def __init__(self, screening_id: str, current: int, requested: int):
        self.screening_id = screening_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Screening {screening_id} progress cannot go from "
            f"{current} to {requested}"
        )


class InvalidProgressError(GuardError):
    """Saved progress must stay within 0..99; 100 is reserved for completion."""

    code: str = "INVALID_PROGRESS"

    def __init__(self, screening_id: str, requested: int):
        self.screening_id = screening_id
        self.requested = requested
        super().__init__(
            f"Screening {screening_id} progress {requested} is outside 0..99"
        )


class DuplicateActiveScreeningError(GuardError):
    """An in-progress screening of the same type already exists for the child."""

    code: str = "DUPLICATE_ACTIVE_SCREENING"

    def __init__(self, child_id: str, screening_type_id: str, existing_id: str):
        self.child_id = child_id
        self.screening_type_id = screening_type_id
        self.existing_id = existing_id
        super().__init__(
            f"Child {child_id} already has an open {screening_type_id} "
            f"screening: {existing_id}"
        )


# Concurrency-related exceptions


class ConcurrencyError(WorkflowError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """Write lost an optimistic-version race; re-read and retry."""

    code: str = "CONCURRENT_MODIFICATION"
    retryable: bool = True

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent modification on {entity_type} {entity_id}: "
            "entity was modified by another writer"
        )


# Immutability-related exceptions


class ImmutabilityError(WorkflowError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
