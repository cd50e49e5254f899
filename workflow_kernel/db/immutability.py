"""
ORM-level immutability enforcement.

Two classes of record are protected here:

  * Append-only records (WorkflowAuditEvent): never updated, never deleted.
  * Terminal-state records: once a row has been flushed in a terminal status
    (completed screening, closed case, committed or failed import batch)
    no further UPDATE is accepted.  The transition INTO the terminal status
    is allowed; anything after it is not.

SQLAlchemy fires ``before_update`` / ``before_delete`` before the SQL is
sent, so a violation aborts the flush and the database is never touched:

    session.flush()
         |
         v
    [before_update] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Usage:

    from workflow_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent

Packages that own other terminal-state models protect them with
``protect_terminal_states(model, entity_type, states)``.
"""

from sqlalchemy import event
from sqlalchemy.orm import object_session
from sqlalchemy.orm.attributes import get_history

from workflow_kernel.exceptions import ImmutabilityViolationError
from workflow_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# (model, event name) -> listener, for unregister
_registered: dict[tuple[type, str], object] = {}


def _block(entity_type: str, target, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_audit_event_update(mapper, connection, target):
    _block("WorkflowAuditEvent", target, "UPDATE", "Audit events cannot be modified")


def _check_audit_event_delete(mapper, connection, target):
    _block("WorkflowAuditEvent", target, "DELETE", "Audit events cannot be deleted")


def _status_before_flush(target) -> str:
    history = get_history(target, "status")
    if history.deleted:
        return history.deleted[0]
    return target.status


def _terminal_update_check(entity_type: str, terminal_states: frozenset[str]):
    def check(mapper, connection, target):
        session = object_session(target)
        if session is not None and not session.is_modified(target):
            return
        previous = _status_before_flush(target)
        if previous in terminal_states:
            _block(
                entity_type, target, "UPDATE",
                f"{entity_type} in terminal state {previous!r} cannot be modified",
            )

    return check


def _terminal_delete_check(entity_type: str):
    def check(mapper, connection, target):
        _block(entity_type, target, "DELETE", f"{entity_type} records cannot be deleted")

    return check


def _listen(model: type, event_name: str, listener) -> None:
    key = (model, event_name)
    if key in _registered:
        return
    event.listen(model, event_name, listener)
    _registered[key] = listener


def protect_terminal_states(model: type, entity_type: str, terminal_states) -> None:
    """Refuse UPDATE of ``model`` rows already flushed in a terminal status,
    and refuse DELETE of any row.  Idempotent per model."""
    states = frozenset(getattr(s, "value", s) for s in terminal_states)
    _listen(model, "before_update", _terminal_update_check(entity_type, states))
    _listen(model, "before_delete", _terminal_delete_check(entity_type))


def register_immutability_listeners() -> None:
    """
    Register the kernel's immutability listeners.  Safe to call repeatedly.

    Call after the models are importable and before any database writes.
    """
    from workflow_kernel.domain.types import CaseStatus, ScreeningStatus
    from workflow_kernel.models.audit_event import WorkflowAuditEvent
    from workflow_kernel.models.case_file import CaseFileModel
    from workflow_kernel.models.screening import ScreeningModel

    _listen(WorkflowAuditEvent, "before_update", _check_audit_event_update)
    _listen(WorkflowAuditEvent, "before_delete", _check_audit_event_delete)

    protect_terminal_states(
        ScreeningModel, "Screening",
        (ScreeningStatus.COMPLETED, ScreeningStatus.ABANDONED),
    )
    protect_terminal_states(CaseFileModel, "CaseFile", (CaseStatus.CLOSED,))


def unregister_immutability_listeners() -> None:
    """
    Remove every listener registered through this module.

    WARNING: Only use this in tests that intentionally violate
    immutability rules to verify detection.
    """
    for (model, event_name), listener in list(_registered.items()):
        if event.contains(model, event_name, listener):
            event.remove(model, event_name, listener)
        del _registered[(model, event_name)]
