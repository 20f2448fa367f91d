"""
ORM-Level Append-Only Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The audit log is the only record of who changed a trip, a fee or a handover.
If application code could rewrite or delete audit rows, the log would prove
nothing.  Handovers are the admin's signed statement of cash counted; once
written they are never edited either, and a resolved payment exception stays
resolved.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  We register listeners that intercept these events:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() ------------------+
         |
         v
    SQL sent to database (only if checks pass)

If a check fails, ImmutabilityViolationError propagates out of flush(), the
caller's session_scope() rolls back and the database is never modified.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | When Immutable                 | Notes
------------------|--------------------------------|-------------------------------
AuditLog          | ALWAYS (from creation)         | UPDATE and DELETE rejected
CashHandover      | ALWAYS (from creation)         | UPDATE and DELETE rejected
PaymentException  | After resolved_at is set       | OPEN -> HANDOVER_CONFIRMED is
                  |                                | the only allowed transition;
                  |                                | unlinking a deleted trip
                  |                                | (trip_id -> NULL) is allowed

===============================================================================
USAGE
===============================================================================

    from cashup_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
    # ... do forbidden operation ...
    register_immutability_listeners()

===============================================================================
"""

from sqlalchemy import event, inspect

from cashup_kernel.exceptions import ImmutabilityViolationError
from cashup_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_EXCEPTION_MUTABLE_AFTER_RESOLUTION = frozenset({"trip_id"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


# =============================================================================
# AuditLog: always immutable
# =============================================================================


def _check_audit_log_immutability(mapper, connection, target):
    raise _blocked(
        "AuditLog", target.id, "UPDATE",
        "Audit log entries are immutable and cannot be modified",
    )


def _check_audit_log_delete(mapper, connection, target):
    raise _blocked(
        "AuditLog", target.id, "DELETE",
        "Audit log entries cannot be deleted",
    )


# =============================================================================
# CashHandover: always immutable
# =============================================================================


def _check_cash_handover_immutability(mapper, connection, target):
    raise _blocked(
        "CashHandover", target.id, "UPDATE",
        "Handovers are append-only",
    )


def _check_cash_handover_delete(mapper, connection, target):
    raise _blocked(
        "CashHandover", target.id, "DELETE",
        "Handovers cannot be deleted",
    )


# =============================================================================
# PaymentException: frozen once resolved
# =============================================================================
#
# We check "WAS resolved" rather than "IS resolved": the resolution itself
# sets resolved_at, so the transition from NULL is allowed and everything
# after it is not.


def _check_payment_exception_immutability(mapper, connection, target):
    state = inspect(target)
    resolved_history = state.attrs.resolved_at.history
    was_resolved = bool(resolved_history.deleted and resolved_history.deleted[0] is not None)
    if not was_resolved and resolved_history.unchanged:
        was_resolved = resolved_history.unchanged[0] is not None
    if not was_resolved:
        return

    changed = {
        prop.key
        for prop in state.mapper.column_attrs
        if state.attrs[prop.key].history.has_changes()
    }
    if changed - _EXCEPTION_MUTABLE_AFTER_RESOLUTION:
        raise _blocked(
            "PaymentException", target.id, "UPDATE",
            f"Resolved exceptions cannot be modified (fields: {sorted(changed)})",
        )


def _check_payment_exception_delete(mapper, connection, target):
    if target.resolved_at is not None:
        raise _blocked(
            "PaymentException", target.id, "DELETE",
            "Resolved exceptions cannot be deleted",
        )


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    # Inline import: models import from db, db must not import models at load
    from cashup_kernel.models.audit_log import AuditLog
    from cashup_kernel.models.payment_exception import CashHandover, PaymentException

    return (
        (AuditLog, "before_update", _check_audit_log_immutability),
        (AuditLog, "before_delete", _check_audit_log_delete),
        (CashHandover, "before_update", _check_cash_handover_immutability),
        (CashHandover, "before_delete", _check_cash_handover_delete),
        (PaymentException, "before_update", _check_payment_exception_immutability),
        (PaymentException, "before_delete", _check_payment_exception_delete),
    )


def register_immutability_listeners():
    """
    Register all append-only enforcement event listeners.

    Idempotent: listeners already registered are left alone.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
    logger.debug("immutability_listeners_registered")


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove append-only enforcement event listeners.

    WARNING: Only use this in tests that need to simulate tampering.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
    logger.debug("immutability_listeners_unregistered")
