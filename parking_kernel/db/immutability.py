"""
ORM-level append-only enforcement.

SQLAlchemy fires ``before_update`` / ``before_delete`` mapper events before
the SQL reaches the database.  The listeners here refuse:

Entity              | Refused
--------------------|----------------------------------------------
ShiftOperation      | any UPDATE, any DELETE (ledger is append-only)
CashAdjustment      | any UPDATE, any DELETE
ParkingSession      | any DELETE (sessions are the audit trail)
Shift               | any change once CLOSED or CANCELED; any DELETE
Payment             | any DELETE

A refused flush raises ImmutabilityViolationError and the store's unit of
work rolls back.

Listeners are registered once by ``register_immutability_listeners()``;
tests that need to write raw fixtures can call
``unregister_immutability_listeners()``.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from parking_kernel.exceptions import ImmutabilityViolationError
from parking_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_SEALED_SHIFT_STATUSES = ("CLOSED", "CANCELED")


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type, entity_id=entity_id, reason=reason
    )


def _check_operation_update(mapper, connection, target):
    raise _blocked("ShiftOperation", str(target.id), "UPDATE", "ledger rows are append-only")


def _check_operation_delete(mapper, connection, target):
    raise _blocked("ShiftOperation", str(target.id), "DELETE", "ledger rows are append-only")


def _check_adjustment_update(mapper, connection, target):
    raise _blocked("CashAdjustment", str(target.id), "UPDATE", "cash adjustments are append-only")


def _check_adjustment_delete(mapper, connection, target):
    raise _blocked("CashAdjustment", str(target.id), "DELETE", "cash adjustments are append-only")


def _check_session_delete(mapper, connection, target):
    raise _blocked("ParkingSession", str(target.id), "DELETE", "sessions are never deleted")


def _check_payment_delete(mapper, connection, target):
    raise _blocked("Payment", str(target.id), "DELETE", "payments are never deleted")


def _check_shift_delete(mapper, connection, target):
    raise _blocked("Shift", str(target.id), "DELETE", "shifts are never deleted")


def _check_shift_update(mapper, connection, target):
    """Allow OPEN -> CLOSED/CANCELED; refuse every change after that."""
    status_history = get_history(target, "status")
    if status_history.deleted:
        previous = status_history.deleted[0]
    else:
        previous = target.status

    if previous not in _SEALED_SHIFT_STATUSES:
        return

    for attr in inspect(target).attrs:
        if attr.history.has_changes():
            raise _blocked(
                "Shift",
                str(target.id),
                "UPDATE",
                f"cannot modify field '{attr.key}' on {previous} shift",
            )


def _listeners():
    from parking_kernel.models.payment import PaymentModel
    from parking_kernel.models.session import ParkingSessionModel
    from parking_kernel.models.shift import (
        CashAdjustmentModel,
        ShiftModel,
        ShiftOperationModel,
    )

    return (
        (ShiftOperationModel, "before_update", _check_operation_update),
        (ShiftOperationModel, "before_delete", _check_operation_delete),
        (CashAdjustmentModel, "before_update", _check_adjustment_update),
        (CashAdjustmentModel, "before_delete", _check_adjustment_delete),
        (ParkingSessionModel, "before_delete", _check_session_delete),
        (PaymentModel, "before_delete", _check_payment_delete),
        (ShiftModel, "before_update", _check_shift_update),
        (ShiftModel, "before_delete", _check_shift_delete),
    )


def register_immutability_listeners():
    """Register all append-only listeners (idempotent)."""
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)
    logger.debug("immutability_listeners_registered")


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """Remove the listeners.  Only for tests that must bypass them."""
    for target, event_name, fn in _listeners():
        _safe_remove_listener(target, event_name, fn)
