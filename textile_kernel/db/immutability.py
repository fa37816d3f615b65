"""
Append-only and frozen-row rules, enforced at flush time.

Mapper ``before_update``/``before_delete`` listeners raise
ImmutabilityViolationError before any SQL is sent, so the offending flush
fails and ``session_scope`` rolls the whole unit of work back.

    LedgerEntry, StockMovement, AuditEvent   never updated or deleted
    ApprovalRequest                          frozen once approved/rejected
    Than                                     yards fixed; never deleted

Bulk ``update(...)`` statements skip mapper events.  ApprovalQueue.resolve
is the only one aimed at a protected table and it matches
``status = 'pending'`` rows only.
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from textile_kernel.exceptions import ImmutabilityViolationError
from textile_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, target, operation: str, reason: str):
    entity_id = str(getattr(target, "id", "?"))
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_append_only_update(mapper, connection, target):
    _block(
        type(target).__name__, target, "UPDATE",
        f"{type(target).__name__} rows are append-only and cannot be modified",
    )


def _check_append_only_delete(mapper, connection, target):
    _block(
        type(target).__name__, target, "DELETE",
        f"{type(target).__name__} rows are append-only and cannot be deleted",
    )


def _check_approval_immutability(mapper, connection, target):
    """Terminal approval requests cannot change."""
    history = get_history(target, "status")
    previous = history.deleted[0] if history.deleted else target.status
    if previous in ("approved", "rejected"):
        _block(
            "ApprovalRequest", target, "UPDATE",
            f"Request already {previous}; resolution is final",
        )


def _check_approval_delete(mapper, connection, target):
    _block("ApprovalRequest", target, "DELETE", "Approval requests are never deleted")


def _check_than_immutability(mapper, connection, target):
    """yards is fixed at import."""
    history = get_history(target, "yards")
    if history.deleted and history.added and history.deleted[0] != history.added[0]:
        _block("Than", target, "UPDATE", "Than yards are fixed at import")


def _check_than_delete(mapper, connection, target):
    _block("Than", target, "DELETE", "Thans are never deleted")


def _listeners():
    from textile_kernel.models.approval import ApprovalRequestModel
    from textile_kernel.models.audit_event import AuditEvent
    from textile_kernel.models.inventory import Than
    from textile_kernel.models.ledger import LedgerEntry
    from textile_kernel.models.stock import StockMovement

    return (
        (LedgerEntry, "before_update", _check_append_only_update),
        (LedgerEntry, "before_delete", _check_append_only_delete),
        (StockMovement, "before_update", _check_append_only_update),
        (StockMovement, "before_delete", _check_append_only_delete),
        (AuditEvent, "before_update", _check_append_only_update),
        (AuditEvent, "before_delete", _check_append_only_delete),
        (ApprovalRequestModel, "before_update", _check_approval_immutability),
        (ApprovalRequestModel, "before_delete", _check_approval_delete),
        (Than, "before_update", _check_than_immutability),
        (Than, "before_delete", _check_than_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; already-registered listeners are skipped.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
