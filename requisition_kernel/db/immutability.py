"""
ORM-level immutability enforcement (layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

The audit trail is only worth something if nobody can rewrite it, and an
approval decision is only binding if nobody can quietly flip it.

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications through SQLAlchemy sessions
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/sql/<dialect>/*.sql (database triggers)
    - Catches raw SQL and direct console access

Both layers enforce the SAME rules.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | When immutable                  | Operations blocked
------------------|---------------------------------|-----------------------------
AuditTrailEntry   | ALWAYS (from creation)          | flush UPDATE/DELETE, ORM bulk
                  |                                 | UPDATE/DELETE statements
ApprovalStep      | Once status is APPROVED/REJECTED| flush UPDATE
                  | ALWAYS                          | flush DELETE

===============================================================================
USAGE
===============================================================================

    from requisition_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that need to bypass layer 1 call unregister_immutability_listeners()
and re-register afterwards.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm import ORMExecuteState, Session

from requisition_kernel.exceptions import ImmutabilityViolationError
from requisition_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_DECIDED_STEP_STATUSES = frozenset({"APPROVED", "REJECTED"})


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
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_audit_trail_update(mapper, connection, target):
    """Audit trail entries are never modified."""
    raise _blocked(
        "AuditTrailEntry", str(target.id), "UPDATE",
        "Audit trail entries are immutable and cannot be modified",
    )


def _check_audit_trail_delete(mapper, connection, target):
    """Audit trail entries are never deleted."""
    raise _blocked(
        "AuditTrailEntry", str(target.id), "DELETE",
        "Audit trail entries cannot be deleted",
    )


def _check_approval_step_update(mapper, connection, target):
    """A step that was already APPROVED/REJECTED before this flush is frozen."""
    history = inspect(target).attrs.status.history
    if history.deleted:
        prior_status = history.deleted[0]
    elif history.unchanged:
        prior_status = history.unchanged[0]
    else:
        prior_status = target.status

    if prior_status in _DECIDED_STEP_STATUSES:
        raise _blocked(
            "ApprovalStep", str(target.id), "UPDATE",
            f"Approval step is already {prior_status} and cannot be modified",
        )


def _check_approval_step_delete(mapper, connection, target):
    """Approval steps are never deleted."""
    raise _blocked(
        "ApprovalStep", str(target.id), "DELETE",
        "Approval steps cannot be deleted",
    )


def _block_bulk_audit_mutation(orm_execute_state: ORMExecuteState):
    """Reject ORM-enabled ``update()``/``delete()`` against the audit trail."""
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return

    from requisition_kernel.models.audit_trail import AuditTrailEntryModel

    for mapper in orm_execute_state.all_mappers:
        if mapper.class_ is AuditTrailEntryModel:
            operation = "UPDATE" if orm_execute_state.is_update else "DELETE"
            raise _blocked(
                "AuditTrailEntry", "*", f"BULK {operation}",
                "Audit trail entries cannot be modified or deleted",
            )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call after models are importable and before any database work.
    Registering twice is harmless.
    """
    from requisition_kernel.models.approval import ApprovalStepModel
    from requisition_kernel.models.audit_trail import AuditTrailEntryModel

    _listen_once(AuditTrailEntryModel, "before_update", _check_audit_trail_update)
    _listen_once(AuditTrailEntryModel, "before_delete", _check_audit_trail_delete)
    _listen_once(ApprovalStepModel, "before_update", _check_approval_step_update)
    _listen_once(ApprovalStepModel, "before_delete", _check_approval_step_delete)
    _listen_once(Session, "do_orm_execute", _block_bulk_audit_mutation)


def _listen_once(target, event_name, listener_fn):
    if not event.contains(target, event_name, listener_fn):
        event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that deliberately violate the rules
    to prove layer 2 catches them.
    """
    from requisition_kernel.models.approval import ApprovalStepModel
    from requisition_kernel.models.audit_trail import AuditTrailEntryModel

    _safe_remove_listener(AuditTrailEntryModel, "before_update", _check_audit_trail_update)
    _safe_remove_listener(AuditTrailEntryModel, "before_delete", _check_audit_trail_delete)
    _safe_remove_listener(ApprovalStepModel, "before_update", _check_approval_step_update)
    _safe_remove_listener(ApprovalStepModel, "before_delete", _check_approval_step_delete)
    _safe_remove_listener(Session, "do_orm_execute", _block_bulk_audit_mutation)
