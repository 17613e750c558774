"""
Notification dispatch -- fire-and-forget triggers after commit.

Responsibility:
    ``NotificationDispatcher`` calls the wired ``NotificationTriggers``
    implementation once a lifecycle transaction has committed.  A trigger
    that raises is logged and swallowed; the committed mutation stands.
    A trigger that succeeds is recorded as a NOTIFICATION_SENT audit entry
    in its own short transaction, best-effort.

    ``LoggingNotificationTriggers`` is the default implementation: it only
    logs each trigger.

Architecture position:
    Kernel > Services.  Used only by RequisitionLifecycleService, which
    owns the session's transaction boundaries.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from requisition_kernel.domain.notifications import NotificationEvent, NotificationTriggers
from requisition_kernel.logging_config import get_logger
from requisition_kernel.services.audit_trail_ledger import AuditTrailLedger

logger = get_logger("services.notifications")


class LoggingNotificationTriggers:
    """NotificationTriggers that writes one log line per trigger."""

    def on_submitted(self, requisition_id: UUID) -> None:
        logger.info("notification_submitted", extra={"requisition_id": str(requisition_id)})

    def on_approved(self, requisition_id: UUID, approver_id: UUID) -> None:
        logger.info(
            "notification_approved",
            extra={"requisition_id": str(requisition_id), "approver_id": str(approver_id)},
        )

    def on_rejected(self, requisition_id: UUID, reason: str) -> None:
        logger.info(
            "notification_rejected",
            extra={"requisition_id": str(requisition_id), "reason": reason},
        )

    def on_paid(self, requisition_id: UUID, amount: Decimal) -> None:
        logger.info(
            "notification_paid",
            extra={"requisition_id": str(requisition_id), "amount": str(amount)},
        )


class NotificationDispatcher:
    def __init__(
        self,
        session: Session,
        ledger: AuditTrailLedger,
        triggers: NotificationTriggers | None = None,
    ):
        self._session = session
        self._ledger = ledger
        self._triggers = triggers or LoggingNotificationTriggers()

    def _invoke(self, event: NotificationEvent, requisition_id: UUID, payload: dict[str, Any]) -> str:
        if event == NotificationEvent.SUBMITTED:
            self._triggers.on_submitted(requisition_id)
            return "Requisition submitted for approval"
        if event == NotificationEvent.APPROVED:
            self._triggers.on_approved(requisition_id, payload["approver_id"])
            return "Requisition approved"
        if event == NotificationEvent.REJECTED:
            self._triggers.on_rejected(requisition_id, payload["reason"])
            return f"Requisition rejected: {payload['reason']}"
        self._triggers.on_paid(requisition_id, payload["amount"])
        return f"Payment of {payload['amount']} recorded"

    def dispatch(
        self,
        event: NotificationEvent,
        requisition_id: UUID,
        actor_id: UUID,
        **payload: Any,
    ) -> bool:
        """
        Fire one trigger.  Must be called after the mutation committed.

        Returns:
            True if the trigger ran without raising.
        """
        try:
            message = self._invoke(event, requisition_id, payload)
        except Exception:
            logger.error(
                "notification_dispatch_failed",
                extra={"requisition_id": str(requisition_id), "event": event.value},
                exc_info=True,
            )
            return False

        try:
            self._ledger.record_notification(requisition_id, actor_id, event.value, message)
            self._session.commit()
        except Exception:
            self._session.rollback()
            logger.error(
                "notification_audit_append_failed",
                extra={"requisition_id": str(requisition_id), "event": event.value},
                exc_info=True,
            )
        return True
