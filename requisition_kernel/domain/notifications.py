"""
Notification trigger port (``requisition_kernel.domain.notifications``).

The kernel emits "notify about event" triggers; delivery (email, push,
in-app) belongs to the notification subsystem.  Triggers are called only
after the state change they describe has been committed, and a failing
trigger never undoes that change.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Protocol
from uuid import UUID


class NotificationEvent(str, Enum):
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAID = "PAID"


class NotificationTriggers(Protocol):
    def on_submitted(self, requisition_id: UUID) -> None: ...

    def on_approved(self, requisition_id: UUID, approver_id: UUID) -> None: ...

    def on_rejected(self, requisition_id: UUID, reason: str) -> None: ...

    def on_paid(self, requisition_id: UUID, amount: Decimal) -> None: ...
