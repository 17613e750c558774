"""
Audit trail value objects (``requisition_kernel.domain.audit``).

Every mutation of a requisition is recorded as one ``AuditTrailEntry``.
Entries are immutable once written; ``sequence`` orders entries within a
requisition and breaks timestamp ties.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class AuditChangeType(str, Enum):
    CREATED = "CREATED"
    FIELD_UPDATED = "FIELD_UPDATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAYMENT_RECORDED = "PAYMENT_RECORDED"
    NOTIFICATION_SENT = "NOTIFICATION_SENT"


@dataclass(frozen=True)
class AuditTrailEntry:
    id: UUID
    requisition_id: UUID
    sequence: int
    user_id: UUID
    change_type: AuditChangeType
    timestamp: datetime
    field_name: str | None = None
    previous_value: str | None = None
    new_value: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    prev_hash: str | None = None
    entry_hash: str = ""
