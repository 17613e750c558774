"""
Requisition DTOs (``requisition_kernel.domain.requisition``).

Frozen value objects handed across the service boundary.  ORM models
convert to these via ``to_dto()``; callers never hold live ORM rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from requisition_kernel.domain.status import RequisitionStatus


class UrgencyLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


# Fields a caller may change while the requisition is in DRAFT
EDITABLE_FIELDS: tuple[str, ...] = (
    "title",
    "category",
    "description",
    "estimated_cost",
    "currency",
    "urgency_level",
    "business_justification",
)

# Fields that must be non-empty before DRAFT -> SUBMITTED
SUBMISSION_REQUIRED_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "business_justification",
)


@dataclass(frozen=True)
class RequisitionInput:
    """Caller-supplied data for a new requisition.

    ``currency=None`` means the configured default currency.
    """

    title: str
    category: str
    description: str
    estimated_cost: Decimal
    business_justification: str
    currency: str | None = None
    urgency_level: UrgencyLevel | str = UrgencyLevel.MEDIUM


@dataclass(frozen=True)
class Requisition:
    """Snapshot of a requisition's identity and state."""

    id: UUID
    title: str
    category: str
    description: str
    business_justification: str
    estimated_cost: Decimal
    currency: str
    urgency_level: UrgencyLevel
    status: RequisitionStatus
    submitter_id: UUID
    department_id: UUID
    approved_cost: Decimal | None = None
    actual_cost_paid: Decimal | None = None
    payment_method: str | None = None
    payment_reference: str | None = None
    payment_date: datetime | None = None
    payment_comment: str | None = None
    closed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class PaymentDetails:
    """Payment recorded against an APPROVED requisition."""

    actual_cost_paid: Decimal
    payment_date: datetime | None
    payment_method: str
    payment_reference: str
    payment_comment: str | None = None


@dataclass(frozen=True)
class FinancialSummary:
    """Read-only money view of one requisition."""

    requisition_id: UUID
    estimated_cost: Decimal
    approved_cost: Decimal | None
    actual_cost_paid: Decimal | None
    currency: str
    status: RequisitionStatus
    payment_method: str | None
    payment_reference: str | None
    payment_date: datetime | None
    variance: Decimal | None
