"""
Module: requisition_kernel.models.requisition
Responsibility: ORM persistence for requisitions.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - status is one of the seven lifecycle states (CHECK).
    - estimated_cost > 0 (CHECK).
    - approved_cost is NULL unless status is APPROVED, PAID or CLOSED (CHECK).
    - actual_cost_paid is NULL unless status is PAID or CLOSED (CHECK).
    - Status changes go through the compare-and-set helper in
      services/base.py, never through attribute assignment.

Failure modes:
    - IntegrityError when a write would break one of the CHECK constraints.

Audit relevance:
    Every write to this table is paired with a requisition_audit_trail
    entry in the same transaction.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from requisition_kernel.db.base import TrackedBase, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from requisition_kernel.domain.requisition import Requisition


class RequisitionModel(TrackedBase):
    """Persistent requisition.

    ``created_by_id`` is the submitter; ``updated_by_id`` is the last actor
    to change the row.
    """

    __tablename__ = "requisitions"

    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'SUBMITTED', 'UNDER_REVIEW', 'APPROVED', "
            "'REJECTED', 'PAID', 'CLOSED')",
            name="ck_requisitions_valid_status",
        ),
        CheckConstraint(
            "urgency_level IN ('LOW', 'MEDIUM', 'HIGH', 'CRITICAL')",
            name="ck_requisitions_valid_urgency",
        ),
        CheckConstraint("estimated_cost > 0", name="ck_requisitions_estimated_cost_positive"),
        CheckConstraint(
            "approved_cost IS NULL OR status IN ('APPROVED', 'PAID', 'CLOSED')",
            name="ck_requisitions_approved_cost_status",
        ),
        CheckConstraint(
            "actual_cost_paid IS NULL OR status IN ('PAID', 'CLOSED')",
            name="ck_requisitions_actual_cost_status",
        ),
        Index("ix_requisitions_status", "status"),
        Index("ix_requisitions_department", "department_id", "status"),
        Index("ix_requisitions_submitter", "submitter_id", "created_at"),
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    business_justification: Mapped[str] = mapped_column(Text, nullable=False)
    estimated_cost: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    urgency_level: Mapped[str] = mapped_column(String(10), nullable=False, default="MEDIUM")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="DRAFT")

    submitter_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    department_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    approved_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    actual_cost_paid: Mapped[Decimal | None] = mapped_column(nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    payment_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def __repr__(self) -> str:
        return f"<Requisition {self.id} {self.title!r} status={self.status}>"

    def to_dto(self) -> Requisition:
        """Convert ORM model to frozen domain DTO."""
        from requisition_kernel.domain.requisition import Requisition, UrgencyLevel
        from requisition_kernel.domain.status import RequisitionStatus

        return Requisition(
            id=self.id,
            title=self.title,
            category=self.category,
            description=self.description,
            business_justification=self.business_justification,
            estimated_cost=self.estimated_cost,
            currency=self.currency,
            urgency_level=UrgencyLevel(self.urgency_level),
            status=RequisitionStatus(self.status),
            submitter_id=self.submitter_id,
            department_id=self.department_id,
            approved_cost=self.approved_cost,
            actual_cost_paid=self.actual_cost_paid,
            payment_method=self.payment_method,
            payment_reference=self.payment_reference,
            payment_date=self.payment_date,
            payment_comment=self.payment_comment,
            closed_at=self.closed_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
