"""
Module: requisition_kernel.models.approval
Responsibility: ORM persistence for approval rules and approval steps.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - UNIQUE(requisition_id, step_number): a requisition's chain is created
      once; a second batch collides.
    - step_number >= 1, status in {PENDING, APPROVED, REJECTED} (CHECK).
    - Decided steps are frozen (ORM listener in db/immutability.py and
      database trigger).
    - Rule bounds: min_amount >= 0, max_amount NULL or > 0 (CHECK).

Failure modes:
    - IntegrityError on duplicate step numbers or bad rule bounds.
    - ImmutabilityViolationError on ORM update/delete of a decided step.

Audit relevance:
    Steps snapshot the resolved approver roles at routing time.  Editing a
    rule later never changes the chain of a requisition already in review.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from requisition_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from requisition_kernel.domain.approval import ApprovalRule, ApprovalStep


class ApprovalRuleModel(TrackedBase):
    """Persistent amount-range routing rule.

    ``required_approvers`` is a JSON list of role names in approval order.
    """

    __tablename__ = "approval_rules"

    __table_args__ = (
        CheckConstraint("min_amount >= 0", name="ck_approval_rules_min_non_negative"),
        CheckConstraint(
            "max_amount IS NULL OR max_amount > 0",
            name="ck_approval_rules_max_positive",
        ),
        Index("ix_approval_rules_min_amount", "min_amount"),
        Index("ix_approval_rules_department", "department_id"),
    )

    min_amount: Mapped[Decimal] = mapped_column(nullable=False)
    max_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    required_approvers: Mapped[list] = mapped_column(JSON, nullable=False)
    department_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ApprovalRule {self.id} [{self.min_amount}, {self.max_amount}] "
            f"dept={self.department_id} roles={self.required_approvers}>"
        )

    def to_dto(self) -> ApprovalRule:
        """Convert ORM model to frozen domain DTO."""
        from requisition_kernel.domain.approval import ApprovalRule, parse_roles

        return ApprovalRule(
            id=self.id,
            min_amount=self.min_amount,
            max_amount=self.max_amount,
            required_approvers=parse_roles(self.required_approvers),
            department_id=self.department_id,
            created_at=self.created_at,
        )


class ApprovalStepModel(Base):
    """Persistent approval step.

    Contract:
        Created PENDING in one batch per requisition.  Decisions are written
        by compare-and-set on status; a decided step is never modified.
    """

    __tablename__ = "approval_steps"

    __table_args__ = (
        UniqueConstraint(
            "requisition_id", "step_number",
            name="uq_approval_steps_requisition_step",
        ),
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="ck_approval_steps_valid_status",
        ),
        CheckConstraint("step_number >= 1", name="ck_approval_steps_step_number_positive"),
        CheckConstraint(
            "required_role IN ('STAFF', 'MANAGER', 'FINANCE', 'ADMIN')",
            name="ck_approval_steps_valid_role",
        ),
        Index("ix_approval_steps_requisition_status", "requisition_id", "status"),
        Index("ix_approval_steps_assigned_user", "assigned_user_id", "status"),
    )

    requisition_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("requisitions.id"),
        nullable=False,
    )
    step_number: Mapped[int] = mapped_column(nullable=False)
    required_role: Mapped[str] = mapped_column(String(20), nullable=False)
    assigned_user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    approver_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    decided_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ApprovalStep {self.id} requisition={self.requisition_id} "
            f"#{self.step_number} {self.required_role} status={self.status}>"
        )

    def to_dto(self) -> ApprovalStep:
        """Convert ORM model to frozen domain DTO."""
        from requisition_kernel.domain.approval import (
            ApprovalStep,
            ApprovalStepStatus,
            ApproverRole,
        )

        return ApprovalStep(
            id=self.id,
            requisition_id=self.requisition_id,
            step_number=self.step_number,
            required_role=ApproverRole(self.required_role),
            status=ApprovalStepStatus(self.status),
            assigned_user_id=self.assigned_user_id,
            approver_comment=self.approver_comment,
            approved_at=self.approved_at,
            decided_by_id=self.decided_by_id,
        )
