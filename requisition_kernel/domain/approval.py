"""
Approval domain types (``requisition_kernel.domain.approval``).

Responsibility
--------------
Pure value objects and rules for approval routing: approver roles, the
approval-step lifecycle, approval rules, and the rule-resolution function
``determine_approvers``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Step lifecycle: PENDING -> APPROVED | REJECTED, both terminal.
* Rule resolution is deterministic: highest ``min_amount`` wins; exact
  ties go to the department-specific rule, then the older rule.
* No matching rule resolves to ``DEFAULT_APPROVERS`` (FINANCE).
* Resolved roles keep the rule's declared order.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from requisition_kernel.domain.status import StatusTransitionValidator
from requisition_kernel.domain.workflow import Guard, Transition, Workflow
from requisition_kernel.exceptions import InvalidRoleError


class ApproverRole(str, Enum):
    """Directory roles that can be required on an approval step."""

    STAFF = "STAFF"
    MANAGER = "MANAGER"
    FINANCE = "FINANCE"
    ADMIN = "ADMIN"


def parse_role(value: ApproverRole | str) -> ApproverRole:
    """Coerce a role name, raising InvalidRoleError for unknown names."""
    if isinstance(value, ApproverRole):
        return value
    try:
        return ApproverRole(str(value).strip().upper())
    except ValueError as exc:
        raise InvalidRoleError(str(value)) from exc


def parse_roles(values: Iterable[ApproverRole | str]) -> tuple[ApproverRole, ...]:
    return tuple(parse_role(v) for v in values)


DEFAULT_APPROVERS: tuple[ApproverRole, ...] = (ApproverRole.FINANCE,)

# Roles allowed to approve or reject a step at all
DECIDING_ROLES: frozenset[ApproverRole] = frozenset(
    {ApproverRole.MANAGER, ApproverRole.FINANCE, ApproverRole.ADMIN}
)


# =========================================================================
# Approval step lifecycle
# =========================================================================


class ApprovalStepStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


APPROVAL_STEP_WORKFLOW = Workflow(
    name="approval_step",
    description="Single approval step decided by one approver",
    initial_state=ApprovalStepStatus.PENDING.value,
    states=tuple(s.value for s in ApprovalStepStatus),
    transitions=(
        Transition("PENDING", "APPROVED", action="approve"),
        Transition(
            "PENDING", "REJECTED", action="reject",
            guard=Guard("comment_present", "rejections carry a non-empty comment"),
        ),
    ),
    terminal_states=("APPROVED", "REJECTED"),
)

APPROVAL_STEP_VALIDATOR: StatusTransitionValidator[ApprovalStepStatus] = (
    StatusTransitionValidator(APPROVAL_STEP_WORKFLOW, ApprovalStepStatus, "ApprovalStep")
)


@dataclass(frozen=True)
class ApprovalStep:
    """One snapshotted step of a requisition's approval chain."""

    id: UUID
    requisition_id: UUID
    step_number: int
    required_role: ApproverRole
    status: ApprovalStepStatus
    assigned_user_id: UUID | None = None
    approver_comment: str | None = None
    approved_at: datetime | None = None
    decided_by_id: UUID | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == ApprovalStepStatus.PENDING


# =========================================================================
# Approval rules
# =========================================================================


@dataclass(frozen=True)
class ApprovalRule:
    """Amount-range routing rule.

    ``max_amount=None`` is an open upper bound; ``department_id=None``
    makes the rule global.
    """

    min_amount: Decimal
    required_approvers: tuple[ApproverRole, ...]
    max_amount: Decimal | None = None
    department_id: UUID | None = None
    id: UUID | None = None
    created_at: datetime | None = None

    def matches(self, amount: Decimal, department_id: UUID | None) -> bool:
        if amount < self.min_amount:
            return False
        if self.max_amount is not None and amount > self.max_amount:
            return False
        if self.department_id is not None and self.department_id != department_id:
            return False
        return True


def _precedence(rule: ApprovalRule) -> tuple:
    created = rule.created_at.timestamp() if rule.created_at is not None else 0.0
    return (-rule.min_amount, rule.department_id is None, created, str(rule.id))


def select_rule(
    rules: Iterable[ApprovalRule],
    amount: Decimal,
    department_id: UUID | None,
) -> ApprovalRule | None:
    """Return the effective rule for (amount, department), or None."""
    matching = [r for r in rules if r.matches(amount, department_id)]
    if not matching:
        return None
    return min(matching, key=_precedence)


def determine_approvers(
    rules: Iterable[ApprovalRule],
    amount: Decimal,
    department_id: UUID | None,
    default: tuple[ApproverRole, ...] = DEFAULT_APPROVERS,
) -> tuple[ApproverRole, ...]:
    """Resolve the ordered approver roles for a requisition amount.

    The highest ``min_amount`` among matching rules wins, whether or not
    the rule is department-specific.  A broad global rule can therefore
    shadow a department rule with a lower floor.
    """
    rule = select_rule(rules, amount, department_id)
    if rule is None:
        return default
    return tuple(rule.required_approvers)
