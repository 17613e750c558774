"""
ApprovalRuleService -- administration of amount-range routing rules.

Responsibility:
    Create, read, partially update, delete and list ``approval_rules``.
    Every write is validated with ``domain.validation.validate_approval_rule``
    against the merged (old + changed) values.

Architecture position:
    Kernel > Services.  Flush-only; callers own the transaction (typically
    ``db.engine.session_scope``).

Failure modes:
    - InvalidApprovalRuleError with every validation message.
    - ApprovalRuleNotFoundError for unknown ids.
    - DepartmentNotFoundError when a directory is supplied and the rule's
      department does not exist.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from requisition_kernel.db.types import to_decimal
from requisition_kernel.domain.approval import ApprovalRule, ApproverRole, parse_roles
from requisition_kernel.domain.directory import DirectoryLookup
from requisition_kernel.domain.validation import validate_approval_rule
from requisition_kernel.exceptions import (
    ApprovalRuleNotFoundError,
    DepartmentNotFoundError,
    InvalidApprovalRuleError,
)
from requisition_kernel.logging_config import get_logger
from requisition_kernel.models.approval import ApprovalRuleModel
from requisition_kernel.services.base import BaseService

logger = get_logger("services.approval_rules")

_UPDATABLE_FIELDS = frozenset({"min_amount", "max_amount", "required_approvers", "department_id"})


class ApprovalRuleService(BaseService[ApprovalRuleModel]):
    def __init__(self, session: Session, directory: DirectoryLookup | None = None):
        super().__init__(session)
        self._directory = directory

    def _validate(
        self,
        min_amount: Any,
        max_amount: Any,
        required_approvers: Any,
        department_id: UUID | None,
    ) -> None:
        result = validate_approval_rule(min_amount, max_amount, required_approvers)
        if not result.ok:
            logger.warning(
                "approval_rule_invalid",
                extra={"fields": list(result.fields)},
            )
            raise InvalidApprovalRuleError(list(result.messages))
        if (
            department_id is not None
            and self._directory is not None
            and not self._directory.department_exists(department_id)
        ):
            raise DepartmentNotFoundError(str(department_id))

    def _get_model(self, rule_id: UUID) -> ApprovalRuleModel:
        rule = self.session.get(ApprovalRuleModel, rule_id)
        if rule is None:
            raise ApprovalRuleNotFoundError(str(rule_id))
        return rule

    def create_rule(
        self,
        actor_id: UUID,
        min_amount: Decimal | int | str,
        required_approvers: list[ApproverRole | str] | tuple[ApproverRole | str, ...],
        max_amount: Decimal | int | str | None = None,
        department_id: UUID | None = None,
    ) -> ApprovalRule:
        self._validate(min_amount, max_amount, required_approvers, department_id)

        rule = ApprovalRuleModel(
            min_amount=to_decimal(min_amount, "min_amount"),
            max_amount=to_decimal(max_amount, "max_amount") if max_amount is not None else None,
            required_approvers=[r.value for r in parse_roles(required_approvers)],
            department_id=department_id,
            created_by_id=actor_id,
        )
        self.session.add(rule)
        self.session.flush()

        logger.info(
            "approval_rule_created",
            extra={
                "rule_id": str(rule.id),
                "min_amount": str(rule.min_amount),
                "max_amount": str(rule.max_amount) if rule.max_amount is not None else None,
                "required_approvers": rule.required_approvers,
            },
        )
        return rule.to_dto()

    def get_rule(self, rule_id: UUID) -> ApprovalRule:
        return self._get_model(rule_id).to_dto()

    def update_rule(self, rule_id: UUID, actor_id: UUID, **changes: Any) -> ApprovalRule:
        """
        Partially update a rule.

        Only ``min_amount``, ``max_amount``, ``required_approvers`` and
        ``department_id`` may change.  Passing ``max_amount=None`` or
        ``department_id=None`` clears the bound.
        """
        unknown = sorted(set(changes) - _UPDATABLE_FIELDS)
        if unknown:
            raise InvalidApprovalRuleError([f"{name} cannot be updated" for name in unknown])

        rule = self._get_model(rule_id)
        merged = {
            "min_amount": rule.min_amount,
            "max_amount": rule.max_amount,
            "required_approvers": rule.required_approvers,
            "department_id": rule.department_id,
            **changes,
        }
        self._validate(
            merged["min_amount"],
            merged["max_amount"],
            merged["required_approvers"],
            merged["department_id"],
        )

        if "min_amount" in changes:
            rule.min_amount = to_decimal(changes["min_amount"], "min_amount")
        if "max_amount" in changes:
            rule.max_amount = (
                to_decimal(changes["max_amount"], "max_amount")
                if changes["max_amount"] is not None else None
            )
        if "required_approvers" in changes:
            rule.required_approvers = [r.value for r in parse_roles(changes["required_approvers"])]
        if "department_id" in changes:
            rule.department_id = changes["department_id"]
        rule.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "approval_rule_updated",
            extra={"rule_id": str(rule_id), "fields": sorted(changes)},
        )
        return rule.to_dto()

    def delete_rule(self, rule_id: UUID) -> None:
        rule = self._get_model(rule_id)
        self.session.delete(rule)
        self.session.flush()
        logger.info("approval_rule_deleted", extra={"rule_id": str(rule_id)})

    def list_rules(
        self,
        department_id: UUID | None = None,
        offset: int = 0,
        limit: int = 100,
    ) -> list[ApprovalRule]:
        """Rules ordered by ``min_amount`` ascending, optionally for one department."""
        stmt = select(ApprovalRuleModel).order_by(
            ApprovalRuleModel.min_amount, ApprovalRuleModel.created_at,
        )
        if department_id is not None:
            stmt = stmt.where(ApprovalRuleModel.department_id == department_id)
        rows = self.session.execute(stmt.offset(offset).limit(limit)).scalars().all()
        return [row.to_dto() for row in rows]

    def count_rules(self, department_id: UUID | None = None) -> int:
        stmt = select(func.count()).select_from(ApprovalRuleModel)
        if department_id is not None:
            stmt = stmt.where(ApprovalRuleModel.department_id == department_id)
        return self.session.execute(stmt).scalar_one()
