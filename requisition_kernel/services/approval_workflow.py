"""
ApprovalWorkflowEngine -- approver routing and step decisions.

Responsibility:
    Resolves the approver roles for an amount from the persisted rules,
    snapshots them as PENDING steps, and records step decisions.  Exposes
    read-only predicates over a requisition's steps; it never moves the
    requisition itself.

Architecture position:
    Kernel > Services.  Rule selection is delegated to the pure
    ``domain.approval.determine_approvers``.

Invariants enforced:
    - Steps are created in one batch per requisition, numbered 1..n in
      role order.  A second batch raises ApprovalStepsAlreadyExistError
      (and collides on UNIQUE(requisition_id, step_number) if it races).
    - A step is decided at most once: PENDING -> APPROVED | REJECTED via
      compare-and-set on ``status``.  Exactly one concurrent decision wins.
    - Rejection requires a non-empty comment.

Failure modes:
    - InvalidRoleError, InvalidApprovalRuleError on bad role lists.
    - RequisitionNotFoundError, ApprovalStepNotFoundError.
    - ApprovalStepAlreadyDecidedError when the step was decided before it
      was read; ConcurrencyConflictError when it was decided in between.
    - RejectionCommentRequiredError.

Audit relevance:
    Every decision appends an APPROVED or REJECTED entry to the
    requisition's audit trail in the same transaction.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from requisition_kernel.domain.approval import (
    APPROVAL_STEP_VALIDATOR,
    DEFAULT_APPROVERS,
    ApprovalStep,
    ApprovalStepStatus,
    ApproverRole,
    determine_approvers,
    parse_roles,
)
from requisition_kernel.domain.clock import Clock, SystemClock
from requisition_kernel.domain.directory import DirectoryLookup
from requisition_kernel.domain.validation import validate_approver_comment
from requisition_kernel.exceptions import (
    ApprovalStepAlreadyDecidedError,
    ApprovalStepNotFoundError,
    ApprovalStepsAlreadyExistError,
    InvalidApprovalRuleError,
    InvalidRequisitionDataError,
    RejectionCommentRequiredError,
    RequisitionNotFoundError,
)
from requisition_kernel.logging_config import LogContext, get_logger
from requisition_kernel.models.approval import ApprovalRuleModel, ApprovalStepModel
from requisition_kernel.models.requisition import RequisitionModel
from requisition_kernel.services.audit_trail_ledger import AuditTrailLedger
from requisition_kernel.services.base import BaseService

logger = get_logger("services.approval_workflow")


class ApprovalWorkflowEngine(BaseService[ApprovalStepModel]):
    """Routes requisitions to approvers and records their decisions."""

    def __init__(
        self,
        session: Session,
        ledger: AuditTrailLedger,
        directory: DirectoryLookup,
        clock: Clock | None = None,
        default_approvers: tuple[ApproverRole, ...] = DEFAULT_APPROVERS,
    ):
        super().__init__(session)
        self._ledger = ledger
        self._directory = directory
        self._clock = clock or SystemClock()
        self._default_approvers = default_approvers

    # =========================================================================
    # Routing
    # =========================================================================

    def determine_approvers(
        self, amount: Decimal, department_id: UUID | None,
    ) -> tuple[ApproverRole, ...]:
        """Ordered approver roles for ``amount`` in ``department_id``."""
        stmt = select(ApprovalRuleModel)
        if department_id is None:
            stmt = stmt.where(ApprovalRuleModel.department_id.is_(None))
        else:
            stmt = stmt.where(
                (ApprovalRuleModel.department_id.is_(None))
                | (ApprovalRuleModel.department_id == department_id)
            )
        rules = [row.to_dto() for row in self.session.execute(stmt).scalars()]

        roles = determine_approvers(rules, amount, department_id, self._default_approvers)
        logger.debug(
            "approvers_determined",
            extra={
                "amount": str(amount),
                "department_id": str(department_id) if department_id else None,
                "rules_considered": len(rules),
                "roles": [r.value for r in roles],
            },
        )
        return roles

    def create_approval_steps(
        self,
        requisition_id: UUID,
        roles: list[ApproverRole | str] | tuple[ApproverRole | str, ...],
    ) -> list[ApprovalStep]:
        """
        Create one PENDING step per role, in order.

        Each step is assigned to the first active directory user holding the
        role in the requisition's department, or left unassigned.

        Raises:
            InvalidRoleError: A role name is unknown.
            InvalidApprovalRuleError: ``roles`` is empty.
            RequisitionNotFoundError: No such requisition.
            ApprovalStepsAlreadyExistError: The requisition already has steps.
        """
        parsed = parse_roles(roles)
        if not parsed:
            raise InvalidApprovalRuleError(["at least one approver role is required"])

        requisition = self.session.get(RequisitionModel, requisition_id)
        if requisition is None:
            raise RequisitionNotFoundError(str(requisition_id))

        existing = self.session.execute(
            select(ApprovalStepModel.id)
            .where(ApprovalStepModel.requisition_id == requisition_id)
            .limit(1)
        ).scalar_one_or_none()
        if existing is not None:
            raise ApprovalStepsAlreadyExistError(str(requisition_id))

        now = self._clock.now()
        steps = [
            ApprovalStepModel(
                requisition_id=requisition_id,
                step_number=index + 1,
                required_role=role.value,
                assigned_user_id=self._directory.find_active_user(
                    role, requisition.department_id,
                ),
                status=ApprovalStepStatus.PENDING.value,
                created_at=now,
            )
            for index, role in enumerate(parsed)
        ]

        try:
            with self.session.begin_nested():
                self.session.add_all(steps)
                self.session.flush()
        except IntegrityError as exc:
            raise ApprovalStepsAlreadyExistError(str(requisition_id)) from exc

        logger.info(
            "approval_steps_created",
            extra={
                "requisition_id": str(requisition_id),
                "step_count": len(steps),
                "roles": [r.value for r in parsed],
                "unassigned": sum(1 for s in steps if s.assigned_user_id is None),
            },
        )
        return [s.to_dto() for s in steps]

    # =========================================================================
    # Decisions
    # =========================================================================

    def approve_step(
        self, step_id: UUID, user_id: UUID, comment: str | None = None,
    ) -> ApprovalStep:
        """Approve a PENDING step.  ``comment`` is optional."""
        return self._decide(step_id, user_id, ApprovalStepStatus.APPROVED, comment)

    def reject_step(self, step_id: UUID, user_id: UUID, comment: str) -> ApprovalStep:
        """Reject a PENDING step.  ``comment`` must be non-empty."""
        return self._decide(step_id, user_id, ApprovalStepStatus.REJECTED, comment)

    def _decide(
        self,
        step_id: UUID,
        user_id: UUID,
        decision: ApprovalStepStatus,
        comment: str | None,
    ) -> ApprovalStep:
        rejecting = decision == ApprovalStepStatus.REJECTED
        check = validate_approver_comment(comment, required=rejecting)
        if not check.ok:
            if rejecting and check.first.code == "required":
                raise RejectionCommentRequiredError(str(step_id))
            raise InvalidRequisitionDataError(list(check.fields), list(check.messages))

        step = self.session.get(ApprovalStepModel, step_id)
        if step is None:
            raise ApprovalStepNotFoundError(str(step_id))

        if step.status != ApprovalStepStatus.PENDING.value:
            raise ApprovalStepAlreadyDecidedError(str(step_id), step.status)
        APPROVAL_STEP_VALIDATOR.validate(step.status, decision)

        with LogContext.bind(requisition_id=step.requisition_id, step_id=step_id):
            step = self._compare_and_set(
                ApprovalStepModel,
                step_id,
                ApprovalStepStatus.PENDING.value,
                {
                    "status": decision.value,
                    "approver_comment": comment,
                    "approved_at": self._clock.now(),
                    "decided_by_id": user_id,
                },
                entity_type="ApprovalStep",
            )

            if rejecting:
                self._ledger.record_rejection(
                    step.requisition_id, user_id, comment, step_number=step.step_number,
                )
            else:
                self._ledger.record_approval(
                    step.requisition_id, user_id, comment, step_number=step.step_number,
                )

            logger.info(
                "approval_step_decided",
                extra={
                    "step_number": step.step_number,
                    "decision": decision.value,
                    "decided_by_id": str(user_id),
                },
            )
        return step.to_dto()

    # =========================================================================
    # Queries
    # =========================================================================

    def get_step(self, step_id: UUID) -> ApprovalStep:
        step = self.session.get(ApprovalStepModel, step_id)
        if step is None:
            raise ApprovalStepNotFoundError(str(step_id))
        return step.to_dto()

    def get_approval_steps(self, requisition_id: UUID) -> list[ApprovalStep]:
        """All steps for a requisition, ordered by step number."""
        rows = self.session.execute(
            select(ApprovalStepModel)
            .where(ApprovalStepModel.requisition_id == requisition_id)
            .order_by(ApprovalStepModel.step_number)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def get_pending_steps(self, requisition_id: UUID) -> list[ApprovalStep]:
        return [s for s in self.get_approval_steps(requisition_id) if s.is_pending]

    def get_next_pending_step(self, requisition_id: UUID) -> ApprovalStep | None:
        """Lowest-numbered PENDING step, or None."""
        pending = self.get_pending_steps(requisition_id)
        return pending[0] if pending else None

    def all_steps_approved(self, requisition_id: UUID) -> bool:
        """True when the requisition has steps and every one is APPROVED."""
        steps = self.get_approval_steps(requisition_id)
        return bool(steps) and all(s.status == ApprovalStepStatus.APPROVED for s in steps)

    def any_step_rejected(self, requisition_id: UUID) -> bool:
        return any(
            s.status == ApprovalStepStatus.REJECTED
            for s in self.get_approval_steps(requisition_id)
        )
