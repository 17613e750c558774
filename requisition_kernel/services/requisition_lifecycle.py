"""
RequisitionLifecycleService -- the requisition state machine orchestrator.

Responsibility:
    Drives a requisition from DRAFT to CLOSED.  Every public method reads
    the requisition, validates the transition, writes with compare-and-set
    on the expected prior status, appends audit entries and returns the
    updated DTO.  Composite operations (submit for approval, approve or
    reject the next step, record payment) delegate to the approval engine
    and the financial service inside the same transaction.

Architecture position:
    Kernel > Services -- the only service that owns transaction
    boundaries.  Leaf services flush; this class commits on success and
    rolls back on any error, then fires notification triggers.

Invariants enforced:
    - Only transitions in REQUISITION_WORKFLOW are persisted.
    - Title, description and business justification are non-empty before
      DRAFT -> SUBMITTED.
    - Only DRAFT requisitions are editable.
    - Only MANAGER, FINANCE and ADMIN users decide approval steps, and a
      step assigned to another user can only be decided by an ADMIN.
    - Reads end any transaction they opened themselves, so a reused
      service never holds the database write lock between calls.
    - Notifications fire strictly after commit; a failing trigger never
      undoes the committed change.

Failure modes:
    Every kernel exception raised by validation, the engine or the
    financial service propagates unchanged after rollback.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy.orm import Session

from requisition_kernel.db.types import format_money, to_decimal, validate_currency
from requisition_kernel.domain.approval import (
    DECIDING_ROLES,
    DEFAULT_APPROVERS,
    ApprovalStep,
    ApproverRole,
)
from requisition_kernel.domain.audit import AuditTrailEntry
from requisition_kernel.domain.clock import Clock, SystemClock
from requisition_kernel.domain.directory import DirectoryLookup
from requisition_kernel.domain.financial import DEFAULT_VARIANCE_THRESHOLD
from requisition_kernel.domain.notifications import NotificationEvent, NotificationTriggers
from requisition_kernel.domain.requisition import (
    FinancialSummary,
    PaymentDetails,
    Requisition,
    RequisitionInput,
    UrgencyLevel,
)
from requisition_kernel.domain.status import REQUISITION_STATUS_VALIDATOR, RequisitionStatus
from requisition_kernel.domain.validation import (
    validate_requisition_changes,
    validate_requisition_input,
    validate_submission,
)
from requisition_kernel.exceptions import (
    InvalidAmountError,
    InvalidRequisitionDataError,
    MissingRequiredFieldsError,
    NoPendingApprovalStepError,
    RequisitionKernelError,
    RequisitionNotEditableError,
    RequisitionNotFoundError,
    UnauthorizedApproverError,
)
from requisition_kernel.logging_config import LogContext, get_logger
from requisition_kernel.models.requisition import RequisitionModel
from requisition_kernel.services.approval_workflow import ApprovalWorkflowEngine
from requisition_kernel.services.audit_trail_ledger import AuditTrailLedger
from requisition_kernel.services.base import BaseService
from requisition_kernel.services.financial_tracking import FinancialTrackingService
from requisition_kernel.services.notification_dispatcher import NotificationDispatcher
from requisition_kernel.services.referential_integrity import ReferentialIntegrityChecker

if TYPE_CHECKING:
    from requisition_config.schema import KernelSettings

logger = get_logger("services.requisition_lifecycle")


class RequisitionLifecycleService(BaseService[RequisitionModel]):
    """
    Orchestrates requisition state changes.

    Contract:
        Each public write method is one unit of work: it commits on success
        and rolls back on failure.  Read methods never write.
    """

    def __init__(
        self,
        session: Session,
        directory: DirectoryLookup,
        clock: Clock | None = None,
        triggers: NotificationTriggers | None = None,
        default_currency: str = "USD",
        variance_threshold: Decimal = DEFAULT_VARIANCE_THRESHOLD,
        default_approvers: tuple[ApproverRole, ...] = DEFAULT_APPROVERS,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._directory = directory
        self._default_currency = validate_currency(default_currency)
        self._ledger = AuditTrailLedger(session, self._clock)
        self._integrity = ReferentialIntegrityChecker(session, directory)
        self._approvals = ApprovalWorkflowEngine(
            session, self._ledger, directory, self._clock, default_approvers,
        )
        self._financial = FinancialTrackingService(
            session, self._ledger, self._clock, variance_threshold,
        )
        self._notifications = NotificationDispatcher(session, self._ledger, triggers)

    @classmethod
    def from_settings(
        cls,
        session: Session,
        directory: DirectoryLookup,
        settings: KernelSettings,
        clock: Clock | None = None,
        triggers: NotificationTriggers | None = None,
    ) -> RequisitionLifecycleService:
        """Build from loaded configuration settings."""
        return cls(
            session,
            directory,
            clock=clock,
            triggers=triggers,
            default_currency=settings.default_currency,
            variance_threshold=settings.variance_threshold,
            default_approvers=(settings.default_approver_role,),
        )

    @property
    def ledger(self) -> AuditTrailLedger:
        return self._ledger

    @property
    def approvals(self) -> ApprovalWorkflowEngine:
        return self._approvals

    @property
    def financial(self) -> FinancialTrackingService:
        return self._financial

    # =========================================================================
    # Internals
    # =========================================================================

    @contextmanager
    def _unit_of_work(self, operation: str, **context: Any) -> Iterator[None]:
        with LogContext.bind(**context):
            try:
                yield
                self.session.commit()
            except RequisitionKernelError as exc:
                self.session.rollback()
                logger.warning(
                    "lifecycle_operation_rolled_back",
                    extra={"operation": operation, "error_code": exc.code},
                )
                raise
            except Exception:
                self.session.rollback()
                logger.error(
                    "lifecycle_operation_failed",
                    extra={"operation": operation},
                    exc_info=True,
                )
                raise

    @contextmanager
    def _read_scope(self) -> Iterator[None]:
        # A read that opened the transaction also closes it; SQLite holds the
        # write lock from BEGIN IMMEDIATE until then.
        owns_transaction = not self.session.in_transaction()
        try:
            yield
        finally:
            if owns_transaction and self.session.in_transaction():
                self.session.rollback()

    def _get_model(self, requisition_id: UUID) -> RequisitionModel:
        requisition = self.session.get(RequisitionModel, requisition_id)
        if requisition is None:
            raise RequisitionNotFoundError(str(requisition_id))
        return requisition

    def _transition(
        self,
        requisition_id: UUID,
        actor_id: UUID | None,
        to_status: RequisitionStatus,
        values: dict[str, Any] | None = None,
        reason: str | None = None,
    ) -> RequisitionModel:
        requisition = self._get_model(requisition_id)
        from_status = requisition.status
        REQUISITION_STATUS_VALIDATOR.validate(from_status, to_status)

        actor = actor_id or requisition.submitter_id
        requisition = self._compare_and_set(
            RequisitionModel,
            requisition_id,
            from_status,
            {"status": to_status.value, "updated_by_id": actor, **(values or {})},
            entity_type="Requisition",
        )
        self._ledger.record_status_change(
            requisition_id, actor, from_status, to_status, reason,
        )
        logger.info(
            "requisition_status_changed",
            extra={"from_status": from_status, "to_status": to_status.value},
        )
        return requisition

    def _submit(self, requisition_id: UUID, actor_id: UUID | None) -> RequisitionModel:
        requisition = self._get_model(requisition_id)
        REQUISITION_STATUS_VALIDATOR.validate(requisition.status, RequisitionStatus.SUBMITTED)

        check = validate_submission({
            "title": requisition.title,
            "description": requisition.description,
            "business_justification": requisition.business_justification,
        })
        if not check.ok:
            raise MissingRequiredFieldsError(str(requisition_id), check.fields)

        requisition = self._transition(
            requisition_id, actor_id, RequisitionStatus.SUBMITTED,
            reason="Submitted for approval",
        )
        logger.info("requisition_submitted")
        return requisition

    def _approve(
        self,
        requisition_id: UUID,
        actor_id: UUID | None,
        approved_cost: Decimal | None,
        reason: str | None = None,
    ) -> RequisitionModel:
        requisition = self._get_model(requisition_id)
        if approved_cost is None:
            approved = requisition.estimated_cost
        else:
            approved = to_decimal(approved_cost, "approved_cost")
            if approved <= 0:
                raise InvalidAmountError("approved_cost", str(approved), "must be greater than zero")

        requisition = self._transition(
            requisition_id, actor_id, RequisitionStatus.APPROVED,
            {"approved_cost": approved},
            reason=reason,
        )
        self._ledger.record_field_update(
            requisition_id,
            actor_id or requisition.submitter_id,
            "approved_cost",
            None,
            format_money(approved),
        )
        return requisition

    def _authorize_step(self, step: ApprovalStep, approver_id: UUID) -> ApproverRole:
        self._integrity.validate_user_exists(approver_id)
        approver = self._directory.get_user(approver_id)
        if approver.role not in DECIDING_ROLES:
            logger.warning(
                "approver_role_refused",
                extra={"step_id": str(step.id), "role": approver.role.value},
            )
            raise UnauthorizedApproverError(
                str(step.id), str(approver_id), actor_role=approver.role.value,
            )
        if (
            approver.role != ApproverRole.ADMIN
            and step.assigned_user_id is not None
            and step.assigned_user_id != approver_id
        ):
            raise UnauthorizedApproverError(
                str(step.id), str(approver_id), str(step.assigned_user_id),
            )
        return approver.role

    # =========================================================================
    # Create / edit
    # =========================================================================

    def create_requisition(
        self,
        data: RequisitionInput,
        submitter_id: UUID,
        department_id: UUID,
    ) -> Requisition:
        """Create a DRAFT requisition with no financial fields set."""
        with self._unit_of_work("create_requisition", actor_id=submitter_id):
            check = validate_requisition_input(data)
            if not check.ok:
                raise InvalidRequisitionDataError(check.fields, check.messages)

            self._integrity.validate_department_exists(department_id)
            self._integrity.validate_user_exists(submitter_id)

            requisition = RequisitionModel(
                title=data.title.strip(),
                category=data.category.strip(),
                description=data.description,
                business_justification=data.business_justification,
                estimated_cost=to_decimal(data.estimated_cost, "estimated_cost"),
                currency=validate_currency(data.currency or self._default_currency),
                urgency_level=UrgencyLevel(getattr(data.urgency_level, "value", data.urgency_level)).value,
                status=RequisitionStatus.DRAFT.value,
                submitter_id=submitter_id,
                department_id=department_id,
                created_by_id=submitter_id,
            )
            self.session.add(requisition)
            self.session.flush()

            with LogContext.bind(requisition_id=requisition.id):
                self._ledger.record_creation(
                    requisition.id,
                    submitter_id,
                    {
                        "title": requisition.title,
                        "category": requisition.category,
                        "estimated_cost": format_money(requisition.estimated_cost),
                        "currency": requisition.currency,
                        "urgency_level": requisition.urgency_level,
                        "department_id": str(department_id),
                    },
                )
                self._financial.record_cost_on_creation(requisition.id, submitter_id)
                logger.info(
                    "requisition_created",
                    extra={"estimated_cost": str(requisition.estimated_cost)},
                )
            result = requisition.to_dto()
        return result

    def update_requisition(
        self,
        requisition_id: UUID,
        actor_id: UUID,
        changes: Mapping[str, Any],
    ) -> Requisition:
        """Edit DRAFT fields.  One FIELD_UPDATED entry per changed field."""
        with self._unit_of_work(
            "update_requisition", requisition_id=requisition_id, actor_id=actor_id,
        ):
            check = validate_requisition_changes(changes)
            if not check.ok:
                raise InvalidRequisitionDataError(check.fields, check.messages)

            requisition = self._get_model(requisition_id)
            if requisition.status != RequisitionStatus.DRAFT.value:
                raise RequisitionNotEditableError(str(requisition_id), requisition.status)

            updates: dict[str, Any] = {}
            previous: dict[str, Any] = {}
            for field, value in changes.items():
                if field == "estimated_cost":
                    value = to_decimal(value, field)
                elif field == "currency":
                    value = validate_currency(value)
                elif field == "urgency_level":
                    value = UrgencyLevel(getattr(value, "value", value)).value
                elif field in ("title", "category"):
                    value = value.strip()
                current = getattr(requisition, field)
                if current != value:
                    previous[field] = current
                    updates[field] = value

            if updates:
                requisition = self._compare_and_set(
                    RequisitionModel,
                    requisition_id,
                    RequisitionStatus.DRAFT.value,
                    {**updates, "updated_by_id": actor_id},
                    entity_type="Requisition",
                )
                for field, value in updates.items():
                    self._ledger.record_field_update(
                        requisition_id, actor_id, field, previous[field], value,
                    )
                logger.info("requisition_updated", extra={"fields": sorted(updates)})
            result = requisition.to_dto()
        return result

    # =========================================================================
    # Status transitions
    # =========================================================================

    def submit_requisition(
        self, requisition_id: UUID, actor_id: UUID | None = None,
    ) -> Requisition:
        """DRAFT -> SUBMITTED.  Requires title, description and justification."""
        with self._unit_of_work(
            "submit_requisition", requisition_id=requisition_id, actor_id=actor_id,
        ):
            result = self._submit(requisition_id, actor_id).to_dto()
        self._notifications.dispatch(
            NotificationEvent.SUBMITTED, requisition_id, actor_id or result.submitter_id,
        )
        return result

    def transition_to_under_review(
        self, requisition_id: UUID, actor_id: UUID | None = None,
    ) -> Requisition:
        """SUBMITTED -> UNDER_REVIEW."""
        with self._unit_of_work(
            "transition_to_under_review", requisition_id=requisition_id, actor_id=actor_id,
        ):
            result = self._transition(
                requisition_id, actor_id, RequisitionStatus.UNDER_REVIEW,
                reason="Under review",
            ).to_dto()
        return result

    def approve_requisition(
        self,
        requisition_id: UUID,
        approved_cost: Decimal | None = None,
        actor_id: UUID | None = None,
    ) -> Requisition:
        """UNDER_REVIEW -> APPROVED.  ``approved_cost`` defaults to the estimate."""
        with self._unit_of_work(
            "approve_requisition", requisition_id=requisition_id, actor_id=actor_id,
        ):
            result = self._approve(requisition_id, actor_id, approved_cost).to_dto()
        approver = actor_id or result.submitter_id
        self._notifications.dispatch(
            NotificationEvent.APPROVED, requisition_id, approver, approver_id=approver,
        )
        return result

    def reject_requisition(
        self,
        requisition_id: UUID,
        actor_id: UUID | None = None,
        reason: str | None = None,
    ) -> Requisition:
        """UNDER_REVIEW -> REJECTED."""
        with self._unit_of_work(
            "reject_requisition", requisition_id=requisition_id, actor_id=actor_id,
        ):
            result = self._transition(
                requisition_id, actor_id, RequisitionStatus.REJECTED, reason=reason,
            ).to_dto()
        self._notifications.dispatch(
            NotificationEvent.REJECTED, requisition_id, actor_id or result.submitter_id,
            reason=reason or "",
        )
        return result

    def close_requisition(
        self, requisition_id: UUID, actor_id: UUID | None = None,
    ) -> Requisition:
        """PAID -> CLOSED.  Stamps ``closed_at``."""
        with self._unit_of_work(
            "close_requisition", requisition_id=requisition_id, actor_id=actor_id,
        ):
            result = self._transition(
                requisition_id, actor_id, RequisitionStatus.CLOSED,
                {"closed_at": self._clock.now()},
                reason="Closed",
            ).to_dto()
        return result

    # =========================================================================
    # Composite operations
    # =========================================================================

    def submit_for_approval(self, requisition_id: UUID, actor_id: UUID) -> Requisition:
        """
        Submit, route to approvers and move to UNDER_REVIEW in one
        transaction.
        """
        with self._unit_of_work(
            "submit_for_approval", requisition_id=requisition_id, actor_id=actor_id,
        ):
            requisition = self._submit(requisition_id, actor_id)
            roles = self._approvals.determine_approvers(
                requisition.estimated_cost, requisition.department_id,
            )
            self._approvals.create_approval_steps(requisition_id, roles)
            result = self._transition(
                requisition_id, actor_id, RequisitionStatus.UNDER_REVIEW,
                reason=f"Routed to {', '.join(r.value for r in roles)}",
            ).to_dto()
        self._notifications.dispatch(NotificationEvent.SUBMITTED, requisition_id, actor_id)
        return result

    def approve_next_step(
        self,
        requisition_id: UUID,
        approver_id: UUID,
        comment: str | None = None,
        approved_cost: Decimal | None = None,
    ) -> Requisition:
        """
        Approve the next pending step.

        An ADMIN approves every remaining step at once.  When no step is
        left pending the requisition is approved in the same transaction.
        """
        fully_approved = False
        with self._unit_of_work(
            "approve_next_step", requisition_id=requisition_id, actor_id=approver_id,
        ):
            requisition = self._get_model(requisition_id)
            REQUISITION_STATUS_VALIDATOR.validate(requisition.status, RequisitionStatus.APPROVED)

            pending = self._approvals.get_pending_steps(requisition_id)
            if not pending:
                raise NoPendingApprovalStepError(str(requisition_id))

            role = self._authorize_step(pending[0], approver_id)
            to_decide = pending if role == ApproverRole.ADMIN else pending[:1]
            for step in to_decide:
                self._approvals.approve_step(step.id, approver_id, comment)

            if self._approvals.all_steps_approved(requisition_id):
                requisition = self._approve(
                    requisition_id, approver_id, approved_cost,
                    reason="All approvers approved",
                )
                fully_approved = True
            result = requisition.to_dto()

        if fully_approved:
            self._notifications.dispatch(
                NotificationEvent.APPROVED, requisition_id, approver_id,
                approver_id=approver_id,
            )
        return result

    def reject_next_step(
        self, requisition_id: UUID, approver_id: UUID, comment: str,
    ) -> Requisition:
        """Reject the next pending step and the requisition together."""
        with self._unit_of_work(
            "reject_next_step", requisition_id=requisition_id, actor_id=approver_id,
        ):
            requisition = self._get_model(requisition_id)
            REQUISITION_STATUS_VALIDATOR.validate(requisition.status, RequisitionStatus.REJECTED)

            step = self._approvals.get_next_pending_step(requisition_id)
            if step is None:
                raise NoPendingApprovalStepError(str(requisition_id))

            self._authorize_step(step, approver_id)
            self._approvals.reject_step(step.id, approver_id, comment)
            result = self._transition(
                requisition_id, approver_id, RequisitionStatus.REJECTED, reason=comment,
            ).to_dto()

        self._notifications.dispatch(
            NotificationEvent.REJECTED, requisition_id, approver_id, reason=comment,
        )
        return result

    def record_payment(
        self,
        requisition_id: UUID,
        actor_id: UUID,
        payment: PaymentDetails,
        variance_threshold: Decimal | float | str | None = None,
    ) -> Requisition:
        """APPROVED -> PAID via FinancialTrackingService."""
        with self._unit_of_work(
            "record_payment", requisition_id=requisition_id, actor_id=actor_id,
        ):
            result = self._financial.record_payment(
                requisition_id, actor_id, payment, variance_threshold,
            )
        self._notifications.dispatch(
            NotificationEvent.PAID, requisition_id, actor_id, amount=result.actual_cost_paid,
        )
        return result

    # =========================================================================
    # Reads
    # =========================================================================

    def get_requisition(self, requisition_id: UUID) -> Requisition:
        with self._read_scope():
            return self._get_model(requisition_id).to_dto()

    def get_approval_steps(self, requisition_id: UUID) -> list[ApprovalStep]:
        with self._read_scope():
            return self._approvals.get_approval_steps(requisition_id)

    def all_steps_approved(self, requisition_id: UUID) -> bool:
        with self._read_scope():
            return self._approvals.all_steps_approved(requisition_id)

    def any_step_rejected(self, requisition_id: UUID) -> bool:
        with self._read_scope():
            return self._approvals.any_step_rejected(requisition_id)

    def get_financial_summary(self, requisition_id: UUID) -> FinancialSummary:
        with self._read_scope():
            return self._financial.get_financial_summary(requisition_id)

    def get_requisition_audit_trail(self, requisition_id: UUID) -> list[AuditTrailEntry]:
        with self._read_scope():
            return self._ledger.get_requisition_audit_trail(requisition_id)

    def verify_audit_chain(self, requisition_id: UUID) -> int:
        """Recompute the requisition's audit hash chain; see ``AuditTrailLedger.verify_chain``."""
        with self._read_scope():
            return self._ledger.verify_chain(requisition_id)
