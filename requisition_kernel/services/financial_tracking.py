"""
FinancialTrackingService -- cost recording, payment and variance checks.

Responsibility:
    Records payments against APPROVED requisitions (moving them to PAID),
    validates payment variance against the approved cost, records cost
    events in the audit trail, and builds financial summaries.

Architecture position:
    Kernel > Services.  Variance arithmetic is the pure
    ``domain.financial.validate_payment_amount``.

Invariants enforced:
    - Payment only from APPROVED; payment fields and PAID are written in a
      single compare-and-set.
    - Overpayment above the threshold needs a payment comment.
    - Nothing is written when any check fails.

Failure modes:
    - RequisitionNotFoundError.
    - InvalidStatusTransitionError when the requisition is not APPROVED.
    - InvalidPaymentAmountError / MissingPaymentFieldError for the first
      bad payment field.
    - PaymentVarianceCommentRequiredError.
    - ConcurrencyConflictError when a concurrent writer moved the
      requisition first.

Audit relevance:
    The PAYMENT_RECORDED entry is appended inside a savepoint.  If the
    append fails it is logged and rolled back to the savepoint; the
    payment itself stands.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from requisition_kernel.db.types import format_money, to_decimal
from requisition_kernel.domain.clock import Clock, SystemClock, to_utc
from requisition_kernel.domain.financial import (
    DEFAULT_VARIANCE_THRESHOLD,
    PaymentValidation,
    normalize_threshold,
    signed_variance,
    validate_payment_amount,
)
from requisition_kernel.domain.requisition import FinancialSummary, PaymentDetails, Requisition
from requisition_kernel.domain.status import REQUISITION_STATUS_VALIDATOR, RequisitionStatus
from requisition_kernel.domain.validation import is_blank, validate_payment_details
from requisition_kernel.exceptions import (
    InvalidAmountError,
    InvalidPaymentAmountError,
    MissingPaymentFieldError,
    PaymentVarianceCommentRequiredError,
    RequisitionNotFoundError,
)
from requisition_kernel.logging_config import LogContext, get_logger
from requisition_kernel.models.requisition import RequisitionModel
from requisition_kernel.services.audit_trail_ledger import AuditTrailLedger
from requisition_kernel.services.base import BaseService

logger = get_logger("services.financial_tracking")


class FinancialTrackingService(BaseService[RequisitionModel]):
    """Money side of the requisition lifecycle."""

    def __init__(
        self,
        session: Session,
        ledger: AuditTrailLedger,
        clock: Clock | None = None,
        variance_threshold: Decimal = DEFAULT_VARIANCE_THRESHOLD,
    ):
        super().__init__(session)
        self._ledger = ledger
        self._clock = clock or SystemClock()
        self._variance_threshold = normalize_threshold(variance_threshold)

    def _get_model(self, requisition_id: UUID) -> RequisitionModel:
        requisition = self.session.get(RequisitionModel, requisition_id)
        if requisition is None:
            raise RequisitionNotFoundError(str(requisition_id))
        return requisition

    def validate_payment_amount(
        self,
        approved_cost: Decimal,
        actual_cost_paid: Decimal,
        variance_threshold: Decimal | float | str | None = None,
    ) -> PaymentValidation:
        if variance_threshold is None:
            variance_threshold = self._variance_threshold
        return validate_payment_amount(approved_cost, actual_cost_paid, variance_threshold)

    def record_payment(
        self,
        requisition_id: UUID,
        actor_id: UUID,
        payment: PaymentDetails,
        variance_threshold: Decimal | float | str | None = None,
    ) -> Requisition:
        """
        Record a payment and move the requisition APPROVED -> PAID.

        Preconditions:
            - Requisition is APPROVED with an approved cost.
            - ``payment`` passes ``validate_payment_details``.

        Postconditions:
            - Payment fields set and status PAID in one write.
            - One PAYMENT_RECORDED and one STATUS_CHANGED entry appended
              (best-effort).
        """
        requisition = self._get_model(requisition_id)
        REQUISITION_STATUS_VALIDATOR.validate(requisition.status, RequisitionStatus.PAID)

        check = validate_payment_details(payment)
        if not check.ok:
            issue = check.first
            logger.warning(
                "payment_rejected",
                extra={"field": issue.field, "reason": issue.code},
            )
            if issue.field == "actual_cost_paid":
                raise InvalidPaymentAmountError(issue.field, issue.message)
            raise MissingPaymentFieldError(issue.field, issue.message)

        approved_cost = requisition.approved_cost
        if approved_cost is None:
            raise InvalidAmountError("approved_cost", "None", "approved cost not recorded")

        actual = to_decimal(payment.actual_cost_paid, "actual_cost_paid")
        threshold = (
            normalize_threshold(variance_threshold)
            if variance_threshold is not None else self._variance_threshold
        )
        validation = validate_payment_amount(approved_cost, actual, threshold)

        if validation.exceeds_threshold and is_blank(payment.payment_comment):
            logger.warning(
                "payment_variance_comment_missing",
                extra={
                    "variance": str(validation.variance),
                    "threshold": str(threshold),
                },
            )
            raise PaymentVarianceCommentRequiredError(
                str(requisition_id), str(validation.variance), str(threshold),
            )

        payment_date = to_utc(payment.payment_date)
        requisition = self._compare_and_set(
            RequisitionModel,
            requisition_id,
            RequisitionStatus.APPROVED.value,
            {
                "status": RequisitionStatus.PAID.value,
                "actual_cost_paid": actual,
                "payment_date": payment_date,
                "payment_method": payment.payment_method,
                "payment_reference": payment.payment_reference,
                "payment_comment": payment.payment_comment or None,
                "updated_by_id": actor_id,
            },
            entity_type="Requisition",
        )

        try:
            with self.session.begin_nested():
                self._ledger.record_payment(
                    requisition_id,
                    actor_id,
                    {
                        "actual_cost_paid": format_money(actual),
                        "approved_cost": format_money(approved_cost),
                        "payment_date": payment_date.isoformat(),
                        "payment_method": payment.payment_method,
                        "payment_reference": payment.payment_reference,
                        "payment_comment": payment.payment_comment,
                        "variance": str(validation.variance),
                        "exceeds_threshold": validation.exceeds_threshold,
                    },
                )
                self._ledger.record_status_change(
                    requisition_id,
                    actor_id,
                    RequisitionStatus.APPROVED,
                    RequisitionStatus.PAID,
                    reason="Payment recorded",
                )
        except Exception:
            logger.error(
                "payment_audit_append_failed",
                extra={"requisition_id": str(requisition_id)},
                exc_info=True,
            )

        logger.info(
            "payment_recorded",
            extra={
                "requisition_id": str(requisition_id),
                "actual_cost_paid": str(actual),
                "approved_cost": str(approved_cost),
                "variance": str(validation.variance),
                "exceeds_threshold": validation.exceeds_threshold,
            },
        )
        return requisition.to_dto()

    def record_approved_cost(
        self, requisition_id: UUID, actor_id: UUID, approved_cost: Decimal,
    ) -> None:
        """Append a FIELD_UPDATED entry for the approved cost."""
        requisition = self._get_model(requisition_id)
        approved = to_decimal(approved_cost, "approved_cost")
        if approved <= 0:
            raise InvalidAmountError("approved_cost", str(approved), "must be greater than zero")
        with LogContext.bind(requisition_id=requisition_id):
            self._ledger.record_field_update(
                requisition_id,
                actor_id,
                "approved_cost",
                format_money(requisition.approved_cost),
                format_money(approved),
            )

    def record_cost_on_creation(self, requisition_id: UUID, actor_id: UUID) -> None:
        """Append a FIELD_UPDATED entry for the initial estimated cost."""
        requisition = self._get_model(requisition_id)
        self._ledger.record_field_update(
            requisition_id,
            actor_id,
            "estimated_cost",
            None,
            {
                "amount": format_money(requisition.estimated_cost),
                "currency": requisition.currency,
            },
        )

    def get_financial_summary(self, requisition_id: UUID) -> FinancialSummary:
        requisition = self._get_model(requisition_id)
        variance = None
        if requisition.approved_cost is not None and requisition.actual_cost_paid is not None:
            variance = signed_variance(requisition.approved_cost, requisition.actual_cost_paid)
        return FinancialSummary(
            requisition_id=requisition.id,
            estimated_cost=requisition.estimated_cost,
            approved_cost=requisition.approved_cost,
            actual_cost_paid=requisition.actual_cost_paid,
            currency=requisition.currency,
            status=RequisitionStatus(requisition.status),
            payment_method=requisition.payment_method,
            payment_reference=requisition.payment_reference,
            payment_date=requisition.payment_date,
            variance=variance,
        )
