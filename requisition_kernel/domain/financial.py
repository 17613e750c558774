"""
Payment variance rules (``requisition_kernel.domain.financial``).

Responsibility
--------------
Pure arithmetic for comparing what was paid with what was approved.

Invariants enforced
-------------------
* ``variance = (actual - approved) / approved`` is computed signed; the
  reported variance is its absolute value.
* Only overpayment is flagged: ``exceeds_threshold`` requires
  ``actual > approved`` and a variance strictly above the threshold.
* ``approved <= 0`` is rejected; a fraction of zero is undefined.

Failure modes
-------------
* ``InvalidAmountError`` for a non-positive approved cost or a threshold
  outside ``[0, 1]``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from requisition_kernel.db.types import to_decimal
from requisition_kernel.exceptions import InvalidAmountError

DEFAULT_VARIANCE_THRESHOLD = Decimal("0.10")


@dataclass(frozen=True)
class PaymentValidation:
    is_valid: bool
    variance: Decimal
    exceeds_threshold: bool


def normalize_threshold(threshold: Decimal | float | str | None) -> Decimal:
    if threshold is None:
        return DEFAULT_VARIANCE_THRESHOLD
    value = to_decimal(threshold, "variance_threshold")
    if value < 0 or value > 1:
        raise InvalidAmountError("variance_threshold", str(value), "must be between 0 and 1")
    return value


def signed_variance(approved_cost: Decimal, actual_cost_paid: Decimal) -> Decimal:
    if approved_cost <= 0:
        raise InvalidAmountError(
            "approved_cost", str(approved_cost), "must be greater than zero"
        )
    return (actual_cost_paid - approved_cost) / approved_cost


def validate_payment_amount(
    approved_cost: Decimal | float | str,
    actual_cost_paid: Decimal | float | str,
    variance_threshold: Decimal | float | str | None = DEFAULT_VARIANCE_THRESHOLD,
) -> PaymentValidation:
    """Compare a payment with the approved cost.

    >>> validate_payment_amount(Decimal("100"), Decimal("120")).exceeds_threshold
    True
    >>> validate_payment_amount(Decimal("100"), Decimal("90")).exceeds_threshold
    False
    """
    approved = to_decimal(approved_cost, "approved_cost")
    actual = to_decimal(actual_cost_paid, "actual_cost_paid")
    threshold = normalize_threshold(variance_threshold)

    variance = signed_variance(approved, actual)
    exceeds = variance > 0 and variance > threshold
    return PaymentValidation(
        is_valid=not exceeds,
        variance=abs(variance),
        exceeds_threshold=exceeds,
    )
