"""
Tests for payment variance arithmetic (``requisition_kernel.domain.financial``).

Covers:
- variance = |actual - approved| / approved
- Only overpayment strictly above the threshold is flagged
- Threshold normalization and bounds
- Non-positive approved cost is rejected
"""

from decimal import Decimal

import pytest

from requisition_kernel.domain.financial import (
    DEFAULT_VARIANCE_THRESHOLD,
    normalize_threshold,
    signed_variance,
    validate_payment_amount,
)
from requisition_kernel.exceptions import InvalidAmountError


class TestValidatePaymentAmount:

    def test_exact_payment(self):
        result = validate_payment_amount(Decimal("1000"), Decimal("1000"))
        assert result.variance == Decimal("0")
        assert result.is_valid
        assert not result.exceeds_threshold

    def test_underpayment_never_flagged(self):
        result = validate_payment_amount(Decimal("1000"), Decimal("500"))
        assert result.variance == Decimal("0.5")
        assert not result.exceeds_threshold
        assert result.is_valid

    def test_overpayment_within_threshold(self):
        result = validate_payment_amount(Decimal("1000"), Decimal("1050"))
        assert result.variance == Decimal("0.05")
        assert not result.exceeds_threshold

    def test_overpayment_exactly_at_threshold_is_allowed(self):
        result = validate_payment_amount(Decimal("1000"), Decimal("1100"))
        assert result.variance == Decimal("0.1")
        assert not result.exceeds_threshold

    def test_overpayment_above_threshold(self):
        result = validate_payment_amount(Decimal("100"), Decimal("120"))
        assert result.variance == Decimal("0.2")
        assert result.exceeds_threshold
        assert not result.is_valid

    def test_custom_threshold(self):
        assert validate_payment_amount(
            Decimal("100"), Decimal("104"), variance_threshold=Decimal("0.03"),
        ).exceeds_threshold
        assert not validate_payment_amount(
            Decimal("100"), Decimal("150"), variance_threshold="0.5",
        ).exceeds_threshold

    def test_zero_threshold_flags_any_overpayment(self):
        assert validate_payment_amount(
            Decimal("100"), Decimal("100.01"), variance_threshold=0,
        ).exceeds_threshold

    def test_string_and_float_inputs(self):
        result = validate_payment_amount("200", 250.0)
        assert result.variance == Decimal("0.25")
        assert result.exceeds_threshold

    @pytest.mark.parametrize("approved", [Decimal("0"), Decimal("-5")])
    def test_non_positive_approved_cost(self, approved):
        with pytest.raises(InvalidAmountError) as exc_info:
            validate_payment_amount(approved, Decimal("10"))
        assert exc_info.value.field == "approved_cost"


class TestSignedVariance:

    def test_sign_follows_direction(self):
        assert signed_variance(Decimal("1000"), Decimal("900")) == Decimal("-0.1")
        assert signed_variance(Decimal("1000"), Decimal("1200")) == Decimal("0.2")


class TestNormalizeThreshold:

    def test_default(self):
        assert normalize_threshold(None) == DEFAULT_VARIANCE_THRESHOLD == Decimal("0.10")

    def test_float_goes_through_str(self):
        assert normalize_threshold(0.1) == Decimal("0.1")

    @pytest.mark.parametrize("value", ["-0.01", "1.5"])
    def test_out_of_range(self, value):
        with pytest.raises(InvalidAmountError):
            normalize_threshold(value)

    def test_not_a_number(self):
        with pytest.raises(InvalidAmountError):
            normalize_threshold("ten percent")
