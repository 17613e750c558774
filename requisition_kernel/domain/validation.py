"""
Input validation (``requisition_kernel.domain.validation``).

Responsibility
--------------
Pure validation functions for requisition input, submission readiness,
approver comments, payment details and approval-rule definitions.  Each
function returns a ``ValidationResult``; services decide which typed
exception to raise from it.  Nothing here touches the database.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ZERO I/O.

Invariants enforced
-------------------
* Issues are reported in a stable field order so the "first" issue is
  deterministic.
* Text limits: title 255, category 100, long text and comments 5000,
  payment method 100, payment reference 255.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from requisition_kernel.db.types import ISO_4217_CURRENCIES, to_decimal
from requisition_kernel.domain.approval import ApproverRole
from requisition_kernel.domain.requisition import (
    EDITABLE_FIELDS,
    SUBMISSION_REQUIRED_FIELDS,
    PaymentDetails,
    RequisitionInput,
    UrgencyLevel,
)
from requisition_kernel.exceptions import InvalidAmountError

TITLE_MAX_LENGTH = 255
CATEGORY_MAX_LENGTH = 100
LONG_TEXT_MAX_LENGTH = 5000
COMMENT_MAX_LENGTH = 5000
PAYMENT_METHOD_MAX_LENGTH = 100
PAYMENT_REFERENCE_MAX_LENGTH = 255


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    code: str
    message: str


@dataclass(frozen=True)
class ValidationResult:
    issues: tuple[ValidationIssue, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.issues

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(i.field for i in self.issues)

    @property
    def messages(self) -> tuple[str, ...]:
        return tuple(i.message for i in self.issues)

    @property
    def first(self) -> ValidationIssue | None:
        return self.issues[0] if self.issues else None

    @classmethod
    def success(cls) -> ValidationResult:
        return cls()

    @classmethod
    def of(cls, issues: Iterable[ValidationIssue]) -> ValidationResult:
        return cls(tuple(issues))


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _text_issues(
    field: str,
    value: Any,
    max_length: int,
    required: bool = True,
) -> list[ValidationIssue]:
    if is_blank(value):
        if required:
            return [ValidationIssue(field, "required", f"{field} is required")]
        return []
    if not isinstance(value, str):
        return [ValidationIssue(field, "type", f"{field} must be text")]
    if len(value) > max_length:
        return [ValidationIssue(
            field, "too_long", f"{field} must be {max_length} characters or less",
        )]
    return []


def _positive_amount_issues(field: str, value: Any) -> list[ValidationIssue]:
    if value is None:
        return [ValidationIssue(field, "required", f"{field} is required")]
    try:
        amount = to_decimal(value, field)
    except InvalidAmountError:
        return [ValidationIssue(field, "not_a_number", f"{field} must be a number")]
    if not amount.is_finite() or amount <= 0:
        return [ValidationIssue(field, "not_positive", f"{field} must be a positive number")]
    return []


def _field_issues(field: str, value: Any) -> list[ValidationIssue]:
    if field == "title":
        return _text_issues(field, value, TITLE_MAX_LENGTH)
    if field == "category":
        return _text_issues(field, value, CATEGORY_MAX_LENGTH)
    if field in ("description", "business_justification"):
        return _text_issues(field, value, LONG_TEXT_MAX_LENGTH)
    if field == "estimated_cost":
        return _positive_amount_issues(field, value)
    if field == "currency":
        if value is None:
            return []
        if not isinstance(value, str) or value.strip().upper() not in ISO_4217_CURRENCIES:
            return [ValidationIssue(field, "invalid_currency", f"{value!r} is not an ISO 4217 code")]
        return []
    if field == "urgency_level":
        try:
            UrgencyLevel(getattr(value, "value", value))
        except ValueError:
            return [ValidationIssue(field, "invalid_choice", f"{value!r} is not an urgency level")]
        return []
    return [ValidationIssue(field, "not_editable", f"{field} cannot be edited")]


def validate_requisition_input(data: RequisitionInput) -> ValidationResult:
    """Validate a full create payload."""
    issues: list[ValidationIssue] = []
    for field in EDITABLE_FIELDS:
        issues.extend(_field_issues(field, getattr(data, field)))
    return ValidationResult.of(issues)


def validate_requisition_changes(changes: Mapping[str, Any]) -> ValidationResult:
    """Validate a partial update; only the supplied fields are checked."""
    if not changes:
        return ValidationResult.of([ValidationIssue("changes", "empty", "no fields to update")])
    issues: list[ValidationIssue] = []
    for field, value in changes.items():
        if field not in EDITABLE_FIELDS:
            issues.append(ValidationIssue(field, "not_editable", f"{field} cannot be edited"))
            continue
        issues.extend(_field_issues(field, value))
    return ValidationResult.of(issues)


def validate_submission(values: Mapping[str, Any]) -> ValidationResult:
    """Fields that must be non-empty before DRAFT -> SUBMITTED."""
    return ValidationResult.of(
        ValidationIssue(field, "required", f"{field} is required for submission")
        for field in SUBMISSION_REQUIRED_FIELDS
        if is_blank(values.get(field))
    )


def validate_approver_comment(comment: str | None, required: bool) -> ValidationResult:
    return ValidationResult.of(_text_issues("comment", comment, COMMENT_MAX_LENGTH, required=required))


def validate_payment_details(details: PaymentDetails) -> ValidationResult:
    """Check payment fields in order: amount, date, method, reference, comment."""
    issues: list[ValidationIssue] = []
    issues.extend(_positive_amount_issues("actual_cost_paid", details.actual_cost_paid))
    if details.payment_date is None:
        issues.append(ValidationIssue("payment_date", "required", "payment_date is required"))
    issues.extend(_text_issues("payment_method", details.payment_method, PAYMENT_METHOD_MAX_LENGTH))
    issues.extend(_text_issues("payment_reference", details.payment_reference, PAYMENT_REFERENCE_MAX_LENGTH))
    issues.extend(_text_issues("payment_comment", details.payment_comment, COMMENT_MAX_LENGTH, required=False))
    return ValidationResult.of(issues)


def validate_approval_rule(
    min_amount: Decimal | None,
    max_amount: Decimal | None,
    required_approvers: Iterable[Any] | None,
) -> ValidationResult:
    issues: list[ValidationIssue] = []

    min_value: Decimal | None = None
    if min_amount is None:
        issues.append(ValidationIssue("min_amount", "required", "min_amount is required"))
    else:
        try:
            min_value = to_decimal(min_amount, "min_amount")
        except InvalidAmountError:
            issues.append(ValidationIssue("min_amount", "not_a_number", "min_amount must be a number"))
        else:
            if min_value < 0:
                issues.append(ValidationIssue(
                    "min_amount", "negative", "min_amount must be a non-negative number",
                ))

    if max_amount is not None:
        try:
            max_value = to_decimal(max_amount, "max_amount")
        except InvalidAmountError:
            issues.append(ValidationIssue("max_amount", "not_a_number", "max_amount must be a number"))
        else:
            if max_value <= 0:
                issues.append(ValidationIssue(
                    "max_amount", "not_positive", "max_amount must be a positive number",
                ))
            elif min_value is not None and max_value < min_value:
                issues.append(ValidationIssue(
                    "max_amount", "below_min", "max_amount must not be less than min_amount",
                ))

    roles = list(required_approvers or [])
    if not roles:
        issues.append(ValidationIssue(
            "required_approvers", "required", "at least one approver role is required",
        ))
    else:
        names = [str(getattr(r, "value", r)).strip().upper() for r in roles]
        unknown = [n for n in names if n not in ApproverRole.__members__]
        if unknown:
            issues.append(ValidationIssue(
                "required_approvers", "invalid_role",
                f"invalid approver role(s): {', '.join(unknown)}",
            ))
        if len(set(names)) != len(names):
            issues.append(ValidationIssue(
                "required_approvers", "duplicate_role", "approver roles must not repeat",
            ))

    return ValidationResult.of(issues)
