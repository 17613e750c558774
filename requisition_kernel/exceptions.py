"""
Typed exception hierarchy for the requisition kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the lifecycle engine (web handlers, batch jobs, tests) need to
react to *kinds* of failure: a missing requisition is a 404, an illegal
transition is a 409, a concurrent writer is a retry.  Parsing messages for
that is fragile, so every failure has:

  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured attributes (ids, statuses, field names)

    try:
        lifecycle.approve_next_step(requisition_id, approver_id)
    except InvalidStatusTransitionError as e:
        return conflict(code=e.code, allowed=e.allowed)
    except ConcurrencyConflictError:
        return retry_later()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    RequisitionKernelError (base)
    |
    +-- NotFoundError
    |   +-- RequisitionNotFoundError
    |   +-- ApprovalStepNotFoundError
    |   +-- ApprovalRuleNotFoundError
    |
    +-- ReferentialIntegrityError
    |   +-- DepartmentNotFoundError
    |   +-- UserNotFoundError
    |   +-- UserInactiveError
    |
    +-- TransitionError
    |   +-- InvalidStatusTransitionError
    |   +-- RequisitionNotEditableError
    |
    +-- ValidationError
    |   +-- MissingRequiredFieldsError
    |   +-- RejectionCommentRequiredError
    |   +-- PaymentVarianceCommentRequiredError
    |   +-- InvalidPaymentError
    |   |   +-- InvalidPaymentAmountError
    |   |   +-- MissingPaymentFieldError
    |   +-- InvalidAmountError
    |   +-- InvalidRoleError
    |   +-- InvalidApprovalRuleError
    |   +-- InvalidCurrencyError
    |   +-- InvalidRequisitionDataError
    |
    +-- ApprovalError
    |   +-- ApprovalStepAlreadyDecidedError
    |   +-- ApprovalStepsAlreadyExistError
    |   +-- NoPendingApprovalStepError
    |   +-- UnauthorizedApproverError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- AuditError
        +-- AuditChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                              | When Raised
--------------|-----------------------------------|------------------------------------
Not found     | REQUISITION_NOT_FOUND             | Requisition id doesn't exist
              | APPROVAL_STEP_NOT_FOUND           | Step id doesn't exist
              | APPROVAL_RULE_NOT_FOUND           | Rule id doesn't exist
--------------|-----------------------------------|------------------------------------
Integrity     | DEPARTMENT_NOT_FOUND              | Department missing from directory
              | USER_NOT_FOUND                    | User missing from directory
              | USER_INACTIVE                     | User exists but is deactivated
--------------|-----------------------------------|------------------------------------
Transition    | INVALID_STATUS_TRANSITION         | Edge not in the status table
              | REQUISITION_NOT_EDITABLE          | Field edit outside DRAFT
--------------|-----------------------------------|------------------------------------
Validation    | MISSING_REQUIRED_FIELDS           | Submit without title/description/...
              | REJECTION_COMMENT_REQUIRED        | Reject with blank comment
              | PAYMENT_VARIANCE_COMMENT_REQUIRED | Overpayment beyond threshold, no comment
              | INVALID_PAYMENT_AMOUNT            | actual_cost_paid <= 0
              | MISSING_PAYMENT_FIELD             | Date/method/reference missing or too long
              | INVALID_AMOUNT                    | Non-positive base for variance, bad threshold
              | INVALID_ROLE                      | Unknown approver role
              | INVALID_APPROVAL_RULE             | Rule bounds/roles invalid
              | INVALID_CURRENCY                  | Not an ISO 4217 code
              | INVALID_REQUISITION_DATA          | Create/update input invalid
--------------|-----------------------------------|------------------------------------
Approval      | APPROVAL_STEP_ALREADY_DECIDED     | Step no longer PENDING
              | APPROVAL_STEPS_ALREADY_EXIST      | Steps created twice for one requisition
              | NO_PENDING_APPROVAL_STEP          | Nothing left to approve/reject
              | UNAUTHORIZED_APPROVER             | Step assigned to someone else
--------------|-----------------------------------|------------------------------------
Concurrency   | CONCURRENCY_CONFLICT              | CAS precondition failed (retryable)
Immutability  | IMMUTABILITY_VIOLATION            | Update/delete of audit entry or decided step
Audit         | AUDIT_CHAIN_BROKEN                | Hash chain validation failed

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Inherit from Exception, not ValueError/KeyError.  Domain errors are
   catchable as a group without mixing in programming errors.

2. ``code`` is a class attribute.  Codes are static per type and can be
   read without an instance (API docs, log filters).

3. ConcurrencyError is the only retryable category.  Everything else is
   deterministic: retrying with the same input fails the same way.

===============================================================================
"""

from collections.abc import Iterable, Sequence


class RequisitionKernelError(Exception):
    """
    Base exception for all requisition kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "REQUISITION_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(RequisitionKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class RequisitionNotFoundError(NotFoundError):
    """Requisition with given ID was not found."""

    code: str = "REQUISITION_NOT_FOUND"

    def __init__(self, requisition_id: str):
        self.requisition_id = requisition_id
        super().__init__(f"Requisition not found: {requisition_id}")


class ApprovalStepNotFoundError(NotFoundError):
    """Approval step with given ID was not found."""

    code: str = "APPROVAL_STEP_NOT_FOUND"

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(f"Approval step not found: {step_id}")


class ApprovalRuleNotFoundError(NotFoundError):
    """Approval rule with given ID was not found."""

    code: str = "APPROVAL_RULE_NOT_FOUND"

    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(f"Approval rule not found: {rule_id}")


# Referential integrity exceptions


class ReferentialIntegrityError(RequisitionKernelError):
    """A referenced directory entity is missing or unusable."""

    code: str = "REFERENTIAL_INTEGRITY_ERROR"


class DepartmentNotFoundError(ReferentialIntegrityError):
    """Department does not exist in the directory."""

    code: str = "DEPARTMENT_NOT_FOUND"

    def __init__(self, department_id: str):
        self.department_id = department_id
        super().__init__(f"Department not found: {department_id}")


class UserNotFoundError(ReferentialIntegrityError):
    """User does not exist in the directory."""

    code: str = "USER_NOT_FOUND"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class UserInactiveError(ReferentialIntegrityError):
    """User exists but has been deactivated."""

    code: str = "USER_INACTIVE"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User is inactive: {user_id}")


# Transition exceptions


class TransitionError(RequisitionKernelError):
    """Base exception for lifecycle transition errors."""

    code: str = "TRANSITION_ERROR"


class InvalidStatusTransitionError(TransitionError):
    """Requested status change is not an edge of the lifecycle table."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(
        self,
        from_status: str,
        to_status: str,
        allowed: Iterable[str],
        entity_type: str = "Requisition",
    ):
        self.from_status = from_status
        self.to_status = to_status
        self.allowed = sorted(allowed)
        self.entity_type = entity_type
        allowed_text = ", ".join(self.allowed) if self.allowed else "none"
        super().__init__(
            f"Invalid {entity_type} status transition from {from_status} "
            f"to {to_status}. Allowed transitions: {allowed_text}"
        )


class RequisitionNotEditableError(TransitionError):
    """Requisition fields can only be edited while in DRAFT."""

    code: str = "REQUISITION_NOT_EDITABLE"

    def __init__(self, requisition_id: str, status: str):
        self.requisition_id = requisition_id
        self.status = status
        super().__init__(
            f"Requisition {requisition_id} cannot be edited in status {status}"
        )


# Validation exceptions


class ValidationError(RequisitionKernelError):
    """Base exception for input validation failures."""

    code: str = "VALIDATION_ERROR"


class MissingRequiredFieldsError(ValidationError):
    """Fields required for submission are empty."""

    code: str = "MISSING_REQUIRED_FIELDS"

    def __init__(self, requisition_id: str, fields: Sequence[str]):
        self.requisition_id = requisition_id
        self.fields = list(fields)
        super().__init__(
            f"Requisition {requisition_id} is missing required fields: "
            f"{', '.join(self.fields)}"
        )


class RejectionCommentRequiredError(ValidationError):
    """Rejecting an approval step requires a non-empty comment."""

    code: str = "REJECTION_COMMENT_REQUIRED"

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(f"A comment is required to reject approval step {step_id}")


class PaymentVarianceCommentRequiredError(ValidationError):
    """Overpayment beyond the variance threshold needs a justification."""

    code: str = "PAYMENT_VARIANCE_COMMENT_REQUIRED"

    def __init__(self, requisition_id: str, variance: str, threshold: str):
        self.requisition_id = requisition_id
        self.variance = variance
        self.threshold = threshold
        super().__init__(
            f"Payment for requisition {requisition_id} exceeds approved cost by "
            f"{variance} (threshold {threshold}); a payment comment is required"
        )


class InvalidPaymentError(ValidationError):
    """Base exception for payment detail errors."""

    code: str = "INVALID_PAYMENT"

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class InvalidPaymentAmountError(InvalidPaymentError):
    """Actual cost paid must be a positive amount."""

    code: str = "INVALID_PAYMENT_AMOUNT"


class MissingPaymentFieldError(InvalidPaymentError):
    """A required payment field is missing or malformed."""

    code: str = "MISSING_PAYMENT_FIELD"


class InvalidAmountError(ValidationError):
    """Amount or ratio argument is outside its valid range."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: str, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value}: {reason}")


class InvalidRoleError(ValidationError):
    """Approver role is not one of the recognized roles."""

    code: str = "INVALID_ROLE"

    def __init__(self, role: str):
        self.role = role
        super().__init__(f"Invalid approver role: {role}")


class InvalidApprovalRuleError(ValidationError):
    """Approval rule definition failed validation."""

    code: str = "INVALID_APPROVAL_RULE"

    def __init__(self, messages: Sequence[str]):
        self.messages = list(messages)
        super().__init__("Invalid approval rule: " + "; ".join(self.messages))


class InvalidCurrencyError(ValidationError):
    """Currency code is not a recognized ISO 4217 code."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid currency code: {currency}")


class InvalidRequisitionDataError(ValidationError):
    """Requisition create/update input failed validation."""

    code: str = "INVALID_REQUISITION_DATA"

    def __init__(self, fields: Sequence[str], messages: Sequence[str]):
        self.fields = list(fields)
        self.messages = list(messages)
        super().__init__("Invalid requisition data: " + "; ".join(self.messages))


# Approval exceptions


class ApprovalError(RequisitionKernelError):
    """Base exception for approval step errors."""

    code: str = "APPROVAL_ERROR"


class ApprovalStepAlreadyDecidedError(ApprovalError):
    """Step has already been approved or rejected."""

    code: str = "APPROVAL_STEP_ALREADY_DECIDED"

    def __init__(self, step_id: str, status: str):
        self.step_id = step_id
        self.status = status
        super().__init__(f"Approval step {step_id} has already been decided: {status}")


class ApprovalStepsAlreadyExistError(ApprovalError):
    """Approval steps are created once per requisition."""

    code: str = "APPROVAL_STEPS_ALREADY_EXIST"

    def __init__(self, requisition_id: str):
        self.requisition_id = requisition_id
        super().__init__(f"Approval steps already exist for requisition {requisition_id}")


class NoPendingApprovalStepError(ApprovalError):
    """No PENDING step remains for the requisition."""

    code: str = "NO_PENDING_APPROVAL_STEP"

    def __init__(self, requisition_id: str):
        self.requisition_id = requisition_id
        super().__init__(f"No pending approval step for requisition {requisition_id}")


class UnauthorizedApproverError(ApprovalError):
    """Actor may not decide the step: wrong role, or not the assigned user."""

    code: str = "UNAUTHORIZED_APPROVER"

    def __init__(
        self,
        step_id: str,
        actor_id: str,
        assigned_user_id: str | None = None,
        actor_role: str | None = None,
    ):
        self.step_id = step_id
        self.actor_id = actor_id
        self.assigned_user_id = assigned_user_id
        self.actor_role = actor_role
        if actor_role is not None:
            message = f"Role {actor_role} of user {actor_id} cannot decide step {step_id}"
        else:
            message = f"User {actor_id} is not the assigned approver for step {step_id}"
        super().__init__(message)


# Concurrency exceptions


class ConcurrencyError(RequisitionKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflictError(ConcurrencyError):
    """Compare-and-set precondition failed; another writer got there first."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, expected_status: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_status = expected_status
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}: "
            f"status is no longer {expected_status}"
        )


# Immutability exceptions


class ImmutabilityError(RequisitionKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Audit exceptions


class AuditError(RequisitionKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, entry_id: str, expected_hash: str, actual_hash: str):
        self.entry_id = entry_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {entry_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )
