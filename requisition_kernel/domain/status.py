"""
Requisition status lifecycle (``requisition_kernel.domain.status``).

Responsibility
--------------
Declares the requisition status state machine and the
``StatusTransitionValidator`` used as the guard before every persisted
status change.  Also provides the read-only status predicates and
human-readable descriptions.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ZERO I/O.  Imports only from
``domain.workflow`` and ``exceptions``.

Invariants enforced
-------------------
* The only legal edges are::

      DRAFT -> SUBMITTED -> UNDER_REVIEW -> APPROVED -> PAID -> CLOSED
                                        \\-> REJECTED

* ``REJECTED`` and ``CLOSED`` are terminal (empty allowed-next sets).
* ``approved_cost`` may be set only in ``APPROVED_COST_STATUSES``;
  ``actual_cost_paid`` only in ``PAID_STATUSES``.

Failure modes
-------------
* ``InvalidStatusTransitionError`` from ``validate()`` listing the allowed
  next states.
"""

from __future__ import annotations

from enum import Enum
from typing import Generic, TypeVar

from requisition_kernel.domain.workflow import Guard, Transition, Workflow
from requisition_kernel.exceptions import InvalidStatusTransitionError


class RequisitionStatus(str, Enum):
    """Requisition lifecycle states."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAID = "PAID"
    CLOSED = "CLOSED"


REQUISITION_WORKFLOW = Workflow(
    name="requisition",
    description="Purchase/expense requisition lifecycle",
    initial_state=RequisitionStatus.DRAFT.value,
    states=tuple(s.value for s in RequisitionStatus),
    transitions=(
        Transition(
            "DRAFT", "SUBMITTED", action="submit",
            guard=Guard("required_fields_present", "title, description and business justification are non-empty"),
        ),
        Transition("SUBMITTED", "UNDER_REVIEW", action="route_for_review"),
        Transition(
            "UNDER_REVIEW", "APPROVED", action="approve",
            guard=Guard("all_steps_approved", "every approval step is APPROVED"),
        ),
        Transition(
            "UNDER_REVIEW", "REJECTED", action="reject",
            guard=Guard("step_rejected", "an approval step was REJECTED"),
        ),
        Transition(
            "APPROVED", "PAID", action="record_payment",
            guard=Guard("payment_valid", "payment fields present and variance justified"),
        ),
        Transition("PAID", "CLOSED", action="close"),
    ),
    terminal_states=("REJECTED", "CLOSED"),
)

APPROVED_COST_STATUSES: frozenset[RequisitionStatus] = frozenset({
    RequisitionStatus.APPROVED,
    RequisitionStatus.PAID,
    RequisitionStatus.CLOSED,
})

PAID_STATUSES: frozenset[RequisitionStatus] = frozenset({
    RequisitionStatus.PAID,
    RequisitionStatus.CLOSED,
})

_STATUS_DESCRIPTIONS: dict[RequisitionStatus, str] = {
    RequisitionStatus.DRAFT: "Draft - Ready for editing and submission",
    RequisitionStatus.SUBMITTED: "Submitted - Awaiting approval routing",
    RequisitionStatus.UNDER_REVIEW: "Under Review - Pending approver decision",
    RequisitionStatus.APPROVED: "Approved - Ready for payment processing",
    RequisitionStatus.REJECTED: "Rejected - Request denied",
    RequisitionStatus.PAID: "Paid - Payment has been recorded",
    RequisitionStatus.CLOSED: "Closed - Requisition complete",
}


StatusT = TypeVar("StatusT", bound=Enum)


def _value(status: Enum | str) -> str:
    return status.value if isinstance(status, Enum) else str(status)


class StatusTransitionValidator(Generic[StatusT]):
    """Pure guard over a ``Workflow`` transition table.

    Contract:
        No side effects.  Accepts enum members or their string values.
        Unknown states have no allowed transitions.
    """

    def __init__(
        self,
        workflow: Workflow,
        status_type: type[StatusT],
        entity_type: str,
    ) -> None:
        self._workflow = workflow
        self._status_type = status_type
        self._entity_type = entity_type
        self._allowed: dict[str, frozenset[str]] = {
            state: frozenset(t.to_state for t in workflow.transitions_from(state))
            for state in workflow.states
        }

    @property
    def workflow(self) -> Workflow:
        return self._workflow

    def is_valid(self, from_status: StatusT | str, to_status: StatusT | str) -> bool:
        return _value(to_status) in self._allowed.get(_value(from_status), frozenset())

    def allowed_next(self, from_status: StatusT | str) -> frozenset[StatusT]:
        return frozenset(
            self._status_type(s)
            for s in self._allowed.get(_value(from_status), frozenset())
        )

    def validate(self, from_status: StatusT | str, to_status: StatusT | str) -> Transition:
        """Return the matching transition or raise InvalidStatusTransitionError."""
        transition = None
        if self.is_valid(from_status, to_status):
            transition = self._workflow.find_transition(_value(from_status), _value(to_status))
        if transition is None:
            raise InvalidStatusTransitionError(
                from_status=_value(from_status),
                to_status=_value(to_status),
                allowed=self._allowed.get(_value(from_status), frozenset()),
                entity_type=self._entity_type,
            )
        return transition

    def is_terminal(self, status: StatusT | str) -> bool:
        return not self._allowed.get(_value(status))


REQUISITION_STATUS_VALIDATOR: StatusTransitionValidator[RequisitionStatus] = (
    StatusTransitionValidator(REQUISITION_WORKFLOW, RequisitionStatus, "Requisition")
)


def is_valid_transition(from_status: RequisitionStatus | str, to_status: RequisitionStatus | str) -> bool:
    return REQUISITION_STATUS_VALIDATOR.is_valid(from_status, to_status)


def allowed_next_statuses(status: RequisitionStatus | str) -> frozenset[RequisitionStatus]:
    return REQUISITION_STATUS_VALIDATOR.allowed_next(status)


def validate_transition(from_status: RequisitionStatus | str, to_status: RequisitionStatus | str) -> Transition:
    return REQUISITION_STATUS_VALIDATOR.validate(from_status, to_status)


def is_terminal_status(status: RequisitionStatus | str) -> bool:
    return REQUISITION_STATUS_VALIDATOR.is_terminal(status)


def is_rejected_status(status: RequisitionStatus | str) -> bool:
    return _value(status) == RequisitionStatus.REJECTED.value


def is_approval_related_status(status: RequisitionStatus | str) -> bool:
    return _value(status) in {
        RequisitionStatus.UNDER_REVIEW.value,
        RequisitionStatus.APPROVED.value,
        RequisitionStatus.REJECTED.value,
    }


def is_financial_status(status: RequisitionStatus | str) -> bool:
    return _value(status) in {s.value for s in PAID_STATUSES}


def describe_status(status: RequisitionStatus | str) -> str:
    try:
        return _STATUS_DESCRIPTIONS[RequisitionStatus(_value(status))]
    except ValueError:
        return "Unknown status"
