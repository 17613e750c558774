"""
Tests for ApprovalWorkflowEngine.

Covers:
- determine_approvers against persisted rules (tiers, department scope,
  default FINANCE when nothing matches)
- create_approval_steps: numbering, assignment to active users, one batch
  per requisition, bad role lists
- approve_step / reject_step: single decision, comment rules, audit entries
- Step predicates: next pending, all approved, any rejected
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from requisition_kernel.domain.approval import ApprovalStepStatus, ApproverRole
from requisition_kernel.domain.audit import AuditChangeType
from requisition_kernel.exceptions import (
    ApprovalStepAlreadyDecidedError,
    ApprovalStepNotFoundError,
    ApprovalStepsAlreadyExistError,
    InvalidApprovalRuleError,
    InvalidRequisitionDataError,
    InvalidRoleError,
    RejectionCommentRequiredError,
    RequisitionNotFoundError,
)
from tests.factories import make_requisition_input


@pytest.fixture
def tiered_rules(rule_service, directory_data):
    actor = directory_data.admin_id
    rule_service.create_rule(actor, Decimal("0"), ["MANAGER"], max_amount=Decimal("1000"))
    rule_service.create_rule(
        actor, Decimal("1000"), ["MANAGER", "FINANCE"], max_amount=Decimal("10000"),
    )
    rule_service.create_rule(actor, Decimal("10000"), ["MANAGER", "FINANCE", "ADMIN"])


@pytest.fixture
def requisition_id(draft_requisition):
    return draft_requisition.id


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


class TestDetermineApprovers:

    def test_no_rules_defaults_to_finance(self, approval_engine, directory_data):
        roles = approval_engine.determine_approvers(Decimal("50"), directory_data.department_id)
        assert roles == (ApproverRole.FINANCE,)

    @pytest.mark.parametrize("amount, expected", [
        (Decimal("500"), (ApproverRole.MANAGER,)),
        (Decimal("1000"), (ApproverRole.MANAGER, ApproverRole.FINANCE)),
        (Decimal("9999.99"), (ApproverRole.MANAGER, ApproverRole.FINANCE)),
        (Decimal("25000"), (ApproverRole.MANAGER, ApproverRole.FINANCE, ApproverRole.ADMIN)),
    ])
    def test_tiers(self, approval_engine, directory_data, tiered_rules, amount, expected):
        assert approval_engine.determine_approvers(amount, directory_data.department_id) == expected

    def test_department_rule_applies_only_to_its_department(
        self, approval_engine, rule_service, directory_data,
    ):
        rule_service.create_rule(
            directory_data.admin_id, Decimal("0"), ["ADMIN"],
            department_id=directory_data.other_department_id,
        )
        assert approval_engine.determine_approvers(
            Decimal("10"), directory_data.other_department_id,
        ) == (ApproverRole.ADMIN,)
        assert approval_engine.determine_approvers(
            Decimal("10"), directory_data.department_id,
        ) == (ApproverRole.FINANCE,)

    def test_department_rule_wins_tie_with_global(
        self, approval_engine, rule_service, directory_data, tiered_rules,
    ):
        rule_service.create_rule(
            directory_data.admin_id, Decimal("1000"), ["FINANCE"],
            department_id=directory_data.department_id,
        )
        roles = approval_engine.determine_approvers(Decimal("2000"), directory_data.department_id)
        assert roles == (ApproverRole.FINANCE,)


# ---------------------------------------------------------------------------
# Step creation
# ---------------------------------------------------------------------------


class TestCreateApprovalSteps:

    def test_steps_numbered_in_role_order(self, approval_engine, requisition_id):
        steps = approval_engine.create_approval_steps(
            requisition_id, [ApproverRole.MANAGER, ApproverRole.FINANCE, ApproverRole.ADMIN],
        )
        assert [s.step_number for s in steps] == [1, 2, 3]
        assert [s.required_role for s in steps] == [
            ApproverRole.MANAGER, ApproverRole.FINANCE, ApproverRole.ADMIN,
        ]
        assert all(s.status == ApprovalStepStatus.PENDING for s in steps)

    def test_assigned_to_first_active_user_with_role(
        self, approval_engine, requisition_id, directory_data,
    ):
        manager_step, finance_step = approval_engine.create_approval_steps(
            requisition_id, ["MANAGER", "FINANCE"],
        )
        assert manager_step.assigned_user_id == directory_data.manager_id
        assert finance_step.assigned_user_id == directory_data.finance_id

    def test_unassigned_when_department_has_no_such_user(
        self, approval_engine, lifecycle, directory_data,
    ):
        requisition = lifecycle.create_requisition(
            make_requisition_input(),
            submitter_id=directory_data.staff_id,
            department_id=directory_data.other_department_id,
        )
        (step,) = approval_engine.create_approval_steps(requisition.id, ["MANAGER"])
        assert step.assigned_user_id is None

    def test_second_batch_rejected(self, approval_engine, requisition_id):
        approval_engine.create_approval_steps(requisition_id, ["MANAGER"])
        with pytest.raises(ApprovalStepsAlreadyExistError):
            approval_engine.create_approval_steps(requisition_id, ["FINANCE"])
        assert len(approval_engine.get_approval_steps(requisition_id)) == 1

    def test_unknown_role(self, approval_engine, requisition_id):
        with pytest.raises(InvalidRoleError) as exc_info:
            approval_engine.create_approval_steps(requisition_id, ["MANAGER", "CFO"])
        assert exc_info.value.role == "CFO"

    def test_empty_roles(self, approval_engine, requisition_id):
        with pytest.raises(InvalidApprovalRuleError):
            approval_engine.create_approval_steps(requisition_id, [])

    def test_unknown_requisition(self, approval_engine, directory_data):
        with pytest.raises(RequisitionNotFoundError):
            approval_engine.create_approval_steps(uuid4(), ["MANAGER"])

    def test_logs_step_creation(self, approval_engine, requisition_id, captured_logs):
        approval_engine.create_approval_steps(requisition_id, ["MANAGER", "FINANCE"])
        record = next(r for r in captured_logs() if r["message"] == "approval_steps_created")
        assert record["step_count"] == 2
        assert record["roles"] == ["MANAGER", "FINANCE"]
        assert record["unassigned"] == 0


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


class TestDecisions:

    @pytest.fixture
    def steps(self, approval_engine, requisition_id):
        return approval_engine.create_approval_steps(requisition_id, ["MANAGER", "FINANCE"])

    def test_approve_step(
        self, approval_engine, ledger, steps, directory_data, deterministic_clock,
    ):
        step = approval_engine.approve_step(steps[0].id, directory_data.manager_id, "fine")
        assert step.status == ApprovalStepStatus.APPROVED
        assert step.approver_comment == "fine"
        assert step.decided_by_id == directory_data.manager_id
        assert step.approved_at == deterministic_clock.now()

        last = ledger.get_requisition_audit_trail(step.requisition_id)[-1]
        assert last.change_type == AuditChangeType.APPROVED
        assert last.metadata == {"comment": "fine", "step_number": 1}

    def test_approve_without_comment(self, approval_engine, steps, directory_data):
        step = approval_engine.approve_step(steps[0].id, directory_data.manager_id)
        assert step.approver_comment is None

    def test_reject_step(self, approval_engine, ledger, steps, directory_data):
        step = approval_engine.reject_step(steps[0].id, directory_data.manager_id, "too expensive")
        assert step.status == ApprovalStepStatus.REJECTED
        last = ledger.get_requisition_audit_trail(step.requisition_id)[-1]
        assert last.change_type == AuditChangeType.REJECTED
        assert last.metadata["comment"] == "too expensive"

    @pytest.mark.parametrize("comment", [None, "", "   "])
    def test_reject_requires_comment(self, approval_engine, steps, directory_data, comment):
        with pytest.raises(RejectionCommentRequiredError):
            approval_engine.reject_step(steps[0].id, directory_data.manager_id, comment)
        assert approval_engine.get_step(steps[0].id).is_pending

    def test_comment_too_long(self, approval_engine, steps, directory_data):
        with pytest.raises(InvalidRequisitionDataError):
            approval_engine.approve_step(steps[0].id, directory_data.manager_id, "x" * 5001)

    def test_decided_once(self, approval_engine, steps, directory_data):
        approval_engine.approve_step(steps[0].id, directory_data.manager_id)
        with pytest.raises(ApprovalStepAlreadyDecidedError) as exc_info:
            approval_engine.reject_step(steps[0].id, directory_data.manager_id, "changed my mind")
        assert exc_info.value.status == "APPROVED"

    def test_unknown_step(self, approval_engine, directory_data):
        with pytest.raises(ApprovalStepNotFoundError):
            approval_engine.approve_step(uuid4(), directory_data.manager_id)
        with pytest.raises(ApprovalStepNotFoundError):
            approval_engine.get_step(uuid4())


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


class TestPredicates:

    def test_no_steps(self, approval_engine, requisition_id):
        assert approval_engine.get_next_pending_step(requisition_id) is None
        assert not approval_engine.all_steps_approved(requisition_id)
        assert not approval_engine.any_step_rejected(requisition_id)

    def test_progression(self, approval_engine, requisition_id, directory_data):
        first, second = approval_engine.create_approval_steps(
            requisition_id, ["MANAGER", "FINANCE"],
        )
        assert approval_engine.get_next_pending_step(requisition_id).id == first.id

        approval_engine.approve_step(first.id, directory_data.manager_id)
        assert approval_engine.get_next_pending_step(requisition_id).id == second.id
        assert not approval_engine.all_steps_approved(requisition_id)

        approval_engine.approve_step(second.id, directory_data.finance_id)
        assert approval_engine.get_pending_steps(requisition_id) == []
        assert approval_engine.all_steps_approved(requisition_id)

    def test_any_rejected(self, approval_engine, requisition_id, directory_data):
        first, _ = approval_engine.create_approval_steps(requisition_id, ["MANAGER", "FINANCE"])
        approval_engine.reject_step(first.id, directory_data.manager_id, "no")
        assert approval_engine.any_step_rejected(requisition_id)
        assert not approval_engine.all_steps_approved(requisition_id)
