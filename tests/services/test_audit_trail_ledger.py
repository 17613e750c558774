"""
Tests for AuditTrailLedger -- the append-only, hash-chained audit trail.

Covers:
- Per-requisition sequence numbers starting at 1
- Hash chain links (first entry has no prev_hash)
- Timestamps never go backwards even when the clock does
- record_* helpers store the right field names, values and metadata
- get_requisition_audit_trail ordering
- verify_chain on an intact chain
- Appending to an unknown requisition, and a taken sequence number
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from requisition_kernel.domain.audit import AuditChangeType
from requisition_kernel.domain.status import RequisitionStatus
from requisition_kernel.exceptions import ConcurrencyConflictError, RequisitionNotFoundError
from requisition_kernel.utils.hashing import hash_audit_entry
from tests.factories import make_requisition_input


@pytest.fixture
def requisition_id(draft_requisition):
    return draft_requisition.id


# ---------------------------------------------------------------------------
# Chain structure
# ---------------------------------------------------------------------------


class TestChainStructure:

    def test_creation_entries(self, ledger, requisition_id, directory_data):
        trail = ledger.get_requisition_audit_trail(requisition_id)
        assert [e.change_type for e in trail] == [
            AuditChangeType.CREATED,
            AuditChangeType.FIELD_UPDATED,
        ]
        first = trail[0]
        assert first.sequence == 1
        assert first.prev_hash is None
        assert first.user_id == directory_data.staff_id
        assert trail[1].field_name == "estimated_cost"

    def test_sequence_is_contiguous(self, ledger, requisition_id, directory_data):
        for i in range(3):
            ledger.record_field_update(
                requisition_id, directory_data.staff_id, "title", f"t{i}", f"t{i + 1}",
            )
        sequences = [e.sequence for e in ledger.get_requisition_audit_trail(requisition_id)]
        assert sequences == list(range(1, len(sequences) + 1))

    def test_each_entry_links_to_previous(self, ledger, requisition_id, directory_data):
        ledger.record_status_change(
            requisition_id, directory_data.staff_id,
            RequisitionStatus.DRAFT, RequisitionStatus.SUBMITTED,
        )
        trail = ledger.get_requisition_audit_trail(requisition_id)
        for previous, current in zip(trail, trail[1:]):
            assert current.prev_hash == previous.entry_hash

    def test_entry_hash_covers_stored_fields(self, ledger, requisition_id, directory_data):
        entry = ledger.record_field_update(
            requisition_id, directory_data.staff_id, "category", "IT", "Facilities",
        )
        assert len(entry.entry_hash) == 64
        assert entry.entry_hash != hash_audit_entry({"anything": "else"}, entry.prev_hash)

    def test_sequences_are_per_requisition(self, ledger, lifecycle, directory_data, requisition_id):
        other = lifecycle.create_requisition(
            make_requisition_input(title="Monitors"),
            submitter_id=directory_data.staff_id,
            department_id=directory_data.department_id,
        )
        other_trail = ledger.get_requisition_audit_trail(other.id)
        assert other_trail[0].sequence == 1
        assert other_trail[0].prev_hash is None


class TestTimestamps:

    def test_clock_skew_does_not_reorder(
        self, ledger, requisition_id, directory_data, deterministic_clock,
    ):
        before = ledger.get_requisition_audit_trail(requisition_id)[-1].timestamp
        deterministic_clock.set_time(before - timedelta(hours=2))

        entry = ledger.record_field_update(
            requisition_id, directory_data.staff_id, "title", "a", "b",
        )
        assert entry.timestamp == before

    def test_clock_moves_forward(self, ledger, requisition_id, directory_data, deterministic_clock):
        deterministic_clock.advance(60)
        entry = ledger.record_field_update(
            requisition_id, directory_data.staff_id, "title", "a", "b",
        )
        assert entry.timestamp == deterministic_clock.now()

    def test_trail_ordered_by_timestamp_then_sequence(
        self, ledger, requisition_id, directory_data, deterministic_clock,
    ):
        for _ in range(3):
            deterministic_clock.tick()
            ledger.record_field_update(requisition_id, directory_data.staff_id, "title", "a", "b")
        trail = ledger.get_requisition_audit_trail(requisition_id)
        keys = [(e.timestamp, e.sequence) for e in trail]
        assert keys == sorted(keys)


# ---------------------------------------------------------------------------
# Record helpers
# ---------------------------------------------------------------------------


class TestRecordHelpers:

    def test_status_change(self, ledger, requisition_id, directory_data):
        entry = ledger.record_status_change(
            requisition_id, directory_data.staff_id,
            RequisitionStatus.DRAFT, RequisitionStatus.SUBMITTED, reason="ready",
        )
        assert entry.change_type == AuditChangeType.STATUS_CHANGED
        assert entry.field_name == "status"
        assert entry.previous_value == "DRAFT"
        assert entry.new_value == "SUBMITTED"
        assert entry.metadata == {"reason": "ready"}

    def test_status_change_without_reason_has_empty_metadata(
        self, ledger, requisition_id, directory_data,
    ):
        entry = ledger.record_status_change(
            requisition_id, directory_data.staff_id, "DRAFT", "SUBMITTED",
        )
        assert entry.metadata == {}

    def test_field_update_renders_decimal(self, ledger, requisition_id, directory_data):
        entry = ledger.record_field_update(
            requisition_id, directory_data.staff_id, "estimated_cost",
            Decimal("1000.00"), Decimal("1250.50"),
        )
        assert entry.previous_value == "1000.00"
        assert entry.new_value == "1250.50"

    def test_approval_with_comment_and_step(self, ledger, requisition_id, directory_data):
        entry = ledger.record_approval(
            requisition_id, directory_data.manager_id, comment="ok", step_number=2,
        )
        assert entry.change_type == AuditChangeType.APPROVED
        assert entry.metadata == {"comment": "ok", "step_number": 2}

    def test_rejection_keeps_comment(self, ledger, requisition_id, directory_data):
        entry = ledger.record_rejection(requisition_id, directory_data.manager_id, "over budget")
        assert entry.change_type == AuditChangeType.REJECTED
        assert entry.metadata["comment"] == "over budget"

    def test_payment(self, ledger, requisition_id, directory_data):
        entry = ledger.record_payment(
            requisition_id, directory_data.finance_id,
            {"actual_cost_paid": "900.00", "payment_method": "ACH"},
        )
        assert entry.change_type == AuditChangeType.PAYMENT_RECORDED
        assert entry.field_name == "actual_cost_paid"
        assert entry.new_value == "900.00"
        assert entry.metadata["payment_method"] == "ACH"

    def test_notification(self, ledger, requisition_id, directory_data):
        entry = ledger.record_notification(
            requisition_id, directory_data.staff_id, "SUBMITTED", "Requisition submitted",
        )
        assert entry.change_type == AuditChangeType.NOTIFICATION_SENT
        assert entry.metadata == {"type": "SUBMITTED", "message": "Requisition submitted"}

    def test_creation_snapshot_is_canonical_json(self, ledger, requisition_id):
        created = ledger.get_requisition_audit_trail(requisition_id)[0]
        assert created.new_value.startswith("{")
        assert '"title":"Standing desks"' in created.new_value

    def test_append_is_logged(self, ledger, requisition_id, directory_data, captured_logs):
        ledger.record_field_update(requisition_id, directory_data.staff_id, "title", "a", "b")
        records = [r for r in captured_logs() if r["message"] == "audit_entry_appended"]
        assert records[-1]["change_type"] == "FIELD_UPDATED"
        assert records[-1]["requisition_id"] == str(requisition_id)


# ---------------------------------------------------------------------------
# verify_chain
# ---------------------------------------------------------------------------


class TestVerifyChain:

    def test_intact_chain(self, ledger, requisition_id, directory_data, captured_logs):
        ledger.record_approval(requisition_id, directory_data.manager_id)
        count = ledger.verify_chain(requisition_id)
        assert count == len(ledger.get_requisition_audit_trail(requisition_id))
        assert any(r["message"] == "audit_chain_valid" for r in captured_logs())

    def test_empty_chain(self, ledger):
        assert ledger.verify_chain(uuid4()) == 0


# ---------------------------------------------------------------------------
# Append failures
# ---------------------------------------------------------------------------


class TestAppendFailures:

    def test_unknown_requisition(self, ledger, directory_data):
        with pytest.raises(RequisitionNotFoundError):
            ledger.record_approval(uuid4(), directory_data.manager_id)

    def test_taken_sequence_is_a_conflict(
        self, ledger, requisition_id, directory_data, monkeypatch, captured_logs,
    ):
        before = ledger.get_requisition_audit_trail(requisition_id)
        # Reads as an empty chain, so the append reuses sequence 1
        monkeypatch.setattr(ledger, "_last_entry", lambda _rid: None)

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            ledger.record_approval(requisition_id, directory_data.manager_id)

        assert exc_info.value.entity_type == "AuditTrail"
        assert any(r["message"] == "audit_sequence_conflict" for r in captured_logs())
        monkeypatch.undo()
        assert ledger.get_requisition_audit_trail(requisition_id) == before
        assert ledger.verify_chain(requisition_id) == len(before)
