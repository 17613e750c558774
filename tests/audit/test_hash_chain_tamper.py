"""
Hash chain tamper detection.

Both immutability layers stop writes, so tampering is simulated on the
loaded rows with autoflush disabled: verify_chain recomputes from what it
reads and must notice.

Covers:
- An edited field breaks the entry's own hash
- An edited prev_hash breaks the link
- A full, untouched lifecycle chain verifies
"""

import pytest
from sqlalchemy import select

from requisition_kernel.exceptions import AuditChainBrokenError
from requisition_kernel.models.audit_trail import AuditTrailEntryModel
from tests.factories import make_payment


def load_rows(session, requisition_id):
    return session.execute(
        select(AuditTrailEntryModel)
        .where(AuditTrailEntryModel.requisition_id == requisition_id)
        .order_by(AuditTrailEntryModel.sequence)
    ).scalars().all()


class TestTamperDetection:

    def test_edited_value_detected(self, session, ledger, approved_requisition, captured_logs):
        rows = load_rows(session, approved_requisition.id)
        target = rows[1]
        sequence = target.sequence
        with session.no_autoflush:
            target.new_value = '{"amount":"1.00","currency":"USD"}'
            with pytest.raises(AuditChainBrokenError) as exc_info:
                ledger.verify_chain(approved_requisition.id)
            assert exc_info.value.entry_id == str(target.id)
            assert exc_info.value.actual_hash == target.entry_hash
        session.expire(target)

        broken = next(r for r in captured_logs() if r["message"] == "audit_chain_broken")
        assert broken["level"] == "CRITICAL"
        assert broken["sequence"] == sequence

    def test_edited_link_detected(self, session, ledger, approved_requisition):
        rows = load_rows(session, approved_requisition.id)
        target = rows[2]
        with session.no_autoflush:
            target.prev_hash = "0" * 64
            with pytest.raises(AuditChainBrokenError) as exc_info:
                ledger.verify_chain(approved_requisition.id)
            assert exc_info.value.expected_hash == rows[1].entry_hash
        session.expire(target)

    def test_untampered_chain_after_full_lifecycle(
        self, lifecycle, approved_requisition, directory_data,
    ):
        rid = approved_requisition.id
        lifecycle.record_payment(rid, directory_data.finance_id, make_payment())
        lifecycle.close_requisition(rid, directory_data.finance_id)
        assert lifecycle.ledger.verify_chain(rid) == len(lifecycle.get_requisition_audit_trail(rid))
