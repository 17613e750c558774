"""
Tests for the read-side selectors.

Covers:
- RequisitionSelector: get, filtered search, pagination, count, count_by_status
- AuditTrailSelector: by change type, by user, by date range, count
- Page bounds are clamped
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from requisition_kernel.domain.audit import AuditChangeType
from requisition_kernel.domain.requisition import UrgencyLevel
from requisition_kernel.domain.status import RequisitionStatus
from requisition_kernel.selectors.audit_trail_selector import AuditTrailSelector
from requisition_kernel.selectors.base import MAX_PAGE_SIZE, clamp_page
from requisition_kernel.selectors.requisition_selector import RequisitionFilter, RequisitionSelector
from tests.factories import make_requisition_input


@pytest.fixture
def requisitions(lifecycle, directory_data, deterministic_clock):
    """Three requisitions: two Engineering drafts and one Facilities under review."""
    created = []
    for title, department, urgency in [
        ("Desks", directory_data.department_id, "LOW"),
        ("Monitors", directory_data.department_id, "HIGH"),
        ("Paint", directory_data.other_department_id, "MEDIUM"),
    ]:
        deterministic_clock.advance(60)
        created.append(lifecycle.create_requisition(
            make_requisition_input(title=title, urgency_level=urgency, category=title),
            submitter_id=directory_data.staff_id,
            department_id=department,
        ))
    lifecycle.submit_for_approval(created[2].id, directory_data.staff_id)
    return created


@pytest.fixture
def selector(session):
    return RequisitionSelector(session)


@pytest.fixture
def audit_selector(session):
    return AuditTrailSelector(session)


class TestRequisitionSelector:

    def test_get(self, selector, requisitions):
        assert selector.get(requisitions[0].id).title == "Desks"
        assert selector.get(uuid4()) is None

    def test_search_all(self, selector, requisitions):
        found = selector.search()
        assert {r.id for r in found} == {r.id for r in requisitions}

    def test_filter_by_status(self, selector, requisitions):
        found = selector.search(RequisitionFilter(statuses=(RequisitionStatus.UNDER_REVIEW,)))
        assert [r.title for r in found] == ["Paint"]

    def test_filter_by_department_and_urgency(self, selector, requisitions, directory_data):
        criteria = RequisitionFilter(
            department_id=directory_data.department_id, urgency_level=UrgencyLevel.HIGH,
        )
        assert [r.title for r in selector.search(criteria)] == ["Monitors"]

    def test_filter_by_category_and_submitter(self, selector, requisitions, directory_data):
        criteria = RequisitionFilter(category="Desks", submitter_id=directory_data.staff_id)
        assert selector.count(criteria) == 1
        assert selector.count(RequisitionFilter(submitter_id=uuid4())) == 0

    def test_pagination(self, selector, requisitions):
        first = selector.search(limit=2)
        rest = selector.search(offset=2, limit=2)
        assert len(first) == 2
        assert len(rest) == 1
        assert not {r.id for r in first} & {r.id for r in rest}

    def test_count_by_status(self, selector, requisitions, directory_data):
        assert selector.count_by_status() == {
            RequisitionStatus.DRAFT: 2,
            RequisitionStatus.UNDER_REVIEW: 1,
        }
        assert selector.count_by_status(directory_data.other_department_id) == {
            RequisitionStatus.UNDER_REVIEW: 1,
        }


class TestAuditTrailSelector:

    def test_by_change_type(self, audit_selector, requisitions):
        created = audit_selector.by_change_type(AuditChangeType.CREATED)
        assert len(created) == 3
        timestamps = [e.timestamp for e in created]
        assert timestamps == sorted(timestamps, reverse=True)

    def test_by_user(self, audit_selector, requisitions, directory_data):
        entries = audit_selector.by_user(directory_data.staff_id)
        assert entries
        assert all(e.user_id == directory_data.staff_id for e in entries)
        assert audit_selector.by_user(uuid4()) == []

    def test_by_date_range(self, audit_selector, requisitions, lifecycle):
        first_created = lifecycle.get_requisition_audit_trail(requisitions[0].id)[0].timestamp
        entries = audit_selector.by_date_range(
            first_created, first_created + timedelta(seconds=30),
        )
        assert {e.requisition_id for e in entries} == {requisitions[0].id}

    def test_count(self, audit_selector, requisitions, lifecycle):
        rid = requisitions[2].id
        assert audit_selector.count(rid) == len(lifecycle.get_requisition_audit_trail(rid))
        assert audit_selector.count() >= audit_selector.count(rid)

    def test_all_is_paginated(self, audit_selector, requisitions):
        assert len(audit_selector.all(limit=3)) == 3

    def test_amounts_render_consistently(self, audit_selector, requisitions):
        estimated = [
            e for e in audit_selector.by_change_type(AuditChangeType.FIELD_UPDATED)
            if e.field_name == "estimated_cost"
        ]
        assert len(estimated) == 3
        assert all('"amount":"1000.00"' in e.new_value for e in estimated)


class TestPageBounds:

    @pytest.mark.parametrize("offset, limit, expected", [
        (0, 20, (0, 20)),
        (-5, 20, (0, 20)),
        (10, 0, (10, 1)),
        (0, 5000, (0, MAX_PAGE_SIZE)),
    ])
    def test_clamp_page(self, offset, limit, expected):
        assert clamp_page(offset, limit) == expected

    def test_oversized_limit_is_capped(self, selector, requisitions):
        assert len(selector.search(limit=10_000)) == 3
