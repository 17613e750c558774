"""
Module: requisition_kernel.selectors.audit_trail_selector
Responsibility: Cross-requisition audit trail queries (by change type, by
    user, by date range) with pagination.

Per-requisition history lives on AuditTrailLedger; this selector serves
reporting and forensic review across requisitions.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, func, select

from requisition_kernel.domain.audit import AuditChangeType, AuditTrailEntry
from requisition_kernel.models.audit_trail import AuditTrailEntryModel
from requisition_kernel.selectors.base import BaseSelector


class AuditTrailSelector(BaseSelector[AuditTrailEntryModel]):
    """Audit entries newest first."""

    def _page(self, stmt: Select, offset: int, limit: int) -> list[AuditTrailEntry]:
        stmt = stmt.order_by(
            AuditTrailEntryModel.timestamp.desc(),
            AuditTrailEntryModel.sequence.desc(),
        )
        return self._fetch_page(stmt, offset, limit)

    def by_change_type(
        self, change_type: AuditChangeType, offset: int = 0, limit: int = 100,
    ) -> list[AuditTrailEntry]:
        return self._page(
            select(AuditTrailEntryModel).where(
                AuditTrailEntryModel.change_type == change_type.value,
            ),
            offset, limit,
        )

    def by_user(self, user_id: UUID, offset: int = 0, limit: int = 100) -> list[AuditTrailEntry]:
        return self._page(
            select(AuditTrailEntryModel).where(AuditTrailEntryModel.user_id == user_id),
            offset, limit,
        )

    def by_date_range(
        self,
        start: datetime,
        end: datetime,
        offset: int = 0,
        limit: int = 100,
    ) -> list[AuditTrailEntry]:
        """Entries with ``start <= timestamp <= end``."""
        return self._page(
            select(AuditTrailEntryModel).where(
                AuditTrailEntryModel.timestamp >= start,
                AuditTrailEntryModel.timestamp <= end,
            ),
            offset, limit,
        )

    def all(self, offset: int = 0, limit: int = 100) -> list[AuditTrailEntry]:
        return self._page(select(AuditTrailEntryModel), offset, limit)

    def count(self, requisition_id: UUID | None = None) -> int:
        stmt = select(func.count()).select_from(AuditTrailEntryModel)
        if requisition_id is not None:
            stmt = stmt.where(AuditTrailEntryModel.requisition_id == requisition_id)
        return self.session.execute(stmt).scalar_one()
