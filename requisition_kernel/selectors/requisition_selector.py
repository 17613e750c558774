"""
Module: requisition_kernel.selectors.requisition_selector
Responsibility: Filtered, paginated listing of requisitions.

Failure modes:
    - Returns None or an empty list when nothing matches; never raises on
      absence of data.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import Select, func, select

from requisition_kernel.domain.requisition import Requisition, UrgencyLevel
from requisition_kernel.domain.status import RequisitionStatus
from requisition_kernel.models.requisition import RequisitionModel
from requisition_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class RequisitionFilter:
    """All set fields must match.  ``statuses`` matches any listed status."""

    statuses: tuple[RequisitionStatus, ...] = ()
    department_id: UUID | None = None
    submitter_id: UUID | None = None
    category: str | None = None
    urgency_level: UrgencyLevel | None = None


class RequisitionSelector(BaseSelector[RequisitionModel]):
    """Requisition queries, newest first."""

    def _apply(self, stmt: Select, criteria: RequisitionFilter | None) -> Select:
        if criteria is None:
            return stmt
        if criteria.statuses:
            stmt = stmt.where(RequisitionModel.status.in_([s.value for s in criteria.statuses]))
        if criteria.department_id is not None:
            stmt = stmt.where(RequisitionModel.department_id == criteria.department_id)
        if criteria.submitter_id is not None:
            stmt = stmt.where(RequisitionModel.submitter_id == criteria.submitter_id)
        if criteria.category is not None:
            stmt = stmt.where(RequisitionModel.category == criteria.category)
        if criteria.urgency_level is not None:
            stmt = stmt.where(RequisitionModel.urgency_level == criteria.urgency_level.value)
        return stmt

    def get(self, requisition_id: UUID) -> Requisition | None:
        row = self.session.get(RequisitionModel, requisition_id)
        return row.to_dto() if row is not None else None

    def search(
        self,
        criteria: RequisitionFilter | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> list[Requisition]:
        stmt = self._apply(
            select(RequisitionModel).order_by(
                RequisitionModel.created_at.desc(), RequisitionModel.id,
            ),
            criteria,
        )
        return self._fetch_page(stmt, offset, limit)

    def count(self, criteria: RequisitionFilter | None = None) -> int:
        stmt = self._apply(select(func.count()).select_from(RequisitionModel), criteria)
        return self.session.execute(stmt).scalar_one()

    def count_by_status(self, department_id: UUID | None = None) -> dict[RequisitionStatus, int]:
        """Requisition counts per status; statuses with no rows are omitted."""
        stmt = select(RequisitionModel.status, func.count()).group_by(RequisitionModel.status)
        if department_id is not None:
            stmt = stmt.where(RequisitionModel.department_id == department_id)
        return {
            RequisitionStatus(status): count
            for status, count in self.session.execute(stmt).all()
        }
