"""
Read-only query base for the requisition kernel.

Selectors share the caller's Session, never write, and hand back frozen
DTOs.  Page bounds are clamped here so no query returns an unbounded list.
"""

from abc import ABC
from typing import Any, Generic, TypeVar

from sqlalchemy import Select
from sqlalchemy.orm import Session

from requisition_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)

MAX_PAGE_SIZE = 100


def clamp_page(offset: int, limit: int) -> tuple[int, int]:
    """Negative offsets become 0; limit is kept within 1..MAX_PAGE_SIZE."""
    return max(0, offset), min(MAX_PAGE_SIZE, max(1, limit))


class BaseSelector(ABC, Generic[ModelType]):

    def __init__(self, session: Session):
        self.session = session

    def _fetch_page(self, stmt: Select, offset: int, limit: int) -> list[Any]:
        offset, limit = clamp_page(offset, limit)
        rows = self.session.execute(stmt.offset(offset).limit(limit)).scalars()
        return [row.to_dto() for row in rows]
