"""
BaseService -- abstract base for kernel services that write.

Responsibility:
    Provides the common constructor and the compare-and-set helper every
    status-bearing write goes through.  Concrete services receive a
    SQLAlchemy ``Session`` and use ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: leaf services flush within the caller's
      transaction.  Only ``RequisitionLifecycleService`` commits or rolls
      back.
    - Optimistic concurrency: status changes are written as
      ``UPDATE ... WHERE id = :id AND status = :expected``.  Zero affected
      rows raises ``ConcurrencyConflictError`` and nothing is changed.

Failure modes:
    - ConcurrencyConflictError when the row left the expected status
      between read and write (or vanished).
"""

from abc import ABC
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from requisition_kernel.db.base import Base
from requisition_kernel.exceptions import ConcurrencyConflictError
from requisition_kernel.logging_config import get_logger

ModelType = TypeVar("ModelType", bound=Base)

logger = get_logger("services.base")


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide list/filter queries -- those belong in
          ``requisition_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session

    def _compare_and_set(
        self,
        model_cls: type[ModelType],
        entity_id: UUID,
        expected_status: str,
        values: dict[str, Any],
        entity_type: str,
    ) -> ModelType:
        """Write ``values`` only if the row still has ``expected_status``.

        Returns the refreshed row.

        Raises:
            ConcurrencyConflictError: No row matched id and status.
        """
        stmt = (
            update(model_cls)
            .where(
                model_cls.id == entity_id,
                model_cls.status == expected_status,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)

        if result.rowcount != 1:
            logger.warning(
                "compare_and_set_conflict",
                extra={
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                    "expected_status": expected_status,
                    "rows_affected": result.rowcount,
                },
            )
            raise ConcurrencyConflictError(entity_type, str(entity_id), expected_status)

        return self.session.get(model_cls, entity_id, populate_existing=True)
