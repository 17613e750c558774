"""
AuditTrailLedger -- append-only, hash-chained requisition history.

Responsibility:
    Writes one immutable ``requisition_audit_trail`` row per logical event
    and reads a requisition's history back oldest-first.  The class has
    record methods and reads only; there is no update or delete path.

Architecture position:
    Kernel > Services -- called by ApprovalWorkflowEngine,
    FinancialTrackingService and RequisitionLifecycleService.

Invariants enforced:
    - Append-only (ORM listeners + database triggers on the table).
    - Per-requisition ``sequence`` starting at 1, no gaps.  Appends lock
      the requisition row (SELECT ... FOR UPDATE), so writers to one chain
      queue behind each other instead of colliding.
    - Monotonic timestamps: a new entry is stamped
      ``max(clock.now(), previous entry timestamp)``.
    - Hash chain: ``entry_hash = H(stored fields | prev_hash)`` where
      ``prev_hash`` is the previous entry's hash (GENESIS for the first).

Failure modes:
    - AuditChainBrokenError from ``verify_chain`` on tampering.
    - RequisitionNotFoundError when appending to an unknown requisition.
    - ConcurrencyConflictError if the sequence number was taken anyway
      (a writer that bypassed the lock).
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from requisition_kernel.domain.audit import AuditChangeType, AuditTrailEntry
from requisition_kernel.domain.clock import Clock, SystemClock
from requisition_kernel.exceptions import (
    AuditChainBrokenError,
    ConcurrencyConflictError,
    RequisitionNotFoundError,
)
from requisition_kernel.logging_config import get_logger
from requisition_kernel.models.audit_trail import AuditTrailEntryModel
from requisition_kernel.models.requisition import RequisitionModel
from requisition_kernel.utils.hashing import canonicalize_json, hash_audit_entry

logger = get_logger("services.audit_trail")


def _as_text(value: Any) -> str | None:
    """Render a field value the way it is stored in previous/new_value."""
    if value is None:
        return None
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return canonicalize_json(value)
    return str(value)


class AuditTrailLedger:
    """Append-only history of every change to every requisition.

    Contract:
        Each ``record_*`` call flushes exactly one row and returns its DTO.
        Never commits.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def _lock_chain(self, requisition_id: UUID) -> None:
        # Held until commit.  SQLite ignores FOR UPDATE; BEGIN IMMEDIATE
        # already serializes its writers.
        locked = self._session.execute(
            select(RequisitionModel.id)
            .where(RequisitionModel.id == requisition_id)
            .with_for_update()
        ).scalar_one_or_none()
        if locked is None:
            raise RequisitionNotFoundError(str(requisition_id))

    def _last_entry(self, requisition_id: UUID) -> AuditTrailEntryModel | None:
        return self._session.execute(
            select(AuditTrailEntryModel)
            .where(AuditTrailEntryModel.requisition_id == requisition_id)
            .order_by(AuditTrailEntryModel.sequence.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _append(
        self,
        requisition_id: UUID,
        user_id: UUID,
        change_type: AuditChangeType,
        field_name: str | None = None,
        previous_value: Any = None,
        new_value: Any = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditTrailEntry:
        self._lock_chain(requisition_id)
        last = self._last_entry(requisition_id)

        now = self._clock.now()
        if last is not None and last.timestamp > now:
            now = last.timestamp

        entry = AuditTrailEntryModel(
            id=uuid4(),
            requisition_id=requisition_id,
            sequence=(last.sequence + 1) if last is not None else 1,
            user_id=user_id,
            change_type=change_type.value,
            field_name=field_name,
            previous_value=_as_text(previous_value),
            new_value=_as_text(new_value),
            entry_metadata=canonicalize_json(metadata) if metadata else None,
            timestamp=now,
            prev_hash=last.entry_hash if last is not None else None,
        )
        entry.entry_hash = hash_audit_entry(entry.hash_fields(), entry.prev_hash)

        try:
            with self._session.begin_nested():
                self._session.add(entry)
        except IntegrityError as exc:
            logger.warning(
                "audit_sequence_conflict",
                extra={"requisition_id": str(requisition_id), "sequence": entry.sequence},
            )
            raise ConcurrencyConflictError(
                "AuditTrail", str(requisition_id), f"at sequence {entry.sequence - 1}",
            ) from exc

        logger.info(
            "audit_entry_appended",
            extra={
                "requisition_id": str(requisition_id),
                "change_type": change_type.value,
                "sequence": entry.sequence,
                "field_name": field_name,
            },
        )
        return entry.to_dto()

    # Record methods

    def record_creation(
        self,
        requisition_id: UUID,
        user_id: UUID,
        snapshot: dict[str, Any] | None = None,
    ) -> AuditTrailEntry:
        """Record creation; ``snapshot`` is the initial field values."""
        return self._append(
            requisition_id, user_id, AuditChangeType.CREATED,
            new_value=snapshot,
        )

    def record_field_update(
        self,
        requisition_id: UUID,
        user_id: UUID,
        field_name: str,
        previous_value: Any,
        new_value: Any,
    ) -> AuditTrailEntry:
        return self._append(
            requisition_id, user_id, AuditChangeType.FIELD_UPDATED,
            field_name=field_name,
            previous_value=previous_value,
            new_value=new_value,
        )

    def record_status_change(
        self,
        requisition_id: UUID,
        user_id: UUID,
        from_status: Any,
        to_status: Any,
        reason: str | None = None,
    ) -> AuditTrailEntry:
        return self._append(
            requisition_id, user_id, AuditChangeType.STATUS_CHANGED,
            field_name="status",
            previous_value=from_status,
            new_value=to_status,
            metadata={"reason": reason} if reason else None,
        )

    def record_approval(
        self,
        requisition_id: UUID,
        user_id: UUID,
        comment: str | None = None,
        step_number: int | None = None,
    ) -> AuditTrailEntry:
        metadata: dict[str, Any] = {}
        if comment:
            metadata["comment"] = comment
        if step_number is not None:
            metadata["step_number"] = step_number
        return self._append(
            requisition_id, user_id, AuditChangeType.APPROVED,
            metadata=metadata or None,
        )

    def record_rejection(
        self,
        requisition_id: UUID,
        user_id: UUID,
        comment: str,
        step_number: int | None = None,
    ) -> AuditTrailEntry:
        metadata: dict[str, Any] = {"comment": comment}
        if step_number is not None:
            metadata["step_number"] = step_number
        return self._append(
            requisition_id, user_id, AuditChangeType.REJECTED,
            metadata=metadata,
        )

    def record_payment(
        self,
        requisition_id: UUID,
        user_id: UUID,
        details: dict[str, Any],
    ) -> AuditTrailEntry:
        return self._append(
            requisition_id, user_id, AuditChangeType.PAYMENT_RECORDED,
            field_name="actual_cost_paid",
            new_value=details.get("actual_cost_paid"),
            metadata=details,
        )

    def record_notification(
        self,
        requisition_id: UUID,
        user_id: UUID,
        notification_type: str,
        message: str,
    ) -> AuditTrailEntry:
        return self._append(
            requisition_id, user_id, AuditChangeType.NOTIFICATION_SENT,
            metadata={"type": notification_type, "message": message},
        )

    # Reads

    def get_requisition_audit_trail(self, requisition_id: UUID) -> list[AuditTrailEntry]:
        """All entries for a requisition, oldest first."""
        rows = self._session.execute(
            select(AuditTrailEntryModel)
            .where(AuditTrailEntryModel.requisition_id == requisition_id)
            .order_by(AuditTrailEntryModel.timestamp, AuditTrailEntryModel.sequence)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def verify_chain(self, requisition_id: UUID) -> int:
        """
        Recompute every hash in the requisition's chain.

        Returns:
            Number of entries verified.

        Raises:
            AuditChainBrokenError: A stored hash or link does not match.
        """
        rows = self._session.execute(
            select(AuditTrailEntryModel)
            .where(AuditTrailEntryModel.requisition_id == requisition_id)
            .order_by(AuditTrailEntryModel.sequence)
        ).scalars().all()

        expected_prev: str | None = None
        for row in rows:
            if row.prev_hash != expected_prev:
                logger.critical(
                    "audit_chain_broken",
                    extra={"requisition_id": str(requisition_id), "sequence": row.sequence},
                )
                raise AuditChainBrokenError(
                    str(row.id), expected_prev or "None", row.prev_hash or "None",
                )

            recomputed = hash_audit_entry(row.hash_fields(), row.prev_hash)
            if recomputed != row.entry_hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"requisition_id": str(requisition_id), "sequence": row.sequence},
                )
                raise AuditChainBrokenError(str(row.id), recomputed, row.entry_hash)

            expected_prev = row.entry_hash

        logger.info(
            "audit_chain_valid",
            extra={"requisition_id": str(requisition_id), "entry_count": len(rows)},
        )
        return len(rows)
