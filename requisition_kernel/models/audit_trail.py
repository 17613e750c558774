"""
Module: requisition_kernel.models.audit_trail
Responsibility: ORM persistence for the per-requisition audit trail.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (ORM listener + database trigger).
    - UNIQUE(requisition_id, sequence): one total order per requisition.
    - entry_hash = H(stored fields | prev_hash).  Validated by
      AuditTrailLedger.verify_chain().

Failure modes:
    - ImmutabilityViolationError on any ORM UPDATE/DELETE attempt.
    - IntegrityError on raw UPDATE/DELETE (trigger) or a duplicate sequence.

Audit relevance:
    This table IS the requisition audit trail.  Every lifecycle call, step
    decision and payment produces at least one row.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from requisition_kernel.db.base import Base, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from requisition_kernel.domain.audit import AuditTrailEntry


class AuditTrailEntryModel(Base):
    """One immutable audit trail row.

    ``entry_metadata`` (column ``metadata``) holds canonical JSON text so the
    hash input is byte-identical on every backend.
    """

    __tablename__ = "requisition_audit_trail"

    __table_args__ = (
        UniqueConstraint(
            "requisition_id", "sequence",
            name="uq_requisition_audit_trail_sequence",
        ),
        Index("ix_requisition_audit_trail_timestamp", "requisition_id", "timestamp"),
        Index("ix_requisition_audit_trail_user", "user_id", "timestamp"),
        Index("ix_requisition_audit_trail_change_type", "change_type", "timestamp"),
    )

    requisition_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("requisitions.id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    change_type: Mapped[str] = mapped_column(String(30), nullable=False)
    field_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    previous_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    entry_metadata: Mapped[str | None] = mapped_column("metadata", Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    entry_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<AuditTrailEntry {self.requisition_id}#{self.sequence} "
            f"{self.change_type} field={self.field_name}>"
        )

    def hash_fields(self) -> dict:
        """The stored fields covered by ``entry_hash``."""
        return {
            "id": str(self.id),
            "requisition_id": str(self.requisition_id),
            "sequence": self.sequence,
            "user_id": str(self.user_id),
            "change_type": self.change_type,
            "field_name": self.field_name,
            "previous_value": self.previous_value,
            "new_value": self.new_value,
            "metadata": self.entry_metadata,
            "timestamp": self.timestamp,
        }

    def to_dto(self) -> AuditTrailEntry:
        """Convert ORM model to frozen domain DTO."""
        from requisition_kernel.domain.audit import AuditChangeType, AuditTrailEntry

        return AuditTrailEntry(
            id=self.id,
            requisition_id=self.requisition_id,
            sequence=self.sequence,
            user_id=self.user_id,
            change_type=AuditChangeType(self.change_type),
            timestamp=self.timestamp,
            field_name=self.field_name,
            previous_value=self.previous_value,
            new_value=self.new_value,
            metadata=json.loads(self.entry_metadata) if self.entry_metadata else {},
            prev_hash=self.prev_hash,
            entry_hash=self.entry_hash,
        )
