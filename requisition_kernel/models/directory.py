"""
Module: requisition_kernel.models.directory
Responsibility: Reference tables for the bundled SQL directory
    (departments and users).  Deployments with an external directory can
    ignore these tables and supply their own DirectoryLookup.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from requisition_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from requisition_kernel.domain.directory import DirectoryUser


class DepartmentModel(Base):
    __tablename__ = "departments"

    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<Department {self.id} {self.name!r}>"


class DirectoryUserModel(Base):
    __tablename__ = "directory_users"

    __table_args__ = (
        CheckConstraint(
            "role IN ('STAFF', 'MANAGER', 'FINANCE', 'ADMIN')",
            name="ck_directory_users_valid_role",
        ),
        Index("ix_directory_users_role_department", "role", "department_id", "is_active"),
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="STAFF")
    department_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("departments.id"), nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<DirectoryUser {self.id} {self.email} role={self.role}>"

    def to_dto(self) -> DirectoryUser:
        from requisition_kernel.domain.approval import ApproverRole
        from requisition_kernel.domain.directory import DirectoryUser

        return DirectoryUser(
            id=self.id,
            role=ApproverRole(self.role),
            department_id=self.department_id,
            is_active=self.is_active,
            email=self.email,
            name=self.name,
        )
