"""
SqlDirectory -- DirectoryLookup backed by the bundled directory tables.

Deployments with an external user/department directory implement
``DirectoryLookup`` themselves; this class serves local installs and the
test suite.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from requisition_kernel.domain.approval import ApproverRole, parse_role
from requisition_kernel.domain.directory import DirectoryUser
from requisition_kernel.models.directory import DepartmentModel, DirectoryUserModel


class SqlDirectory:
    """Read-only directory queries over ``departments`` and ``directory_users``."""

    def __init__(self, session: Session):
        self._session = session

    def user_exists(self, user_id: UUID) -> bool:
        return self._session.get(DirectoryUserModel, user_id) is not None

    def department_exists(self, department_id: UUID) -> bool:
        return self._session.get(DepartmentModel, department_id) is not None

    def get_user(self, user_id: UUID) -> DirectoryUser | None:
        user = self._session.get(DirectoryUserModel, user_id)
        return user.to_dto() if user is not None else None

    def find_active_user(
        self, role: ApproverRole | str, department_id: UUID | None,
    ) -> UUID | None:
        """First active user (by email) holding ``role`` in ``department_id``."""
        role = parse_role(role)
        stmt = (
            select(DirectoryUserModel.id)
            .where(
                DirectoryUserModel.role == role.value,
                DirectoryUserModel.is_active.is_(True),
            )
            .order_by(DirectoryUserModel.email)
            .limit(1)
        )
        if department_id is None:
            stmt = stmt.where(DirectoryUserModel.department_id.is_(None))
        else:
            stmt = stmt.where(DirectoryUserModel.department_id == department_id)
        return self._session.execute(stmt).scalar_one_or_none()
