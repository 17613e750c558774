"""
Directory lookup port (``requisition_kernel.domain.directory``).

The user/department directory is owned by another system.  The kernel only
asks existence and "who holds this role" questions through this protocol.
``services.directory.SqlDirectory`` is the bundled implementation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from requisition_kernel.domain.approval import ApproverRole


@dataclass(frozen=True)
class DirectoryUser:
    id: UUID
    role: ApproverRole
    department_id: UUID | None
    is_active: bool
    email: str | None = None
    name: str | None = None


class DirectoryLookup(Protocol):
    def user_exists(self, user_id: UUID) -> bool: ...

    def department_exists(self, department_id: UUID) -> bool: ...

    def get_user(self, user_id: UUID) -> DirectoryUser | None: ...

    def find_active_user(
        self, role: ApproverRole, department_id: UUID | None,
    ) -> UUID | None:
        """First active user holding ``role`` in ``department_id``, or None."""
        ...
