"""
ReferentialIntegrityChecker -- existence checks across ownership boundaries.

Requisitions reference users and departments owned by the directory, which
may live in another system, so there are no foreign keys to enforce these
links.  Services call this checker before writing instead.

Failure modes:
    - DepartmentNotFoundError, UserNotFoundError, UserInactiveError for
      directory references.
    - RequisitionNotFoundError, ApprovalStepNotFoundError for kernel rows.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from requisition_kernel.domain.directory import DirectoryLookup
from requisition_kernel.exceptions import (
    ApprovalStepNotFoundError,
    DepartmentNotFoundError,
    RequisitionNotFoundError,
    UserInactiveError,
    UserNotFoundError,
)
from requisition_kernel.logging_config import get_logger
from requisition_kernel.models.approval import ApprovalStepModel
from requisition_kernel.models.requisition import RequisitionModel

logger = get_logger("services.referential_integrity")


class ReferentialIntegrityChecker:
    def __init__(self, session: Session, directory: DirectoryLookup):
        self._session = session
        self._directory = directory

    def validate_department_exists(self, department_id: UUID) -> None:
        if not self._directory.department_exists(department_id):
            logger.warning(
                "referential_integrity_failed",
                extra={"entity_type": "Department", "entity_id": str(department_id)},
            )
            raise DepartmentNotFoundError(str(department_id))

    def validate_user_exists(self, user_id: UUID) -> None:
        """The user must exist and be active."""
        user = self._directory.get_user(user_id)
        if user is None:
            logger.warning(
                "referential_integrity_failed",
                extra={"entity_type": "User", "entity_id": str(user_id)},
            )
            raise UserNotFoundError(str(user_id))
        if not user.is_active:
            raise UserInactiveError(str(user_id))

    def validate_requisition_exists(self, requisition_id: UUID) -> RequisitionModel:
        requisition = self._session.get(RequisitionModel, requisition_id)
        if requisition is None:
            raise RequisitionNotFoundError(str(requisition_id))
        return requisition

    def validate_approval_step_exists(self, step_id: UUID) -> ApprovalStepModel:
        step = self._session.get(ApprovalStepModel, step_id)
        if step is None:
            raise ApprovalStepNotFoundError(str(step_id))
        return step
