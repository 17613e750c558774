"""SQLAlchemy ORM models for the requisition kernel."""

from requisition_kernel.models.approval import ApprovalRuleModel, ApprovalStepModel
from requisition_kernel.models.audit_trail import AuditTrailEntryModel
from requisition_kernel.models.directory import DepartmentModel, DirectoryUserModel
from requisition_kernel.models.requisition import RequisitionModel

__all__ = [
    "ApprovalRuleModel",
    "ApprovalStepModel",
    "AuditTrailEntryModel",
    "DepartmentModel",
    "DirectoryUserModel",
    "RequisitionModel",
    "import_all_models",
]


def import_all_models() -> list[type]:
    """Return every mapped class so Base.metadata is complete before DDL."""
    return [
        RequisitionModel,
        ApprovalRuleModel,
        ApprovalStepModel,
        AuditTrailEntryModel,
        DepartmentModel,
        DirectoryUserModel,
    ]
