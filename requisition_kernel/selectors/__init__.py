"""Read-only query selectors for requisitions and their audit trails."""

from requisition_kernel.selectors.audit_trail_selector import AuditTrailSelector
from requisition_kernel.selectors.requisition_selector import RequisitionSelector

__all__ = ["AuditTrailSelector", "RequisitionSelector"]
