"""
Kernel services: the imperative shell around the pure domain.

RequisitionLifecycleService owns transactions; every other service only
flushes within the caller's transaction.
"""

from requisition_kernel.services.approval_rule_service import ApprovalRuleService
from requisition_kernel.services.approval_workflow import ApprovalWorkflowEngine
from requisition_kernel.services.audit_trail_ledger import AuditTrailLedger
from requisition_kernel.services.directory import SqlDirectory
from requisition_kernel.services.financial_tracking import FinancialTrackingService
from requisition_kernel.services.notification_dispatcher import (
    LoggingNotificationTriggers,
    NotificationDispatcher,
)
from requisition_kernel.services.referential_integrity import ReferentialIntegrityChecker
from requisition_kernel.services.requisition_lifecycle import RequisitionLifecycleService

__all__ = [
    "ApprovalRuleService",
    "ApprovalWorkflowEngine",
    "AuditTrailLedger",
    "FinancialTrackingService",
    "LoggingNotificationTriggers",
    "NotificationDispatcher",
    "ReferentialIntegrityChecker",
    "RequisitionLifecycleService",
    "SqlDirectory",
]
