"""
Requisition lifecycle kernel.

Status state machine, rule-driven approval routing, payment variance
checks and an append-only audit ledger for purchase/expense requisitions.
Entry point for callers: ``services.requisition_lifecycle.RequisitionLifecycleService``.
"""

__version__ = "0.1.0"
