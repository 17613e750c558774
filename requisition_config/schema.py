"""
Requisition kernel settings schema.

The YAML configuration set is parsed into these frozen types by
``requisition_config.loader``.  Nothing here reads files or the
environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from requisition_kernel.domain.approval import ApproverRole

# ---------------------------------------------------------------------------
# Approval rule seeds
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApprovalRuleDef:
    """One approval rule to seed into ``approval_rules``."""

    name: str
    min_amount: Decimal
    required_approvers: tuple[ApproverRole, ...]
    max_amount: Decimal | None = None
    department_id: UUID | None = None


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KernelSettings:
    """Runtime settings for one deployment."""

    database_url: str
    default_currency: str = "USD"
    variance_threshold: Decimal = Decimal("0.10")
    default_approver_role: ApproverRole = ApproverRole.FINANCE
    log_level: str = "INFO"
    sqlite_busy_timeout_seconds: float = 30.0
    approval_rules: tuple[ApprovalRuleDef, ...] = field(default_factory=tuple)
    checksum: str = ""
