"""
Config -> Kernel bridges.

Turns parsed configuration into kernel state.  Lives here because the
kernel never imports ``requisition_config``.

Usage:
    from requisition_config.bridges import seed_approval_rules

    settings = load_settings()
    seed_approval_rules(ApprovalRuleService(session), actor_id, settings.approval_rules)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from uuid import UUID

from requisition_config.schema import ApprovalRuleDef
from requisition_kernel.domain.approval import ApprovalRule
from requisition_kernel.services.approval_rule_service import ApprovalRuleService

_logger = logging.getLogger("requisition_kernel.config")


def seed_approval_rules(
    rule_service: ApprovalRuleService,
    actor_id: UUID,
    rule_defs: Iterable[ApprovalRuleDef],
) -> list[ApprovalRule]:
    """Create the configured rules unless the rule table already has rows.

    Returns the rules created (empty when the table was already seeded).
    """
    if rule_service.count_rules() > 0:
        _logger.info("approval_rules_seed_skipped", extra={"reason": "rules_exist"})
        return []

    created = [
        rule_service.create_rule(
            actor_id,
            min_amount=rule_def.min_amount,
            required_approvers=rule_def.required_approvers,
            max_amount=rule_def.max_amount,
            department_id=rule_def.department_id,
        )
        for rule_def in rule_defs
    ]
    _logger.info("approval_rules_seeded", extra={"rule_count": len(created)})
    return created
