"""
Configuration Loader (``requisition_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into the frozen types in
``requisition_config.schema``.  Values are checked with the kernel's own
validators so a bad file fails at startup, not on the first request.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values (currency, threshold, role, rule bounds)  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from requisition_config.schema import ApprovalRuleDef, KernelSettings
from requisition_kernel.db.types import to_decimal, validate_currency
from requisition_kernel.domain.approval import parse_role, parse_roles
from requisition_kernel.domain.financial import normalize_threshold
from requisition_kernel.domain.validation import validate_approval_rule
from requisition_kernel.exceptions import RequisitionKernelError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_approval_rule(data: dict[str, Any]) -> ApprovalRuleDef:
    """Parse one ``approval_rules`` entry."""
    name = data.get("name", "")
    result = validate_approval_rule(
        data.get("min_amount"),
        data.get("max_amount"),
        data.get("required_approvers"),
    )
    if not result.ok:
        raise ValueError(f"approval rule {name!r}: " + "; ".join(result.messages))

    department = data.get("department_id")
    return ApprovalRuleDef(
        name=name,
        min_amount=to_decimal(data["min_amount"], "min_amount"),
        max_amount=(
            to_decimal(data["max_amount"], "max_amount")
            if data.get("max_amount") is not None else None
        ),
        required_approvers=parse_roles(data["required_approvers"]),
        department_id=UUID(str(department)) if department else None,
    )


def parse_settings(data: dict[str, Any]) -> KernelSettings:
    """
    Parse a settings dict into ``KernelSettings``.

    Preconditions:
        - ``data`` contains ``database_url``.
    Raises:
        KeyError: if ``database_url`` is missing.
        ValueError: if any value fails validation.
    """
    try:
        return KernelSettings(
            database_url=data["database_url"],
            default_currency=validate_currency(data.get("default_currency", "USD")),
            variance_threshold=normalize_threshold(data.get("variance_threshold", "0.10")),
            default_approver_role=parse_role(data.get("default_approver_role", "FINANCE")),
            log_level=str(data.get("log_level", "INFO")).upper(),
            sqlite_busy_timeout_seconds=float(data.get("sqlite_busy_timeout_seconds", 30.0)),
            approval_rules=tuple(
                parse_approval_rule(rule) for rule in data.get("approval_rules") or []
            ),
            checksum=compute_checksum(data),
        )
    except RequisitionKernelError as exc:
        raise ValueError(f"invalid settings: {exc}") from exc


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
