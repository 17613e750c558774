"""
Canonical JSON and the audit trail hash chain.

Audit values, metadata and entry hashes are all computed from
``canonicalize_json`` output, so the same logical entry hashes the same on
PostgreSQL and SQLite.
"""

import hashlib
import json
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

# prev_hash stand-in for the first entry of a requisition's chain
GENESIS_HASH = "GENESIS"


def _encode(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        # 1000.000000000 from Numeric(38, 9) must hash like 1000.00
        return str(obj.normalize())
    if isinstance(obj, datetime):
        return (obj.astimezone(timezone.utc) if obj.tzinfo else obj).isoformat()
    if isinstance(obj, (date, UUID)):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"cannot canonicalize {type(obj).__name__}")


def canonicalize_json(data: Any) -> str:
    """Compact JSON with sorted keys."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode)


def hash_audit_entry(fields: dict, prev_hash: str | None) -> str:
    """
    SHA-256 over an entry's stored fields and its predecessor's hash.

    Editing any stored field of any entry changes every hash after it.
    """
    body = canonicalize_json({"entry": fields, "prev_hash": prev_hash or GENESIS_HASH})
    return hashlib.sha256(body.encode("utf-8")).hexdigest()
