#!/usr/bin/env python3
"""
Create the requisition kernel schema, install immutability triggers and
seed the configured approval rules.

Usage:
    python3 scripts/init_db.py
    python3 scripts/init_db.py --config my_settings.yaml --drop
    REQUISITION_DATABASE_URL=postgresql+psycopg2://... python3 scripts/init_db.py
"""

import argparse
import sys
from pathlib import Path
from uuid import UUID

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

# Recorded as created_by_id on seeded rows
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Initialize the requisition kernel database")
    p.add_argument("--config", type=Path, default=None, help="Settings YAML (default: packaged sets/default.yaml)")
    p.add_argument("--database-url", default=None, help="Overrides the configured database_url")
    p.add_argument("--drop", action="store_true", help="Drop existing tables first")
    p.add_argument("--no-seed-rules", action="store_true", help="Skip seeding approval_rules")
    return p.parse_args()


def main() -> int:
    args = _parse_args()

    from requisition_config import load_settings
    from requisition_config.bridges import seed_approval_rules
    from requisition_kernel.db.engine import (
        create_tables,
        drop_tables,
        init_engine_from_url,
        session_scope,
    )
    from requisition_kernel.db.immutability import register_immutability_listeners
    from requisition_kernel.logging_config import configure_logging
    from requisition_kernel.services.approval_rule_service import ApprovalRuleService

    try:
        settings = load_settings(args.config)
    except (OSError, KeyError, ValueError) as exc:
        print(f"  ERROR: could not load settings: {exc}", file=sys.stderr)
        return 1

    configure_logging(level=settings.log_level)
    database_url = args.database_url or settings.database_url

    print()
    print("  [1/3] Connecting...")
    init_engine_from_url(
        database_url,
        sqlite_busy_timeout_seconds=settings.sqlite_busy_timeout_seconds,
    )

    print("  [2/3] Creating schema and immutability triggers...")
    if args.drop:
        drop_tables()
    create_tables(install_triggers=True)
    register_immutability_listeners()

    if args.no_seed_rules:
        print("  [3/3] Skipping approval rule seed.")
    else:
        print("  [3/3] Seeding approval rules...")
        with session_scope() as session:
            created = seed_approval_rules(
                ApprovalRuleService(session), SYSTEM_ACTOR_ID, settings.approval_rules,
            )
        if created:
            print(f"        {len(created)} rule(s) created.")
        else:
            print("        approval_rules already populated; left unchanged.")

    print()
    print(f"  Done. Database: {database_url}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
