"""
Module: requisition_kernel.db.triggers
Responsibility: Loading, installing and verifying the database-level
    immutability triggers (layer 2 of 2).  This is the database complement
    to the ORM listeners in db/immutability.py.
Architecture position: Kernel > DB.  May import from db/ only.

Invariants enforced:
    - requisition_audit_trail rows: no UPDATE, no DELETE.
    - approval_steps rows: no UPDATE once status is APPROVED or REJECTED,
      no DELETE ever.

Failure modes:
    - IntegrityError surfaced by SQLAlchemy on any trigger violation
      (PostgreSQL raises restrict_violation, SQLite RAISE(ABORT)).
    - FileNotFoundError if the SQL files for the dialect are missing.

Audit relevance:
    Raw SQL, bulk statements and direct console access bypass the ORM
    listeners.  These triggers still reject them.
"""

from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Engine

from requisition_kernel.logging_config import get_logger

logger = get_logger("db.triggers")

SQL_DIR = Path(__file__).parent / "sql"

TRIGGER_FILES = [
    "01_audit_trail.sql",
    "02_approval_step.sql",
]

DROP_FILE = "99_drop_all.sql"

ALL_TRIGGER_NAMES = [
    "trg_audit_trail_immutability_update",
    "trg_audit_trail_immutability_delete",
    "trg_approval_step_decided_update",
    "trg_approval_step_delete",
]


def _dialect_dir(engine: Engine) -> Path:
    return SQL_DIR / engine.dialect.name


def _load_sql_file(engine: Engine, filename: str) -> str:
    """Load SQL content for the engine's dialect."""
    return (_dialect_dir(engine) / filename).read_text(encoding="utf-8")


def _execute_script(engine: Engine, sql_content: str) -> None:
    """Run a multi-statement script.

    psycopg2 accepts several statements per execute.  The sqlite3 driver
    does not, so the script goes through ``executescript`` on the raw
    driver connection.
    """
    if engine.dialect.name == "sqlite":
        raw = engine.raw_connection()
        try:
            raw.driver_connection.executescript(sql_content)
        finally:
            raw.close()
        return

    with engine.connect() as conn:
        conn.execute(text(sql_content))
        conn.commit()


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install database-level immutability triggers.

    Preconditions: Tables must exist (call after create_all).
    Postconditions: Every trigger in ALL_TRIGGER_NAMES is installed.
        Installation is idempotent.
    """
    parts = []
    for filename in TRIGGER_FILES:
        parts.append(f"-- Loading: {filename}")
        parts.append(_load_sql_file(engine, filename))
    _execute_script(engine, "\n".join(parts))
    logger.info(
        "immutability_triggers_installed",
        extra={"dialect": engine.dialect.name, "trigger_count": len(ALL_TRIGGER_NAMES)},
    )


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove database-level immutability triggers.

    WARNING: Only for schema teardown and test cleanup.  Reinstall
    immediately afterwards anywhere data must stay protected.
    """
    _execute_script(engine, _load_sql_file(engine, DROP_FILE))
    logger.warning(
        "immutability_triggers_uninstalled",
        extra={"dialect": engine.dialect.name},
    )


def get_installed_triggers(engine: Engine) -> list[str]:
    """Return the installed immutability trigger names, sorted."""
    names = ", ".join(f"'{name}'" for name in ALL_TRIGGER_NAMES)
    if engine.dialect.name == "sqlite":
        check_sql = (
            "SELECT name FROM sqlite_master "
            f"WHERE type = 'trigger' AND name IN ({names}) ORDER BY name"
        )
    else:
        check_sql = (
            f"SELECT tgname FROM pg_trigger WHERE tgname IN ({names}) ORDER BY tgname"
        )

    with engine.connect() as conn:
        return [row[0] for row in conn.execute(text(check_sql))]


def triggers_installed(engine: Engine) -> bool:
    """True iff every trigger in ALL_TRIGGER_NAMES is installed."""
    return len(get_installed_triggers(engine)) == len(ALL_TRIGGER_NAMES)


def get_missing_triggers(engine: Engine) -> list[str]:
    """Immutability triggers that should be installed but aren't."""
    installed = set(get_installed_triggers(engine))
    return sorted(set(ALL_TRIGGER_NAMES) - installed)
