"""
requisition_config -- runtime settings for the requisition kernel.

Responsibility:
    ``load_settings()`` is the single way to obtain ``KernelSettings``.  It
    reads the packaged ``sets/default.yaml`` (or a given file), applies the
    environment overrides and logs a ``REQUISITION_CONFIG_TRACE`` entry
    with the settings checksum.

Architecture position:
    Configuration sits above ``requisition_kernel``; the kernel never
    imports this package.

Environment overrides:
    REQUISITION_DATABASE_URL  -> database_url
    REQUISITION_LOG_LEVEL     -> log_level

Failure modes:
    - FileNotFoundError for a missing settings file.
    - KeyError / ValueError from ``loader.parse_settings``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from requisition_config.loader import compute_checksum, load_yaml_file, parse_settings
from requisition_config.schema import ApprovalRuleDef, KernelSettings

__all__ = [
    "ApprovalRuleDef",
    "KernelSettings",
    "compute_checksum",
    "load_settings",
]

_logger = logging.getLogger("requisition_kernel.config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_SETTINGS_FILE = _DEFAULT_CONFIG_DIR / "default.yaml"

_ENV_OVERRIDES = {
    "REQUISITION_DATABASE_URL": "database_url",
    "REQUISITION_LOG_LEVEL": "log_level",
}


def load_settings(path: Path | str | None = None) -> KernelSettings:
    """
    Load kernel settings.

    Args:
        path: Settings YAML file.  Defaults to the packaged
            ``sets/default.yaml``.

    Returns:
        Frozen ``KernelSettings``; environment overrides win over the file.
    """
    settings_path = Path(path) if path is not None else DEFAULT_SETTINGS_FILE
    data = load_yaml_file(settings_path)

    overridden = []
    for env_name, key in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            data[key] = value
            overridden.append(key)

    settings = parse_settings(data)

    _logger.info(
        "REQUISITION_CONFIG_TRACE",
        extra={
            "source": str(settings_path),
            "checksum": settings.checksum,
            "overrides": overridden,
            "approval_rule_count": len(settings.approval_rules),
        },
    )
    return settings
