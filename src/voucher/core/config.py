"""
Voucher Engine Configuration

Values are read once from environment variables at import time. Protocol
constants that bound per-call cost (MAX_SCHEDULES) are fixed and cannot be
overridden.
"""

from __future__ import annotations

import logging
import os

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def _get_int(env_var: str, default: int, minimum: int = 1) -> int:
    """Read a positive integer from the environment."""
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"{env_var} must be an integer, got {raw!r}",
            details={"env_var": env_var},
        ) from exc
    if value < minimum:
        raise ConfigurationError(
            f"{env_var} must be >= {minimum}, got {value}",
            details={"env_var": env_var},
        )
    return value


def _get_bool(env_var: str, default: bool) -> bool:
    raw = os.getenv(env_var, "").strip().lower()
    if not raw:
        return default
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(
        f"{env_var} must be a boolean flag, got {raw!r}",
        details={"env_var": env_var},
    )


# Protocol constants
MAX_SCHEDULES = 10

# Per-call resource ceilings (gas units)
CREATE_GAS_LIMIT = _get_int("VOUCHER_CREATE_GAS_LIMIT", 2_000_000)
REDEEM_GAS_LIMIT = _get_int("VOUCHER_REDEEM_GAS_LIMIT", 1_000_000)

# Schedule metadata is mirrored into the registry when one is attached
METADATA_ENABLED = _get_bool("VOUCHER_METADATA_ENABLED", True)

LOG_LEVEL = os.getenv("VOUCHER_LOG_LEVEL", "INFO").strip().upper() or "INFO"
LOG_FILE = os.getenv("VOUCHER_LOG_FILE", "").strip() or None
ENVIRONMENT = os.getenv("VOUCHER_ENVIRONMENT", "development").strip() or "development"

if LOG_LEVEL not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
    raise ConfigurationError(
        f"VOUCHER_LOG_LEVEL must be a logging level name, got {LOG_LEVEL!r}",
        details={"env_var": "VOUCHER_LOG_LEVEL"},
    )
