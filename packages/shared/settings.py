"""
Runtime settings read from the environment.
"""
from __future__ import annotations

import os


def _parse_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _parse_int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from None


def itemization_enabled_default() -> bool:
    """Process-wide default for the report itemization toggle."""
    return _parse_bool_env("AMC_ITEMIZATION_ENABLED", False)


def labs_manual_default() -> int:
    """Manually entered lab results not present in the data store."""
    return _parse_int_env("AMC_LABS_MANUAL", 0)


def audit_logging_enabled() -> bool:
    return _parse_bool_env("AMC_AUDIT_LOGGING", True)


def security_headers_enabled() -> bool:
    return _parse_bool_env("AMC_SECURITY_HEADERS", True)


def sql_echo_enabled() -> bool:
    return _parse_bool_env("AMC_SQL_ECHO", False)


def sqlite_busy_timeout() -> int:
    """Seconds a SQLite connection waits on a locked database."""
    return _parse_int_env("AMC_SQLITE_TIMEOUT", 30)
