"""
Environment-driven settings.

Values are read at call time so tests and long-running processes can change
the environment without re-importing modules.
"""

from __future__ import annotations

import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_str(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip() or default


def database_url() -> str:
    return _env_str("DATABASE_URL")


def pool_min_size() -> int:
    return max(1, _env_int("DB_POOL_MIN_SIZE", 1))


def pool_max_size() -> int:
    return max(pool_min_size(), _env_int("DB_POOL_MAX_SIZE", 5))


def command_timeout_s() -> float:
    return _env_float("DB_COMMAND_TIMEOUT_S", 30.0)


def content_max_limit() -> int:
    return _env_int("CONTENT_MAX_LIMIT", 100)


def admin_max_limit() -> int:
    return _env_int("CONTENT_ADMIN_MAX_LIMIT", 200)


def search_service_url() -> str:
    return _env_str("SEARCH_SERVICE_URL")


def search_timeout_s() -> float:
    return _env_float("SEARCH_TIMEOUT_S", 10.0)


def search_max_results() -> int:
    return _env_int("SEARCH_MAX_RESULTS", 100)


def log_level() -> str:
    return _env_str("LOG_LEVEL", "INFO").upper()
