"""
System Constants and Configuration Values

Centralizes the environment-driven settings of the event gate.

Usage:
    from eventgate.constants import (
        EVENT_GATE_WINDOW_SECONDS,
        EVENT_GATE_MIN_COUNT,
        ...
    )
"""

import os


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name, "").strip()
    return int(value) if value else default


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name, "").strip()
    return float(value) if value else default


def _list_env(name: str):
    return [item.strip() for item in os.getenv(name, "").split(",") if item.strip()]


# ============================================================================
# GATE POLICY
# ============================================================================

# Counting window; the legacy alert dedup window is used when unset
ALERT_DEDUP_WINDOW_SECONDS = _int_env("ALERT_DEDUP_WINDOW_SECONDS", 0)
EVENT_GATE_WINDOW_SECONDS = _int_env("EVENT_GATE_WINDOW_SECONDS", ALERT_DEDUP_WINDOW_SECONDS)

# Cooldown after an admitted occurrence (0 = no suppression)
EVENT_GATE_BACKOFF_SECONDS = _int_env("EVENT_GATE_BACKOFF_SECONDS", 0)

# Occurrences required within the window before admitting
EVENT_GATE_MIN_COUNT = max(1, _int_env("EVENT_GATE_MIN_COUNT", 1))

# Severity allowlist (empty = every severity is considered)
EVENT_GATE_SEVERITIES = _list_env("EVENT_GATE_SEVERITIES")

# ============================================================================
# TIMEOUTS AND RETRIES
# ============================================================================

EVENT_GATE_ADMIT_TIMEOUT_SECONDS = _float_env("EVENT_GATE_ADMIT_TIMEOUT_SECONDS", 5.0)
EVENT_GATE_REDIS_MAX_RETRIES = _int_env("EVENT_GATE_REDIS_MAX_RETRIES", 50)
STORE_RETRY_AFTER_SECONDS = _int_env("STORE_RETRY_AFTER_SECONDS", 1)

# ============================================================================
# BACKENDS
# ============================================================================

EVENT_GATE_STORE = os.getenv("EVENT_GATE_STORE", "memory").strip().lower()
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")
DATABASE_URL = os.getenv("DATABASE_URL")
REDIS_KEY_PREFIX = os.getenv("EVENT_GATE_REDIS_PREFIX", "event_gate")

# ============================================================================
# HTTP
# ============================================================================

HOOK_RATE_LIMIT = os.getenv("HOOK_RATE_LIMIT", "600/minute")
MAX_HOOK_BODY_BYTES = _int_env("MAX_HOOK_BODY_BYTES", 1 << 20)  # 1MB
