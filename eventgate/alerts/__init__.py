"""
Alerts Module
=============
Canonical alert records and event identity.

Features:
- Alert lifecycle upsert (last writer wins, started_at fixed at first insert)
- Fingerprint derivation for producers that send none
- Severity lookup for allowlist filtering
"""

from .lifecycle import (
    AlertLifecycleTracker,
    AlertRecord,
    AlertStatus,
    encode_payload,
)
from .fingerprint import event_fingerprint, event_id, extract_severity, canonical_json

__all__ = [
    "AlertLifecycleTracker",
    "AlertRecord",
    "AlertStatus",
    "encode_payload",
    "event_fingerprint",
    "event_id",
    "extract_severity",
    "canonical_json",
]
