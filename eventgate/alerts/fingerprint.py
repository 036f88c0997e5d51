"""
Event identity helpers.

Producers that carry their own fingerprint keep it; for everything else the
fingerprint is a SHA-256 over the source and the canonical JSON payload.
"""

import hashlib
import json
from typing import Any, Dict, Optional


def canonical_json(payload: Any) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")


def event_fingerprint(source: str, payload: Optional[Dict]) -> str:
    """Producer fingerprint if present, otherwise a hash of source and payload"""
    payload = payload or {}
    supplied = payload.get("fingerprint") if isinstance(payload, dict) else None
    if isinstance(supplied, str) and supplied.strip():
        return supplied.strip()
    digest = hashlib.sha256(f"{source}:".encode("utf-8") + canonical_json(payload))
    return digest.hexdigest()


def event_id(body: bytes) -> str:
    """Identity of one raw delivery"""
    if not body:
        return ""
    return hashlib.sha256(body).hexdigest()


def extract_severity(payload: Optional[Dict]) -> str:
    """
    Severity of an event, lower-cased.

    Looked up as a top-level ``severity`` field, then the labels of the
    first alert that carries one, then the group's common labels. Returns "" when none is found.
    """
    if not isinstance(payload, dict):
        return ""

    candidates = [payload.get("severity")]

    alerts = payload.get("alerts")
    if isinstance(alerts, list):
        for alert in alerts:
            labels = alert.get("labels") if isinstance(alert, dict) else None
            if isinstance(labels, dict) and labels.get("severity"):
                candidates.append(labels["severity"])
                break

    common = payload.get("commonLabels")
    if isinstance(common, dict):
        candidates.append(common.get("severity"))

    for value in candidates:
        if isinstance(value, str) and value.strip():
            return value.strip().lower()
    return ""
