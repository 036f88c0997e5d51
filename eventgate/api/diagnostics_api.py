"""
Diagnostics API Router - Read-only views of gate state and alert records
"""

from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from eventgate.alerts.lifecycle import AlertLifecycleTracker
from eventgate.errors import InvalidFingerprint, InvalidKey, NotInitialized, StoreUnavailable
from eventgate.gate.models import GateKey
from eventgate.store.base import GateStateStore

router = APIRouter(prefix="/v1", tags=["Diagnostics"])


class GateStateResponse(BaseModel):
    source: str
    fingerprint: str
    first_seen: str
    last_seen: str
    count: int
    suppressed_until: Optional[str] = None


class AlertRecordResponse(BaseModel):
    alert_id: str
    fingerprint: str
    status: str
    started_at: str
    updated_at: str
    payload: Any = None


# These will be injected from main.py
_store: Optional[GateStateStore] = None
_tracker: Optional[AlertLifecycleTracker] = None


def configure(store: Optional[GateStateStore], tracker: Optional[AlertLifecycleTracker]):
    """Configure router with shared dependencies from main.py"""
    global _store, _tracker
    _store = store
    _tracker = tracker


def _raise_for(error: Exception):
    if isinstance(error, (InvalidKey, InvalidFingerprint)):
        raise HTTPException(status_code=400, detail=str(error))
    if isinstance(error, StoreUnavailable):
        raise HTTPException(status_code=503, detail="store unavailable")
    raise HTTPException(status_code=500, detail="not configured")


@router.get("/gates/{source}/{fingerprint}", response_model=GateStateResponse)
async def get_gate_state(source: str, fingerprint: str):
    """Current counters for one (source, fingerprint)"""
    if _store is None:
        raise HTTPException(status_code=500, detail="not configured")
    try:
        key = GateKey.create(source, fingerprint)
        state = await run_in_threadpool(_store.get, key)
    except (InvalidKey, StoreUnavailable, NotInitialized) as e:
        _raise_for(e)

    if state is None:
        raise HTTPException(status_code=404, detail="gate state not found")
    return {"source": key.source, "fingerprint": key.fingerprint, **state.to_dict()}


@router.get("/alerts/{alert_id}", response_model=AlertRecordResponse)
async def get_alert(alert_id: str):
    """Canonical alert record"""
    if _tracker is None:
        raise HTTPException(status_code=500, detail="not configured")
    try:
        record = await run_in_threadpool(_tracker.get, alert_id)
    except (InvalidFingerprint, StoreUnavailable, NotInitialized) as e:
        _raise_for(e)

    if record is None:
        raise HTTPException(status_code=404, detail="alert not found")
    return record.to_dict()
