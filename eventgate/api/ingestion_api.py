"""
Ingestion API Router - Webhook intake gated by the event gate

POST /v1/hooks/{source} answers:
  200  admitted; the downstream handler runs in the background
  202  received but gated (cooldown, below threshold, severity filter)
  503  gate state indeterminate; the producer must retry
"""

import json
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from eventgate.admission import AdmissionResult, EventGate, SEVERITY_FILTERED
from eventgate.alerts.fingerprint import event_id
from eventgate.constants import MAX_HOOK_BODY_BYTES, STORE_RETRY_AFTER_SECONDS
from eventgate.errors import InvalidFingerprint, InvalidKey, NotInitialized, StoreUnavailable
from eventgate.logging_config import get_logger
from eventgate.rate_limiting import rate_limit_hooks

logger = get_logger(__name__)

router = APIRouter(tags=["Ingestion"])


# Data Models
class GateStateView(BaseModel):
    first_seen: str
    last_seen: str
    count: int
    suppressed_until: Optional[str] = None


class HookResponse(BaseModel):
    received: bool = True
    gated: bool
    event_id: str
    fingerprint: str
    reason: str
    alert_id: Optional[str] = None
    gate_state: Optional[GateStateView] = None

# These will be injected from main.py
_event_gate: Optional[EventGate] = None
_admitted_handler: Optional[Callable[[str, Dict[str, Any], AdmissionResult], Any]] = None


def configure(event_gate: Optional[EventGate]):
    """Configure router with shared dependencies from main.py"""
    global _event_gate
    _event_gate = event_gate


def set_admitted_handler(handler: Optional[Callable[[str, Dict[str, Any], AdmissionResult], Any]]):
    """Set the downstream handler run for admitted events (plan building)"""
    global _admitted_handler
    _admitted_handler = handler


def _parse_payload(body: bytes) -> Dict[str, Any]:
    if not body:
        return {}
    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="invalid json")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="payload must be a JSON object")
    return payload


@router.post("/v1/hooks/{source}")
@rate_limit_hooks()
async def receive_hook(request: Request, source: str, background_tasks: BackgroundTasks):
    """Receive one occurrence from a producer integration"""
    if _event_gate is None:
        logger.error("[HOOK] Event gate not configured")
        raise HTTPException(status_code=500, detail="event gate not configured")

    body = await request.body()
    if len(body) > MAX_HOOK_BODY_BYTES:
        raise HTTPException(status_code=413, detail="payload too large")

    payload = _parse_payload(body)
    delivery_id = event_id(body)

    try:
        result, fingerprint = await run_in_threadpool(_event_gate.accept, source, payload)
    except (InvalidKey, InvalidFingerprint) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreUnavailable as e:
        logger.warning(f"[HOOK] {source} event {delivery_id[:12]} not admitted, store unavailable: {e}")
        raise HTTPException(
            status_code=503,
            detail="event gate unavailable, retry",
            headers={"Retry-After": str(STORE_RETRY_AFTER_SECONDS)},
        )
    except NotInitialized as e:
        logger.error(f"[HOOK] Event gate misconfigured: {e}")
        raise HTTPException(status_code=500, detail="event gate not configured")

    if result is None:
        response = HookResponse(
            gated=True,
            event_id=delivery_id,
            fingerprint=fingerprint,
            reason=SEVERITY_FILTERED,
        )
        return JSONResponse(status_code=202, content=response.model_dump())

    response = HookResponse(
        gated=not result.allowed,
        event_id=delivery_id,
        fingerprint=fingerprint,
        reason=result.reason,
        alert_id=result.alert_id,
        gate_state=GateStateView(**result.gate_state.to_dict()),
    )

    if not result.allowed:
        return JSONResponse(status_code=202, content=response.model_dump())

    if _admitted_handler is not None:
        background_tasks.add_task(_admitted_handler, source, payload, result)

    return JSONResponse(status_code=200, content=response.model_dump())
