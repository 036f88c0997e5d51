"""
Health API Router - Health check endpoints for monitoring service status
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from eventgate import __version__
from eventgate.database import ping_database
from eventgate.store.base import GateStateStore

router = APIRouter(tags=["Health"])

# These will be injected from main.py
_store: Optional[GateStateStore] = None


def configure(store: Optional[GateStateStore]):
    """Configure router with shared dependencies from main.py"""
    global _store
    _store = store


@router.get("/")
async def root():
    """Root endpoint - service info"""
    return {
        "status": "operational",
        "service": "Event Gate",
        "version": __version__,
    }


@router.get("/health")
async def health():
    """Component health; 503 when anything admission depends on is down"""
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {}
    }

    # Check gate store
    try:
        if _store is not None:
            await run_in_threadpool(_store.ping)
            health_status["components"]["gate_store"] = f"healthy ({_store.backend})"
        else:
            health_status["components"]["gate_store"] = "not configured"
            health_status["status"] = "degraded"
    except Exception as e:
        health_status["components"]["gate_store"] = f"unhealthy: {str(e)}"
        health_status["status"] = "degraded"

    # Check Database
    try:
        await run_in_threadpool(ping_database)
        health_status["components"]["database"] = "healthy"
    except Exception as e:
        health_status["components"]["database"] = f"unhealthy: {str(e)}"
        health_status["status"] = "degraded"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JSONResponse(status_code=status_code, content=health_status)
