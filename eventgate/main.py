"""
Event Gate service entry point.

    uvicorn eventgate.main:app

The gate store backend is chosen with EVENT_GATE_STORE (memory, redis, sql);
alert records always live in the database at DATABASE_URL.
"""

from contextlib import asynccontextmanager
from typing import Optional

import redis
from dotenv import load_dotenv
from fastapi import FastAPI

load_dotenv()

from eventgate import __version__, constants
from eventgate.admission import AdmissionFacade, EventGate, GateSettings
from eventgate.alerts.lifecycle import AlertLifecycleTracker
from eventgate.api import diagnostics_api, health_api, ingestion_api
from eventgate.database import configure_database, init_db
from eventgate.errors import NotInitialized
from eventgate.logging_config import get_logger, setup_logging
from eventgate.metrics import setup_metrics
from eventgate.rate_limiting import setup_rate_limiting
from eventgate.store import GateStateStore, InMemoryGateStore, RedisGateStore, SQLGateStore

logger = get_logger(__name__)


def build_store(backend: str = None) -> GateStateStore:
    """Gate store for the configured backend"""
    backend = (backend or constants.EVENT_GATE_STORE).strip().lower()
    if backend == "memory":
        return InMemoryGateStore()
    if backend == "redis":
        client = redis.from_url(
            constants.REDIS_URL,
            socket_timeout=constants.EVENT_GATE_ADMIT_TIMEOUT_SECONDS,
            socket_connect_timeout=constants.EVENT_GATE_ADMIT_TIMEOUT_SECONDS,
        )
        return RedisGateStore(client)
    if backend == "sql":
        return SQLGateStore()
    raise NotInitialized(f"unknown EVENT_GATE_STORE backend: {backend!r}")


def build_event_gate(
    store: Optional[GateStateStore] = None,
    tracker: Optional[AlertLifecycleTracker] = None,
    settings: Optional[GateSettings] = None
) -> EventGate:
    settings = settings or GateSettings.from_env()
    facade = AdmissionFacade(
        store=store or build_store(),
        tracker=tracker or AlertLifecycleTracker(),
        default_policy=settings.policy,
        default_timeout=settings.admit_timeout_seconds,
    )
    return EventGate(facade, settings)


def create_app(event_gate: Optional[EventGate] = None, configure_db: bool = True) -> FastAPI:
    """
    Build the FastAPI app.

    Tests pass a ready EventGate and ``configure_db=False``; in production
    the database is configured from DATABASE_URL at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if configure_db:
            try:
                configure_database()
                init_db()
            except NotInitialized as e:
                logger.error(f"[STARTUP] Cannot start without a database: {e}")
                raise
        yield

    app = FastAPI(
        title="Event Gate",
        version=__version__,
        description="Admission gate and alert lifecycle tracking for inbound operational events",
        lifespan=lifespan,
    )

    gate = event_gate or build_event_gate()
    settings = gate.settings
    logger.info(
        f"[STARTUP] Gate store={gate.facade.store.backend} window={settings.window_seconds}s "
        f"backoff={settings.backoff_seconds}s min_count={settings.min_count} "
        f"severities={settings.allow_severities or 'any'}"
    )

    ingestion_api.configure(gate)
    diagnostics_api.configure(gate.facade.store, gate.facade.tracker)
    health_api.configure(gate.facade.store)

    app.include_router(health_api.router)
    app.include_router(ingestion_api.router)
    app.include_router(diagnostics_api.router)

    setup_rate_limiting(app)
    setup_metrics(app)
    return app


def _build_default_app() -> FastAPI:
    setup_logging()
    return create_app()


app = _build_default_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
