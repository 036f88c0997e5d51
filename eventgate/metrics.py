"""
Prometheus-Compatible Metrics Collection

Counters and histograms for admission decisions and store health.
Recording a metric never affects the admission outcome.

Usage:
    from eventgate.metrics import ADMISSIONS, increment_counter, setup_metrics

    setup_metrics(app)
    increment_counter(ADMISSIONS, {"source": "alertmanager", "outcome": "admitted"})
"""

import time
import logging
from typing import Dict
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

logger = logging.getLogger(__name__)


# ============================================================================
# METRIC DEFINITIONS
# ============================================================================

# Admission outcomes: admitted, cooldown, below_threshold, severity_filtered, error
ADMISSIONS = Counter(
    'eventgate_admissions_total',
    'Admission decisions by source and outcome',
    ['source', 'outcome']
)

ADMIT_LATENCY = Histogram(
    'eventgate_admit_duration_seconds',
    'Time spent in admit(), including store round trips',
    ['backend'],
    buckets=[0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)

STORE_CONFLICTS = Counter(
    'eventgate_store_conflicts_total',
    'Optimistic-concurrency conflicts retried by the gate store',
    ['backend']
)

STORE_ERRORS = Counter(
    'eventgate_store_errors_total',
    'Gate store and lifecycle failures surfaced as StoreUnavailable',
    ['backend']
)

REQUEST_COUNT = Counter(
    'eventgate_http_requests_total',
    'Total HTTP requests',
    ['endpoint', 'method', 'status']
)

REQUEST_LATENCY = Histogram(
    'eventgate_http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['endpoint'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def increment_counter(counter, labels: Dict[str, str], amount: int = 1):
    """Safely increment a counter with labels"""
    try:
        counter.labels(**labels).inc(amount)
    except Exception as e:
        logger.debug(f"[METRICS] Failed to increment counter: {e}")


def observe_latency(histogram, labels: Dict[str, str], duration: float):
    """Safely record latency observation"""
    try:
        histogram.labels(**labels).observe(duration)
    except Exception as e:
        logger.debug(f"[METRICS] Failed to observe latency: {e}")


@contextmanager
def timed_operation(histogram, labels: Dict[str, str]):
    """Context manager for timing operations"""
    start = time.perf_counter()
    try:
        yield
    finally:
        observe_latency(histogram, labels, time.perf_counter() - start)


# ============================================================================
# FASTAPI INTEGRATION
# ============================================================================

class MetricsMiddleware:
    """ASGI middleware for automatic request metrics"""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.perf_counter()
        status_code = "500"

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = str(message.get("status", 200))
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration = time.perf_counter() - start_time
            path = scope.get("path", "/unknown")
            method = scope.get("method", "GET")

            # Skip metrics endpoint itself
            if path != "/metrics":
                increment_counter(REQUEST_COUNT, {
                    "endpoint": path,
                    "method": method,
                    "status": status_code
                })
                observe_latency(REQUEST_LATENCY, {"endpoint": path}, duration)


def setup_metrics(app) -> None:
    """Add metrics middleware and the /metrics endpoint to a FastAPI app"""
    from fastapi import Response

    app.add_middleware(MetricsMiddleware)

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        """Prometheus metrics endpoint"""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    logger.info("[METRICS] Prometheus metrics enabled at /metrics")
