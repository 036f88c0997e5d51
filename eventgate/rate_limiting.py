"""
API Rate Limiting Module
Protects webhook intake from runaway producers using slowapi
"""

from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from fastapi import Request
import os

from .constants import HOOK_RATE_LIMIT
from .logging_config import get_logger

logger = get_logger(__name__)


DEFAULT_RATE_LIMIT = os.getenv("API_RATE_LIMIT", "1200/minute")


def get_hook_identifier(request: Request) -> str:
    """
    Rate limit key: one bucket per source and caller address, so a noisy
    integration cannot starve the others.
    """
    source = request.path_params.get("source")
    address = get_remote_address(request)
    return f"{source}:{address}" if source else address


limiter = Limiter(
    key_func=get_hook_identifier,
    default_limits=[DEFAULT_RATE_LIMIT],
    storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
    strategy="fixed-window",
)


def rate_limit_hooks():
    """Decorator for webhook intake endpoints"""
    return limiter.limit(HOOK_RATE_LIMIT)


def setup_rate_limiting(app):
    """
    Setup rate limiting for a FastAPI application.

    Usage:
        from eventgate.rate_limiting import setup_rate_limiting
        app = FastAPI()
        setup_rate_limiting(app)
    """
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    logger.info(f"[SECURITY] API rate limiting enabled (hooks: {HOOK_RATE_LIMIT}, default: {DEFAULT_RATE_LIMIT})")
    return limiter
