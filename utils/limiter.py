import logging
import os

from fastapi import Request
from slowapi import Limiter

logger = logging.getLogger("ontheform.limiter")

SUBMISSION_RATE_LIMIT = os.getenv("SUBMISSION_RATE_LIMIT", "30/minute")
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() in ("1", "true", "yes", "on")
# Reverse proxies in front of the app; each appends the address it received from
TRUSTED_PROXY_COUNT = int(os.getenv("TRUSTED_PROXY_COUNT", "1"))


def client_ip(request: Request) -> str:
    """Resolve the client IP from X-Forwarded-For as seen by the nearest trusted proxy.

    Entries left of the trusted hops are supplied by the client and are ignored,
    so a forged header cannot change the address used for per-IP limits.
    Falls back to the socket peer when no proxy is trusted or no header is present.
    """
    peer = request.client.host if request.client else ""
    if TRUSTED_PROXY_COUNT <= 0:
        return peer
    xff = request.headers.get("x-forwarded-for")
    hops = [h.strip() for h in (xff or "").split(",") if h.strip()]
    if not hops:
        return peer
    if len(hops) >= TRUSTED_PROXY_COUNT:
        return hops[-TRUSTED_PROXY_COUNT]
    return hops[0]


def _create_limiter() -> Limiter:
    """Create limiter with Redis storage if configured, otherwise use in-memory."""
    redis_url = os.environ.get("REDIS_URL")
    if redis_url:
        logger.info("Using Redis for rate limiting")
        return Limiter(key_func=client_ip, storage_uri=redis_url, enabled=RATE_LIMIT_ENABLED)
    logger.info("Using in-memory rate limiting (Redis not configured)")
    return Limiter(key_func=client_ip, enabled=RATE_LIMIT_ENABLED)


# Global limiter instance to be shared across the app and routers
limiter = _create_limiter()
