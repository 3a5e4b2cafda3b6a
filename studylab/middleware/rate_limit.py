"""
Request throttling for upload and generation endpoints (slowapi)
"""
from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
import structlog

logger = structlog.get_logger()

GENERATION_RATE = "10/minute"
UPLOAD_RATE = "30/minute"

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["1000/hour", "100/minute"]
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    logger.warning("rate_limited", path=request.url.path, client_ip=get_remote_address(request), limit=str(exc.detail))
    return JSONResponse(
        status_code=429,
        content={"detail": f"Rate limit exceeded: {exc.detail}. Please try again later."},
    )


def ai_generation_limit():
    """Each generation request starts a background job with several completion calls"""
    return limiter.limit(GENERATION_RATE)


def upload_limit():
    return limiter.limit(UPLOAD_RATE)
