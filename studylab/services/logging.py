"""
Structured logging: JSON events via structlog, with per-job context for workers
"""
import logging
import sys
import time
from contextlib import contextmanager
from functools import wraps

import structlog

QUIET_LOGGERS = ("sqlalchemy", "httpx", "httpcore", "openai", "multipart")


def configure_logging(level: str = "INFO"):
    """Configure structlog on top of stdlib logging; call once at startup."""
    log_level = getattr(logging, str(level or "INFO").upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    logging.getLogger("uvicorn").setLevel(log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def job_log_context(job_id: str, kind: str):
    """Attach job_id/kind to every event logged by the current worker thread."""
    structlog.contextvars.bind_contextvars(job_id=job_id, kind=kind)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars("job_id", "kind")


def log_performance(step: str):
    """Log how long a pipeline step took, and whether it raised."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = structlog.get_logger("performance")
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.warning(
                    "step_failed",
                    step=step,
                    duration_ms=round((time.perf_counter() - started) * 1000, 1),
                    error=str(e),
                )
                raise
            logger.info("step_completed", step=step, duration_ms=round((time.perf_counter() - started) * 1000, 1))
            return result
        return wrapper
    return decorator


def log_api_request(request, response=None, duration: float = None):
    """Log the start of a request, or its completion when `response` is given."""
    logger = structlog.get_logger("api")
    fields = {
        "method": request.method,
        "path": request.url.path,
        "client_ip": request.client.host if request.client else "unknown",
    }
    if response is None:
        logger.debug("api_request_started", **fields)
        return
    fields["status_code"] = response.status_code
    if duration is not None:
        fields["duration_ms"] = round(duration * 1000, 1)
    if response.status_code >= 500:
        logger.error("api_request_completed", **fields)
    else:
        logger.info("api_request_completed", **fields)
