import time

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from studylab.config import settings
from studylab.db import init_db
from studylab.dependencies import get_blob_store, get_engine, get_generation_service
from studylab.middleware.rate_limit import limiter, rate_limit_exceeded_handler
from studylab.routers import files as files_router
from studylab.routers import flashcards as flashcards_router
from studylab.routers import tests as tests_router
from studylab.services.logging import configure_logging, log_api_request
from studylab.services.monitoring import REQUEST_COUNT, REQUEST_DURATION, get_metrics, health_checker

configure_logging(settings.log_level)
logger = structlog.get_logger()

app = FastAPI(
    title="StudyLab",
    description="Practice test and flashcard generation from uploaded study material",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.middleware("http")
async def record_request(request: Request, call_next):
    started = time.perf_counter()
    log_api_request(request)
    response = await call_next(request)
    elapsed = time.perf_counter() - started

    # Route template keeps job ids out of metric labels
    endpoint = getattr(request.scope.get("route"), "path", request.url.path)
    REQUEST_COUNT.labels(method=request.method, endpoint=endpoint, status=response.status_code).inc()
    REQUEST_DURATION.labels(method=request.method, endpoint=endpoint).observe(elapsed)

    response.headers["X-Process-Time"] = f"{elapsed:.4f}"
    log_api_request(request, response, duration=elapsed)
    return response


# ----------------- Health & Monitoring -----------------
@app.get("/health")
def health_check(engine=Depends(get_engine), blobs=Depends(get_blob_store)):
    return health_checker.get_health_status(engine, blob_root=blobs.root)


@app.get("/metrics")
async def metrics():
    """Prometheus scrape endpoint"""
    return get_metrics()


# ----------------- Lifecycle -----------------
@app.on_event("startup")
def on_startup():
    init_db()
    logger.info("startup_complete", database=settings.database_url.split("://")[0], workers=settings.max_workers)


@app.on_event("shutdown")
def on_shutdown():
    # Only stop the worker pool if a request ever created it
    if get_generation_service.cache_info().currsize:
        get_generation_service().runner.shutdown(wait=False)
    logger.info("shutdown_complete")


# ----------------- Routers -----------------
app.include_router(files_router.router)
app.include_router(tests_router.router)
app.include_router(flashcards_router.router)
