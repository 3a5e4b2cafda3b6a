"""
Prometheus metrics and the /health report
"""
import os
import time
from pathlib import Path
from typing import Dict, Optional

import psutil
import structlog
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from studylab.services.cache import cache

logger = structlog.get_logger()

REQUEST_COUNT = Counter('http_requests_total', 'Total HTTP requests', ['method', 'endpoint', 'status'])
REQUEST_DURATION = Histogram('http_request_duration_seconds', 'HTTP request duration', ['method', 'endpoint'])
ACTIVE_JOBS = Gauge('generation_jobs_active', 'Generation jobs currently running')
GENERATION_JOBS = Counter('generation_jobs_total', 'Finished generation jobs', ['kind', 'status'])
GENERATION_DURATION = Histogram(
    'generation_job_duration_seconds',
    'Wall-clock time of one generation job',
    ['kind'],
    buckets=(1, 5, 10, 30, 50, 120, 300, 600),
)

HEALTHY = "healthy"
UNHEALTHY = "unhealthy"
CACHE_PROBE_KEY = "health:probe"


def _status(ok: bool, message: str, **extra) -> Dict:
    return {"status": HEALTHY if ok else UNHEALTHY, "message": message, **extra}


def active_job_count() -> int:
    return int(sum(sample.value for metric in ACTIVE_JOBS.collect() for sample in metric.samples))


class HealthChecker:
    def __init__(self):
        self.start_time = time.time()

    def check_database(self, engine) -> Dict:
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error("health_database_failed", error=str(e))
            return _status(False, f"Database connection failed: {e}")
        return _status(True, "Database reachable", dialect=engine.dialect.name)

    def check_cache(self) -> Dict:
        probe = str(time.time())
        cache.set(CACHE_PROBE_KEY, probe, expire=10)
        ok = cache.get(CACHE_PROBE_KEY) == probe
        cache.delete(CACHE_PROBE_KEY)
        if not ok:
            logger.warning("health_cache_failed", backend=cache.backend)
        return _status(ok, "Cache round trip ok" if ok else "Cache round trip failed", backend=cache.backend)

    def check_blob_store(self, root) -> Dict:
        path = Path(root)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("health_blob_store_failed", root=str(path), error=str(e))
            return _status(False, f"Blob directory unavailable: {e}")
        if not os.access(path, os.W_OK):
            return _status(False, f"Blob directory is not writable: {path}")
        return _status(True, "Blob directory writable", path=str(path))

    def get_system_metrics(self) -> Dict:
        try:
            memory = psutil.virtual_memory()
            return {
                "cpu_percent": psutil.cpu_percent(interval=None),
                "memory_percent": memory.percent,
                "memory_available_gb": round(memory.available / (1024 ** 3), 2),
                "process_threads": psutil.Process().num_threads(),
                "uptime_seconds": round(time.time() - self.start_time, 1),
            }
        except (psutil.Error, OSError) as e:
            logger.error("health_system_metrics_failed", error=str(e))
            return {"error": str(e)}

    def get_health_status(self, engine, blob_root: Optional[str] = None) -> Dict:
        """Aggregate component checks; any unhealthy component makes the whole report unhealthy."""
        checks = {
            "database": self.check_database(engine),
            "cache": self.check_cache(),
            "jobs": _status(True, "Worker pool running", active=active_job_count()),
        }
        if blob_root is not None:
            checks["blob_store"] = self.check_blob_store(blob_root)

        unhealthy = [name for name, check in checks.items() if check["status"] == UNHEALTHY]
        return {
            "status": UNHEALTHY if unhealthy else HEALTHY,
            "timestamp": time.time(),
            "checks": checks,
            "system_metrics": self.get_system_metrics(),
            "unhealthy_components": unhealthy,
        }


health_checker = HealthChecker()


def get_metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
