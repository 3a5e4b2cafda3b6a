from typing import List, Optional

import structlog

from studylab.services.stores import ProgressStore

logger = structlog.get_logger()


def progress_percent(done: int, target: int) -> int:
    if target <= 0:
        return 0
    return min(100, round(done / target * 100))


class ProgressReporter:
    """Single writer of a job's progress row; readers see 0% until the first write."""

    def __init__(self, store: ProgressStore):
        self.store = store

    def report(self, job_id: str, done: int, target: int, partial_results: List[dict]) -> int:
        percent = progress_percent(done, target)
        self.store.upsert(job_id, percent, partial_results)
        logger.info("progress_reported", job_id=job_id, progress=percent, items=len(partial_results))
        return percent

    def get(self, job_id: str) -> int:
        row = self.store.get(job_id)
        return row.progress if row is not None else 0

    def partial_results(self, job_id: str) -> Optional[List[dict]]:
        row = self.store.get(job_id)
        return list(row.partial_results) if row is not None else None
