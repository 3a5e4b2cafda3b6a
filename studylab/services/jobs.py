"""
Background generation jobs: validate, record, hand off to a worker, poll.
"""
from __future__ import annotations

import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

import structlog

from studylab.errors import GenerationTimeoutError, JobConflictError
from studylab.schemas import ContentSource, FlashcardConfig, JobStatus, SpacedRepetitionState, TestConfig, TestScore
from studylab.services.flashcard_generation import FlashcardGenerator
from studylab.services.logging import job_log_context
from studylab.services.monitoring import ACTIVE_JOBS, GENERATION_DURATION, GENERATION_JOBS
from studylab.services.progress import ProgressReporter
from studylab.services.question_generation import TestQuestionGenerator
from studylab.services.scoring import score_test, validate_flashcard_config, validate_test_config
from studylab.services.spaced_repetition import calculate_next_review
from studylab.services.stores import ArtifactStore, JobStore

logger = structlog.get_logger()

TIMEOUT_MESSAGE = "Operation timed out"


class JobRunner:
    """Thread pool that refuses to run two workers for the same job id."""

    def __init__(self, max_workers: int = 4, executor: Optional[ThreadPoolExecutor] = None):
        self._executor = executor or ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="generation")
        self._active: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def submit(self, job_id: str, fn: Callable[..., Any], *args: Any) -> Future:
        with self._lock:
            current = self._active.get(job_id)
            if current is not None and not current.done():
                raise JobConflictError(f"Job {job_id} is already running")
            future = self._executor.submit(fn, *args)
            self._active[job_id] = future
        future.add_done_callback(lambda f: self._release(job_id, f))
        return future

    def _release(self, job_id: str, future: Future) -> None:
        with self._lock:
            if self._active.get(job_id) is future:
                del self._active[job_id]

    def is_running(self, job_id: str) -> bool:
        with self._lock:
            future = self._active.get(job_id)
            return future is not None and not future.done()

    def wait(self, job_id: str, timeout: Optional[float] = None) -> bool:
        with self._lock:
            future = self._active.get(job_id)
        if future is None:
            return True
        try:
            future.result(timeout=timeout)
        except FutureTimeoutError:
            return False
        return True

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def _as_sources(sources: Sequence[Any]) -> list:
    return [s if isinstance(s, ContentSource) else ContentSource.model_validate(s) for s in sources]


class GenerationService:
    def __init__(
        self,
        jobs: JobStore,
        reporter: ProgressReporter,
        artifacts: ArtifactStore,
        test_generator: TestQuestionGenerator,
        flashcard_generator: FlashcardGenerator,
        runner: JobRunner,
        test_timeout: float = 300.0,
        flashcard_timeout: float = 50.0,
    ):
        self.jobs = jobs
        self.reporter = reporter
        self.artifacts = artifacts
        self.test_generator = test_generator
        self.flashcard_generator = flashcard_generator
        self.runner = runner
        self.timeouts = {"test": test_timeout, "flashcards": flashcard_timeout}

    # -------------------- SUBMISSION --------------------

    def start_test_generation(self, sources: Sequence[Any], config: Any) -> str:
        """Validate synchronously, record a `processing` job and return its id at once."""
        test_config = validate_test_config(config)
        sources = _as_sources(sources)
        job_id = uuid.uuid4().hex
        self.jobs.create(job_id, "test", title=test_config.title, config=test_config.model_dump())
        self._submit(job_id, "test", self.run_test_job, job_id, sources, test_config)
        return job_id

    def start_flashcard_generation(self, sources: Sequence[Any], config: Any) -> str:
        flashcard_config = validate_flashcard_config(config)
        sources = _as_sources(sources)
        job_id = uuid.uuid4().hex
        self.jobs.create(job_id, "flashcards", title=flashcard_config.title, config=flashcard_config.model_dump())
        self._submit(job_id, "flashcards", self.run_flashcard_job, job_id, sources, flashcard_config)
        return job_id

    def _submit(self, job_id: str, kind: str, fn: Callable[..., None], *args: Any) -> None:
        try:
            self.runner.submit(job_id, fn, *args)
        except RuntimeError as e:
            # Executor already shut down
            self._finish(job_id, kind, status="error", message=str(e))
            raise

    # -------------------- WORKERS --------------------

    def run_test_job(self, job_id: str, sources: Sequence[ContentSource], config: TestConfig) -> None:
        self._run(job_id, "test", lambda deadline: self._generate_test(job_id, sources, config, deadline))

    def run_flashcard_job(self, job_id: str, sources: Sequence[ContentSource], config: FlashcardConfig) -> None:
        self._run(job_id, "flashcards", lambda deadline: self._generate_flashcards(job_id, sources, config, deadline))

    def _run(self, job_id: str, kind: str, work: Callable[[float], Dict[str, Any]]) -> None:
        started = time.monotonic()
        ACTIVE_JOBS.inc()
        with job_log_context(job_id, kind):
            try:
                payload = work(started + self.timeouts[kind])
                self._complete(job_id, kind, payload)
            except GenerationTimeoutError as e:
                logger.warning("job_timed_out", error=str(e))
                self._finish(job_id, kind, status="error", message=TIMEOUT_MESSAGE)
            except Exception as e:
                logger.exception("job_failed", error=str(e))
                self._finish(job_id, kind, status="error", message=str(e) or type(e).__name__)
            finally:
                ACTIVE_JOBS.dec()
                GENERATION_DURATION.labels(kind=kind).observe(time.monotonic() - started)

    def _generate_test(self, job_id: str, sources, config: TestConfig, deadline: float) -> Dict[str, Any]:
        questions = self.test_generator.generate(sources, config, job_id, deadline=deadline)
        return {
            "job_id": job_id,
            "title": config.title,
            "config": config.model_dump(),
            "questions": [q.model_dump(by_alias=True) for q in questions],
        }

    def _generate_flashcards(self, job_id: str, sources, config: FlashcardConfig, deadline: float) -> Dict[str, Any]:
        result = self.flashcard_generator.generate(sources, config, job_id, deadline=deadline)
        return {
            "job_id": job_id,
            "title": config.title,
            "description": config.description,
            "flashcards": [c.model_dump() for c in result.flashcards],
        }

    def _complete(self, job_id: str, kind: str, payload: Dict[str, Any]) -> None:
        job = self.jobs.get(job_id)
        if job is None or job.status != "processing":
            logger.info("job_result_discarded", status=job.status if job else None)
            return
        artifact_id = self.artifacts.save(kind, payload)
        if not self._finish(job_id, kind, status="completed", artifact_id=artifact_id, message=None):
            # Lost the race against an expiry
            self.artifacts.delete(kind, artifact_id)

    def _finish(self, job_id: str, kind: str, **patch: Any) -> bool:
        """Move a `processing` job to its final state; terminal states are never overwritten."""
        if not self.jobs.transition(job_id, "processing", **patch):
            logger.info("job_already_finished", job_id=job_id)
            return False
        GENERATION_JOBS.labels(kind=kind, status=patch["status"]).inc()
        logger.info("job_finished", job_id=job_id, kind=kind, status=patch["status"])
        return True

    # -------------------- READS --------------------

    def get_job_status(self, job_id: str) -> Optional[JobStatus]:
        job = self.jobs.get(job_id)
        if job is None:
            return None
        if job.status == "processing" and self._overdue(job.kind, job.created_at):
            self._finish(job_id, job.kind, status="error", message=TIMEOUT_MESSAGE)
            job = self.jobs.get(job_id)
        progress = 100 if job.status == "completed" else self.reporter.get(job_id)
        return JobStatus(
            job_id=job.id,
            kind=job.kind,
            status=job.status,
            progress=progress,
            title=job.title,
            message=job.message,
            artifact_id=job.artifact_id,
        )

    def _overdue(self, kind: str, created_at: datetime) -> bool:
        budget = self.timeouts.get(kind)
        if budget is None:
            return False
        # Grace period past the worker's own deadline check
        return datetime.utcnow() - created_at > timedelta(seconds=budget + 5)

    def wait_for(self, job_id: str, timeout: Optional[float] = None) -> Optional[JobStatus]:
        self.runner.wait(job_id, timeout)
        return self.get_job_status(job_id)

    # -------------------- SCORING / REVIEW --------------------

    def score_completed_test(self, questions: Sequence[Any], answers: Mapping[str, Optional[str]]) -> TestScore:
        return score_test(questions, answers)

    def next_review_state(self, card: Any, is_correct: bool, now: Optional[datetime] = None) -> SpacedRepetitionState:
        return calculate_next_review(card, is_correct, now)

    def review_flashcard(self, card_id: int, is_correct: bool, now: Optional[datetime] = None):
        card = self.artifacts.get_flashcard(card_id)
        if card is None:
            return None
        state = calculate_next_review(card, is_correct, now)
        return self.artifacts.update_flashcard(card_id, **state.model_dump())
