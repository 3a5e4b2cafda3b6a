import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type, TypeVar

import structlog
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from studylab.errors import GenerationTimeoutError, ModelRequestError

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry for completion requests, shared by both generators."""

    max_attempts: int = 3
    wait_multiplier: float = 1.0
    wait_max: float = 8.0
    retry_on: Tuple[Type[BaseException], ...] = (ModelRequestError,)


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning(
        "request_retry",
        attempt=state.attempt_number,
        error=str(exc) if exc else None,
    )


def with_retry(
    fn: Callable[[], T],
    policy: Optional[RetryPolicy] = None,
    before_attempt: Optional[Callable[[], None]] = None,
) -> T:
    """Call `fn` until it succeeds or the policy is exhausted; the last error is re-raised.

    `before_attempt` runs ahead of every attempt and may raise to stop early.
    """
    policy = policy or RetryPolicy()
    retrying = Retrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(multiplier=policy.wait_multiplier, max=policy.wait_max),
        retry=retry_if_exception_type(policy.retry_on),
        before_sleep=_log_retry,
        reraise=True,
    )
    for attempt in retrying:
        with attempt:
            if before_attempt is not None:
                before_attempt()
            return fn()
    raise AssertionError("unreachable")  # pragma: no cover


def check_deadline(deadline: Optional[float], job_id: str) -> None:
    """Raise once the monotonic `deadline` has passed."""
    if deadline is not None and time.monotonic() > deadline:
        raise GenerationTimeoutError(f"Job {job_id} exceeded its time budget")
