"""
Retry logic with exponential backoff for transient failures.

Lock contention between processes is expected and short-lived: acquisition
retries with jittered exponential backoff until the caller's deadline.
"""

from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from tiny64.kernel.logging import get_logger
from tiny64.kernel.timeout import Deadline

logger = get_logger(__name__)

T = TypeVar("T")

# ============================================================================
# Lock Acquisition Retry
# ============================================================================

LOCK_MIN_WAIT_MS = 0.5
LOCK_MAX_WAIT_MS = 50.0
LOCK_JITTER_MS = 1.0


def _log_lock_retry(retry_state: RetryCallState) -> None:
    logger.debug(
        "Lock contended, backing off",
        attempt=retry_state.attempt_number,
        next_wait_ms=round(retry_state.next_action.sleep * 1000, 3)
        if retry_state.next_action
        else None,
    )


def lock_retrying(
    deadline: Deadline,
    retry_on: type[Exception] | tuple[type[Exception], ...],
    min_wait_ms: float = LOCK_MIN_WAIT_MS,
    max_wait_ms: float = LOCK_MAX_WAIT_MS,
    jitter_ms: float = LOCK_JITTER_MS,
    sleep: Callable[[float], None] | None = None,
) -> Retrying:
    """
    Build a Retrying controller for lock acquisition.

    Retries while `retry_on` is raised, stops once the deadline has passed,
    and never sleeps past the deadline. The last exception is re-raised so
    the caller can turn it into a LockTimeout.

    Args:
        deadline: Absolute deadline for the whole acquisition
        retry_on: Exception type(s) signalling contention
        min_wait_ms: First backoff step
        max_wait_ms: Backoff ceiling
        jitter_ms: Upper bound of random jitter added to each step
        sleep: Optional sleep function (tests)

    Example:
        for attempt in lock_retrying(deadline, LockContended):
            with attempt:
                try_create_token()
    """
    backoff = wait_exponential(
        multiplier=min_wait_ms / 1000.0,
        max=max_wait_ms / 1000.0,
    ) + wait_random(0, jitter_ms / 1000.0)

    kwargs = {}
    if sleep is not None:
        kwargs["sleep"] = sleep

    return Retrying(
        retry=retry_if_exception_type(retry_on),
        stop=lambda retry_state: deadline.expired(),
        wait=lambda retry_state: min(backoff(retry_state), deadline.remaining()),
        before_sleep=_log_lock_retry,
        reraise=True,
        **kwargs,
    )


# ============================================================================
# Retry Decorators
# ============================================================================


def retry_on_transient_error(
    max_attempts: int = 3,
    min_wait_ms: int = 10,
    max_wait_ms: int = 100,
    exceptions: tuple[type[Exception], ...] = (OSError,),
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Generic retry decorator for transient errors.

    Args:
        max_attempts: Maximum number of retry attempts (default: 3)
        min_wait_ms: Minimum wait time in milliseconds (default: 10)
        max_wait_ms: Maximum wait time in milliseconds (default: 100)
        exceptions: Tuple of exception types to retry on

    Returns:
        Decorated function that retries on specified exceptions

    Example:
        @retry_on_transient_error(exceptions=(PermissionError,))
        def replace_state_file(...):
            os.replace(tmp, path)
    """
    return retry(
        retry=retry_if_exception_type(exceptions),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=1,
            min=min_wait_ms / 1000.0,
            max=max_wait_ms / 1000.0,
        ),
        before_sleep=lambda retry_state: logger.warning(
            "Transient error detected, retrying",
            attempt=retry_state.attempt_number,
            exception=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        ),
        reraise=True,
    )
