"""Bounded retry combinator shared by every external call."""

import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import AsyncRetrying, RetryCallState, RetryError, stop_after_attempt

from papernarrator.errors import RetriesExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _log_failed_attempt(label: str, attempts: int) -> Callable[[RetryCallState], None]:
    def log(state: RetryCallState) -> None:
        logger.debug(
            "%s: attempt %d/%d failed: %s",
            label,
            state.attempt_number,
            attempts,
            state.outcome.exception(),
        )

    return log


async def with_retries(
    fn: Callable[[], Awaitable[T]],
    retries: int = 3,
    label: str = "call",
) -> T:
    """
    Await ``fn()`` up to *retries* times, immediately retrying on failure.

    Args:
        fn:      Zero-argument coroutine factory; called once per attempt.
        retries: Total number of attempts (at least one is made).
        label:   Name used in log lines and the raised error.

    Returns:
        The first successful result.

    Raises:
        RetriesExhaustedError: When every attempt raised.
    """
    attempts = max(1, retries)
    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        before_sleep=_log_failed_attempt(label, attempts),
        reraise=False,
    )
    try:
        async for attempt in retrying:
            with attempt:
                result = await fn()
    except RetryError as e:
        last_error = e.last_attempt.exception()
        raise RetriesExhaustedError(label, attempts, last_error) from last_error
    return result
