import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)


logger = logging.getLogger("gemini_proxy.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    delay_seconds: float = 2.0
    retry_statuses: frozenset = frozenset({503})

    def should_retry(self, exc: BaseException) -> bool:
        return (
            isinstance(exc, httpx.HTTPStatusError)
            and exc.response.status_code in self.retry_statuses
        )


def _log_retry(retry_state: RetryCallState) -> None:
    logger.warning(
        "Retryable provider error (%s), attempt %d failed, retrying in %.2fs",
        retry_state.outcome.exception(),
        retry_state.attempt_number,
        retry_state.next_action.sleep,
    )


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``fn`` until it succeeds or fails with a non-retryable error.

    At most ``policy.max_retries`` extra attempts are made, with a fixed
    delay between them. The last error is re-raised unchanged.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_retries + 1),
        wait=wait_fixed(policy.delay_seconds),
        retry=retry_if_exception(policy.should_retry),
        before_sleep=_log_retry,
        reraise=True,
        sleep=sleep,
    )
    return await retrying(fn)
