"""Client-side retry with fixed or linear backoff for transient failures"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from client.errors import error_from_exception, is_transient
from client.models import ApiError

logger = logging.getLogger(__name__)


class Backoff(str, Enum):
    FIXED = "fixed"
    LINEAR = "linear"


@dataclass(frozen=True)
class RetryPolicy:
    """How many extra attempts to make and how long to wait between them

    Attributes:
        attempts: Retries after the first call (0 disables retrying)
        delay: Base delay in seconds
        backoff: FIXED waits ``delay`` every time, LINEAR waits ``delay * n``
    """
    attempts: int = 0
    delay: float = 1.0
    backoff: Backoff = Backoff.LINEAR

    def wait_for(self, attempt: int) -> float:
        if self.backoff == Backoff.FIXED:
            return self.delay
        return self.delay * attempt


async def with_retry(
    call: Callable[[], Awaitable[Any]],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    description: str = "operation",
) -> Any:
    """Run ``call`` and retry transient failures according to ``policy``

    A returned ApiError and a raised exception are both failures. Only
    offline, timeout, rate-limit and server-side errors are retried; 401 is
    owned by the token refresh path and other 4xx are final.

    Returns:
        The first successful result, or the last failure as an ApiError
    """
    attempt = 0
    while True:
        try:
            result = await call()
        except Exception as e:
            result = error_from_exception(e)

        if not isinstance(result, ApiError):
            return result

        if attempt >= policy.attempts or not is_transient(result):
            return result

        attempt += 1
        wait = policy.wait_for(attempt)
        logger.info(
            f"Retrying {description} after {result.status} ({result.status_code}), "
            f"attempt {attempt}/{policy.attempts} in {wait:.2f}s"
        )
        await sleep(wait)
