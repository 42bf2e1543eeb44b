"""Timeout + bounded exponential retry around a single upstream call.

Each attempt is raced against ``timeout`` seconds. Failures are classified
through :func:`viba.errors.classify_error`; quota failures abort at once,
everything else is retried after ``min(2**attempt, cap)`` seconds until
``max_retries`` retries have been spent.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from viba.errors import QuotaExceededError, classify_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Called before each retry with (attempt_number, delay_seconds, error)
RetryCallback = Callable[[int, float, Exception], None]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    timeout: float
    max_retries: int
    backoff_cap: float = 30.0
    jitter: float = 0.0


def backoff_delay(attempt: int, cap: float, jitter: float = 0.0) -> float:
    """Delay before retry number ``attempt`` (1-based), in seconds."""
    delay = min(float(2 ** attempt), cap)
    if jitter:
        delay = min(delay * (1.0 + random.uniform(0.0, jitter)), cap)
    return delay


class RetryingInvoker:
    """Runs upstream operations under a :class:`RetryPolicy`.

    Invocations share nothing but the injected ``sleep``, so independent
    calls back off concurrently.
    """

    def __init__(self, sleep: Optional[Sleep] = None):
        self._sleep = sleep or asyncio.sleep

    async def invoke(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy,
        on_retry: Optional[RetryCallback] = None,
        label: str = "upstream call",
    ) -> T:
        attempt = 0
        while True:
            try:
                return await asyncio.wait_for(operation(), timeout=policy.timeout)
            except Exception as exc:
                error = classify_error(exc)
                attempt += 1
                logger.warning("%s attempt %d failed: %s", label, attempt, error.message)

                if isinstance(error, QuotaExceededError):
                    logger.error("Quota exceeded during %s, stopping retries", label)
                    raise error

                if attempt > policy.max_retries:
                    raise error

            delay = backoff_delay(attempt, policy.backoff_cap, policy.jitter)
            if on_retry is not None:
                on_retry(attempt, delay, error)
            logger.info("Retrying %s (attempt %d) after %.1fs", label, attempt, delay)
            await self._sleep(delay)
