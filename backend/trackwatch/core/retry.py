"""
One retry policy for every retrying call site.

The map catalog walk retries the whole walk with a long fixed delay; scheduler
operations (position probes, name translation, outbox writes) use short exponential
backoff. Both are RetryPolicy instances. `timeout` is the per-request HTTP timeout
handed to clients that run under the policy.
"""
import logging
import time
from typing import Callable, TypeVar

from trackwatch.core.constants import (
    CATALOG_RETRY_ATTEMPTS,
    CATALOG_RETRY_DELAY_SECONDS,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    SCHEDULER_RETRY_ATTEMPTS,
    SCHEDULER_RETRY_BASE_DELAY_SECONDS,
    SCHEDULER_RETRY_MAX_DELAY_SECONDS,
    SCHEDULER_RETRY_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """max_attempts tries; delay before retry n (1-based) is base_delay * backoff**(n-1), capped at max_delay."""

    __slots__ = ("max_attempts", "base_delay", "max_delay", "backoff", "timeout", "retry_on", "sleep")

    def __init__(
        self,
        *,
        max_attempts: int,
        base_delay: float,
        max_delay: float | None = None,
        backoff: float = 2.0,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        retry_on: tuple[type[BaseException], ...] = (Exception,),
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = base_delay if max_delay is None else max_delay
        self.backoff = backoff
        self.timeout = timeout
        self.retry_on = retry_on
        self.sleep = sleep

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (self.backoff ** (attempt - 1)), self.max_delay)

    def run(self, fn: Callable[[], T], *, name: str = "operation") -> T:
        """Call fn until it returns; re-raise the last error once attempts are exhausted."""
        attempt = 1
        while True:
            try:
                return fn()
            except self.retry_on as e:
                if attempt >= self.max_attempts:
                    logger.warning("%s failed after %s attempts: %s", name, attempt, e)
                    raise
                delay = self.delay_for(attempt)
                logger.info(
                    "%s failed (attempt %s/%s), retrying in %.1fs: %s",
                    name,
                    attempt,
                    self.max_attempts,
                    delay,
                    e,
                )
                self.sleep(delay)
                attempt += 1


# Whole catalog walk: 5 tries, 15 minutes apart
CATALOG_RETRY = RetryPolicy(
    max_attempts=CATALOG_RETRY_ATTEMPTS,
    base_delay=CATALOG_RETRY_DELAY_SECONDS,
    backoff=1.0,
)

# Scheduler operations: 3 tries, 1s then 2s (cap 10s), 30s per request
SCHEDULER_RETRY = RetryPolicy(
    max_attempts=SCHEDULER_RETRY_ATTEMPTS,
    base_delay=SCHEDULER_RETRY_BASE_DELAY_SECONDS,
    max_delay=SCHEDULER_RETRY_MAX_DELAY_SECONDS,
    timeout=SCHEDULER_RETRY_TIMEOUT_SECONDS,
)
