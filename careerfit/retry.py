"""
Retry and circuit-breaking helpers for outbound calls.

Only the external collaborators (recommendation service, mail provider) use
these. The result-access path never retries internally; its idempotency comes
from the usage ledger.
"""

import functools
import threading
import time
from typing import Callable, Optional, Tuple, Type

from .logger import get_logger

logger = get_logger()

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


class RetryError(Exception):
    """All attempts failed. The last failure is chained as __cause__."""
    pass


class CircuitOpenError(Exception):
    """The collaborator is cooling down after repeated failures."""
    pass


class RetryableStatusError(Exception):
    """An HTTP response whose status code is worth another attempt."""

    def __init__(self, status_code: int, message: str = ""):
        super().__init__(message or f"Retryable HTTP status {status_code}")
        self.status_code = status_code


def should_retry_http_status(status_code: int) -> bool:
    """Request timeouts, rate limiting and gateway/server errors."""
    return status_code in RETRYABLE_STATUS_CODES


def backoff_delay(attempt: int, base_delay: float, exponential_base: float, max_delay: float) -> float:
    """Delay before retry number `attempt` (1-based)."""
    return min(base_delay * exponential_base ** (attempt - 1), max_delay)


def exponential_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable] = None,
):
    """
    Retry the decorated call on `exceptions`, sleeping longer each time.

    Args:
        max_retries: Extra attempts after the first (0 disables retrying)
        base_delay: Seconds before the first retry
        max_delay: Upper bound for any single delay
        exponential_base: Growth factor between delays
        exceptions: Exception types worth retrying; anything else propagates
        on_retry: Optional callback(attempt, exception, delay)

    Raises:
        RetryError: After max_retries + 1 failed attempts
    """
    def decorator(func: Callable) -> Callable:
        name = getattr(func, "__name__", repr(func))

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    attempt += 1
                    if attempt > max_retries:
                        raise RetryError(f"{name} failed after {attempt} attempts: {e}") from e

                    delay = backoff_delay(attempt, base_delay, exponential_base, max_delay)
                    if on_retry:
                        on_retry(attempt, e, delay)
                    logger.debug(
                        "Retrying outbound call",
                        call=name,
                        attempt=attempt,
                        delay=delay,
                        error=type(e).__name__,
                    )
                    time.sleep(delay)

        return wrapper
    return decorator


class CircuitBreaker:
    """
    Refuses calls to a failing collaborator for a cool-down period.

    CLOSED passes calls through. After `failure_threshold` consecutive
    failures the circuit is OPEN and calls fail fast with CircuitOpenError.
    Once `recovery_timeout` seconds have passed the next call runs as a
    HALF_OPEN trial: success closes the circuit, failure opens it again.

    Safe to share between threads. State changes happen under a lock that
    is never held while the wrapped call runs.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        name: str = "outbound",
        failure_threshold: int = 5,
        recovery_timeout: float = 60,
        expected_exception: Type[Exception] = Exception,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        self._lock = threading.Lock()
        self.reset()

    def reset(self):
        """Close the circuit and forget past failures."""
        with self._lock:
            self.state = self.CLOSED
            self.failure_count = 0
            self.last_failure_time: Optional[float] = None

    def seconds_until_retry(self) -> float:
        if self.last_failure_time is None:
            return 0.0
        waited = time.monotonic() - self.last_failure_time
        return max(0.0, self.recovery_timeout - waited)

    def call(self, func: Callable, *args, **kwargs):
        """
        Run func(*args, **kwargs) unless the circuit is open.

        Raises:
            CircuitOpenError: While the cool-down is running
            The original exception: When func itself fails
        """
        with self._lock:
            if self.state == self.OPEN:
                remaining = self.seconds_until_retry()
                if remaining > 0:
                    raise CircuitOpenError(
                        f"Circuit breaker is OPEN for {self.name}. Retry after {remaining:.0f}s"
                    )
                self.state = self.HALF_OPEN

        try:
            result = func(*args, **kwargs)
        except self.expected_exception:
            self._record_failure()
            raise

        with self._lock:
            if self.state == self.HALF_OPEN:
                logger.info("Circuit closed", circuit=self.name)
            self.state = self.CLOSED
            self.failure_count = 0
        return result

    def _record_failure(self):
        with self._lock:
            self.failure_count += 1
            self.last_failure_time = time.monotonic()
            if self.state == self.HALF_OPEN or self.failure_count >= self.failure_threshold:
                if self.state != self.OPEN:
                    logger.warning("Circuit opened", circuit=self.name, failures=self.failure_count)
                self.state = self.OPEN
