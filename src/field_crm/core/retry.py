"""Retry utilities for transient failures.

Provides:
- Bounded retry with linear or exponential backoff
- Circuit breaker for optional external services

Usage:
    from field_crm.core.retry import retry_async, RetryConfig, CircuitBreaker

    result = await retry_async(write_job, job, config=DATABASE_RETRY_CONFIG)

    breaker = CircuitBreaker("geocoder", failure_threshold=5)
    if breaker.allow_request():
        ...
"""
from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError

from field_crm.core.exceptions import FieldCRMError
from field_crm.core.log import get_logger

log = get_logger(__name__)

T = TypeVar("T")


class RetryExhausted(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, message: str, last_error: Exception | None = None, attempts: int = 0):
        super().__init__(message)
        self.last_error = last_error
        self.attempts = attempts


class BackoffStrategy(str, Enum):
    """How the wait between attempts grows."""

    LINEAR = "linear"
    EXPONENTIAL = "exponential"


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing if service recovered


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    backoff: BackoffStrategy = BackoffStrategy.LINEAR
    exponential_base: float = 2.0
    jitter: float = 0.0
    retryable_exceptions: tuple[type[Exception], ...] = (Exception,)
    non_retryable_exceptions: tuple[type[Exception], ...] = ()

    def calculate_delay(self, attempt: int) -> float:
        """Calculate the wait after a failed attempt.

        Linear backoff waits ``base_delay * attempt``; exponential waits
        ``base_delay * exponential_base ** (attempt - 1)``. Both are capped
        at ``max_delay``.

        Args:
            attempt: Attempt that just failed (1-based)

        Returns:
            Delay in seconds
        """
        if self.backoff == BackoffStrategy.LINEAR:
            delay = self.base_delay * attempt
        else:
            delay = self.base_delay * (self.exponential_base ** (attempt - 1))
        delay = min(delay, self.max_delay)

        if self.jitter:
            jitter_range = delay * self.jitter
            delay += random.uniform(-jitter_range, jitter_range)

        return max(0.0, delay)

    def is_retryable(self, exception: Exception) -> bool:
        """Check if the exception type is worth another attempt."""
        if isinstance(exception, self.non_retryable_exceptions):
            return False
        return isinstance(exception, self.retryable_exceptions)


DEFAULT_RETRY_CONFIG = RetryConfig()

# Domain errors describe the request, not the connection; retrying cannot help.
DATABASE_RETRY_CONFIG = RetryConfig(
    max_attempts=3,
    base_delay=1.0,
    max_delay=10.0,
    backoff=BackoffStrategy.LINEAR,
    retryable_exceptions=(OperationalError, InterfaceError, ConnectionError),
    non_retryable_exceptions=(FieldCRMError,),
)


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    config: RetryConfig | None = None,
    on_retry: Callable[[Exception, int, float], None] | None = None,
    **kwargs: Any,
) -> T:
    """Execute async function with retry.

    Args:
        func: Async function to execute
        *args: Positional arguments for func
        config: Retry configuration
        on_retry: Optional callback(exception, attempt, delay) on each retry
        **kwargs: Keyword arguments for func

    Returns:
        Result of func

    Raises:
        RetryExhausted: If every attempt failed with a retryable error
    """
    config = config or DEFAULT_RETRY_CONFIG
    last_exception: Exception | None = None
    name = getattr(func, "__name__", repr(func))

    for attempt in range(1, config.max_attempts + 1):
        try:
            return await func(*args, **kwargs)

        except Exception as e:
            last_exception = e

            if not config.is_retryable(e):
                raise
            if attempt >= config.max_attempts:
                break

            delay = config.calculate_delay(attempt)

            log.warning(
                "Retrying after transient failure",
                operation=name,
                attempt=attempt,
                max_attempts=config.max_attempts,
                error_type=type(e).__name__,
                error=str(e),
                delay=round(delay, 2),
            )

            if on_retry:
                on_retry(e, attempt, delay)

            await asyncio.sleep(delay)

    raise RetryExhausted(
        f"All {config.max_attempts} attempts exhausted for {name}",
        last_error=last_exception,
        attempts=config.max_attempts,
    )


@dataclass
class CircuitBreaker:
    """Circuit breaker for an optional external service.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: Service failing, requests rejected immediately
    - HALF_OPEN: Testing recovery, limited requests allowed
    """

    name: str
    failure_threshold: int = 5
    success_threshold: int = 1
    reset_timeout: float = 60.0
    half_open_max_calls: int = 1

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _success_count: int = field(default=0, init=False)
    _last_failure_time: datetime | None = field(default=None, init=False)
    _half_open_calls: int = field(default=0, init=False)

    @property
    def state(self) -> CircuitState:
        self._check_state_transition()
        return self._state

    @property
    def reset_at(self) -> datetime | None:
        """Time when the circuit will move to half-open."""
        if self._state == CircuitState.OPEN and self._last_failure_time:
            return self._last_failure_time + timedelta(seconds=self.reset_timeout)
        return None

    def _check_state_transition(self) -> None:
        if self._state == CircuitState.OPEN and self._last_failure_time:
            elapsed = (datetime.now() - self._last_failure_time).total_seconds()
            if elapsed >= self.reset_timeout:
                log.info("Circuit half-open", circuit=self.name)
                self._state = CircuitState.HALF_OPEN
                self._half_open_calls = 0
                self._success_count = 0

    def allow_request(self) -> bool:
        """Check if a request should be allowed."""
        self._check_state_transition()

        if self._state == CircuitState.CLOSED:
            return True
        if self._state == CircuitState.OPEN:
            return False

        if self._half_open_calls < self.half_open_max_calls:
            self._half_open_calls += 1
            return True
        return False

    def record_success(self) -> None:
        """Record a successful request."""
        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.success_threshold:
                self.reset()
        elif self._state == CircuitState.CLOSED:
            self._failure_count = max(0, self._failure_count - 1)

    def record_failure(self) -> None:
        """Record a failed request."""
        self._failure_count += 1
        self._last_failure_time = datetime.now()

        if self._state == CircuitState.HALF_OPEN or (
            self._state == CircuitState.CLOSED
            and self._failure_count >= self.failure_threshold
        ):
            log.warning(
                "Circuit open",
                circuit=self.name,
                failures=self._failure_count,
            )
            self._state = CircuitState.OPEN

    def reset(self) -> None:
        """Close the circuit and clear counters."""
        if self._state != CircuitState.CLOSED:
            log.info("Circuit closed", circuit=self.name)
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._half_open_calls = 0
        self._last_failure_time = None
