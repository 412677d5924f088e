"""
Resilience utilities for outbound calls made on the error-handling path.

This module provides:
- retry_with_backoff decorator for transient transport errors
- CircuitBreaker class guarding VCS backends and the LLM endpoint
"""

import logging
import threading
import time
from enum import Enum
from functools import wraps
from typing import Callable, Optional, ParamSpec, TypeVar

logger = logging.getLogger(__name__)

P = ParamSpec('P')
T = TypeVar('T')


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject calls
    HALF_OPEN = "half_open"  # Testing if service recovered


class CircuitBreakerOpenError(Exception):
    """Raised when circuit breaker is open."""
    pass


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: tuple = (Exception,)
):
    """
    Decorator for retrying a blocking call with exponential backoff.

    Args:
        max_retries: Maximum number of attempts (default: 3)
        base_delay: Initial delay in seconds between attempts (default: 1.0)
        max_delay: Maximum delay in seconds between attempts (default: 60.0)
        exponential_base: Base for exponential backoff calculation (default: 2.0)
        exceptions: Exception types that trigger a retry; anything else propagates

    Example:
        @retry_with_backoff(max_retries=2, exceptions=(httpx.TransportError,))
        def post(url, payload):
            return client.post(url, json=payload)
    """
    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            attempts = max(1, max_retries)

            for attempt in range(attempts):
                try:
                    result = func(*args, **kwargs)

                    if attempt > 0:
                        logger.info(
                            f"{func.__name__} succeeded on attempt {attempt + 1}/{attempts}"
                        )

                    return result

                except exceptions as e:
                    if attempt == attempts - 1:
                        logger.warning(
                            f"{func.__name__} failed after {attempts} attempts: {e}"
                        )
                        raise

                    delay = min(base_delay * (exponential_base ** attempt), max_delay)

                    logger.warning(
                        f"{func.__name__} failed on attempt {attempt + 1}/{attempts}: {e}. "
                        f"Retrying in {delay:.1f}s..."
                    )

                    time.sleep(delay)

            raise RuntimeError("unreachable")

        return wrapper

    return decorator


class CircuitBreaker:
    """
    Circuit breaker for external service calls.

    The breaker stops calling a backend that keeps failing so that every new
    exception does not pay a full network timeout:
    - CLOSED: Normal operation, calls pass through
    - OPEN: Service is failing, calls are rejected immediately
    - HALF_OPEN: After ``timeout`` seconds a limited number of trial calls pass

    State transitions are guarded by a lock; the wrapped call itself runs
    outside the lock.

    Args:
        failure_threshold: Consecutive failures before opening the circuit (default: 5)
        timeout: Seconds to wait before attempting recovery (default: 60)
        half_open_max_calls: Max trial calls allowed in half-open state (default: 3)
        name: Name used in log messages
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: float = 60,
        half_open_max_calls: int = 3,
        name: str = "circuit",
    ):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.half_open_max_calls = half_open_max_calls
        self.name = name

        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = CircuitState.CLOSED
        self.half_open_calls = 0
        self._lock = threading.Lock()

    def call(self, func: Callable[[], T]) -> T:
        """
        Execute function with circuit breaker protection.

        Raises:
            CircuitBreakerOpenError: If circuit is open
            Exception: Any exception raised by the function
        """
        with self._lock:
            if self.state == CircuitState.OPEN:
                if self.last_failure_time and (time.time() - self.last_failure_time) > self.timeout:
                    logger.info(f"Circuit breaker '{self.name}' transitioning to HALF_OPEN state")
                    self.state = CircuitState.HALF_OPEN
                    self.half_open_calls = 0
                    self.success_count = 0
                else:
                    raise CircuitBreakerOpenError(
                        f"Circuit breaker '{self.name}' is OPEN. "
                        f"Will retry after {self.timeout}s timeout."
                    )

            if self.state == CircuitState.HALF_OPEN:
                if self.half_open_calls >= self.half_open_max_calls:
                    raise CircuitBreakerOpenError(
                        f"Circuit breaker '{self.name}' is HALF_OPEN and max test calls reached"
                    )
                self.half_open_calls += 1

        try:
            result = func()
        except Exception:
            self._record_failure()
            raise

        self._record_success()
        return result

    def _record_success(self) -> None:
        with self._lock:
            self.success_count += 1

            if self.state == CircuitState.HALF_OPEN:
                if self.success_count >= self.half_open_max_calls:
                    logger.info(f"Circuit breaker '{self.name}' transitioning to CLOSED state (service recovered)")
                    self.state = CircuitState.CLOSED
                    self.failure_count = 0
                    self.success_count = 0
                    self.half_open_calls = 0
            elif self.state == CircuitState.CLOSED:
                self.failure_count = 0

    def _record_failure(self) -> None:
        with self._lock:
            self.failure_count += 1
            self.last_failure_time = time.time()

            if self.state == CircuitState.HALF_OPEN:
                logger.warning(f"Circuit breaker '{self.name}' transitioning to OPEN state (service still failing)")
                self.state = CircuitState.OPEN
                self.success_count = 0
                self.half_open_calls = 0
            elif self.state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
                logger.warning(
                    f"Circuit breaker '{self.name}' transitioning to OPEN state "
                    f"(failure threshold {self.failure_threshold} exceeded)"
                )
                self.state = CircuitState.OPEN
                self.success_count = 0

    def get_state(self) -> CircuitState:
        """Get current circuit breaker state."""
        return self.state

    def reset(self) -> None:
        """Manually reset circuit breaker to closed state."""
        with self._lock:
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            self.success_count = 0
            self.half_open_calls = 0
            self.last_failure_time = None


def create_source_control_circuit_breaker(name: str) -> CircuitBreaker:
    """Create circuit breaker configured for VCS blame/content lookups."""
    return CircuitBreaker(
        failure_threshold=5,
        timeout=60,
        half_open_max_calls=1,
        name=name,
    )


def create_llm_circuit_breaker() -> CircuitBreaker:
    """Create circuit breaker configured for LLM API calls."""
    return CircuitBreaker(
        failure_threshold=3,
        timeout=30,
        half_open_max_calls=1,
        name="llm",
    )
