"""Retry utilities for re-sending preserved sessions."""

from __future__ import annotations

import time
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

from exceptions import NetworkError, UploadTimeoutError
from log_config.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Transient failures; an HTTP rejection or a bad URL will not fix itself
TRANSIENT_UPLOAD_ERRORS: Tuple[Type[Exception], ...] = (UploadTimeoutError, NetworkError)


def exponential_backoff(attempt: int, base_delay: float = 1.0, max_delay: float = 30.0) -> float:
    """Calculate exponential backoff delay.

    Args:
        attempt: Attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds

    Returns:
        Delay in seconds
    """
    delay = base_delay * (2**attempt)
    return min(delay, max_delay)


class RetryPolicy:
    """Configurable retry policy for upload attempts."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        retry_on: Tuple[Type[Exception], ...] = TRANSIENT_UPLOAD_ERRORS,
    ):
        """Initialize retry policy.

        Args:
            max_attempts: Maximum number of attempts (including first)
            base_delay: Base delay for exponential backoff
            max_delay: Maximum delay between retries
            retry_on: Exception types worth another attempt
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.retry_on = retry_on

    def should_retry(self, attempt: int, exception: Exception) -> bool:
        if attempt + 1 >= self.max_attempts:
            return False
        return isinstance(exception, self.retry_on)

    def get_delay(self, attempt: int) -> float:
        return exponential_backoff(attempt, self.base_delay, self.max_delay)


def call_with_retry(
    func: Callable[..., T],
    policy: Optional[RetryPolicy] = None,
    *args: Any,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> T:
    """Call ``func`` until it succeeds or the policy gives up.

    The last exception propagates unchanged once no retry is left or the
    failure is not one the policy retries on.
    """
    policy = policy or RetryPolicy()
    name = getattr(func, "__name__", repr(func))

    for attempt in range(policy.max_attempts):
        if attempt > 0:
            logger.info(f"Retrying {name} (attempt {attempt + 1}/{policy.max_attempts})")
        try:
            return func(*args, **kwargs)
        except Exception as e:
            logger.warning(f"{name} failed on attempt {attempt + 1}/{policy.max_attempts}: {e}")
            if not policy.should_retry(attempt, e):
                raise
            delay = policy.get_delay(attempt)
            logger.debug(f"Waiting {delay:.2f}s before retry")
            sleep(delay)

    raise RuntimeError(f"{name} retry loop ended without a result")


__all__ = [
    "TRANSIENT_UPLOAD_ERRORS",
    "RetryPolicy",
    "call_with_retry",
    "exponential_backoff",
]
