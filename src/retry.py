"""
RSS Settlement - Retry Logic with Exponential Backoff

Used for delivering completion callbacks to external endpoints, which may be
briefly unavailable when a settlement job finishes.

Usage:
    from retry import RetryConfig, retry_call

    config = RetryConfig(max_retries=3, base_delay=0.5)
    response = retry_call(post_callback, config=config)

Environment Variables:
    CALLBACK_MAX_RETRIES=3
    CALLBACK_RETRY_BASE_DELAY=1.0
    CALLBACK_RETRY_MAX_DELAY=30.0
"""

import logging
import os
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryableError(Exception):
    """Base class for errors that should trigger a retry."""
    pass


class NonRetryableError(Exception):
    """Base class for errors that should NOT trigger a retry."""
    pass


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3
    base_delay: float = 1.0  # Initial delay in seconds
    max_delay: float = 30.0  # Maximum delay between retries
    exponential_base: float = 2.0
    jitter: float = 0.1  # Random jitter factor (0.0 to 1.0)
    retryable_exceptions: tuple = (ConnectionError, TimeoutError, RetryableError)

    @classmethod
    def from_env(cls) -> "RetryConfig":
        """Create configuration from environment variables."""
        return cls(
            max_retries=int(os.getenv("CALLBACK_MAX_RETRIES", "3")),
            base_delay=float(os.getenv("CALLBACK_RETRY_BASE_DELAY", "1.0")),
            max_delay=float(os.getenv("CALLBACK_RETRY_MAX_DELAY", "30.0")),
        )


def calculate_delay(
    attempt: int,
    base_delay: float,
    exponential_base: float,
    max_delay: float,
    jitter: float
) -> float:
    """
    Calculate delay with exponential backoff and jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Initial delay in seconds
        exponential_base: Multiplier for exponential growth
        max_delay: Maximum delay cap
        jitter: Random jitter factor (0.0 to 1.0)

    Returns:
        Delay in seconds
    """
    delay = min(base_delay * (exponential_base ** attempt), max_delay)

    if jitter > 0:
        delay += delay * jitter * (2 * random.random() - 1)

    return max(0, delay)


def is_retryable_exception(exception: Exception, retryable_types: tuple) -> bool:
    """Check if an exception should trigger a retry."""
    if isinstance(exception, NonRetryableError):
        return False
    return isinstance(exception, retryable_types)


def retry_call(
    func: Callable[..., T],
    *args: Any,
    config: RetryConfig | None = None,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> T:
    """
    Call func, retrying retryable failures with exponential backoff.

    Args:
        func: Callable to invoke
        config: Retry configuration (defaults to RetryConfig())
        sleep: Sleep function, replaceable in tests

    Returns:
        The value returned by func

    Raises:
        The last exception once retries are exhausted, or immediately for
        non-retryable exceptions
    """
    config = config or RetryConfig()

    for attempt in range(config.max_retries + 1):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            if attempt >= config.max_retries or not is_retryable_exception(
                e, config.retryable_exceptions
            ):
                raise

            delay = calculate_delay(
                attempt,
                config.base_delay,
                config.exponential_base,
                config.max_delay,
                config.jitter,
            )
            logger.warning(
                f"Retry {attempt + 1}/{config.max_retries} for "
                f"{getattr(func, '__name__', func)} after {delay:.2f}s: {e}"
            )
            sleep(delay)

    raise AssertionError("unreachable")
