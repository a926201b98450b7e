"""
Tests for Retry Logic with Exponential Backoff.

Tests:
- RetryConfig configuration
- calculate_delay function
- is_retryable_exception function
- retry_call function
"""

import os
import sys
from unittest.mock import MagicMock, patch

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from retry import (
    NonRetryableError,
    RetryableError,
    RetryConfig,
    calculate_delay,
    is_retryable_exception,
    retry_call,
)


class TestRetryConfig:
    """Tests for RetryConfig dataclass."""

    def test_default_config(self):
        """Test default configuration values."""
        config = RetryConfig()
        assert config.max_retries == 3
        assert config.base_delay == 1.0
        assert config.max_delay == 30.0
        assert config.exponential_base == 2.0
        assert config.jitter == 0.1

    def test_retryable_exceptions(self):
        """Test default retryable exceptions."""
        config = RetryConfig()
        assert ConnectionError in config.retryable_exceptions
        assert TimeoutError in config.retryable_exceptions
        assert RetryableError in config.retryable_exceptions

    @patch.dict(os.environ, {
        "CALLBACK_MAX_RETRIES": "5",
        "CALLBACK_RETRY_BASE_DELAY": "2.5",
        "CALLBACK_RETRY_MAX_DELAY": "120.0",
    })
    def test_from_env(self):
        """Test creating config from environment variables."""
        config = RetryConfig.from_env()
        assert config.max_retries == 5
        assert config.base_delay == 2.5
        assert config.max_delay == 120.0


class TestCalculateDelay:
    """Tests for calculate_delay function."""

    def test_exponential_growth(self):
        """Test delays double without jitter."""
        delays = [calculate_delay(attempt, 1.0, 2.0, 60.0, 0) for attempt in range(4)]
        assert delays == [1.0, 2.0, 4.0, 8.0]

    def test_max_delay_cap(self):
        """Test delay never exceeds the cap."""
        assert calculate_delay(10, 1.0, 2.0, 30.0, 0) == 30.0

    def test_jitter_bounds(self):
        """Test jitter stays within the configured factor."""
        for _ in range(50):
            delay = calculate_delay(0, 10.0, 2.0, 60.0, 0.1)
            assert 9.0 <= delay <= 11.0


class TestIsRetryableException:
    """Tests for is_retryable_exception function."""

    def test_retryable(self):
        assert is_retryable_exception(RetryableError("x"), (RetryableError,))

    def test_non_retryable_wins(self):
        """Test NonRetryableError is never retried."""

        class Both(NonRetryableError, ConnectionError):
            pass

        assert not is_retryable_exception(Both("x"), (ConnectionError,))

    def test_other_exception(self):
        assert not is_retryable_exception(ValueError("x"), (ConnectionError,))


class TestRetryCall:
    """Tests for retry_call function."""

    def test_success_first_try(self):
        """Test no retry on success."""
        func = MagicMock(return_value="ok")
        sleep = MagicMock()

        assert retry_call(func, "a", config=RetryConfig(), sleep=sleep, key="b") == "ok"
        func.assert_called_once_with("a", key="b")
        sleep.assert_not_called()

    def test_success_after_retries(self):
        """Test retryable failures are retried with backoff."""
        func = MagicMock(side_effect=[ConnectionError("down"), TimeoutError("slow"), "ok"])
        sleep = MagicMock()
        config = RetryConfig(max_retries=3, base_delay=1.0, jitter=0)

        assert retry_call(func, config=config, sleep=sleep) == "ok"
        assert func.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]

    def test_exhausted(self):
        """Test the last error propagates once retries are exhausted."""
        func = MagicMock(side_effect=RetryableError("still down"))
        sleep = MagicMock()

        with pytest.raises(RetryableError):
            retry_call(func, config=RetryConfig(max_retries=2, jitter=0), sleep=sleep)

        assert func.call_count == 3
        assert sleep.call_count == 2

    def test_non_retryable_raises_immediately(self):
        """Test non-retryable errors are not retried."""
        func = MagicMock(side_effect=ValueError("bad payload"))
        sleep = MagicMock()

        with pytest.raises(ValueError):
            retry_call(func, config=RetryConfig(), sleep=sleep)

        assert func.call_count == 1
        sleep.assert_not_called()
