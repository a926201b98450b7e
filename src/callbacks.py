"""
RSS Settlement - Job Completion Callbacks

A settlement job is identified by its callback key. When the task pool for a
key closes and all its tasks have finished, the pool's GroupResult is handed
to the notifier:

- a sink registered for the key (in-process consumers, tests) is called
- otherwise an http(s) key is POSTed the JSON result, with retries
- any other key is only logged
"""

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import requests

from monitoring import metrics
from retry import RetryableError, RetryConfig, retry_call

if TYPE_CHECKING:
    from task_pool import GroupResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0

CallbackSink = Callable[["GroupResult"], None]


class CallbackDeliveryError(Exception):
    """Raised when a callback endpoint cannot be reached or rejects the result."""
    pass


class CallbackNotifier:
    """Registry of completion sinks keyed by callback identifier."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        retry_config: RetryConfig | None = None,
        session: requests.Session | None = None,
    ):
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()
        self._session = session or requests.Session()
        self._sinks: dict[str, CallbackSink] = {}
        self._lock = threading.Lock()

    def register(self, key: str, sink: CallbackSink) -> None:
        """Route completion of the given key to an in-process sink."""
        with self._lock:
            self._sinks[key] = sink

    def unregister(self, key: str) -> None:
        with self._lock:
            self._sinks.pop(key, None)

    def notify(self, key: str, result: "GroupResult") -> None:
        """
        Deliver a pool's completion result.

        Raises:
            CallbackDeliveryError: If the HTTP endpoint could not be notified
        """
        with self._lock:
            sink = self._sinks.get(key)

        metrics.increment("callback_notifications_total", labels={"status": result.status})

        if sink is not None:
            sink(result)
        elif key.startswith(("http://", "https://")):
            self._post(key, result.to_dict())
        else:
            logger.info(f"Settlement pool {key} completed: {result.status} "
                        f"({result.succeeded}/{result.submitted} tasks succeeded)")

    def _post(self, url: str, payload: dict[str, Any]) -> None:
        def send() -> requests.Response:
            try:
                response = self._session.post(url, json=payload, timeout=self.timeout)
            except (requests.ConnectionError, requests.Timeout) as e:
                raise RetryableError(str(e)) from e
            if response.status_code >= 500 or response.status_code == 429:
                raise RetryableError(f"HTTP error {response.status_code}")
            return response

        try:
            response = retry_call(send, config=self.retry_config)
        except (RetryableError, requests.RequestException) as e:
            raise CallbackDeliveryError(f"Callback to {url} failed: {e}") from e

        if not response.ok:
            raise CallbackDeliveryError(
                f"Callback to {url} rejected with HTTP {response.status_code}"
            )
        logger.info(f"Callback delivered to {url}")

    def close(self) -> None:
        self._session.close()
