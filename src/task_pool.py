"""
RSS Settlement - Callback-Keyed Task Pools

Settlement tasks are grouped by the callback key of the job that created
them. Each key owns a TaskGroup: a thread pool, a count of outstanding
tasks and a completion future that resolves exactly once, after the group
is closed and every task submitted to it has finished. Resolution triggers
the completion notification for the key.

Usage:
    pools = TaskPoolManager(notifier, max_workers=4)
    pools.submit_task(task, "https://example.com/callback")
    done = pools.close_task_pool("https://example.com/callback")
    result = done.result(timeout=60)  # GroupResult
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Protocol

from monitoring import LoggingContext, metrics

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


class SettlementWork(Protocol):
    """Anything the pool can run."""

    def run(self) -> Any: ...


class CompletionNotifier(Protocol):
    def notify(self, key: str, result: "GroupResult") -> None: ...


class PoolClosedError(RuntimeError):
    """Raised when submitting to a group that has already been closed."""
    pass


@dataclass
class TaskOutcome:
    """Result of one task in a group."""

    task: str
    success: bool
    duration_ms: float
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "task": self.task,
            "success": self.success,
            "durationMs": round(self.duration_ms, 3),
            "error": self.error,
        }


@dataclass
class GroupResult:
    """Summary of a closed task group, delivered to the completion notifier."""

    key: str
    submitted: int
    outcomes: list[TaskOutcome] = field(default_factory=list)
    notification_error: str | None = None

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def status(self) -> str:
        return "COMPLETED" if self.failed == 0 else "COMPLETED_WITH_ERRORS"

    @property
    def errors(self) -> list[dict[str, Any]]:
        return [{"task": o.task, "error": o.error} for o in self.outcomes if not o.success]

    def to_dict(self) -> dict[str, Any]:
        return {
            "callbackUrl": self.key,
            "status": self.status,
            "submitted": self.submitted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "errors": self.errors,
        }


def _describe(task: Any) -> str:
    return getattr(task, "name", None) or repr(task)


class TaskGroup:
    """Tasks submitted under one callback key."""

    def __init__(self, key: str, notifier: CompletionNotifier, max_workers: int = DEFAULT_MAX_WORKERS):
        self.key = key
        self._notifier = notifier
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="settlement-task"
        )
        self._lock = threading.Lock()
        self._outstanding = 0
        self._submitted = 0
        self._closed = False
        self._finished = False
        self._outcomes: list[TaskOutcome] = []
        self.completion: Future[GroupResult] = Future()

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def submit(self, task: SettlementWork) -> None:
        """Queue a task without waiting for it."""
        with self._lock:
            if self._closed:
                raise PoolClosedError(f"Task pool {self.key} is closed")
            self._outstanding += 1
            self._submitted += 1
        metrics.increment_gauge("settlement_tasks_outstanding")

        future = self._executor.submit(self._run, task)
        future.add_done_callback(partial(self._task_done, task))

    def _run(self, task: SettlementWork) -> float:
        start = time.perf_counter()
        with LoggingContext(callback_key=self.key, task=_describe(task)):
            try:
                task.run()
            finally:
                elapsed_ms = (time.perf_counter() - start) * 1000
                metrics.timing("settlement_task_duration_ms", elapsed_ms)
        return elapsed_ms

    def _task_done(self, task: SettlementWork, future: Future) -> None:
        metrics.decrement_gauge("settlement_tasks_outstanding")
        error = future.exception()
        name = _describe(task)
        if error is None:
            outcome = TaskOutcome(name, True, future.result())
        else:
            logger.error(
                f"Settlement task {name} failed in pool {self.key}: {error}",
                exc_info=(type(error), error, error.__traceback__),
            )
            metrics.increment("settlement_tasks_failed")
            outcome = TaskOutcome(name, False, 0.0, f"{type(error).__name__}: {error}")

        with self._lock:
            self._outcomes.append(outcome)
            self._outstanding -= 1
            finish = self._closed and self._outstanding == 0 and not self._finished
            if finish:
                self._finished = True

        if finish:
            self._finish()

    def close(self) -> "Future[GroupResult]":
        """
        Stop accepting tasks; the returned future resolves once all tasks are done.

        A group closed with no tasks resolves (and notifies) immediately.
        """
        with self._lock:
            self._closed = True
            finish = self._outstanding == 0 and not self._finished
            if finish:
                self._finished = True

        if finish:
            self._finish()
        return self.completion

    def _finish(self) -> None:
        with self._lock:
            result = GroupResult(self.key, self._submitted, list(self._outcomes))
        self._executor.shutdown(wait=False)

        try:
            self._notifier.notify(self.key, result)
        except Exception as e:
            logger.exception(f"Completion notification for pool {self.key} failed")
            result.notification_error = str(e)

        logger.info(
            f"Task pool {self.key} finished: {result.succeeded} succeeded, {result.failed} failed"
        )
        self.completion.set_result(result)


class TaskPoolManager:
    """
    Registry of task groups keyed by callback identifier.

    Tasks under the same or different keys run concurrently; groups share no
    state beyond what the tasks themselves touch in storage.
    """

    def __init__(self, notifier: CompletionNotifier, max_workers: int = DEFAULT_MAX_WORKERS):
        self.notifier = notifier
        self.max_workers = max_workers
        self._pools: dict[str, TaskGroup] = {}
        self._lock = threading.Lock()

    def submit_task(self, task: SettlementWork, key: str) -> None:
        """Submit a task under a key, creating the key's group on first use."""
        with self._lock:
            group = self._pools.get(key)
            if group is None:
                group = TaskGroup(key, self.notifier, self.max_workers)
                self._pools[key] = group
            group.submit(task)
        metrics.increment("settlement_tasks_submitted")
        logger.debug(f"Task {_describe(task)} submitted to pool {key}")

    def close_task_pool(self, key: str) -> "Future[GroupResult]":
        """
        Close the group for a key.

        Later submissions under the same key start a new group. The returned
        future resolves after the completion notification has been sent.
        """
        with self._lock:
            group = self._pools.pop(key, None)
        if group is None:
            group = TaskGroup(key, self.notifier, self.max_workers)
        return group.close()

    def has_pool(self, key: str) -> bool:
        """Whether tasks have been submitted under key since it was last closed."""
        with self._lock:
            return key in self._pools

    def open_pools(self) -> list[str]:
        with self._lock:
            return list(self._pools)

    def shutdown(self, wait: bool = True, timeout: float | None = None) -> list[GroupResult]:
        """Close every open group, optionally waiting for their completion."""
        with self._lock:
            groups = list(self._pools.values())
            self._pools.clear()
        futures = [group.close() for group in groups]
        if not wait:
            return []
        return [f.result(timeout=timeout) for f in futures]
