"""
RSS Settlement - Settlement Manager

Entry point of the settlement engine. run_settlement() drives one job:

    resolve scope -> for each model: fetch pending transactions
                  -> claim them (processing + flush)
                  -> submit a settlement task under the job's callback key
    -> close the callback key's pool (completion is reported to the callback)

The job runs inside one storage unit of work. Claims are flushed before
dispatch, so concurrent jobs never pick up the same transactions. Tasks run
on worker threads outside that unit of work: if the job fails after some
tasks were dispatched, the rollback discards only what was not yet flushed:
the claims of dispatched tasks stay in place and those tasks keep running
to settle their transactions and generate their reports.

Usage:
    manager = SettlementManager.from_config(SettlementConfig.from_env())
    manager.run_settlement(SettlementJob(callback_url="https://example.com/cb",
                                         aggregator_id="agg@example.com"))
"""

import logging
from typing import Any

from callbacks import CallbackNotifier
from config import SettlementConfig
from monitoring import LoggingContext, metrics
from reports import DEFAULT_PAGE_SIZE, ReportService
from rss_errors import ExceptionType, ValidationError
from rss_models import (
    AllocationResult,
    RSSModel,
    RSSReport,
    SettlementJob,
    SharingReport,
    Transaction,
    TransactionState,
)
from scope_resolver import ScopeResolver
from settlement_task import SettlementTaskFactory
from storage import get_storage_backend
from storage.base import StorageBackend
from task_pool import TaskPoolManager
from transactions import TransactionStateTracker

logger = logging.getLogger(__name__)


class SettlementManager:
    """Orchestrates settlement jobs and exposes report operations."""

    def __init__(
        self,
        storage: StorageBackend,
        pool_manager: TaskPoolManager,
        task_factory: SettlementTaskFactory | None = None,
    ):
        self.storage = storage
        self.pool_manager = pool_manager
        self.resolver = ScopeResolver(storage)
        self.tracker = TransactionStateTracker(storage)
        self.report_service = ReportService(storage)
        self.task_factory = task_factory or SettlementTaskFactory(self.report_service, self.tracker)

    @classmethod
    def from_config(
        cls,
        config: SettlementConfig,
        storage: StorageBackend | None = None,
        notifier: CallbackNotifier | None = None,
    ) -> "SettlementManager":
        """Wire a manager from configuration."""
        storage = storage or get_storage_backend(
            config.storage_backend, config.database_url, config.pool_size
        )
        notifier = notifier or CallbackNotifier(
            timeout=config.callback_timeout, retry_config=config.callback_retry
        )
        return cls(storage, TaskPoolManager(notifier, max_workers=config.max_workers))

    # =========================================================================
    # Settlement
    # =========================================================================

    def run_settlement(self, job: SettlementJob) -> None:
        """
        Launch the settlement process for a job.

        Returns once every task has been dispatched; completion of the job is
        reported through the callback key.

        Raises:
            ValidationError: Inconsistent scope (nothing is dispatched)
            RSSError: Unknown aggregator (nothing is dispatched)
            StorageError: Data access failure (the unit of work is rolled back)
        """
        if not job.callback_url:
            raise ValidationError(ExceptionType.INVALID_INPUT_VALUE, ["callbackUrl"])

        key = job.callback_url
        metrics.increment("settlement_jobs_total")

        with LoggingContext(
            callback_key=key,
            aggregator=job.aggregator_id,
            provider=job.provider_id,
            product_class=job.product_class,
        ):
            logger.info("Running settlement")
            dispatched = 0
            try:
                with self.storage.transaction():
                    scope = self.resolver.resolve_scope(
                        job.aggregator_id, job.provider_id, job.product_class
                    )
                    for _aggregator, _provider, model in scope:
                        if self._dispatch_model(model, key):
                            dispatched += 1
            except Exception:
                if dispatched:
                    logger.error(
                        f"Settlement failed after dispatching {dispatched} tasks; "
                        "closing the pool so dispatched work is still reported"
                    )
                    self.pool_manager.close_task_pool(key)
                raise

            logger.info(f"Dispatched {dispatched} settlement tasks")
            self.pool_manager.close_task_pool(key)

    def _dispatch_model(self, model: RSSModel, key: str) -> bool:
        txs = self.tracker.get_pending(model)
        if not txs:
            logger.debug(f"No pending transactions for {model.describe()}")
            return False

        # The claim must be durable before any task can see the transactions
        self.set_tx_state(txs, TransactionState.PROCESSING, True)

        task = self.task_factory.get_settlement_task(model, txs, key)
        self.pool_manager.submit_task(task, key)
        logger.info(f"Submitted {len(txs)} transactions of {model.describe()}")
        return True

    def set_tx_state(
        self, transactions: list[Transaction], state: TransactionState, flush: bool
    ) -> None:
        """Set the state of transactions, flushing to storage if requested."""
        self.tracker.set_tx_state(transactions, state, flush)

    # =========================================================================
    # Reports
    # =========================================================================

    def generate_report(
        self, model: RSSModel, currency_code: str, result: AllocationResult
    ) -> SharingReport:
        return self.report_service.generate_report(model, currency_code, result)

    def get_sharing_reports(
        self,
        aggregator_id: str | None = None,
        provider_id: str | None = None,
        product_class: str | None = None,
        only_paid: bool = False,
        offset: int = 0,
        size: int = DEFAULT_PAGE_SIZE,
    ) -> list[RSSReport]:
        return self.report_service.get_sharing_reports(
            aggregator_id, provider_id, product_class, only_paid, offset, size
        )

    def set_pay_report(self, report_id: int, paid: bool) -> tuple[bool, dict[str, Any]]:
        return self.report_service.set_pay_report(report_id, paid)

    def close(self, wait: bool = True) -> None:
        """Close open pools and release storage."""
        self.pool_manager.shutdown(wait=wait)
        self.storage.close()
