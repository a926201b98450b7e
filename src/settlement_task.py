"""
RSS Settlement - Settlement Tasks

A settlement task owns the transactions claimed for one sharing model. It
computes the allocations (one report per currency), then moves its
transactions to settled, or to failed when anything goes wrong. Tasks run on
the worker pool of their job's callback key, outside the job's unit of work.
"""

import logging
from collections import defaultdict

from allocation import get_calculator
from reports import ReportService
from rss_models import AllocationResult, RSSModel, SharingReport, Transaction, TransactionState
from storage.base import StorageError
from transactions import TransactionStateTracker

logger = logging.getLogger(__name__)


class SettlementTask:
    """Settles one model's claimed transactions."""

    def __init__(
        self,
        model: RSSModel,
        transactions: list[Transaction],
        callback_url: str,
        report_service: ReportService,
        tracker: TransactionStateTracker,
    ):
        self.model = model
        self.transactions = transactions
        self.callback_url = callback_url
        self.report_service = report_service
        self.tracker = tracker
        self.reports: list[SharingReport] = []

    @property
    def name(self) -> str:
        return self.model.describe()

    def execute(self, model: RSSModel, transactions: list[Transaction]) -> AllocationResult:
        """Compute the allocation with the calculator for the model's algorithm type."""
        return get_calculator(model.algorithm_type).calculate(model, transactions)

    def _by_currency(self) -> dict[str, list[Transaction]]:
        groups: dict[str, list[Transaction]] = defaultdict(list)
        for tx in self.transactions:
            groups[tx.currency].append(tx)
        return dict(groups)

    def run(self) -> list[SharingReport]:
        """
        Settle the transactions and generate the reports.

        Raises:
            Any error from allocation or report generation, after the
            transactions not yet settled have been marked failed
        """
        logger.info(f"Settling {len(self.transactions)} transactions for {self.name}")
        settled: set[str] = set()

        try:
            for currency, txs in self._by_currency().items():
                result = self.execute(self.model, txs)
                self.reports.append(
                    self.report_service.generate_report(self.model, currency, result)
                )
                self.tracker.set_tx_state(txs, TransactionState.SETTLED, flush=True)
                settled.update(tx.tx_id for tx in txs)
        except Exception as e:
            unsettled = [tx for tx in self.transactions if tx.tx_id not in settled]
            logger.error(f"Settlement of {self.name} failed, "
                         f"marking {len(unsettled)} transactions failed: {e}")
            try:
                self.tracker.set_tx_state(unsettled, TransactionState.FAILED, flush=True)
            except StorageError:
                logger.exception(f"Could not mark transactions of {self.name} failed")
            raise

        return self.reports

    def __repr__(self) -> str:
        return f"SettlementTask({self.name}, {len(self.transactions)} transactions)"


class SettlementTaskFactory:
    """Builds settlement tasks wired to the report service and state tracker."""

    def __init__(self, report_service: ReportService, tracker: TransactionStateTracker):
        self.report_service = report_service
        self.tracker = tracker

    def get_settlement_task(
        self, model: RSSModel, transactions: list[Transaction], callback_url: str
    ) -> SettlementTask:
        return SettlementTask(model, transactions, callback_url, self.report_service, self.tracker)
