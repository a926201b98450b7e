"""
RSS Settlement - Transaction State Tracking

Transactions move pending -> processing -> settled | failed. The settlement
job claims pending transactions by marking them processing and flushing
before their task is dispatched; the task moves them to a terminal state.
"""

import logging
from collections.abc import Iterable

from monitoring import metrics
from rss_models import RSSModel, Transaction, TransactionState
from storage.base import StorageBackend

logger = logging.getLogger(__name__)


class TransactionStateTracker:
    """Reads a model's pending transactions and changes their state."""

    def __init__(self, storage: StorageBackend):
        self.storage = storage

    def get_pending(self, model: RSSModel) -> list[Transaction]:
        """Transactions eligible for settlement under a model."""
        return self.storage.find_pending(
            model.aggregator_id, model.owner_provider_id, model.product_class
        )

    def set_tx_state(
        self,
        transactions: Iterable[Transaction],
        state: TransactionState,
        flush: bool = False,
    ) -> None:
        """
        Set the state of each transaction and stage the change.

        Args:
            transactions: Transactions to update (modified in place)
            state: New state
            flush: Make the change durable and visible to other jobs now
        """
        count = 0
        for tx in transactions:
            tx.state = state
            self.storage.update(tx)
            count += 1

        if flush:
            self.storage.flush()

        if state == TransactionState.PROCESSING:
            metrics.increment("settlement_transactions_claimed", count)
        logger.debug(f"{count} transactions set to {state.value}"
                     f"{' (flushed)' if flush else ''}")
