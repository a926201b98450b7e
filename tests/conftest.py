"""
Pytest configuration and shared fixtures for RSS Settlement tests.

This module provides shared fixtures and test configuration including:
- A MemoryStorage seeded with two aggregators, their providers and models
- A recording completion notifier
- A settlement manager wired to both
- Metrics reset between tests
"""

import os
import sys
import threading
from collections import defaultdict
from decimal import Decimal

import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from monitoring import metrics
from rss_models import (
    Aggregator,
    Currency,
    Provider,
    RSSModel,
    StakeholderModel,
    Transaction,
    TransactionType,
)
from settlement_manager import SettlementManager
from storage.memory import MemoryStorage
from task_pool import TaskPoolManager

AGG1 = "agg1@example.com"
AGG2 = "agg2@example.com"


class RecordingNotifier:
    """Completion notifier that remembers every notification."""

    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()
        self._events = defaultdict(threading.Event)

    def notify(self, key, result):
        with self._lock:
            self.calls.append((key, result))
            event = self._events[key]
        event.set()

    def wait(self, key, timeout=5.0):
        """Block until the key has been notified."""
        with self._lock:
            event = self._events[key]
        return event.wait(timeout)

    def results_for(self, key):
        with self._lock:
            return [result for k, result in self.calls if k == key]


def seed_storage(storage):
    """
    Reference data used across the tests.

    agg1: prov-a (music 20/70 + stake-c 10, games 30/70)
          prov-b (music 10/90, games 50/50 with no transactions)
          stake-c (stakeholder only, no models)
    agg2: prov-d (video 25/75)
    """
    storage.add_currency(Currency("EUR", "Euro"))
    storage.add_currency(Currency("USD", "US Dollar"))

    storage.add_aggregator(Aggregator(AGG1, "Aggregator One", default_aggregator=True))
    storage.add_aggregator(Aggregator(AGG2, "Aggregator Two"))

    for aggregator_id, provider_id in (
        (AGG1, "prov-a"),
        (AGG1, "prov-b"),
        (AGG1, "stake-c"),
        (AGG2, "prov-d"),
    ):
        storage.add_provider(Provider(aggregator_id, provider_id, provider_id.upper()))

    storage.add_model(RSSModel(
        AGG1, "prov-a", "music",
        aggregator_value=Decimal("20"),
        owner_value=Decimal("70"),
        stakeholders=[StakeholderModel("stake-c", Decimal("10"))],
    ))
    storage.add_model(RSSModel(
        AGG1, "prov-a", "games", aggregator_value=Decimal("30"), owner_value=Decimal("70")
    ))
    storage.add_model(RSSModel(
        AGG1, "prov-b", "music", aggregator_value=Decimal("10"), owner_value=Decimal("90")
    ))
    storage.add_model(RSSModel(
        AGG1, "prov-b", "games", aggregator_value=Decimal("50"), owner_value=Decimal("50")
    ))
    storage.add_model(RSSModel(
        AGG2, "prov-d", "video", aggregator_value=Decimal("25"), owner_value=Decimal("75")
    ))

    for tx in (
        Transaction("t1", AGG1, "prov-a", "music", Decimal("10.00"), "EUR"),
        Transaction("t2", AGG1, "prov-a", "music", Decimal("5.00"), "EUR"),
        Transaction("t3", AGG1, "prov-a", "music", Decimal("2.00"), "EUR",
                    tx_type=TransactionType.REFUND),
        Transaction("t4", AGG1, "prov-a", "games", Decimal("8.00"), "EUR"),
        Transaction("t5", AGG1, "prov-b", "music", Decimal("100.00"), "USD"),
        Transaction("t6", AGG2, "prov-d", "video", Decimal("40.00"), "EUR"),
    ):
        storage.add_transaction(tx)

    return storage


@pytest.fixture(autouse=True)
def reset_metrics():
    """Reset the global metrics collector between tests."""
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def storage():
    """A MemoryStorage seeded with the reference data."""
    return seed_storage(MemoryStorage())


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def pool_manager(notifier):
    pools = TaskPoolManager(notifier, max_workers=2)
    yield pools
    pools.shutdown(wait=True, timeout=10)


@pytest.fixture
def manager(storage, pool_manager):
    """Settlement manager over the seeded storage."""
    return SettlementManager(storage, pool_manager)
