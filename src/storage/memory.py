"""
In-memory storage backend.

This backend keeps settlement data in memory only, useful for:
- Unit testing
- Development
- Single-process deployments seeded at start-up

Units of work are bound to the calling thread. find_pending() inside a unit
of work reserves the returned transactions (the equivalent of
SELECT ... FOR UPDATE SKIP LOCKED), so two jobs over overlapping scopes never
claim the same transaction. flush() commits like a database commit: a later
rollback only discards what was written after the last flush.
"""

import dataclasses
import itertools
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from rss_models import (
    Aggregator,
    Currency,
    Provider,
    ReportStakeholder,
    RSSModel,
    SharingReport,
    Transaction,
    TransactionState,
)
from storage.base import StorageBackend, StorageWriteError


class _UnitOfWork:
    """Per-thread bookkeeping of an open unit of work."""

    def __init__(self):
        self.staged: dict[str, Transaction] = {}
        self.reserved: set[str] = set()
        self.created_reports: list[int] = []


class MemoryStorage(StorageBackend):
    """
    In-memory storage backend.

    All data is lost when the process exits. Thread-safe operations.
    """

    def __init__(self):
        """Initialize empty memory storage."""
        self._aggregators: dict[str, Aggregator] = {}
        self._providers: dict[tuple[str, str], Provider] = {}
        self._models: dict[tuple[str, str, str], RSSModel] = {}
        self._currencies: dict[str, Currency] = {}
        self._transactions: dict[str, Transaction] = {}
        self._reports: dict[int, SharingReport] = {}
        self._report_stakeholders: dict[int, dict[tuple[str, str], ReportStakeholder]] = {}
        self._report_ids = itertools.count(1)
        # Transaction id -> unit of work holding the reservation
        self._reservations: dict[str, _UnitOfWork] = {}
        # Use RLock to allow reentrant locking (get_info calls counters, etc.)
        self._lock = threading.RLock()
        self._local = threading.local()

    # =========================================================================
    # Seeding (reference data is created outside the settlement engine)
    # =========================================================================

    def add_aggregator(self, aggregator: Aggregator) -> Aggregator:
        with self._lock:
            self._aggregators[aggregator.aggregator_id] = aggregator
        return aggregator

    def add_provider(self, provider: Provider) -> Provider:
        with self._lock:
            self._providers[provider.key] = provider
        return provider

    def add_model(self, model: RSSModel) -> RSSModel:
        with self._lock:
            self._models[model.key] = model
        return model

    def add_currency(self, currency: Currency) -> Currency:
        with self._lock:
            self._currencies[currency.iso_code] = currency
        return currency

    def add_transaction(self, transaction: Transaction) -> Transaction:
        with self._lock:
            self._transactions[transaction.tx_id] = dataclasses.replace(transaction)
        return transaction

    # =========================================================================
    # Directory
    # =========================================================================

    def list_aggregators(self) -> list[Aggregator]:
        with self._lock:
            return list(self._aggregators.values())

    def get_aggregator(self, aggregator_id: str) -> Aggregator | None:
        with self._lock:
            return self._aggregators.get(aggregator_id)

    def list_providers(self, aggregator_id: str) -> list[Provider]:
        with self._lock:
            return [p for p in self._providers.values() if p.aggregator_id == aggregator_id]

    def get_provider(self, aggregator_id: str, provider_id: str) -> Provider | None:
        with self._lock:
            return self._providers.get((aggregator_id, provider_id))

    def list_models(
        self, aggregator_id: str, provider_id: str, product_class: str | None = None
    ) -> list[RSSModel]:
        with self._lock:
            return [
                m
                for m in self._models.values()
                if m.aggregator_id == aggregator_id
                and m.owner_provider_id == provider_id
                and (not product_class or m.product_class == product_class)
            ]

    # =========================================================================
    # Transactions
    # =========================================================================

    def _current_uow(self) -> _UnitOfWork | None:
        return getattr(self._local, "uow", None)

    def find_pending(
        self, aggregator_id: str, provider_id: str, product_class: str
    ) -> list[Transaction]:
        uow = self._current_uow()
        with self._lock:
            result = []
            for tx in self._transactions.values():
                if (
                    tx.state != TransactionState.PENDING
                    or tx.aggregator_id != aggregator_id
                    or tx.provider_id != provider_id
                    or tx.product_class != product_class
                ):
                    continue
                holder = self._reservations.get(tx.tx_id)
                if holder is not None and holder is not uow:
                    # Reserved by another job
                    continue
                if uow is not None:
                    self._reservations[tx.tx_id] = uow
                    uow.reserved.add(tx.tx_id)
                result.append(dataclasses.replace(tx))
            return result

    def update(self, transaction: Transaction) -> None:
        with self._lock:
            if transaction.tx_id not in self._transactions:
                raise StorageWriteError(f"Unknown transaction: {transaction.tx_id}")
            uow = self._current_uow()
            if uow is None:
                # Autocommit outside a unit of work
                self._transactions[transaction.tx_id] = dataclasses.replace(transaction)
            else:
                uow.staged[transaction.tx_id] = dataclasses.replace(transaction)

    def flush(self) -> None:
        uow = self._current_uow()
        if uow is None:
            return
        with self._lock:
            self._commit(uow)

    def get_transaction(self, tx_id: str) -> Transaction | None:
        with self._lock:
            tx = self._transactions.get(tx_id)
            return dataclasses.replace(tx) if tx else None

    def list_transactions(self, state: TransactionState | None = None) -> list[Transaction]:
        """Return copies of all stored transactions, optionally filtered by state."""
        with self._lock:
            return [
                dataclasses.replace(tx)
                for tx in self._transactions.values()
                if state is None or tx.state == state
            ]

    def _commit(self, uow: _UnitOfWork) -> None:
        self._transactions.update(uow.staged)
        uow.staged.clear()
        uow.created_reports.clear()
        self._release(uow)

    def _release(self, uow: _UnitOfWork) -> None:
        for tx_id in uow.reserved:
            if self._reservations.get(tx_id) is uow:
                del self._reservations[tx_id]
        uow.reserved.clear()

    # =========================================================================
    # Reports
    # =========================================================================

    def create_report(self, report: SharingReport) -> SharingReport:
        with self._lock:
            report.id = next(self._report_ids)
            self._reports[report.id] = report
            self._report_stakeholders[report.id] = {}
            uow = self._current_uow()
            if uow is not None:
                uow.created_reports.append(report.id)
        return report

    def create_report_stakeholder(self, allocation: ReportStakeholder) -> None:
        report = allocation.report
        with self._lock:
            if report.id is None or self._reports.get(report.id) is not report:
                raise StorageWriteError("Stakeholder allocation references an unsaved report")
            allocations = self._report_stakeholders[report.id]
            if allocation.stakeholder.key in allocations:
                raise StorageWriteError(
                    f"Duplicate allocation for stakeholder {allocation.stakeholder.provider_id} "
                    f"in report {report.id}"
                )
            allocations[allocation.stakeholder.key] = allocation

    def get_report(self, report_id: int) -> SharingReport | None:
        with self._lock:
            return self._reports.get(report_id)

    def update_report(self, report: SharingReport) -> None:
        with self._lock:
            if report.id not in self._reports:
                raise StorageWriteError(f"Unknown report: {report.id}")
            self._reports[report.id] = report

    def get_report_stakeholders(self, report_id: int) -> list[ReportStakeholder]:
        """Return the persisted stakeholder allocations of a report."""
        with self._lock:
            return list(self._report_stakeholders.get(report_id, {}).values())

    def query_reports(
        self,
        aggregator_id: str | None = None,
        provider_id: str | None = None,
        product_class: str | None = None,
        only_paid: bool = False,
        offset: int = 0,
        size: int = 100,
    ) -> list[SharingReport] | None:
        with self._lock:
            matches = [
                r
                for _, r in sorted(self._reports.items())
                if (not aggregator_id or r.owner.aggregator_id == aggregator_id)
                and (not provider_id or r.owner.provider_id == provider_id)
                and (not product_class or r.product_class == product_class)
                and (not only_paid or r.paid)
            ]
        return matches[offset:offset + size]

    # =========================================================================
    # Currencies
    # =========================================================================

    def get_currency(self, iso_code: str) -> Currency | None:
        with self._lock:
            return self._currencies.get(iso_code)

    # =========================================================================
    # Unit of work
    # =========================================================================

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._current_uow() is not None:
            # Nested blocks join the enclosing unit of work
            yield
            return

        uow = _UnitOfWork()
        self._local.uow = uow
        try:
            yield
        except BaseException:
            with self._lock:
                uow.staged.clear()
                for report_id in uow.created_reports:
                    self._reports.pop(report_id, None)
                    self._report_stakeholders.pop(report_id, None)
                self._release(uow)
            raise
        else:
            with self._lock:
                self._commit(uow)
        finally:
            self._local.uow = None

    def is_available(self) -> bool:
        """Memory storage is always available."""
        return True

    def get_info(self) -> dict[str, Any]:
        """Get storage backend information."""
        info = super().get_info()
        with self._lock:
            info.update(
                {
                    "aggregator_count": len(self._aggregators),
                    "provider_count": len(self._providers),
                    "model_count": len(self._models),
                    "transaction_count": len(self._transactions),
                    "report_count": len(self._reports),
                }
            )
        return info

    def clear(self) -> None:
        """Clear all stored data."""
        with self._lock:
            self._aggregators.clear()
            self._providers.clear()
            self._models.clear()
            self._currencies.clear()
            self._transactions.clear()
            self._reports.clear()
            self._report_stakeholders.clear()
            self._reservations.clear()
            self._report_ids = itertools.count(1)
