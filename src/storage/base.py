"""
Abstract base class for storage backends.

This module defines the data-access interface the settlement engine relies on:
the aggregator/provider/model directory, the transaction store, the report
store, the currency directory and the unit-of-work boundary.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any

from rss_models import (
    Aggregator,
    Currency,
    Provider,
    ReportStakeholder,
    RSSModel,
    SharingReport,
    Transaction,
)


class StorageError(Exception):
    """Base exception for storage-related errors."""
    pass


class StorageConnectionError(StorageError):
    """Raised when connection to storage backend fails."""
    pass


class StorageReadError(StorageError):
    """Raised when reading from storage fails."""
    pass


class StorageWriteError(StorageError, OSError):
    """Raised when writing to storage fails."""
    pass


class StorageBackend(ABC):
    """
    Abstract base class for settlement storage backends.

    Entities returned by the directory and report methods are managed by the
    backend; transactions are returned as detached copies and only change in
    storage through update() and flush().
    """

    # =========================================================================
    # Aggregator / Provider / Model directory
    # =========================================================================

    @abstractmethod
    def list_aggregators(self) -> list[Aggregator]:
        """Return every aggregator visible to the caller."""
        pass

    @abstractmethod
    def get_aggregator(self, aggregator_id: str) -> Aggregator | None:
        """Return the aggregator with the given id, or None."""
        pass

    @abstractmethod
    def list_providers(self, aggregator_id: str) -> list[Provider]:
        """Return the providers owned by an aggregator."""
        pass

    @abstractmethod
    def get_provider(self, aggregator_id: str, provider_id: str) -> Provider | None:
        """Return the provider if it belongs to the aggregator, else None."""
        pass

    @abstractmethod
    def list_models(
        self, aggregator_id: str, provider_id: str, product_class: str | None = None
    ) -> list[RSSModel]:
        """
        Return the sharing models of a provider.

        Args:
            aggregator_id: Aggregator owning the provider
            provider_id: Owner provider of the models
            product_class: Restrict to one product class (all when empty)
        """
        pass

    def model_exists(self, aggregator_id: str, provider_id: str, product_class: str) -> bool:
        """Check whether a model exists for the (aggregator, provider, product class) triple."""
        return bool(self.list_models(aggregator_id, provider_id, product_class))

    # =========================================================================
    # Transaction store
    # =========================================================================

    @abstractmethod
    def find_pending(
        self, aggregator_id: str, provider_id: str, product_class: str
    ) -> list[Transaction]:
        """
        Return the transactions eligible for settlement in a model's scope.

        Inside a unit of work the returned transactions are reserved for the
        caller until the next flush, commit or rollback; other units of work
        skip them.
        """
        pass

    @abstractmethod
    def update(self, transaction: Transaction) -> None:
        """Stage a transaction change; it becomes durable on flush or commit."""
        pass

    @abstractmethod
    def flush(self) -> None:
        """Make staged transaction changes durable and visible to other jobs."""
        pass

    @abstractmethod
    def get_transaction(self, tx_id: str) -> Transaction | None:
        """Return a copy of a stored transaction."""
        pass

    # =========================================================================
    # Report store
    # =========================================================================

    @abstractmethod
    def create_report(self, report: SharingReport) -> SharingReport:
        """
        Persist a new sharing report and assign its id.

        Raises:
            StorageWriteError: If writing fails
        """
        pass

    @abstractmethod
    def create_report_stakeholder(self, allocation: ReportStakeholder) -> None:
        """
        Persist one stakeholder allocation of an existing report.

        Raises:
            StorageWriteError: If the owning report is not persisted or writing fails
        """
        pass

    @abstractmethod
    def get_report(self, report_id: int) -> SharingReport | None:
        """Return a report by id, or None."""
        pass

    @abstractmethod
    def update_report(self, report: SharingReport) -> None:
        """Persist changes to an existing report (only the paid flag changes)."""
        pass

    @abstractmethod
    def query_reports(
        self,
        aggregator_id: str | None = None,
        provider_id: str | None = None,
        product_class: str | None = None,
        only_paid: bool = False,
        offset: int = 0,
        size: int = 100,
    ) -> list[SharingReport] | None:
        """
        Return reports matching the filters, ordered by id.

        Args:
            aggregator_id: Aggregator of the report owner
            provider_id: Report owner provider
            product_class: Product class of the report
            only_paid: Only return reports marked paid
            offset: Number of matching reports to skip
            size: Maximum number of reports returned
        """
        pass

    # =========================================================================
    # Currency directory
    # =========================================================================

    @abstractmethod
    def get_currency(self, iso_code: str) -> Currency | None:
        """Return a currency by its ISO 4217 code, or None."""
        pass

    # =========================================================================
    # Unit of work
    # =========================================================================

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """
        Open a unit of work bound to the calling thread.

        Staged changes are committed when the block exits normally and rolled
        back when it raises. flush() is a commit point: changes flushed before
        the error are kept. Work running on other threads is never part of
        the unit of work.
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """
        Check if the storage backend is available and ready.

        Returns:
            True if storage is accessible, False otherwise
        """
        pass

    def get_info(self) -> dict[str, Any]:
        """
        Get information about the storage backend.

        Returns:
            Dictionary with backend type, status, and configuration
        """
        return {
            "backend_type": self.__class__.__name__,
            "available": self.is_available(),
        }

    def close(self) -> None:
        """
        Close the storage connection and release resources.

        Default implementation does nothing - backends with connections
        should override this.
        """
        pass

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - closes connection."""
        self.close()
        return False
