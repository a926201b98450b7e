"""
RSS Settlement - Sharing Reports

Builds sharing reports from settlement results, answers report queries and
updates the paid flag.

A report snapshots the stakeholder allocations computed for it: later changes
to the model's stakeholder list never alter existing reports.
"""

import logging
from typing import Any

from monitoring import metrics
from rss_errors import ExceptionType, RSSError, ValidationError
from rss_models import (
    AllocationResult,
    ReportStakeholder,
    RSSModel,
    RSSReport,
    SharingReport,
    StakeholderModel,
)
from storage.base import StorageBackend, StorageError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


def to_rss_report(report: SharingReport) -> RSSReport:
    """Project a persisted report into its external view."""
    stakeholders = [
        StakeholderModel(allocation.stakeholder.provider_id, allocation.model_value)
        for allocation in sorted(report.stakeholders, key=lambda a: a.stakeholder.provider_id)
    ]
    return RSSReport(
        id=report.id,
        aggregator_id=report.owner.aggregator_id,
        owner_provider_id=report.owner.provider_id,
        product_class=report.product_class,
        algorithm_type=report.algorithm_type,
        currency=report.currency.iso_code,
        aggregator_value=report.aggregator_value,
        owner_value=report.owner_value,
        timestamp=report.date,
        paid=report.paid,
        stakeholders=stakeholders,
    )


class ReportService:
    """Report builder, report queries and payment flag updates."""

    def __init__(self, storage: StorageBackend):
        self.storage = storage

    # =========================================================================
    # Report generation
    # =========================================================================

    def generate_report(
        self, model: RSSModel, currency_code: str, result: AllocationResult
    ) -> SharingReport:
        """
        Build and persist the sharing report of one settlement computation.

        Args:
            model: Sharing model the result was computed for
            currency_code: ISO 4217 code of the settled transactions
            result: Amounts computed by the settlement task

        Returns:
            The persisted report

        Raises:
            RSSError: If the owner, a stakeholder or the currency is unknown
            StorageWriteError: If persisting the report fails
        """
        logger.info(f"Generating report: {model.describe()} ({currency_code})")

        owner = self.storage.get_provider(model.aggregator_id, model.owner_provider_id)
        if owner is None:
            raise RSSError(ExceptionType.NON_EXISTENT_RESOURCE_ID, [model.owner_provider_id])

        currency = self.storage.get_currency(currency_code)
        if currency is None:
            raise RSSError(ExceptionType.NON_EXISTENT_RESOURCE_ID, [currency_code])

        report = SharingReport(
            algorithm_type=model.algorithm_type,
            product_class=model.product_class,
            aggregator_value=result.aggregator_value,
            owner_value=result.owner_value,
            owner=owner,
            currency=currency,
            paid=False,
        )

        for stakeholder_model in result.stakeholders:
            stakeholder = self.storage.get_provider(
                model.aggregator_id, stakeholder_model.stakeholder_id
            )
            if stakeholder is None:
                raise RSSError(
                    ExceptionType.NON_EXISTENT_RESOURCE_ID, [stakeholder_model.stakeholder_id]
                )
            # A set keeps the first allocation of a repeated stakeholder
            report.stakeholders.add(
                ReportStakeholder(report, stakeholder, stakeholder_model.model_value)
            )

        # The report and its allocations are written together or not at all
        with self.storage.transaction():
            self.storage.create_report(report)
            for allocation in sorted(report.stakeholders, key=lambda a: a.stakeholder.provider_id):
                self.storage.create_report_stakeholder(allocation)
        owner.reports.add(report)

        metrics.increment("sharing_reports_generated")
        logger.info(
            f"Report {report.id} generated for {model.describe()} "
            f"with {len(report.stakeholders)} stakeholders"
        )
        return report

    # =========================================================================
    # Queries
    # =========================================================================

    def get_sharing_reports(
        self,
        aggregator_id: str | None = None,
        provider_id: str | None = None,
        product_class: str | None = None,
        only_paid: bool = False,
        offset: int = 0,
        size: int = DEFAULT_PAGE_SIZE,
    ) -> list[RSSReport]:
        """
        Get the generated sharing reports filtered by some parameters.

        Args:
            aggregator_id: Aggregator of the returned sharing reports
            provider_id: Owner provider of the returned sharing reports
            product_class: Product class of the returned sharing reports
            only_paid: Only return reports already marked paid
            offset: Number of matching reports to skip
            size: Maximum number of reports to return

        Returns:
            Projected reports, empty when nothing matches
        """
        if offset < 0 or size < 0:
            raise ValidationError(ExceptionType.INVALID_INPUT_VALUE, [f"offset={offset}, size={size}"])

        logger.debug("Querying sharing reports")
        reports = self.storage.query_reports(
            aggregator_id, provider_id, product_class, only_paid, offset, size
        )
        if not reports:
            return []
        return [to_rss_report(r) for r in reports]

    # =========================================================================
    # Payment
    # =========================================================================

    def set_pay_report(self, report_id: int, paid: bool) -> tuple[bool, dict[str, Any]]:
        """
        Set the paid flag of a report.

        Returns:
            Tuple of (success, result). On failure result["reason"] is
            "not_found" or "storage_error".
        """
        try:
            report = self.storage.get_report(report_id)
            if report is None:
                return False, {"error": f"Report {report_id} not found", "reason": "not_found"}

            report.paid = paid
            self.storage.update_report(report)
        except StorageError as e:
            logger.error(f"Failed to update paid flag of report {report_id}: {e}")
            return False, {"error": str(e), "reason": "storage_error"}

        logger.info(f"Report {report_id} marked {'paid' if paid else 'unpaid'}")
        return True, {"id": report_id, "paid": paid}
