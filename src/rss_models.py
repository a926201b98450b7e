"""
RSS Settlement - Domain Model

Entities shared by the settlement engine, the storage backends and the
reporting layer.

Reference data (created outside the settlement engine):
- Aggregator, Provider, Currency, RSSModel (with its stakeholder list)

Settlement data:
- Transaction: billable event moving pending -> processing -> settled|failed
- SharingReport / ReportStakeholder: output of one settlement task
- RSSReport: flattened view of a SharingReport returned to callers
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

# =============================================================================
# Enums
# =============================================================================


class TransactionState(Enum):
    """Settlement state of a transaction."""

    PENDING = "pending"  # Waiting to be settled
    PROCESSING = "processing"  # Claimed by a settlement task
    SETTLED = "settled"  # Included in a sharing report
    FAILED = "failed"  # Settlement task failed


class TransactionType(Enum):
    """Kind of billable event."""

    CHARGE = "C"
    REFUND = "R"


# =============================================================================
# Reference Data
# =============================================================================


@dataclass
class Aggregator:
    """Party aggregating revenue across providers."""

    aggregator_id: str  # e-mail style identifier
    name: str = ""
    default_aggregator: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "aggregatorId": self.aggregator_id,
            "name": self.name,
            "default": self.default_aggregator,
        }


@dataclass(eq=False)
class Provider:
    """Party offering product classes, owned by exactly one aggregator."""

    aggregator_id: str
    provider_id: str
    name: str = ""
    # Back-reference to generated reports (owned by the report store)
    reports: set["SharingReport"] = field(default_factory=set, repr=False)

    @property
    def key(self) -> tuple[str, str]:
        return (self.aggregator_id, self.provider_id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Provider):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def to_dict(self) -> dict[str, Any]:
        return {
            "aggregatorId": self.aggregator_id,
            "providerId": self.provider_id,
            "name": self.name,
        }


@dataclass(frozen=True)
class Currency:
    """ISO 4217 currency."""

    iso_code: str
    description: str = ""


@dataclass
class StakeholderModel:
    """A stakeholder and its value (percentage in a model, amount in a result)."""

    stakeholder_id: str
    model_value: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "stakeholderId": self.stakeholder_id,
            "modelValue": str(self.model_value),
        }


@dataclass
class RSSModel:
    """
    Revenue sharing model for one (aggregator, owner provider, product class).

    aggregator_value and owner_value are percentages of the settled revenue;
    each stakeholder's model_value is its percentage.
    """

    aggregator_id: str
    owner_provider_id: str
    product_class: str
    algorithm_type: str = "FIXED_PERCENTAGE"
    aggregator_value: Decimal = field(default_factory=lambda: Decimal("0"))
    owner_value: Decimal = field(default_factory=lambda: Decimal("100"))
    stakeholders: list[StakeholderModel] = field(default_factory=list)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.aggregator_id, self.owner_provider_id, self.product_class)

    def describe(self) -> str:
        return f"{self.aggregator_id} {self.owner_provider_id} {self.product_class}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "aggregatorId": self.aggregator_id,
            "ownerProviderId": self.owner_provider_id,
            "productClass": self.product_class,
            "algorithmType": self.algorithm_type,
            "aggregatorValue": str(self.aggregator_value),
            "ownerValue": str(self.owner_value),
            "stakeholders": [s.to_dict() for s in self.stakeholders],
        }


# =============================================================================
# Settlement Data
# =============================================================================


@dataclass
class SettlementJob:
    """
    A request to settle every pending transaction in a scope.

    Empty scope fields mean "all". Not persisted.
    """

    callback_url: str
    aggregator_id: str | None = None
    provider_id: str | None = None
    product_class: str | None = None


@dataclass
class Transaction:
    """A billable event awaiting or undergoing settlement."""

    tx_id: str
    aggregator_id: str
    provider_id: str
    product_class: str
    amount: Decimal
    currency: str
    tx_type: TransactionType = TransactionType.CHARGE
    state: TransactionState = TransactionState.PENDING
    description: str = ""

    @property
    def signed_amount(self) -> Decimal:
        """Amount counted towards the settled revenue (refunds subtract)."""
        if self.tx_type == TransactionType.REFUND:
            return -self.amount
        return self.amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "txId": self.tx_id,
            "aggregatorId": self.aggregator_id,
            "providerId": self.provider_id,
            "productClass": self.product_class,
            "amount": str(self.amount),
            "currency": self.currency,
            "type": self.tx_type.value,
            "state": self.state.value,
            "description": self.description,
        }


@dataclass
class AllocationResult:
    """Amounts computed by a settlement task for one model and currency."""

    aggregator_value: Decimal
    owner_value: Decimal
    stakeholders: list[StakeholderModel] = field(default_factory=list)


@dataclass(eq=False)
class SharingReport:
    """Persisted output of one settlement computation."""

    algorithm_type: str
    product_class: str
    aggregator_value: Decimal
    owner_value: Decimal
    owner: Provider
    currency: Currency
    date: datetime = field(default_factory=lambda: datetime.now(UTC))
    paid: bool = False
    stakeholders: set["ReportStakeholder"] = field(default_factory=set, repr=False)
    id: int | None = None  # Assigned by the report store


@dataclass(eq=False)
class ReportStakeholder:
    """
    Snapshot of one stakeholder's share in a specific report.

    Identity is the composite (report, stakeholder) key, so a report holds at
    most one allocation per stakeholder.
    """

    report: SharingReport = field(repr=False)
    stakeholder: Provider
    model_value: Decimal

    @property
    def key(self) -> tuple[int, tuple[str, str]]:
        return (id(self.report), self.stakeholder.key)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ReportStakeholder):
            return NotImplemented
        return self.report is other.report and self.stakeholder == other.stakeholder

    def __hash__(self) -> int:
        return hash(self.key)


@dataclass
class RSSReport:
    """Flattened, presentation-oriented view of a SharingReport."""

    id: int | None
    aggregator_id: str
    owner_provider_id: str
    product_class: str
    algorithm_type: str
    currency: str
    aggregator_value: Decimal
    owner_value: Decimal
    timestamp: datetime
    paid: bool
    stakeholders: list[StakeholderModel] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "aggregatorId": self.aggregator_id,
            "ownerProviderId": self.owner_provider_id,
            "productClass": self.product_class,
            "algorithmType": self.algorithm_type,
            "currency": self.currency,
            "aggregatorValue": str(self.aggregator_value),
            "ownerValue": str(self.owner_value),
            "timestamp": self.timestamp.isoformat(),
            "paid": self.paid,
            "stakeholders": [s.to_dict() for s in self.stakeholders],
        }
