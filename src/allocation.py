"""
RSS Settlement - Allocation Calculators

A calculator turns a sharing model and the transactions of one currency into
the amounts owed to the aggregator, the owner and each stakeholder.
Calculators are looked up by the model's algorithm type.

Built-in algorithms:
- FIXED_PERCENTAGE: aggregator, owner and stakeholder values of the model are
  percentages of the net revenue (charges minus refunds) and sum to 100.
"""

from abc import ABC, abstractmethod
from decimal import ROUND_HALF_UP, Decimal

from rss_errors import AllocationError, ExceptionType
from rss_models import AllocationResult, RSSModel, StakeholderModel, Transaction

AMOUNT_PRECISION = Decimal("0.0001")
HUNDRED = Decimal("100")


class AllocationCalculator(ABC):
    """Computes allocations for one algorithm type."""

    algorithm_type: str = ""

    @abstractmethod
    def calculate(self, model: RSSModel, transactions: list[Transaction]) -> AllocationResult:
        """
        Compute the allocation for a model's transactions.

        Raises:
            AllocationError: If the model or transactions cannot be settled
        """
        pass


class FixedPercentageCalculator(AllocationCalculator):
    """Split net revenue by the fixed percentages of the model."""

    algorithm_type = "FIXED_PERCENTAGE"

    def calculate(self, model: RSSModel, transactions: list[Transaction]) -> AllocationResult:
        currencies = {tx.currency for tx in transactions}
        if len(currencies) > 1:
            raise AllocationError(
                ExceptionType.INVALID_INPUT_VALUE,
                [f"mixed currencies {sorted(currencies)} in one allocation"],
            )

        total_share = model.aggregator_value + model.owner_value + sum(
            (s.model_value for s in model.stakeholders), Decimal("0")
        )
        if total_share != HUNDRED:
            raise AllocationError(
                ExceptionType.INVALID_INPUT_VALUE,
                [f"model {model.describe()} percentages sum to {total_share}"],
            )

        revenue = sum((tx.signed_amount for tx in transactions), Decimal("0"))

        def share(percentage: Decimal) -> Decimal:
            return (revenue * percentage / HUNDRED).quantize(AMOUNT_PRECISION, ROUND_HALF_UP)

        aggregator_amount = share(model.aggregator_value)
        stakeholders = [
            StakeholderModel(s.stakeholder_id, share(s.model_value)) for s in model.stakeholders
        ]
        # Owner takes the remainder so the parts add up to the revenue exactly
        owner_amount = revenue.quantize(AMOUNT_PRECISION, ROUND_HALF_UP) - aggregator_amount - sum(
            (s.model_value for s in stakeholders), Decimal("0")
        )

        return AllocationResult(
            aggregator_value=aggregator_amount,
            owner_value=owner_amount,
            stakeholders=stakeholders,
        )


_calculators: dict[str, AllocationCalculator] = {}


def register_calculator(calculator: AllocationCalculator) -> None:
    """Register a calculator under its algorithm type."""
    _calculators[calculator.algorithm_type] = calculator


def get_calculator(algorithm_type: str) -> AllocationCalculator:
    """
    Return the calculator for an algorithm type.

    Raises:
        AllocationError: If no calculator is registered for the type
    """
    calculator = _calculators.get(algorithm_type)
    if calculator is None:
        raise AllocationError(ExceptionType.NON_EXISTENT_RESOURCE_ID, [algorithm_type])
    return calculator


register_calculator(FixedPercentageCalculator())
