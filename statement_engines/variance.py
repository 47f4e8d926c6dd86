"""
statement_engines.variance -- Line and budget variance calculations.

Responsibility:
    Period-over-period variance of statement lines and budget-versus-actual
    variance with favorability.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - absolute = current - previous (actual - budget for budgets).
    - percentage = absolute / |previous| * 100, rounded half-up to two
      places; None when the base is zero.
    - Revenue lines are favorable when actual > budget; expense lines when
      actual < budget.  Lines without a category have no favorability.

Usage:
    from statement_engines.variance import VarianceCalculator

    calc = VarianceCalculator()
    result = calc.budget_variance(
        actual=Decimal("90"), budget=Decimal("100"), category="expense",
    )
    result.is_favorable  # True
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from statement_engines.tracer import traced_engine

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")
_PERCENT_PLACES = Decimal("0.01")


class LineCategory(str, Enum):
    REVENUE = "revenue"
    EXPENSE = "expense"


@dataclass(frozen=True)
class LineVariance:
    absolute: Decimal
    percentage: Decimal | None

    def to_dict(self) -> dict:
        return {
            "absolute": str(self.absolute),
            "percentage": str(self.percentage) if self.percentage is not None else None,
        }


@dataclass(frozen=True)
class BudgetVariance:
    """Actual against budget for one line."""

    budget: Decimal
    actual: Decimal
    variance: Decimal
    percentage: Decimal | None
    is_favorable: bool | None
    category: LineCategory | None = None

    def to_dict(self) -> dict:
        return {
            "budget": str(self.budget),
            "actual": str(self.actual),
            "variance": str(self.variance),
            "percentage": str(self.percentage) if self.percentage is not None else None,
            "is_favorable": self.is_favorable,
            "category": self.category.value if self.category else None,
        }


def percentage_of(amount: Decimal, base: Decimal) -> Decimal | None:
    if base == _ZERO:
        return None
    return (amount / abs(base) * _HUNDRED).quantize(_PERCENT_PLACES, rounding=ROUND_HALF_UP)


def line_variance(current: Decimal, previous: Decimal) -> LineVariance:
    absolute = current - previous
    return LineVariance(absolute=absolute, percentage=percentage_of(absolute, previous))


def parse_category(value: str | None) -> LineCategory | None:
    if not value:
        return None
    try:
        return LineCategory(str(value).lower())
    except ValueError:
        return None


class VarianceCalculator:
    """
    Pure variance calculator.

    Contract:
        No I/O, deterministic.
    Non-goals:
        - Does not decide materiality; validation rules do.
    """

    def line_variance(self, current: Decimal, previous: Decimal) -> LineVariance:
        return line_variance(current, previous)

    @traced_engine("variance", "1.0", fingerprint_fields=("actual", "budget", "category"))
    def budget_variance(
        self,
        *,
        actual: Decimal,
        budget: Decimal,
        category: str | None = None,
    ) -> BudgetVariance:
        variance = actual - budget
        parsed = parse_category(category)
        if parsed is LineCategory.REVENUE:
            favorable = actual > budget
        elif parsed is LineCategory.EXPENSE:
            favorable = actual < budget
        else:
            favorable = None
        return BudgetVariance(
            budget=budget,
            actual=actual,
            variance=variance,
            percentage=percentage_of(variance, budget),
            is_favorable=favorable,
            category=parsed,
        )
