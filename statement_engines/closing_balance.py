"""
statement_engines.closing_balance -- Closing Balance Total resolution.

Responsibility:
    Resolve section G line 5 (Closing Balance Total) of a prior quarter
    through an explicit, ordered list of named strategies.  The first
    strategy that yields a value wins.

Default order:
    1. ``explicit_value``         the G line 5 activity value, when non-zero
    2. ``computed_totals_alias``  the record's stored computed totals under
                                  the configured aliases, first numeric hit
    3. ``derived_sum``            accumulated surplus + prior-year
                                  adjustments + surplus/deficit of the
                                  period (G line 4, else A - B)

Architecture position:
    Engines -- pure, zero I/O.  Used by the balance rollover resolver.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any

from statement_kernel.logging_config import get_logger

logger = get_logger("engines.closing_balance")

_ZERO = Decimal("0")


@dataclass(frozen=True)
class ClosingBalanceInputs:
    """Everything a strategy may read, extracted from one prior record."""

    explicit_value: Decimal | None = None
    computed_totals: Mapping[str, Any] = field(default_factory=dict)
    accumulated_surplus: Decimal = _ZERO
    prior_year_adjustments: Decimal = _ZERO
    period_surplus: Decimal | None = None
    revenue: Decimal = _ZERO
    expenditure: Decimal = _ZERO

    def __post_init__(self) -> None:
        if not isinstance(self.computed_totals, MappingProxyType):
            object.__setattr__(
                self, "computed_totals", MappingProxyType(dict(self.computed_totals))
            )


@dataclass(frozen=True)
class ClosingBalanceResolution:
    value: Decimal
    strategy: str


class ClosingBalanceStrategy(ABC):
    """One way of obtaining the closing balance; None means 'not applicable'."""

    name: str = ""

    @abstractmethod
    def resolve(self, inputs: ClosingBalanceInputs) -> Decimal | None:
        ...


class ExplicitValueStrategy(ClosingBalanceStrategy):
    name = "explicit_value"

    def resolve(self, inputs: ClosingBalanceInputs) -> Decimal | None:
        value = inputs.explicit_value
        if value is None or value == _ZERO or not value.is_finite():
            return None
        return value


class ComputedTotalsAliasStrategy(ClosingBalanceStrategy):
    """Reads stored computed totals; a present numeric value (zero included) wins."""

    name = "computed_totals_alias"

    def __init__(self, aliases: Sequence[str]):
        self.aliases = tuple(aliases)

    def resolve(self, inputs: ClosingBalanceInputs) -> Decimal | None:
        for alias in self.aliases:
            raw = inputs.computed_totals.get(alias)
            if raw is None or isinstance(raw, bool):
                continue
            try:
                value = raw if isinstance(raw, Decimal) else Decimal(str(raw).strip())
                if not value.is_finite():
                    raise InvalidOperation
                return value
            except InvalidOperation:
                logger.debug(
                    "closing_balance_alias_not_numeric",
                    extra={"alias": alias, "value": str(raw)},
                )
        return None


class DerivedSumStrategy(ClosingBalanceStrategy):
    name = "derived_sum"

    def resolve(self, inputs: ClosingBalanceInputs) -> Decimal | None:
        period = inputs.period_surplus
        if period is None:
            period = inputs.revenue - inputs.expenditure
        return inputs.accumulated_surplus + inputs.prior_year_adjustments + period


def default_strategies(aliases: Sequence[str]) -> tuple[ClosingBalanceStrategy, ...]:
    return (
        ExplicitValueStrategy(),
        ComputedTotalsAliasStrategy(aliases),
        DerivedSumStrategy(),
    )


class ClosingBalanceResolver:
    """
    Applies strategies in order.

    Guarantees:
        - The resolution names the strategy that produced the value.
        - With no applicable strategy the value is 0 under strategy "none".
    """

    def __init__(self, strategies: Sequence[ClosingBalanceStrategy]):
        self.strategies = tuple(strategies)

    def resolve(self, inputs: ClosingBalanceInputs) -> ClosingBalanceResolution:
        for strategy in self.strategies:
            value = strategy.resolve(inputs)
            if value is not None:
                return ClosingBalanceResolution(value=value, strategy=strategy.name)
        return ClosingBalanceResolution(value=_ZERO, strategy="none")
