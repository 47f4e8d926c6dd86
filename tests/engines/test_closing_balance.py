"""
Tests for Closing Balance Total resolution.

Covers:
- Strategy precedence (explicit, computed-totals alias, derived sum)
- Zero handling per strategy
- Custom strategy lists
"""

from decimal import Decimal

from statement_engines.closing_balance import (
    ClosingBalanceInputs,
    ClosingBalanceResolver,
    ComputedTotalsAliasStrategy,
    DerivedSumStrategy,
    default_strategies,
)

ALIASES = ("closingBalance", "equity", "gTotal", "G", "netAssets")


class TestDefaultPrecedence:

    def setup_method(self):
        self.resolver = ClosingBalanceResolver(default_strategies(ALIASES))

    def test_explicit_value_wins(self):
        resolution = self.resolver.resolve(ClosingBalanceInputs(
            explicit_value=Decimal("1200"),
            computed_totals={"closingBalance": "900"},
            accumulated_surplus=Decimal("100"),
        ))

        assert resolution.value == Decimal("1200")
        assert resolution.strategy == "explicit_value"

    def test_zero_explicit_value_falls_through_to_alias(self):
        resolution = self.resolver.resolve(ClosingBalanceInputs(
            explicit_value=Decimal("0"),
            computed_totals={"equity": 900},
        ))

        assert resolution.value == Decimal("900")
        assert resolution.strategy == "computed_totals_alias"

    def test_alias_zero_counts_as_a_value(self):
        resolution = self.resolver.resolve(ClosingBalanceInputs(
            computed_totals={"gTotal": 0},
            accumulated_surplus=Decimal("5000"),
        ))

        assert resolution.value == Decimal("0")
        assert resolution.strategy == "computed_totals_alias"

    def test_aliases_are_tried_in_order(self):
        resolution = self.resolver.resolve(ClosingBalanceInputs(
            computed_totals={"netAssets": "1", "equity": "2"},
        ))

        assert resolution.value == Decimal("2")

    def test_non_numeric_alias_is_skipped(self):
        resolution = self.resolver.resolve(ClosingBalanceInputs(
            computed_totals={"closingBalance": "pending", "equity": True, "G": "750.50"},
        ))

        assert resolution.value == Decimal("750.50")

    def test_non_finite_alias_is_skipped(self):
        resolution = self.resolver.resolve(ClosingBalanceInputs(
            computed_totals={"closingBalance": "NaN", "equity": float("inf"), "G": "750"},
        ))

        assert resolution.value == Decimal("750")
        assert resolution.strategy == "computed_totals_alias"

    def test_non_finite_explicit_value_falls_through(self):
        resolution = self.resolver.resolve(ClosingBalanceInputs(
            explicit_value=Decimal("Infinity"),
            accumulated_surplus=Decimal("400"),
            period_surplus=Decimal("100"),
        ))

        assert resolution.value == Decimal("500")
        assert resolution.strategy == "derived_sum"

    def test_derived_sum_uses_period_surplus(self):
        resolution = self.resolver.resolve(ClosingBalanceInputs(
            accumulated_surplus=Decimal("5000"),
            prior_year_adjustments=Decimal("-200"),
            period_surplus=Decimal("300"),
            revenue=Decimal("999999"),
        ))

        assert resolution.value == Decimal("5100")
        assert resolution.strategy == "derived_sum"

    def test_derived_sum_falls_back_to_revenue_minus_expenditure(self):
        resolution = self.resolver.resolve(ClosingBalanceInputs(
            accumulated_surplus=Decimal("1000"),
            revenue=Decimal("800"),
            expenditure=Decimal("650"),
        ))

        assert resolution.value == Decimal("1150")


class TestCustomStrategies:

    def test_no_applicable_strategy_resolves_to_zero(self):
        resolver = ClosingBalanceResolver([ComputedTotalsAliasStrategy(["closingBalance"])])

        resolution = resolver.resolve(ClosingBalanceInputs())

        assert resolution.value == Decimal("0")
        assert resolution.strategy == "none"

    def test_derived_only(self):
        resolver = ClosingBalanceResolver([DerivedSumStrategy()])

        resolution = resolver.resolve(ClosingBalanceInputs(
            explicit_value=Decimal("42"),
            accumulated_surplus=Decimal("7"),
        ))

        assert resolution.value == Decimal("7")
