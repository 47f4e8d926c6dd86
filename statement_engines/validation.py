"""
statement_engines.validation -- Business-rule validation of computed statements.

Responsibility:
    Run a catalogue of named rules against one computed statement and
    collect a ``RuleResult`` per applicable rule.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The assembler builds a
    ``ValidationContext`` from the evaluated statement (totals, working
    capital, budget variances, opening-balance comparisons) and hands it in.

Invariants enforced:
    - Business-rule violations are returned as data, never raised.
    - A rule whose inputs are absent from the context passes.
    - ``ValidationResult.is_valid`` is False iff an error-severity rule
      failed; failed warning rules never invalidate a statement.
    - Line codes and thresholds come from configuration, never literals
      inside rule bodies.

Rule catalogue:
    ACCOUNTING_EQUATION                 error    net financial assets == closing balance
    OPENING_BALANCE_MISMATCH            error    entered vs rolled-over openings (Q2+)
    WC_NEGATIVE_RECEIVABLES             error    receivables >= 0
    WC_NEGATIVE_PAYABLES                error    payables >= 0
    WC_EXTREME_RECEIVABLES_VARIANCE     warning  |change / previous| <= threshold
    WC_EXTREME_PAYABLES_VARIANCE        warning  |change / previous| <= threshold
    WC_MISSING_PREVIOUS_PERIOD          warning  previous period available
    WC_INCONSISTENT_BALANCE_SHEET_DATA  error    |balance| <= ceiling
    BS_BALANCE_EQUATION                 error    assets == liabilities + net assets
    CF_NET_CASH_FLOW                    error    net == operating + investing + financing
    RE_NET_SURPLUS                      error    surplus == revenue - expenses
    NA_CHANGE_RECONCILIATION            error    closing == opening + change
    BVA_VARIANCE_ACCURACY               error    variance == actual - budget
    BS_POSITIVE_ASSETS                  warning  total assets >= 0
    BS_EQUITY_REASONABLE                warning  |net assets / total assets| <= limit
    RE_POSITIVE_REVENUE                 warning  total revenue >= 0
    RE_POSITIVE_EXPENSES                warning  total expenses >= 0
    CF_REASONABLE_OPERATING             warning  |operating / net change| <= limit
    GEN_NO_EXTREME_VALUES               warning  every |line value| <= ceiling
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any

from statement_config.schema import (
    EngineConfiguration,
    StatementLineCodes,
    ValidationThresholds,
)
from statement_engines.rollover import OpeningBalanceComparison
from statement_engines.tracer import traced_engine
from statement_engines.variance import BudgetVariance
from statement_engines.working_capital import (
    NO_PREVIOUS_PERIOD_WARNING,
    AccountType,
    WorkingCapitalResult,
)
from statement_kernel.domain.quarters import Quarter
from statement_kernel.logging_config import get_logger

logger = get_logger("engines.validation")

_ZERO = Decimal("0")

BALANCE_SHEET = "BAL_SHEET"
CASH_FLOW = "CASH_FLOW"
REVENUE_EXPENDITURE = "REV_EXP"
NET_ASSETS_CHANGES = "NET_ASSETS"
BUDGET_VS_ACTUAL = "BUDGET_VS_ACTUAL"


class RuleSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class RuleResult:
    rule_id: str
    is_valid: bool
    severity: RuleSeverity
    message: str
    details: tuple[Mapping[str, Any], ...] = ()

    def to_dict(self) -> dict:
        data = {
            "rule_id": self.rule_id,
            "is_valid": self.is_valid,
            "severity": self.severity.value,
            "message": self.message,
        }
        if self.details:
            data["details"] = [_render_row(row) for row in self.details]
        return data


@dataclass(frozen=True)
class ValidationResult:
    results: tuple[RuleResult, ...] = ()

    @property
    def errors(self) -> tuple[RuleResult, ...]:
        return tuple(
            r for r in self.results
            if not r.is_valid and r.severity is RuleSeverity.ERROR
        )

    @property
    def warnings(self) -> tuple[RuleResult, ...]:
        return tuple(
            r for r in self.results
            if not r.is_valid and r.severity is RuleSeverity.WARNING
        )

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def result_for(self, rule_id: str) -> RuleResult | None:
        for result in self.results:
            if result.rule_id == rule_id:
                return result
        return None

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": [r.to_dict() for r in self.errors],
            "warnings": [r.to_dict() for r in self.warnings],
            "results": [r.to_dict() for r in self.results],
        }


def _render_row(row: Mapping[str, Any]) -> dict:
    return {k: str(v) if isinstance(v, Decimal) else v for k, v in row.items()}


@dataclass(frozen=True)
class ValidationContext:
    """
    Everything the rules may read about one computed statement.

    ``totals`` maps line codes to current values.  Optional parts are None
    or empty when the statement does not carry them.
    """

    statement_code: str
    totals: Mapping[str, Decimal] = field(default_factory=dict)
    working_capital: WorkingCapitalResult | None = None
    budget_variances: Mapping[str, BudgetVariance] = field(default_factory=dict)
    opening_balances: tuple[OpeningBalanceComparison, ...] = ()
    warnings: tuple[str, ...] = ()
    is_execution: bool = False
    quarter: Quarter | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "totals", MappingProxyType(dict(self.totals)))
        object.__setattr__(
            self, "budget_variances", MappingProxyType(dict(self.budget_variances))
        )

    def first(self, codes: Sequence[str]) -> Decimal | None:
        """Value of the first code present in the totals."""
        for code in codes:
            value = self.totals.get(code)
            if value is not None:
                return value
        return None


# Failure payload of a rule check: (message, itemized rows)
Finding = tuple[str, tuple[Mapping[str, Any], ...]]


@dataclass(frozen=True)
class ValidationRule:
    """
    A named check.

    ``check`` returns None when the rule passes (or its inputs are
    absent) and a ``(message, details)`` pair when it fails.  An empty
    ``statements`` set applies the rule to every statement.
    """

    rule_id: str
    severity: RuleSeverity
    description: str
    check: Callable[[ValidationContext], Finding | None]
    statements: frozenset[str] = frozenset()

    def applies_to(self, statement_code: str) -> bool:
        return not self.statements or statement_code in self.statements

    def run(self, context: ValidationContext) -> RuleResult:
        finding = self.check(context)
        if finding is None:
            return RuleResult(self.rule_id, True, self.severity, f"{self.description}: passed")
        message, details = finding
        return RuleResult(self.rule_id, False, self.severity, message, tuple(details))


# =========================================================================
# Rule bodies
# =========================================================================


def _equation(
    label: str,
    left: Decimal | None,
    right: Decimal | None,
    tolerance: Decimal,
    left_name: str,
    right_name: str,
) -> Finding | None:
    if left is None or right is None:
        return None
    difference = left - right
    if abs(difference) <= tolerance:
        return None
    return (
        f"{label}: {left_name} ({left}) does not equal {right_name} ({right}); "
        f"difference {difference}",
        ({left_name: left, right_name: right, "difference": difference},),
    )


def _sum_present(values: Iterable[Decimal | None]) -> Decimal | None:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present, _ZERO)


def _ratio_exceeds(numerator: Decimal | None, denominator: Decimal | None, limit: Decimal) -> bool:
    if numerator is None or denominator is None or denominator == _ZERO:
        return False
    return abs(numerator / denominator) > limit


def build_rule_catalogue(
    thresholds: ValidationThresholds,
    line_codes: StatementLineCodes,
) -> tuple[ValidationRule, ...]:
    """The standard rules, closed over the given thresholds and line codes."""
    t = thresholds
    lc = line_codes

    def accounting_equation(ctx: ValidationContext) -> Finding | None:
        return _equation(
            "Accounting equation violated",
            ctx.first(lc.net_financial_assets),
            ctx.first(lc.closing_balance),
            t.accounting_equation_tolerance,
            "net_financial_assets",
            "closing_balance",
        )

    def opening_balance_mismatch(ctx: ValidationContext) -> Finding | None:
        if not ctx.is_execution or ctx.quarter is None or ctx.quarter is Quarter.Q1:
            return None
        rows = tuple(
            comparison.to_dict()
            for comparison in ctx.opening_balances
            if abs(comparison.difference) > t.opening_balance_tolerance
        )
        if not rows:
            return None
        return (
            f"{len(rows)} opening balance(s) differ from the previous quarter's "
            f"closing balances",
            rows,
        )

    def negative(side: AccountType) -> Callable[[ValidationContext], Finding | None]:
        def check(ctx: ValidationContext) -> Finding | None:
            if ctx.working_capital is None:
                return None
            balance = ctx.working_capital.side(side).current_balance
            if balance >= _ZERO:
                return None
            return (
                f"{side.value.capitalize()} balance is negative ({balance})",
                ({"account_type": side.value, "balance": balance},),
            )
        return check

    def extreme_variance(side: AccountType) -> Callable[[ValidationContext], Finding | None]:
        def check(ctx: ValidationContext) -> Finding | None:
            if ctx.working_capital is None:
                return None
            change = ctx.working_capital.side(side)
            if change.previous_balance == _ZERO:
                return None
            ratio = abs(change.change / change.previous_balance)
            if ratio <= t.variance_threshold:
                return None
            return (
                f"{side.value.capitalize()} changed by {(ratio * 100):.2f}% "
                f"against the previous period",
                ({
                    "account_type": side.value,
                    "current_balance": change.current_balance,
                    "previous_balance": change.previous_balance,
                    "change": change.change,
                },),
            )
        return check

    def missing_previous_period(ctx: ValidationContext) -> Finding | None:
        if ctx.working_capital is None:
            return None
        recorded = NO_PREVIOUS_PERIOD_WARNING in ctx.warnings or (
            NO_PREVIOUS_PERIOD_WARNING in ctx.working_capital.warnings
        )
        if not recorded:
            return None
        return (NO_PREVIOUS_PERIOD_WARNING, ())

    def inconsistent_balances(ctx: ValidationContext) -> Finding | None:
        if ctx.working_capital is None:
            return None
        rows = []
        for side in AccountType:
            balance = ctx.working_capital.side(side).current_balance
            if abs(balance) > t.balance_ceiling:
                rows.append({"account_type": side.value, "balance": balance})
        if not rows:
            return None
        return (f"Working capital balance exceeds {t.balance_ceiling}", rows)

    def balance_sheet_equation(ctx: ValidationContext) -> Finding | None:
        liabilities = ctx.first(lc.total_liabilities)
        net_assets = ctx.first(lc.total_net_assets)
        if liabilities is None or net_assets is None:
            return None
        return _equation(
            "Balance sheet does not balance",
            ctx.first(lc.total_assets),
            liabilities + net_assets,
            t.equation_tolerance,
            "total_assets",
            "liabilities_plus_net_assets",
        )

    def net_cash_flow(ctx: ValidationContext) -> Finding | None:
        components = _sum_present((
            ctx.first(lc.operating_cash_flow),
            ctx.first(lc.investing_cash_flow),
            ctx.first(lc.financing_cash_flow),
        ))
        return _equation(
            "Net cash flow does not reconcile",
            ctx.first(lc.net_cash_flow),
            components,
            t.equation_tolerance,
            "net_cash_flow",
            "sum_of_activities",
        )

    def net_surplus(ctx: ValidationContext) -> Finding | None:
        revenue = ctx.first(lc.total_revenue)
        expenses = ctx.first(lc.total_expenses)
        if revenue is None or expenses is None:
            return None
        return _equation(
            "Surplus/deficit does not reconcile",
            ctx.first(lc.surplus_deficit),
            revenue - expenses,
            t.equation_tolerance,
            "surplus_deficit",
            "revenue_minus_expenses",
        )

    def net_assets_reconciliation(ctx: ValidationContext) -> Finding | None:
        opening = ctx.first(lc.opening_net_assets)
        change = ctx.first(lc.net_assets_change)
        if opening is None or change is None:
            return None
        return _equation(
            "Net assets movement does not reconcile",
            ctx.first(lc.closing_net_assets),
            opening + change,
            t.equation_tolerance,
            "closing_net_assets",
            "opening_plus_change",
        )

    def variance_accuracy(ctx: ValidationContext) -> Finding | None:
        rows = tuple(
            {
                "line_code": code,
                "budget": v.budget,
                "actual": v.actual,
                "variance": v.variance,
                "expected_variance": v.actual - v.budget,
            }
            for code, v in ctx.budget_variances.items()
            if abs(v.variance - (v.actual - v.budget)) > t.equation_tolerance
        )
        if not rows:
            return None
        return (f"{len(rows)} budget variance(s) do not equal actual - budget", rows)

    def non_negative(label: str, codes: Sequence[str]) -> Callable[[ValidationContext], Finding | None]:
        def check(ctx: ValidationContext) -> Finding | None:
            value = ctx.first(codes)
            if value is None or value >= _ZERO:
                return None
            return (f"{label} is negative ({value})", ({"value": value},))
        return check

    def equity_reasonable(ctx: ValidationContext) -> Finding | None:
        net_assets = ctx.first(lc.total_net_assets)
        total_assets = ctx.first(lc.total_assets)
        if not _ratio_exceeds(net_assets, total_assets, t.equity_ratio_limit):
            return None
        return (
            f"Net assets ({net_assets}) are out of proportion to total assets ({total_assets})",
            ({"net_assets": net_assets, "total_assets": total_assets},),
        )

    def operating_reasonable(ctx: ValidationContext) -> Finding | None:
        operating = ctx.first(lc.operating_cash_flow)
        net = ctx.first(lc.net_cash_flow)
        if not _ratio_exceeds(operating, net, t.operating_ratio_limit):
            return None
        return (
            f"Operating cash flow ({operating}) is out of proportion to the net change ({net})",
            ({"operating_cash_flow": operating, "net_cash_flow": net},),
        )

    def no_extreme_values(ctx: ValidationContext) -> Finding | None:
        rows = tuple(
            {"line_code": code, "value": value}
            for code, value in ctx.totals.items()
            if abs(value) > t.balance_ceiling
        )
        if not rows:
            return None
        return (f"{len(rows)} line value(s) exceed {t.balance_ceiling}", rows)

    E, W = RuleSeverity.ERROR, RuleSeverity.WARNING
    bs = frozenset({BALANCE_SHEET})
    cf = frozenset({CASH_FLOW})
    rev = frozenset({REVENUE_EXPENDITURE})

    return (
        ValidationRule("ACCOUNTING_EQUATION", E, "Accounting equation", accounting_equation),
        ValidationRule(
            "OPENING_BALANCE_MISMATCH", E, "Opening balances", opening_balance_mismatch,
        ),
        ValidationRule(
            "WC_NEGATIVE_RECEIVABLES", E, "Receivables sign",
            negative(AccountType.RECEIVABLES), cf,
        ),
        ValidationRule(
            "WC_NEGATIVE_PAYABLES", E, "Payables sign",
            negative(AccountType.PAYABLES), cf,
        ),
        ValidationRule(
            "WC_EXTREME_RECEIVABLES_VARIANCE", W, "Receivables variance",
            extreme_variance(AccountType.RECEIVABLES), cf,
        ),
        ValidationRule(
            "WC_EXTREME_PAYABLES_VARIANCE", W, "Payables variance",
            extreme_variance(AccountType.PAYABLES), cf,
        ),
        ValidationRule(
            "WC_MISSING_PREVIOUS_PERIOD", W, "Previous period", missing_previous_period, cf,
        ),
        ValidationRule(
            "WC_INCONSISTENT_BALANCE_SHEET_DATA", E, "Working capital magnitude",
            inconsistent_balances, cf,
        ),
        ValidationRule("BS_BALANCE_EQUATION", E, "Balance sheet equation", balance_sheet_equation, bs),
        ValidationRule("CF_NET_CASH_FLOW", E, "Net cash flow", net_cash_flow, cf),
        ValidationRule("RE_NET_SURPLUS", E, "Net surplus", net_surplus, rev),
        ValidationRule(
            "NA_CHANGE_RECONCILIATION", E, "Net assets reconciliation",
            net_assets_reconciliation, frozenset({NET_ASSETS_CHANGES}),
        ),
        ValidationRule(
            "BVA_VARIANCE_ACCURACY", E, "Budget variance accuracy",
            variance_accuracy, frozenset({BUDGET_VS_ACTUAL}),
        ),
        ValidationRule(
            "BS_POSITIVE_ASSETS", W, "Total assets sign",
            non_negative("Total assets", lc.total_assets), bs,
        ),
        ValidationRule("BS_EQUITY_REASONABLE", W, "Equity proportion", equity_reasonable, bs),
        ValidationRule(
            "RE_POSITIVE_REVENUE", W, "Total revenue sign",
            non_negative("Total revenue", lc.total_revenue), rev,
        ),
        ValidationRule(
            "RE_POSITIVE_EXPENSES", W, "Total expenses sign",
            non_negative("Total expenses", lc.total_expenses), rev,
        ),
        ValidationRule(
            "CF_REASONABLE_OPERATING", W, "Operating cash flow proportion",
            operating_reasonable, cf,
        ),
        ValidationRule("GEN_NO_EXTREME_VALUES", W, "Extreme values", no_extreme_values),
    )


# =========================================================================
# Engine
# =========================================================================


class ValidationEngine:
    """
    Runs the rule catalogue against a statement.

    Contract:
        Pure apart from logging.  The rule set belongs to the instance;
        ``add_rule``/``remove_rule`` never affect other engines.
    Guarantees:
        - Results are in rule registration order.
        - Only rules that apply to the statement code are run.
    """

    def __init__(
        self,
        thresholds: ValidationThresholds | None = None,
        line_codes: StatementLineCodes | None = None,
        rules: Iterable[ValidationRule] | None = None,
    ):
        if rules is None:
            rules = build_rule_catalogue(
                thresholds or ValidationThresholds(),
                line_codes or StatementLineCodes(),
            )
        self._rules: dict[str, ValidationRule] = {rule.rule_id: rule for rule in rules}

    @classmethod
    def from_config(cls, config: EngineConfiguration) -> ValidationEngine:
        return cls(thresholds=config.thresholds, line_codes=config.line_codes)

    @property
    def rule_ids(self) -> tuple[str, ...]:
        return tuple(self._rules)

    def add_rule(self, rule: ValidationRule) -> None:
        """Register ``rule``, replacing any rule with the same id."""
        self._rules[rule.rule_id] = rule

    def remove_rule(self, rule_id: str) -> bool:
        return self._rules.pop(rule_id, None) is not None

    @traced_engine("validation", "1.0", fingerprint_fields=("context",))
    def validate(self, *, context: ValidationContext) -> ValidationResult:
        results = tuple(
            rule.run(context)
            for rule in self._rules.values()
            if rule.applies_to(context.statement_code)
        )
        result = ValidationResult(results=results)
        logger.info(
            "statement_validated",
            extra={
                "statement_code": context.statement_code,
                "rules_run": len(results),
                "errors": len(result.errors),
                "warnings": len(result.warnings),
                "is_valid": result.is_valid,
            },
        )
        return result
