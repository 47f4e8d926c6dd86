"""
EngineConfiguration schema.

Typed, immutable form of a configuration set.  YAML files are parsed into
these types by the loader; the resulting ``EngineConfiguration`` is passed
explicitly into every engine, so concurrent evaluations for different
facilities never share mutable state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from fnmatch import fnmatchcase
from types import MappingProxyType

from statement_kernel.domain.dtos import TemplateLine

# ---------------------------------------------------------------------------
# Activity -> event mapping
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EventMappingRule:
    """Maps activity codes (exact or glob pattern) to a source event code."""

    pattern: str
    event_code: str

    @property
    def is_pattern(self) -> bool:
        return any(ch in self.pattern for ch in "*?[")

    def matches(self, activity_code: str) -> bool:
        if self.is_pattern:
            return fnmatchcase(activity_code, self.pattern)
        return activity_code == self.pattern


# ---------------------------------------------------------------------------
# Engine sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkingCapitalConfig:
    """Event codes whose balances make up receivables and payables."""

    receivables_event_codes: tuple[str, ...] = (
        "ADVANCE_PAYMENTS",
        "RECEIVABLES_EXCHANGE",
        "RECEIVABLES_NON_EXCHANGE",
    )
    payables_event_codes: tuple[str, ...] = ("PAYABLES",)


@dataclass(frozen=True)
class ValidationThresholds:
    """Numeric limits used by the validation rule catalogue."""

    variance_threshold: Decimal = Decimal("1.0")
    balance_ceiling: Decimal = Decimal("1000000000")
    opening_balance_tolerance: Decimal = Decimal("0.01")
    equation_tolerance: Decimal = Decimal("0.01")
    accounting_equation_tolerance: Decimal = Decimal("0")
    equity_ratio_limit: Decimal = Decimal("2")
    operating_ratio_limit: Decimal = Decimal("3")


@dataclass(frozen=True)
class RolloverConfig:
    """Closing-balance extraction settings."""

    closing_balance_aliases: tuple[str, ...] = (
        "closingBalance",
        "equity",
        "gTotal",
        "G",
        "netAssets",
    )
    stock_sections: tuple[str, ...] = ("D", "E")


@dataclass(frozen=True)
class StatementLineCodes:
    """
    Candidate line codes the validation rules read from a statement.

    Each field lists codes in priority order; the first code present in the
    statement totals is used.  Missing codes make the rule's precondition
    absent, and the rule passes.
    """

    net_financial_assets: tuple[str, ...] = ("NET_FINANCIAL_ASSETS", "NET_ASSETS")
    closing_balance: tuple[str, ...] = ("CLOSING_BALANCE", "TOTAL_NET_ASSETS")
    total_assets: tuple[str, ...] = ("TOTAL_ASSETS",)
    total_liabilities: tuple[str, ...] = ("TOTAL_LIABILITIES",)
    total_net_assets: tuple[str, ...] = ("TOTAL_NET_ASSETS",)
    total_revenue: tuple[str, ...] = ("TOTAL_REVENUE", "TOTAL_RECEIPTS")
    total_expenses: tuple[str, ...] = ("TOTAL_EXPENSES", "TOTAL_EXPENDITURES")
    surplus_deficit: tuple[str, ...] = ("SURPLUS_DEFICIT", "NET_SURPLUS_DEFICIT")
    operating_cash_flow: tuple[str, ...] = ("NET_CASH_FLOW_OPERATING",)
    investing_cash_flow: tuple[str, ...] = ("NET_CASH_FLOW_INVESTING",)
    financing_cash_flow: tuple[str, ...] = ("NET_CASH_FLOW_FINANCING",)
    net_cash_flow: tuple[str, ...] = ("NET_INCREASE_CASH",)
    opening_net_assets: tuple[str, ...] = ("OPENING_NET_ASSETS",)
    net_assets_change: tuple[str, ...] = ("NET_ASSETS_CHANGE",)
    closing_net_assets: tuple[str, ...] = ("CLOSING_NET_ASSETS",)


@dataclass(frozen=True)
class StatementTemplate:
    """A named statement template and its lines."""

    statement_code: str
    statement_name: str
    lines: tuple[TemplateLine, ...]


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineConfiguration:
    """
    Immutable runtime configuration for the statement engine.

    Contract:
        Built once by ``statement_config.get_active_config()`` (or directly
        in tests) and injected into engines and services.  Never mutated.

    Guarantees:
        - ``event_code_for`` resolves exact codes before glob patterns, and
          patterns in declaration order.
        - ``checksum`` identifies the parsed content.
    """

    config_id: str
    version: int = 1
    description: str = ""
    event_codes: frozenset[str] = frozenset()
    event_mappings: tuple[EventMappingRule, ...] = ()
    code_remaps: MappingProxyType = field(
        default_factory=lambda: MappingProxyType({})
    )
    working_capital: WorkingCapitalConfig = field(default_factory=WorkingCapitalConfig)
    thresholds: ValidationThresholds = field(default_factory=ValidationThresholds)
    rollover: RolloverConfig = field(default_factory=RolloverConfig)
    line_codes: StatementLineCodes = field(default_factory=StatementLineCodes)
    templates: MappingProxyType = field(
        default_factory=lambda: MappingProxyType({})
    )
    checksum: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.code_remaps, MappingProxyType):
            object.__setattr__(self, "code_remaps", MappingProxyType(dict(self.code_remaps)))
        if not isinstance(self.templates, MappingProxyType):
            object.__setattr__(self, "templates", MappingProxyType(dict(self.templates)))
        object.__setattr__(self, "event_codes", frozenset(self.event_codes))

    def event_code_for(self, activity_code: str) -> str | None:
        """Configured event code for an activity, or None if unmapped."""
        for rule in self.event_mappings:
            if not rule.is_pattern and rule.matches(activity_code):
                return rule.event_code
        for rule in self.event_mappings:
            if rule.is_pattern and rule.matches(activity_code):
                return rule.event_code
        return None

    def template(self, statement_code: str) -> StatementTemplate | None:
        return self.templates.get(statement_code)
