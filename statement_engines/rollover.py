"""
statement_engines.rollover -- Balance rollover between quarters.

Responsibility:
    Derive the closing balances of the quarter preceding the one being
    reported (or Q4 of the prior fiscal year for a Q1 rollover), turn them
    into the expected opening balances of the current record, and compare
    those with the opening balances actually entered.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The statement service
    locates the prior record through the activity selector and hands it
    in; this module never queries.

Invariants enforced:
    - Closing balances are read at the prior record's own quarter key.
    - Stock sections keep only non-zero values.
    - Accumulated surplus/deficit (G line 1) is constant across a fiscal
      year: a zero at the target quarter falls back to the record's Q1.
    - Closing Balance Total (G line 5) comes from the ordered strategies of
      ``statement_engines.closing_balance``; the winning strategy is named
      on the snapshot.
    - A positive VAT net (incurred - cleared) is carried both in the VAT
      section and in section D as ``VAT_<CATEGORY>``.
    - Prior codes are remapped to current codes: configured remap table,
      then identical code, then canonical (section, subsection, index).

Failure modes:
    - A missing prior record is not an error:
      ``PreviousQuarterBalances.exists`` is False.
    - Q1 without a previous fiscal year period has no rollover target.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from uuid import UUID

from statement_config.schema import EngineConfiguration, RolloverConfig
from statement_engines.closing_balance import (
    ClosingBalanceInputs,
    ClosingBalanceResolver,
    default_strategies,
)
from statement_engines.tracer import traced_engine
from statement_kernel.domain.activity_codes import (
    is_accumulated_surplus,
    is_closing_balance_total,
    is_period_surplus,
    is_prior_year_adjustment,
    parse_activity_code,
)
from statement_kernel.domain.dtos import ActivityEntry, ActivityRecord
from statement_kernel.domain.quarters import (
    QUARTERS,
    Quarter,
    QuarterSequence,
    build_quarter_sequence,
    previous_quarter,
)
from statement_kernel.logging_config import get_logger

logger = get_logger("engines.rollover")

_ZERO = Decimal("0")


def _frozen(values: Mapping[str, Decimal]) -> MappingProxyType:
    return MappingProxyType(dict(sorted(values.items())))


def _money_map(values: Mapping[str, Decimal]) -> dict[str, str]:
    return {code: str(value) for code, value in values.items()}


# =========================================================================
# Result types
# =========================================================================


@dataclass(frozen=True)
class BalanceTotals:
    financial_assets: Decimal = _ZERO
    financial_liabilities: Decimal = _ZERO
    net_financial_assets: Decimal = _ZERO
    closing_balance: Decimal = _ZERO

    def to_dict(self) -> dict:
        return {
            "financial_assets": str(self.financial_assets),
            "financial_liabilities": str(self.financial_liabilities),
            "net_financial_assets": str(self.net_financial_assets),
            "closing_balance": str(self.closing_balance),
        }


@dataclass(frozen=True)
class ClosingBalanceSnapshot:
    """
    Closing balances of one record, by section.

    Derived on demand and never persisted.  Keys of ``D``/``E``/``G`` are
    activity codes (plus ``VAT_<CATEGORY>`` in ``D``); keys of ``VAT`` are
    VAT categories.
    """

    D: Mapping[str, Decimal] = field(default_factory=dict)
    E: Mapping[str, Decimal] = field(default_factory=dict)
    G: Mapping[str, Decimal] = field(default_factory=dict)
    VAT: Mapping[str, Decimal] = field(default_factory=dict)
    totals: BalanceTotals = field(default_factory=BalanceTotals)
    closing_balance_strategy: str = "none"

    def __post_init__(self) -> None:
        for name in ("D", "E", "G", "VAT"):
            object.__setattr__(self, name, _frozen(getattr(self, name)))

    def section(self, name: str) -> Mapping[str, Decimal]:
        return getattr(self, name.upper())

    def to_dict(self) -> dict:
        return {
            "D": _money_map(self.D),
            "E": _money_map(self.E),
            "G": _money_map(self.G),
            "VAT": _money_map(self.VAT),
            "totals": self.totals.to_dict(),
            "closing_balance_strategy": self.closing_balance_strategy,
        }


@dataclass(frozen=True)
class PreviousQuarterBalances:
    exists: bool
    quarter: Quarter | None = None
    reporting_period_id: UUID | None = None
    source_execution_id: UUID | None = None
    closing_balances: ClosingBalanceSnapshot = field(default_factory=ClosingBalanceSnapshot)

    @property
    def totals(self) -> BalanceTotals:
        return self.closing_balances.totals

    @classmethod
    def missing(
        cls,
        quarter: Quarter | None = None,
        reporting_period_id: UUID | None = None,
    ) -> PreviousQuarterBalances:
        return cls(exists=False, quarter=quarter, reporting_period_id=reporting_period_id)

    def to_dict(self) -> dict:
        return {
            "exists": self.exists,
            "quarter": self.quarter.value if self.quarter else None,
            "reporting_period_id": (
                str(self.reporting_period_id) if self.reporting_period_id else None
            ),
            "source_execution_id": (
                str(self.source_execution_id) if self.source_execution_id else None
            ),
            "closing_balances": self.closing_balances.to_dict(),
            "totals": self.totals.to_dict(),
        }


@dataclass(frozen=True)
class RolloverTarget:
    """Where the closing balances of the preceding quarter live."""

    reporting_period_id: UUID
    quarter: Quarter
    is_cross_fiscal_year: bool = False


@dataclass(frozen=True)
class OpeningBalanceComparison:
    activity_code: str
    section: str
    expected: Decimal
    actual: Decimal
    difference: Decimal

    def to_dict(self) -> dict:
        return {
            "activity_code": self.activity_code,
            "section": self.section,
            "expected": str(self.expected),
            "actual": str(self.actual),
            "difference": str(self.difference),
        }


# =========================================================================
# Target selection
# =========================================================================


def rollover_target(
    current_quarter: Quarter,
    reporting_period_id: UUID,
    previous_fiscal_year_reporting_period_id: UUID | None = None,
) -> RolloverTarget | None:
    """Previous quarter in the same period, or Q4 of the prior fiscal year for Q1."""
    previous = previous_quarter(current_quarter)
    if previous is not None:
        return RolloverTarget(reporting_period_id=reporting_period_id, quarter=previous)
    if previous_fiscal_year_reporting_period_id is None:
        return None
    return RolloverTarget(
        reporting_period_id=previous_fiscal_year_reporting_period_id,
        quarter=Quarter.Q4,
        is_cross_fiscal_year=True,
    )


# =========================================================================
# Resolver
# =========================================================================


class BalanceRolloverResolver:
    """
    Resolves prior-quarter closing balances and expected openings.

    Contract:
        Pure; every method works on the records passed in.
    Guarantees:
        - ``extract_snapshot`` totals are computed from the same sections
          it returns.
        - ``expected_opening_balances`` is keyed by the current record's
          own activity codes.
    Non-goals:
        - Does not decide whether a difference is material; the
          ``OPENING_BALANCE_MISMATCH`` rule applies the tolerance.
    """

    def __init__(self, config: EngineConfiguration):
        self._config = config
        self._rollover: RolloverConfig = config.rollover
        self._closing_balance = ClosingBalanceResolver(
            default_strategies(self._rollover.closing_balance_aliases)
        )

    # -- navigation ------------------------------------------------------

    @staticmethod
    def quarter_sequence(
        current_quarter: Quarter,
        has_cross_fiscal_year_previous: bool = False,
    ) -> QuarterSequence:
        return build_quarter_sequence(current_quarter, has_cross_fiscal_year_previous)

    # -- extraction ------------------------------------------------------

    def _is_stock(self, section: str | None) -> bool:
        return section is not None and section in self._rollover.stock_sections

    def extract_snapshot(self, record: ActivityRecord) -> ClosingBalanceSnapshot:
        quarter = record.quarter
        stock: dict[str, dict[str, Decimal]] = {name: {} for name in self._rollover.stock_sections}
        equity: dict[str, Decimal] = {}
        revenue = _ZERO
        expenditure = _ZERO
        accumulated = _ZERO
        adjustments = _ZERO
        period_surplus: Decimal | None = None
        explicit_closing: Decimal | None = None
        closing_code: str | None = None

        for entry in record.entries:
            code = entry.activity_code
            section = parse_activity_code(code).section
            value = entry.value_at(quarter)

            if self._is_stock(section):
                if value is not None and value != _ZERO:
                    stock[section][code] = value
            elif section == "A":
                revenue += entry.flow_total(quarter) or _ZERO
            elif section == "B":
                expenditure += entry.flow_total(quarter) or _ZERO
            elif section == "G" or is_accumulated_surplus(code, entry.name):
                if is_accumulated_surplus(code, entry.name):
                    accumulated = self._accumulated_surplus(entry, quarter)
                    if accumulated != _ZERO:
                        equity[code] = accumulated
                elif is_prior_year_adjustment(code):
                    if value is not None and value != _ZERO:
                        adjustments += value
                        equity[code] = value
                elif is_period_surplus(code):
                    period_surplus = value
                    if value is not None and value != _ZERO:
                        equity[code] = value
                elif is_closing_balance_total(code):
                    explicit_closing = value
                    closing_code = code

        vat: dict[str, Decimal] = {}
        for receivable in record.vat_receivables:
            net = receivable.net_at(quarter)
            if net > _ZERO:
                vat[receivable.category] = net
                assets = stock.setdefault("D", {})
                assets[receivable.asset_code] = assets.get(receivable.asset_code, _ZERO) + net

        resolution = self._closing_balance.resolve(
            ClosingBalanceInputs(
                explicit_value=explicit_closing,
                computed_totals=record.computed_totals,
                accumulated_surplus=accumulated,
                prior_year_adjustments=adjustments,
                period_surplus=period_surplus,
                revenue=revenue,
                expenditure=expenditure,
            )
        )
        if closing_code is not None:
            equity[closing_code] = resolution.value

        assets = stock.get("D", {})
        liabilities = stock.get("E", {})
        financial_assets = sum(assets.values(), _ZERO)
        financial_liabilities = sum(liabilities.values(), _ZERO)

        return ClosingBalanceSnapshot(
            D=assets,
            E=liabilities,
            G=equity,
            VAT=vat,
            totals=BalanceTotals(
                financial_assets=financial_assets,
                financial_liabilities=financial_liabilities,
                net_financial_assets=financial_assets - financial_liabilities,
                closing_balance=resolution.value,
            ),
            closing_balance_strategy=resolution.strategy,
        )

    @staticmethod
    def _accumulated_surplus(entry: ActivityEntry, quarter: Quarter) -> Decimal:
        value = entry.value_at(quarter)
        if value is None or value == _ZERO:
            value = entry.value_at(QUARTERS[0])
        return value or _ZERO

    @traced_engine(
        "balance_rollover", "1.0",
        fingerprint_fields=("prior_record", "target"),
    )
    def previous_quarter_balances(
        self,
        *,
        prior_record: ActivityRecord | None,
        target: RolloverTarget | None,
    ) -> PreviousQuarterBalances:
        if target is None:
            return PreviousQuarterBalances.missing()
        if prior_record is None:
            logger.info(
                "rollover_prior_record_missing",
                extra={
                    "quarter": target.quarter.value,
                    "reporting_period_id": str(target.reporting_period_id),
                },
            )
            return PreviousQuarterBalances.missing(target.quarter, target.reporting_period_id)

        snapshot = self.extract_snapshot(prior_record)
        logger.info(
            "rollover_balances_resolved",
            extra={
                "quarter": target.quarter.value,
                "source_execution_id": str(prior_record.id),
                "closing_balance_strategy": snapshot.closing_balance_strategy,
                "cross_fiscal_year": target.is_cross_fiscal_year,
            },
        )
        return PreviousQuarterBalances(
            exists=True,
            quarter=target.quarter,
            reporting_period_id=target.reporting_period_id,
            source_execution_id=prior_record.id,
            closing_balances=snapshot,
        )

    # -- remapping -------------------------------------------------------

    def remap_code(self, prior_code: str, current_codes: Sequence[str]) -> str:
        """Current activity code that carries ``prior_code``'s balance."""
        remapped = self._config.code_remaps.get(prior_code)
        if remapped:
            return remapped
        if prior_code in current_codes:
            return prior_code
        key = parse_activity_code(prior_code).canonical_key
        if key is not None:
            for code in current_codes:
                if parse_activity_code(code).canonical_key == key:
                    return code
        return prior_code

    # -- opening balances ------------------------------------------------

    def _opening_codes(self, record: ActivityRecord) -> list[str]:
        codes = []
        for entry in record.entries:
            section = parse_activity_code(entry.activity_code).section
            if self._is_stock(section) or is_accumulated_surplus(entry.activity_code, entry.name):
                codes.append(entry.activity_code)
        return codes

    def expected_opening_balances(
        self,
        current_record: ActivityRecord,
        previous: PreviousQuarterBalances,
    ) -> dict[str, Decimal]:
        """Prior closing value per stock (and accumulated surplus) code of the current record."""
        if not previous.exists:
            return {}
        current_codes = [entry.activity_code for entry in current_record.entries]
        carried: dict[str, Decimal] = {}
        snapshot = previous.closing_balances
        for section in (*self._rollover.stock_sections, "G"):
            for code, value in snapshot.section(section).items():
                if section == "G" and not is_accumulated_surplus(code):
                    continue
                target = self.remap_code(code, current_codes)
                carried[target] = carried.get(target, _ZERO) + value
        return {code: carried.get(code, _ZERO) for code in self._opening_codes(current_record)}

    @staticmethod
    def actual_opening_balance(entry: ActivityEntry, quarter: Quarter) -> Decimal | None:
        """Explicit opening balance, else the value entered at the previous quarter."""
        if entry.opening_balance is not None:
            return entry.opening_balance
        previous = previous_quarter(quarter)
        if previous is None:
            return None
        return entry.value_at(previous)

    def actual_opening_balances(self, current_record: ActivityRecord) -> dict[str, Decimal | None]:
        return {
            entry.activity_code: self.actual_opening_balance(entry, current_record.quarter)
            for entry in current_record.entries
            if self._is_stock(parse_activity_code(entry.activity_code).section)
        }

    def compare_opening_balances(
        self,
        current_record: ActivityRecord,
        previous: PreviousQuarterBalances,
    ) -> tuple[OpeningBalanceComparison, ...]:
        """Expected versus actual opening balance for every stock activity."""
        if not previous.exists:
            return ()
        expected = self.expected_opening_balances(current_record, previous)
        actual = self.actual_opening_balances(current_record)
        comparisons = []
        for code in sorted(actual):
            expected_value = expected.get(code, _ZERO)
            actual_value = actual[code] if actual[code] is not None else _ZERO
            comparisons.append(
                OpeningBalanceComparison(
                    activity_code=code,
                    section=parse_activity_code(code).section or "",
                    expected=expected_value,
                    actual=actual_value,
                    difference=actual_value - expected_value,
                )
            )
        return tuple(comparisons)
