"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable structures that flow through statement
    computation: TemplateLine (configuration input), ActivityEntry and
    ActivityRecord (raw data input), VatReceivable and ReportingPeriodInfo
    (supporting data).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods are boundary converters invoked from
    selectors only.

Invariants enforced:
    - Mapping fields (format rules, metadata, computed totals) are
      deep-frozen into MappingProxyType so engines cannot mutate them.
    - Quarterly values are Decimal or None; None means "not entered",
      which is different from an entered zero for stock balances.

Failure modes:
    - ValueError when a TemplateLine has an empty line_code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any
from uuid import UUID

from statement_kernel.domain.quarters import QUARTERS, Quarter, quarters_through

if TYPE_CHECKING:
    from statement_kernel.models.activity import (
        ActivityEntryRow,
        ActivityRecordRow,
    )
    from statement_kernel.models.period import ReportingPeriod
    from statement_kernel.models.template import StatementTemplateLineRow


def _deep_freeze_dict(d: dict[str, Any]) -> MappingProxyType:
    """Deep-freeze a dictionary (nested dicts -> MappingProxyType, lists -> tuples)."""
    frozen = {}
    for k, v in d.items():
        frozen[k] = _deep_freeze_value(v)
    return MappingProxyType(frozen)


def _deep_freeze_value(v: Any) -> Any:
    if isinstance(v, MappingProxyType):
        return v
    if isinstance(v, dict):
        return _deep_freeze_dict(v)
    if isinstance(v, (list, tuple)):
        return tuple(_deep_freeze_value(item) for item in v)
    return v


def _freeze(value: Any) -> MappingProxyType:
    if value is None:
        return MappingProxyType({})
    if isinstance(value, MappingProxyType):
        return value
    return _deep_freeze_dict(dict(value))


def to_decimal(value: Any) -> Decimal | None:
    """Convert a stored numeric value to Decimal (None stays None)."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


# =========================================================================
# Enums
# =========================================================================


class AggregationMethod(str, Enum):
    """Reduction applied to the raw values mapped to a line."""

    SUM = "SUM"
    AVERAGE = "AVERAGE"
    COUNT = "COUNT"
    MIN = "MIN"
    MAX = "MAX"
    MEDIAN = "MEDIAN"


class EntityType(str, Enum):
    """Origin of an activity record."""

    PLANNING = "planning"
    EXECUTION = "execution"


# =========================================================================
# Template lines
# =========================================================================


@dataclass(frozen=True)
class TemplateLine:
    """
    One row definition of a statement template.

    Contract:
        A line is either computed from a ``calculation_formula`` or
        aggregated from the source codes in ``event_mappings``; a line with
        neither is a header.  When both are present the formula wins.
    """

    statement_code: str
    line_code: str
    line_item: str
    display_order: int
    level: int = 1
    parent_line_code: str | None = None
    event_mappings: tuple[str, ...] = ()
    calculation_formula: str | None = None
    aggregation_method: AggregationMethod = AggregationMethod.SUM
    is_total_line: bool = False
    is_subtotal_line: bool = False
    is_annual_only: bool = False
    format_rules: dict[str, Any] | MappingProxyType = field(default_factory=dict)
    metadata: dict[str, Any] | MappingProxyType = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.line_code:
            raise ValueError("TemplateLine.line_code must not be empty")
        object.__setattr__(self, "format_rules", _freeze(self.format_rules))
        object.__setattr__(self, "metadata", _freeze(self.metadata))
        object.__setattr__(self, "event_mappings", tuple(self.event_mappings))
        if not isinstance(self.aggregation_method, AggregationMethod):
            object.__setattr__(
                self,
                "aggregation_method",
                AggregationMethod(str(self.aggregation_method).upper()),
            )

    @property
    def has_formula(self) -> bool:
        return bool(self.calculation_formula and self.calculation_formula.strip())

    @property
    def is_header(self) -> bool:
        return not self.has_formula and not self.event_mappings and not self.budget_events

    @property
    def note(self) -> str | None:
        note = self.metadata.get("note")
        return str(note) if note is not None else None

    @property
    def category(self) -> str | None:
        """``revenue`` or ``expense`` for budget favorability, if declared."""
        return self.metadata.get("category")

    @property
    def sum_of(self) -> str:
        """Parent whose children an implicit total line sums (itself by default)."""
        return str(self.metadata.get("sum_of", self.line_code))

    @property
    def is_implicit_total(self) -> bool:
        return (
            (self.is_total_line or self.is_subtotal_line)
            and not self.has_formula
            and not self.event_mappings
            and not self.budget_events
        )

    @property
    def budget_events(self) -> tuple[str, ...]:
        return tuple(self.metadata.get("budget_events", ()))

    @property
    def actual_events(self) -> tuple[str, ...]:
        return tuple(self.metadata.get("actual_events", ()))

    @classmethod
    def from_model(
        cls,
        model: StatementTemplateLineRow,
        parent_line_code: str | None = None,
    ) -> TemplateLine:
        return cls(
            statement_code=model.statement_code,
            line_code=model.line_code,
            line_item=model.line_item,
            display_order=model.display_order,
            level=model.level,
            parent_line_code=parent_line_code,
            event_mappings=tuple(model.event_mappings or ()),
            calculation_formula=model.calculation_formula,
            aggregation_method=AggregationMethod(model.aggregation_method),
            is_total_line=model.is_total_line,
            is_subtotal_line=model.is_subtotal_line,
            is_annual_only=model.is_annual_only,
            format_rules=dict(model.format_rules or {}),
            metadata=dict(model.line_metadata or {}),
        )


# =========================================================================
# Raw activity data
# =========================================================================


@dataclass(frozen=True)
class ActivityEntry:
    """
    Quarterly values of one activity for a facility/project/period.

    Keyed by (facility_id, project_id, reporting_period_id, activity_code).
    """

    activity_code: str
    facility_id: UUID
    project_id: UUID
    reporting_period_id: UUID
    entity_type: EntityType = EntityType.EXECUTION
    name: str = ""
    q1: Decimal | None = None
    q2: Decimal | None = None
    q3: Decimal | None = None
    q4: Decimal | None = None
    comment: str | None = None
    event_code: str | None = None
    opening_balance: Decimal | None = None
    amount_paid: Decimal | None = None
    payment_status: str | None = None

    def value_at(self, quarter: Quarter) -> Decimal | None:
        return getattr(self, quarter.key)

    def quarter_values(self) -> tuple[Decimal | None, ...]:
        return tuple(self.value_at(q) for q in QUARTERS)

    def latest_value(self, through: Quarter | None = None) -> Decimal | None:
        """Latest non-null quarter value up to ``through`` (stock balance)."""
        candidates = quarters_through(through) if through else QUARTERS
        for quarter in reversed(candidates):
            value = self.value_at(quarter)
            if value is not None:
                return value
        return None

    def flow_total(self, through: Quarter | None = None) -> Decimal | None:
        """Sum of non-null quarter values up to ``through`` (flow amount)."""
        candidates = quarters_through(through) if through else QUARTERS
        values = [self.value_at(q) for q in candidates if self.value_at(q) is not None]
        if not values:
            return None
        return sum(values, Decimal("0"))

    @classmethod
    def from_model(cls, model: ActivityEntryRow, record: ActivityRecordRow) -> ActivityEntry:
        return cls(
            activity_code=model.activity_code,
            facility_id=record.facility_id,
            project_id=record.project_id,
            reporting_period_id=record.reporting_period_id,
            entity_type=EntityType(record.entity_type),
            name=model.name or "",
            q1=to_decimal(model.q1),
            q2=to_decimal(model.q2),
            q3=to_decimal(model.q3),
            q4=to_decimal(model.q4),
            comment=model.comment,
            event_code=model.event_code,
            opening_balance=to_decimal(model.opening_balance),
            amount_paid=to_decimal(model.amount_paid),
            payment_status=model.payment_status,
        )


@dataclass(frozen=True)
class VatReceivable:
    """VAT incurred and cleared per quarter for one category."""

    category: str
    incurred: tuple[Decimal | None, ...] = (None, None, None, None)
    cleared: tuple[Decimal | None, ...] = (None, None, None, None)

    def net_at(self, quarter: Quarter) -> Decimal:
        """Incurred minus cleared at ``quarter`` (missing values count as 0)."""
        amount = self.incurred[quarter.number - 1] or Decimal("0")
        cleared = self.cleared[quarter.number - 1] or Decimal("0")
        return amount - cleared

    @property
    def asset_code(self) -> str:
        """Section D key under which a positive net receivable is carried."""
        return "VAT_" + "_".join(self.category.split()).upper()

    @classmethod
    def from_dict(cls, category: str, data: dict[str, Any]) -> VatReceivable:
        """Build from ``{"q1": .., "q1_cleared": .., ...}``."""
        return cls(
            category=category,
            incurred=tuple(to_decimal(data.get(q.key)) for q in QUARTERS),
            cleared=tuple(to_decimal(data.get(f"{q.key}_cleared")) for q in QUARTERS),
        )


@dataclass(frozen=True)
class ActivityRecord:
    """
    One submitted planning or execution form.

    Contract:
        ``quarter`` is the record's own current quarter; closing balances
        are read at that quarter's key.  ``computed_totals`` holds the
        totals the submission layer stored alongside the entries.
    """

    id: UUID
    facility_id: UUID
    project_id: UUID
    reporting_period_id: UUID
    entity_type: EntityType
    quarter: Quarter
    project_code: str = ""
    facility_type: str = ""
    entries: tuple[ActivityEntry, ...] = ()
    computed_totals: dict[str, Any] | MappingProxyType = field(default_factory=dict)
    vat_receivables: tuple[VatReceivable, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "computed_totals", _freeze(self.computed_totals))
        object.__setattr__(self, "entries", tuple(self.entries))
        object.__setattr__(self, "vat_receivables", tuple(self.vat_receivables))

    def entry(self, activity_code: str) -> ActivityEntry | None:
        for entry in self.entries:
            if entry.activity_code == activity_code:
                return entry
        return None

    @classmethod
    def from_model(cls, model: ActivityRecordRow) -> ActivityRecord:
        vat = model.vat_receivables or {}
        return cls(
            id=model.id,
            facility_id=model.facility_id,
            project_id=model.project_id,
            reporting_period_id=model.reporting_period_id,
            entity_type=EntityType(model.entity_type),
            quarter=Quarter.parse(model.quarter),
            project_code=model.project_code or "",
            facility_type=model.facility_type or "",
            entries=tuple(
                ActivityEntry.from_model(row, model)
                for row in sorted(model.entries, key=lambda r: r.activity_code)
            ),
            computed_totals=dict(model.computed_totals or {}),
            vat_receivables=tuple(
                VatReceivable.from_dict(category, data)
                for category, data in sorted(vat.items())
            ),
        )


@dataclass(frozen=True)
class ReportingPeriodInfo:
    """A fiscal reporting period (one fiscal year of four quarters)."""

    id: UUID
    year: int
    period_type: str
    start_date: date
    end_date: date

    @classmethod
    def from_model(cls, model: ReportingPeriod) -> ReportingPeriodInfo:
        return cls(
            id=model.id,
            year=model.year,
            period_type=model.period_type,
            start_date=model.start_date,
            end_date=model.end_date,
        )
