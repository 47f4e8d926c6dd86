"""
statement_engines.aggregation -- Raw activity entries to statement-line values.

Responsibility:
    Resolve every activity entry to a source (event) code, turn its
    quarterly values into a single statement figure (stock or flow), and
    reduce the figures mapped to each template line with the line's
    aggregation method.  Produces the ``lineCode -> {current, previous}``
    raw-value map plus per-event totals that formulas may reference.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Consumes frozen DTOs from
    ``statement_kernel.domain`` and the injected ``EngineConfiguration``.

Invariants enforced:
    - Source code resolution order: configured activity map, then the
      entry's own ``event_code``; entries resolving to neither are counted
      as unmapped and ignored.
    - For the same (event code, facility) execution entries replace
      planning entries.
    - Stock sections (D, E) take the latest non-null quarter through the
      record's quarter; zero stock balances are kept.  Flow sections sum
      the non-null quarters and skip entries that total zero.
      Accumulated surplus (G line 1) takes q1.
    - Reduction is applied per quarter and for the statement figure;
      results do not depend on entry order.

Failure modes:
    - Non-numeric quarter values are coerced to 0 and reported as a
      ``NonNumericOperandError`` warning; aggregation never raises for
      data problems.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

from statement_config.schema import EngineConfiguration
from statement_engines.tracer import traced_engine
from statement_kernel.domain.activity_codes import is_accumulated_surplus, section_of
from statement_kernel.domain.dtos import (
    ActivityEntry,
    ActivityRecord,
    AggregationMethod,
    EntityType,
    TemplateLine,
)
from statement_kernel.domain.quarters import QUARTERS
from statement_kernel.exceptions import NonNumericOperandError
from statement_kernel.logging_config import get_logger

logger = get_logger("engines.aggregation")

_ZERO = Decimal("0")


class Column(str, Enum):
    """Value column of a statement line."""

    CURRENT = "current"
    PREVIOUS = "previous"


@dataclass(frozen=True)
class SourceValue:
    """One activity entry resolved to an event code and a statement figure."""

    activity_code: str
    event_code: str
    facility_id: UUID
    entity_type: EntityType
    value: Decimal
    quarters: tuple[Decimal | None, ...]


@dataclass(frozen=True)
class LineAggregate:
    """Aggregated raw values of one template line."""

    line_code: str
    current: Decimal
    previous: Decimal | None = None
    quarters: tuple[Decimal | None, ...] = (None, None, None, None)
    source_count: int = 0


@dataclass(frozen=True)
class EventValue:
    event_code: str
    current: Decimal
    previous: Decimal | None = None


@dataclass(frozen=True)
class AggregationResult:
    """
    Output of ``AggregationEngine.aggregate``.

    ``lines`` holds only lines fed by raw data (event mappings or budget
    metadata); formula lines and headers are absent.
    """

    lines: Mapping[str, LineAggregate]
    events: Mapping[str, EventValue]
    has_previous: bool = False
    unmapped_codes: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", MappingProxyType(dict(self.lines)))
        object.__setattr__(self, "events", MappingProxyType(dict(self.events)))

    @property
    def unmapped_count(self) -> int:
        return len(self.unmapped_codes)

    def line_value(self, line_code: str, column: Column) -> Decimal | None:
        aggregate = self.lines.get(line_code)
        if aggregate is None:
            return None
        return aggregate.current if column is Column.CURRENT else aggregate.previous

    def event_value(self, event_code: str, column: Column) -> Decimal | None:
        value = self.events.get(event_code)
        if value is None:
            return None
        return value.current if column is Column.CURRENT else value.previous


# ---------------------------------------------------------------------------
# Reduction
# ---------------------------------------------------------------------------


def reduce_values(method: AggregationMethod, values: Sequence[Decimal]) -> Decimal:
    """Reduce ``values`` with ``method``; an empty sequence reduces to 0."""
    if not values:
        return _ZERO
    if method is AggregationMethod.SUM:
        return sum(values, _ZERO)
    if method is AggregationMethod.AVERAGE:
        return sum(values, _ZERO) / Decimal(len(values))
    if method is AggregationMethod.COUNT:
        return Decimal(len(values))
    if method is AggregationMethod.MIN:
        return min(values)
    if method is AggregationMethod.MAX:
        return max(values)
    ordered = sorted(values)
    middle = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[middle]
    return (ordered[middle - 1] + ordered[middle]) / Decimal("2")


def _coerce(value: Any, activity_code: str, operand: str, warnings: list[str]) -> Decimal | None:
    if value is None:
        return None
    try:
        if isinstance(value, bool):
            raise InvalidOperation
        number = value if isinstance(value, Decimal) else Decimal(str(value).strip())
        if not number.is_finite():
            raise InvalidOperation
        return number
    except InvalidOperation:
        warnings.append(str(NonNumericOperandError(activity_code, operand, value)))
        return _ZERO


def coerce_entry(entry: ActivityEntry, warnings: list[str]) -> ActivityEntry:
    """Entry with quarter values and opening balance as finite Decimals.

    Non-numeric and non-finite values (``"abc"``, ``"NaN"``, ``inf``) become
    0 and add a ``NonNumericOperandError`` warning.
    """
    values = {
        q.key: _coerce(entry.value_at(q), entry.activity_code, q.key, warnings)
        for q in QUARTERS
    }
    values["opening_balance"] = _coerce(
        entry.opening_balance, entry.activity_code, "opening_balance", warnings,
    )
    return dataclasses.replace(entry, **values)


def coerce_record(record: ActivityRecord, warnings: list[str]) -> ActivityRecord:
    return dataclasses.replace(
        record, entries=tuple(coerce_entry(entry, warnings) for entry in record.entries),
    )


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class AggregationEngine:
    """
    Maps raw activity records onto template lines.

    Contract:
        No I/O, deterministic.  The configuration is injected once; each
        ``aggregate`` call is independent.
    Guarantees:
        - Execution records are read through their own quarter; planning
          records cover the whole fiscal year.
        - A positive net VAT receivable of an execution record is added as
          a section D stock value under ``VAT_<CATEGORY>``.
        - Budget-vs-actual lines (``budget_events``/``actual_events``
          metadata) take the actual from execution entries into the current
          column and the budget from planning entries into the previous
          column.
    Non-goals:
        - Does not evaluate formulas (see ``statement_engines.formula``).
    """

    def __init__(self, config: EngineConfiguration):
        self._config = config
        self._stock_sections = frozenset(config.rollover.stock_sections)

    @traced_engine(
        "aggregation", "1.0",
        fingerprint_fields=("statement_code", "current_records", "previous_records"),
    )
    def aggregate(
        self,
        *,
        statement_code: str,
        lines: Sequence[TemplateLine],
        current_records: Sequence[ActivityRecord],
        previous_records: Sequence[ActivityRecord] | None = None,
    ) -> AggregationResult:
        warnings: list[str] = []
        unmapped: list[str] = []

        current_sources = self._collect(current_records, warnings, unmapped)
        current_selected = _prefer_execution(current_sources)

        has_comparatives = previous_records is not None
        previous_selected: list[SourceValue] = []
        if has_comparatives:
            previous_selected = _prefer_execution(
                self._collect(previous_records, warnings, [])
            )

        aggregates: dict[str, LineAggregate] = {}
        has_budget_lines = False
        for line in lines:
            if line.budget_events or line.actual_events:
                has_budget_lines = True
                aggregates[line.line_code] = self._budget_line(line, current_sources)
            elif line.event_mappings and not line.has_formula:
                aggregates[line.line_code] = self._mapped_line(
                    line, current_selected, previous_selected if has_comparatives else None,
                )

        events = _event_totals(current_selected, previous_selected if has_comparatives else None)

        if unmapped:
            logger.debug(
                "aggregation_unmapped_entries",
                extra={"statement_code": statement_code, "unmapped_count": len(unmapped)},
            )

        return AggregationResult(
            lines=aggregates,
            events=events,
            has_previous=has_comparatives or has_budget_lines,
            unmapped_codes=tuple(sorted(unmapped)),
            warnings=tuple(warnings),
        )

    # -- source collection ---------------------------------------------------

    def _collect(
        self,
        records: Iterable[ActivityRecord],
        warnings: list[str],
        unmapped: list[str],
    ) -> list[SourceValue]:
        sources: list[SourceValue] = []
        for record in records:
            through = record.quarter if record.entity_type is EntityType.EXECUTION else None
            for entry in record.entries:
                event_code = (
                    self._config.event_code_for(entry.activity_code) or entry.event_code
                )
                if not event_code:
                    unmapped.append(entry.activity_code)
                    continue
                entry = coerce_entry(entry, warnings)
                value = self._statement_value(entry, through)
                if value is None:
                    continue
                sources.append(SourceValue(
                    activity_code=entry.activity_code,
                    event_code=event_code,
                    facility_id=record.facility_id,
                    entity_type=record.entity_type,
                    value=value,
                    quarters=entry.quarter_values(),
                ))
            if record.entity_type is EntityType.EXECUTION:
                sources.extend(self._vat_sources(record, unmapped))
        return sources

    def _vat_sources(self, record: ActivityRecord, unmapped: list[str]) -> list[SourceValue]:
        sources = []
        for vat in record.vat_receivables:
            net = vat.net_at(record.quarter)
            if net <= 0:
                continue
            event_code = self._config.event_code_for(vat.asset_code)
            if event_code is None:
                unmapped.append(vat.asset_code)
                continue
            sources.append(SourceValue(
                activity_code=vat.asset_code,
                event_code=event_code,
                facility_id=record.facility_id,
                entity_type=record.entity_type,
                value=net,
                quarters=tuple(vat.net_at(q) for q in QUARTERS),
            ))
        return sources

    def _statement_value(self, entry: ActivityEntry, through) -> Decimal | None:
        if is_accumulated_surplus(entry.activity_code, entry.name or None):
            return entry.q1 if entry.q1 is not None else entry.latest_value(through)
        if section_of(entry.activity_code) in self._stock_sections:
            return entry.latest_value(through)
        total = entry.flow_total(through)
        if total is None or total == _ZERO:
            return None
        return total

    # -- line reduction ------------------------------------------------------

    @staticmethod
    def _mapped_line(
        line: TemplateLine,
        current: list[SourceValue],
        previous: list[SourceValue] | None,
    ) -> LineAggregate:
        mapped = frozenset(line.event_mappings)
        method = line.aggregation_method
        selected = [s for s in current if s.event_code in mapped]
        quarters = _quarter_reduction(method, selected)

        if line.is_annual_only:
            first = [s.quarters[0] for s in selected if s.quarters[0] is not None]
            value = reduce_values(method, first)
        else:
            value = reduce_values(method, [s.value for s in selected])

        prior = None
        if previous is not None:
            prior_selected = [s for s in previous if s.event_code in mapped]
            if line.is_annual_only:
                prior = reduce_values(
                    method, [s.quarters[0] for s in prior_selected if s.quarters[0] is not None]
                )
            else:
                prior = reduce_values(method, [s.value for s in prior_selected])

        return LineAggregate(
            line_code=line.line_code,
            current=value,
            previous=prior,
            quarters=quarters,
            source_count=len(selected),
        )

    @staticmethod
    def _budget_line(line: TemplateLine, sources: list[SourceValue]) -> LineAggregate:
        method = line.aggregation_method
        actual_events = frozenset(line.actual_events or line.event_mappings)
        budget_events = frozenset(line.budget_events or line.event_mappings)
        actual = [
            s for s in sources
            if s.entity_type is EntityType.EXECUTION and s.event_code in actual_events
        ]
        budget = [
            s for s in sources
            if s.entity_type is EntityType.PLANNING and s.event_code in budget_events
        ]
        return LineAggregate(
            line_code=line.line_code,
            current=reduce_values(method, [s.value for s in actual]),
            previous=reduce_values(method, [s.value for s in budget]),
            quarters=_quarter_reduction(method, actual),
            source_count=len(actual) + len(budget),
        )


def _prefer_execution(sources: list[SourceValue]) -> list[SourceValue]:
    """Drop planning values wherever execution values exist for (event, facility)."""
    executed = {
        (s.event_code, s.facility_id)
        for s in sources
        if s.entity_type is EntityType.EXECUTION
    }
    return [
        s for s in sources
        if s.entity_type is EntityType.EXECUTION
        or (s.event_code, s.facility_id) not in executed
    ]


def _quarter_reduction(
    method: AggregationMethod, sources: list[SourceValue]
) -> tuple[Decimal | None, ...]:
    result = []
    for i in range(len(QUARTERS)):
        values = [s.quarters[i] for s in sources if s.quarters[i] is not None]
        result.append(reduce_values(method, values) if values else None)
    return tuple(result)


def _event_totals(
    current: list[SourceValue],
    previous: list[SourceValue] | None,
) -> dict[str, EventValue]:
    totals: dict[str, Decimal] = {}
    for s in current:
        totals[s.event_code] = totals.get(s.event_code, _ZERO) + s.value
    prior: dict[str, Decimal] = {}
    for s in previous or ():
        prior[s.event_code] = prior.get(s.event_code, _ZERO) + s.value

    events = {}
    for code in sorted(set(totals) | set(prior)):
        events[code] = EventValue(
            event_code=code,
            current=totals.get(code, _ZERO),
            previous=prior.get(code, _ZERO) if previous is not None else None,
        )
    return events
