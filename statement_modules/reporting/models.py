"""
Statement Reporting Domain Models (``statement_modules.reporting.models``).

Responsibility
--------------
Frozen dataclass value objects for statement requests and outputs: the
request scope, statement lines, statement metadata (working capital,
rollover, traces), the assembled ``FinancialStatement`` and the
``StatementResult`` pairing it with its ``ValidationResult``.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Built by the
statement assembler and returned by ``StatementService``.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* ``to_dict()`` renders Decimals as strings, UUIDs as strings, dates and
  datetimes as ISO strings, enums by value.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

from statement_engines.formula import FormulaTrace
from statement_engines.rollover import OpeningBalanceComparison, PreviousQuarterBalances
from statement_engines.validation import ValidationResult
from statement_engines.variance import BudgetVariance, LineVariance
from statement_engines.working_capital import WorkingCapitalResult
from statement_kernel.domain.dtos import EntityType
from statement_kernel.domain.quarters import Quarter, QuarterSequence


def render_to_dict(obj: object) -> Any:
    """
    Convert a statement value to plain JSON-ready data.

    Objects with their own ``to_dict`` render themselves; other dataclasses
    are rendered field by field.
    """
    if obj is None:
        return None
    if isinstance(obj, bool):
        return obj
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, (list, tuple)):
        return [render_to_dict(item) for item in obj]
    if isinstance(obj, (dict, MappingProxyType)):
        return {str(k): render_to_dict(v) for k, v in obj.items()}
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {
            f.name: render_to_dict(getattr(obj, f.name))
            for f in dataclasses.fields(obj)
        }
    return obj


# =========================================================================
# Request
# =========================================================================


@dataclass(frozen=True)
class StatementRequest:
    """
    Scope of one statement generation.

    ``quarter`` is required for execution statements with rollover; a
    request without a quarter covers the whole fiscal year.
    ``previous_fiscal_year_reporting_period_id`` overrides the period
    lookup used for comparatives and Q1 rollover.
    """

    statement_code: str
    facility_id: UUID
    project_id: UUID
    reporting_period_id: UUID
    quarter: Quarter | None = None
    entity_type: EntityType = EntityType.EXECUTION
    include_comparatives: bool = True
    previous_fiscal_year_reporting_period_id: UUID | None = None

    def __post_init__(self) -> None:
        if not self.statement_code:
            raise ValueError("statement_code must not be empty")
        if self.quarter is not None and not isinstance(self.quarter, Quarter):
            object.__setattr__(self, "quarter", Quarter.parse(self.quarter))

    def for_statement(self, statement_code: str) -> StatementRequest:
        return dataclasses.replace(self, statement_code=statement_code)


# =========================================================================
# Statement
# =========================================================================


@dataclass(frozen=True)
class StatementLine:
    """One rendered statement row."""

    line_code: str
    description: str
    display_order: int
    level: int
    current: Decimal | None
    previous: Decimal | None = None
    note: str | None = None
    variance: LineVariance | None = None
    budget_variance: BudgetVariance | None = None
    is_total: bool = False
    is_subtotal: bool = False
    format_rules: dict[str, Any] | MappingProxyType = field(default_factory=dict)
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "line_code": self.line_code,
            "description": self.description,
            "display_order": self.display_order,
            "level": self.level,
            "note": self.note,
            "current": render_to_dict(self.current),
            "previous": render_to_dict(self.previous),
            "variance": render_to_dict(self.variance),
            "budget_variance": render_to_dict(self.budget_variance),
            "is_total": self.is_total,
            "is_subtotal": self.is_subtotal,
            "format_rules": render_to_dict(self.format_rules),
            "error": self.error,
        }


@dataclass(frozen=True)
class RolloverMetadata:
    """Prior-quarter balances used to check this quarter's openings."""

    quarter_sequence: QuarterSequence
    previous_quarter: PreviousQuarterBalances
    opening_balances: tuple[OpeningBalanceComparison, ...] = ()
    source_locked: bool | None = None

    def to_dict(self) -> dict:
        return {
            "quarter_sequence": self.quarter_sequence.to_dict(),
            "previous_quarter": self.previous_quarter.to_dict(),
            "opening_balances": [c.to_dict() for c in self.opening_balances],
            "source_locked": self.source_locked,
        }


@dataclass(frozen=True)
class StatementMetadata:
    template_id: str
    statement_name: str
    generated_at: datetime | None = None
    duration_ms: float = 0.0
    line_count: int = 0
    source_record_count: int = 0
    unmapped_entry_count: int = 0
    failed_line_count: int = 0
    has_comparatives: bool = False
    working_capital: WorkingCapitalResult | None = None
    rollover: RolloverMetadata | None = None
    traces: tuple[FormulaTrace, ...] = ()

    def to_dict(self) -> dict:
        data = {
            "template_id": self.template_id,
            "statement_name": self.statement_name,
            "generated_at": render_to_dict(self.generated_at),
            "duration_ms": self.duration_ms,
            "line_count": self.line_count,
            "source_record_count": self.source_record_count,
            "unmapped_entry_count": self.unmapped_entry_count,
            "failed_line_count": self.failed_line_count,
            "has_comparatives": self.has_comparatives,
            "traces": [trace.to_dict() for trace in self.traces],
        }
        if self.working_capital is not None:
            data["working_capital"] = self.working_capital.to_dict()
        if self.rollover is not None:
            data["rollover"] = self.rollover.to_dict()
        return data


@dataclass(frozen=True)
class FinancialStatement:
    statement_code: str
    facility_id: UUID
    project_id: UUID
    reporting_period_id: UUID
    quarter: Quarter | None
    lines: tuple[StatementLine, ...]
    totals: dict[str, Decimal] | MappingProxyType
    metadata: StatementMetadata
    warnings: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "totals", MappingProxyType(dict(self.totals)))

    def line(self, line_code: str) -> StatementLine | None:
        for line in self.lines:
            if line.line_code == line_code:
                return line
        return None

    def to_dict(self) -> dict:
        return {
            "statement_code": self.statement_code,
            "facility_id": str(self.facility_id),
            "project_id": str(self.project_id),
            "reporting_period_id": str(self.reporting_period_id),
            "quarter": self.quarter.value if self.quarter else None,
            "lines": [line.to_dict() for line in self.lines],
            "totals": render_to_dict(self.totals),
            "metadata": self.metadata.to_dict(),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class StatementResult:
    statement: FinancialStatement
    validation: ValidationResult

    def to_dict(self) -> dict:
        return {
            "statement": self.statement.to_dict(),
            "validation": self.validation.to_dict(),
        }
