"""
Statement Assembler (``statement_modules.reporting.assembler``).

Responsibility
--------------
Pure orchestration of one statement: aggregate raw records, compute
working capital for cash-flow statements, evaluate formulas, derive line
and budget variances, attach rollover metadata, run validation and return
``StatementResult``.

Architecture position
---------------------
**Modules layer** -- pure, no I/O.  ``StatementService`` loads everything
through selectors and hands it in as ``AssemblyInputs``; tests drive the
assembler directly.

Invariants enforced
-------------------
* Deterministic: identical inputs give identical totals and line values.
  Only ``generated_at`` (passed in) and durations vary.
* Warnings of every stage are merged in order without duplicates.
* Structural and data problems never escape as exceptions; failed lines
  carry their error text.

Failure modes
-------------
* ``ConfigurationError`` subclasses only, from template compilation done
  by the caller.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from statement_config.schema import EngineConfiguration
from statement_engines.aggregation import AggregationEngine, AggregationResult, coerce_record
from statement_engines.expression import WORKING_CAPITAL_CHANGE
from statement_engines.formula import (
    CompiledTemplate,
    EvaluationContext,
    EvaluationResult,
    FormulaEvaluator,
)
from statement_engines.rollover import BalanceRolloverResolver, RolloverTarget
from statement_engines.validation import CASH_FLOW, ValidationContext, ValidationEngine
from statement_engines.variance import BudgetVariance, VarianceCalculator
from statement_engines.working_capital import WorkingCapitalCalculator, WorkingCapitalResult
from statement_kernel.domain.dtos import ActivityRecord, EntityType
from statement_kernel.logging_config import get_logger
from statement_modules.reporting.config import ReportingConfig
from statement_modules.reporting.models import (
    FinancialStatement,
    RolloverMetadata,
    StatementLine,
    StatementMetadata,
    StatementRequest,
    StatementResult,
)

logger = get_logger("modules.reporting.assembler")

_ZERO = Decimal("0")


@dataclass(frozen=True)
class AssemblyInputs:
    """
    Everything one statement needs, already loaded.

    ``previous_records`` is None when no comparative data exists (as
    opposed to an empty tuple, which means "requested, nothing found").
    ``prior_record`` and ``rollover`` are only read for execution
    requests with a quarter.
    """

    request: StatementRequest
    compiled: CompiledTemplate
    statement_name: str = ""
    current_records: tuple[ActivityRecord, ...] = ()
    previous_records: tuple[ActivityRecord, ...] | None = None
    prior_record: ActivityRecord | None = None
    rollover: RolloverTarget | None = None
    rollover_source_locked: bool | None = None
    cross_statement_surplus: Decimal | None = None
    cross_statement_surplus_previous: Decimal | None = None
    warnings: tuple[str, ...] = ()
    generated_at: datetime | None = None


def merge_warnings(*groups: Iterable[str]) -> tuple[str, ...]:
    """Concatenate warning groups in order, keeping the first of duplicates."""
    seen: dict[str, None] = {}
    for group in groups:
        for warning in group:
            seen.setdefault(warning, None)
    return tuple(seen)


class StatementAssembler:
    """
    Builds a statement from loaded inputs.

    Contract
    --------
    * Engines are constructed once from the injected configuration.
    * ``assemble`` has no side effects apart from logging.

    Non-goals
    ---------
    * Does NOT load templates or records (see ``StatementService``).
    * Does NOT compile templates; callers cache ``CompiledTemplate``.
    """

    def __init__(
        self,
        config: EngineConfiguration,
        reporting: ReportingConfig | None = None,
        validation: ValidationEngine | None = None,
    ):
        self._config = config
        self._reporting = reporting or ReportingConfig()
        self._aggregation = AggregationEngine(config)
        self._evaluator = FormulaEvaluator()
        self._working_capital = WorkingCapitalCalculator(config.working_capital)
        self._variance = VarianceCalculator()
        self._rollover = BalanceRolloverResolver(config)
        self._validation = validation or ValidationEngine.from_config(config)

    @property
    def validation_engine(self) -> ValidationEngine:
        return self._validation

    def assemble(self, inputs: AssemblyInputs) -> StatementResult:
        t0 = time.monotonic()
        request = inputs.request
        compiled = inputs.compiled

        aggregation = self._aggregation.aggregate(
            statement_code=compiled.statement_code,
            lines=compiled.lines,
            current_records=inputs.current_records,
            previous_records=inputs.previous_records,
        )

        working_capital = None
        if compiled.statement_code == CASH_FLOW or compiled.uses_context(WORKING_CAPITAL_CHANGE):
            working_capital = self._calculate_working_capital(
                aggregation, inputs.previous_records is not None,
            )

        evaluation = self._evaluator.evaluate(
            compiled=compiled,
            aggregation=aggregation,
            context=EvaluationContext(
                working_capital=working_capital,
                cross_statement_surplus=inputs.cross_statement_surplus,
                cross_statement_surplus_previous=inputs.cross_statement_surplus_previous,
            ),
        )

        lines, budget_variances = self._build_lines(compiled, evaluation)
        rollover_warnings: list[str] = []
        rollover = self._rollover_metadata(inputs, rollover_warnings)

        warnings = merge_warnings(
            inputs.warnings,
            aggregation.warnings,
            working_capital.warnings if working_capital else (),
            rollover_warnings,
            evaluation.warnings,
        )

        totals = evaluation.totals()
        validation = self._validation.validate(
            context=ValidationContext(
                statement_code=compiled.statement_code,
                totals=totals,
                working_capital=working_capital,
                budget_variances=budget_variances,
                opening_balances=rollover.opening_balances if rollover else (),
                warnings=warnings,
                is_execution=request.entity_type is EntityType.EXECUTION,
                quarter=request.quarter,
            )
        )

        metadata = StatementMetadata(
            template_id=compiled.statement_code,
            statement_name=inputs.statement_name,
            generated_at=inputs.generated_at,
            duration_ms=round((time.monotonic() - t0) * 1000, 3),
            line_count=len(lines),
            source_record_count=len(inputs.current_records),
            unmapped_entry_count=aggregation.unmapped_count,
            failed_line_count=len(evaluation.failed_lines),
            has_comparatives=aggregation.has_previous,
            working_capital=working_capital,
            rollover=rollover,
            traces=evaluation.traces if self._reporting.include_traces else (),
        )

        statement = FinancialStatement(
            statement_code=compiled.statement_code,
            facility_id=request.facility_id,
            project_id=request.project_id,
            reporting_period_id=request.reporting_period_id,
            quarter=request.quarter,
            lines=lines,
            totals=totals,
            metadata=metadata,
            warnings=warnings,
        )

        logger.info(
            "statement_assembled",
            extra={
                "statement_code": compiled.statement_code,
                "line_count": len(lines),
                "failed_line_count": metadata.failed_line_count,
                "warning_count": len(warnings),
                "is_valid": validation.is_valid,
            },
        )
        return StatementResult(statement=statement, validation=validation)

    # -- stages ----------------------------------------------------------

    def _calculate_working_capital(
        self,
        aggregation: AggregationResult,
        has_previous_period: bool,
    ) -> WorkingCapitalResult:
        current = {
            code: value.current for code, value in aggregation.events.items()
        }
        previous = None
        if has_previous_period:
            previous = {
                code: value.previous
                for code, value in aggregation.events.items()
                if value.previous is not None
            }
        return self._working_capital.calculate(
            current_balances=current,
            previous_balances=previous,
        )

    def _build_lines(
        self,
        compiled: CompiledTemplate,
        evaluation: EvaluationResult,
    ) -> tuple[tuple[StatementLine, ...], dict[str, BudgetVariance]]:
        lines: list[StatementLine] = []
        budget_variances: dict[str, BudgetVariance] = {}

        for template_line in compiled.lines:
            code = template_line.line_code
            result = evaluation.values.get(code)
            current = result.current if result else None
            previous = result.previous if result else None

            variance = None
            budget_variance = None
            if template_line.budget_events or template_line.actual_events:
                budget_variance = self._variance.budget_variance(
                    actual=current if current is not None else _ZERO,
                    budget=previous if previous is not None else _ZERO,
                    category=template_line.category,
                )
                budget_variances[code] = budget_variance
            elif current is not None and previous is not None:
                variance = self._variance.line_variance(current, previous)

            lines.append(StatementLine(
                line_code=code,
                description=template_line.line_item,
                display_order=template_line.display_order,
                level=template_line.level,
                current=current,
                previous=previous,
                note=template_line.note,
                variance=variance,
                budget_variance=budget_variance,
                is_total=template_line.is_total_line,
                is_subtotal=template_line.is_subtotal_line,
                format_rules=template_line.format_rules,
                error=str(result.error) if result and result.error else None,
            ))

        lines.sort(key=lambda line: (line.display_order, line.line_code))
        return tuple(lines), budget_variances

    def _rollover_metadata(
        self, inputs: AssemblyInputs, warnings: list[str],
    ) -> RolloverMetadata | None:
        request = inputs.request
        if request.entity_type is not EntityType.EXECUTION or request.quarter is None:
            return None

        target = inputs.rollover
        sequence = self._rollover.quarter_sequence(
            request.quarter,
            has_cross_fiscal_year_previous=bool(target and target.is_cross_fiscal_year),
        )
        previous = self._rollover.previous_quarter_balances(
            prior_record=(
                coerce_record(inputs.prior_record, warnings) if inputs.prior_record else None
            ),
            target=target,
        )
        current_record = _execution_record(inputs.current_records, request)
        comparisons = ()
        if current_record is not None:
            comparisons = self._rollover.compare_opening_balances(
                coerce_record(current_record, warnings), previous,
            )

        return RolloverMetadata(
            quarter_sequence=sequence,
            previous_quarter=previous,
            opening_balances=comparisons,
            source_locked=inputs.rollover_source_locked,
        )


def _execution_record(
    records: Sequence[ActivityRecord],
    request: StatementRequest,
) -> ActivityRecord | None:
    for record in records:
        if (
            record.entity_type is EntityType.EXECUTION
            and record.facility_id == request.facility_id
            and record.project_id == request.project_id
            and record.quarter is request.quarter
        ):
            return record
    return None


def surplus_of(
    result: StatementResult,
    line_codes: Sequence[str],
) -> tuple[Decimal | None, Decimal | None]:
    """Current and previous surplus/deficit of a revenue/expenditure statement."""
    for code in line_codes:
        line = result.statement.line(code)
        if line is not None and line.error is None:
            return line.current, line.previous
    return None, None
