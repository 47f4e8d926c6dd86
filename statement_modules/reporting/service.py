"""
Statement Service (``statement_modules.reporting.service``).

Responsibility
--------------
Generates statements for one facility/project/period/quarter by bridging
kernel selectors (``TemplateSelector``, ``ActivitySelector``,
``PeriodSelector``) to the pure ``StatementAssembler``.  This is a
**read-only** service: nothing is written back to the store.

Architecture position
---------------------
**Modules layer** -- thin glue.  ``StatementService`` is the sole public
entry point for statement generation.  Constructor: ``session`` +
``clock`` + ``config``.

Invariants enforced
-------------------
* Read-only -- no mutations to templates, records or locks.
* Template lines come from the store first, then from the configuration
  set's packaged templates.
* Each template is compiled once per service instance.
* A statement that uses the cross-statement surplus/deficit gets it from
  the revenue/expenditure statement of the same request, computed first.

Failure modes
-------------
* ``TemplateNotFoundError`` -- neither the store nor the configuration has
  lines for the statement code.
* ``InvalidTemplateError`` -- template lines break structural rules.
* Selector query failure -> exception propagates (read-only, no rollback).

Audit relevance
---------------
Structured log events for every generation (``statement_generated``),
carrying the statement code, scope, validity and warning count.  Reads
from an unlocked rollover source are flagged on the statement.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from statement_config import get_active_config
from statement_config.schema import EngineConfiguration
from statement_engines.expression import CROSS_STATEMENT_SURPLUS_DEFICIT
from statement_engines.formula import CompiledTemplate, compile_template
from statement_engines.rollover import rollover_target
from statement_kernel.domain.clock import Clock, SystemClock
from statement_kernel.domain.dtos import ActivityRecord, EntityType, TemplateLine
from statement_kernel.domain.quarters import Quarter
from statement_kernel.exceptions import TemplateNotFoundError
from statement_kernel.logging_config import LogContext, get_logger
from statement_kernel.selectors.activity_selector import ActivitySelector
from statement_kernel.selectors.period_selector import PeriodSelector
from statement_kernel.selectors.template_selector import TemplateSelector
from statement_modules.reporting.assembler import (
    AssemblyInputs,
    StatementAssembler,
    surplus_of,
)
from statement_modules.reporting.config import ReportingConfig
from statement_modules.reporting.models import StatementRequest, StatementResult

logger = get_logger("modules.reporting.service")

ROLLOVER_SOURCE_UNLOCKED_WARNING = "rollover source period is not locked"


class StatementService:
    """
    Statement generation service.

    Contract
    --------
    * ``generate`` returns a ``StatementResult`` (statement + validation).
    * All methods are **read-only**.

    Guarantees
    ----------
    * Statement logic lives in the engines and the assembler; this class
      only loads data.
    * Clock is injectable for deterministic ``generated_at`` values.

    Non-goals
    ---------
    * Does NOT persist statements or locks.
    * Does NOT enforce period locks; it only reports unlocked sources.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: EngineConfiguration | None = None,
        reporting: ReportingConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._reporting = reporting or ReportingConfig.with_defaults()
        self._templates = TemplateSelector(session)
        self._activities = ActivitySelector(session)
        self._periods = PeriodSelector(session)
        self._assembler = StatementAssembler(self._config, self._reporting)
        self._compiled: dict[str, CompiledTemplate] = {}
        self._names: dict[str, str] = {}

        logger.info(
            "statement_service_initialized",
            extra={
                "config_id": self._config.config_id,
                "config_version": self._config.version,
            },
        )

    @property
    def assembler(self) -> StatementAssembler:
        return self._assembler

    # =========================================================================
    # Templates
    # =========================================================================

    def template_lines(self, statement_code: str) -> tuple[TemplateLine, ...]:
        """Store lines, else packaged lines; raises when neither exists."""
        lines = self._templates.lines_for(statement_code)
        if lines:
            return lines
        packaged = self._config.template(statement_code)
        if packaged is not None and packaged.lines:
            logger.debug(
                "template_loaded_from_config",
                extra={"statement_code": statement_code},
            )
            self._names.setdefault(statement_code, packaged.statement_name)
            return packaged.lines
        raise TemplateNotFoundError(statement_code)

    def compiled_template(self, statement_code: str) -> CompiledTemplate:
        compiled = self._compiled.get(statement_code)
        if compiled is None:
            compiled = compile_template(
                statement_code,
                self.template_lines(statement_code),
                self._config.event_codes,
            )
            self._compiled[statement_code] = compiled
            logger.info(
                "template_compiled",
                extra={
                    "statement_code": statement_code,
                    "line_count": len(compiled.lines),
                    "failed_line_count": len(compiled.failures),
                    "cycle_count": len(compiled.cycles),
                },
            )
        return compiled

    def _statement_name(self, statement_code: str) -> str:
        if statement_code not in self._names:
            packaged = self._config.template(statement_code)
            self._names[statement_code] = (
                packaged.statement_name if packaged is not None else statement_code
            )
        return self._names[statement_code]

    # =========================================================================
    # Data loading
    # =========================================================================

    def _records(
        self,
        request: StatementRequest,
        reporting_period_id: UUID,
        quarter: Quarter | None,
    ) -> tuple[ActivityRecord, ...]:
        """Execution record (at ``quarter`` or latest) plus the planning record."""
        scope = {
            "facility_id": request.facility_id,
            "project_id": request.project_id,
            "reporting_period_id": reporting_period_id,
        }
        if quarter is not None:
            execution = self._activities.record(
                **scope, quarter=quarter, entity_type=EntityType.EXECUTION,
            )
        else:
            execution = self._activities.latest_record(
                **scope, entity_type=EntityType.EXECUTION,
            )
        planning = self._activities.latest_record(**scope, entity_type=EntityType.PLANNING)
        return tuple(record for record in (execution, planning) if record is not None)

    def _previous_fiscal_year(self, request: StatementRequest) -> UUID | None:
        if request.previous_fiscal_year_reporting_period_id is not None:
            return request.previous_fiscal_year_reporting_period_id
        period = self._periods.previous_fiscal_year(request.reporting_period_id)
        return period.id if period is not None else None

    # =========================================================================
    # Public API
    # =========================================================================

    def generate(self, request: StatementRequest) -> StatementResult:
        """
        Generate one statement with its validation result.

        Args:
            request: Statement code and facility/project/period/quarter scope.

        Returns:
            StatementResult with the assembled statement and rule results.
        """
        with LogContext.bind(
            facility_id=request.facility_id,
            project_id=request.project_id,
            reporting_period_id=request.reporting_period_id,
            statement_code=request.statement_code,
        ):
            result = self._generate(request)
            logger.info(
                "statement_generated",
                extra={
                    "statement_code": request.statement_code,
                    "quarter": request.quarter.value if request.quarter else None,
                    "line_count": len(result.statement.lines),
                    "is_valid": result.validation.is_valid,
                    "error_count": len(result.validation.errors),
                    "warning_count": len(result.statement.warnings),
                },
            )
            return result

    def _generate(self, request: StatementRequest) -> StatementResult:
        compiled = self.compiled_template(request.statement_code)
        previous_fy = self._previous_fiscal_year(request)

        current_records = self._records(request, request.reporting_period_id, request.quarter)

        previous_records = None
        if request.include_comparatives and self._reporting.include_comparatives and previous_fy:
            found = self._records(request, previous_fy, None)
            previous_records = found or None

        warnings: list[str] = []
        prior_record = None
        target = None
        source_locked = None
        if request.entity_type is EntityType.EXECUTION and request.quarter is not None:
            target = rollover_target(request.quarter, request.reporting_period_id, previous_fy)
            if target is not None:
                prior_record = self._activities.record(
                    facility_id=request.facility_id,
                    project_id=request.project_id,
                    reporting_period_id=target.reporting_period_id,
                    quarter=target.quarter,
                )
            if prior_record is not None:
                source_locked = self._periods.is_locked(
                    reporting_period_id=target.reporting_period_id,
                    facility_id=request.facility_id,
                    project_id=request.project_id,
                    quarter=target.quarter,
                )
                if not source_locked and self._reporting.warn_on_unlocked_rollover_source:
                    warnings.append(ROLLOVER_SOURCE_UNLOCKED_WARNING)
                    logger.warning(
                        "rollover_source_unlocked",
                        extra={
                            "quarter": target.quarter.value,
                            "source_execution_id": str(prior_record.id),
                        },
                    )

        surplus = surplus_previous = None
        source_code = self._reporting.cross_statement_source
        if (
            compiled.uses_context(CROSS_STATEMENT_SURPLUS_DEFICIT)
            and request.statement_code != source_code
        ):
            source = self._generate(request.for_statement(source_code))
            surplus, surplus_previous = surplus_of(source, self._config.line_codes.surplus_deficit)

        return self._assembler.assemble(AssemblyInputs(
            request=request,
            compiled=compiled,
            statement_name=self._statement_name(request.statement_code),
            current_records=current_records,
            previous_records=previous_records,
            prior_record=prior_record,
            rollover=target,
            rollover_source_locked=source_locked,
            cross_statement_surplus=surplus,
            cross_statement_surplus_previous=surplus_previous,
            warnings=tuple(warnings),
            generated_at=self._clock.now(),
        ))
