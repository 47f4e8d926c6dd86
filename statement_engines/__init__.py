"""
Module: statement_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the canonical import surface for
    ``statement_modules``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import statement_kernel.domain, statement_kernel.exceptions,
    statement_kernel.logging_config and statement_config.schema.
    MUST NOT import statement_modules or any selector/session code.

Invariants enforced:
    - Purity: engines never read the clock; timestamps are passed in.
    - Decimal-only arithmetic: floats are never used for amounts.
    - Determinism: identical inputs always produce identical outputs.

Failure modes:
    - ConfigurationError subclasses from ``compile_template`` for broken
      templates.  Data and structural problems are returned as warnings,
      line errors and trace entries, never raised.

Audit relevance:
    Every engine invocation is traced via the ``@traced_engine`` decorator
    (see ``statement_engines.tracer``), emitting STATEMENT_ENGINE_TRACE log
    records with engine name, version, input fingerprint and duration.

Usage:
    from statement_engines.aggregation import AggregationEngine
    from statement_engines.formula import FormulaEvaluator, compile_template
    from statement_engines.rollover import BalanceRolloverResolver
    from statement_engines.validation import ValidationEngine
"""

from statement_kernel.logging_config import get_logger

logger = get_logger("engines")

from statement_engines.aggregation import (
    AggregationEngine,
    AggregationResult,
    Column,
    EventValue,
    LineAggregate,
    reduce_values,
)
from statement_engines.closing_balance import (
    ClosingBalanceInputs,
    ClosingBalanceResolution,
    ClosingBalanceResolver,
    ClosingBalanceStrategy,
    ComputedTotalsAliasStrategy,
    DerivedSumStrategy,
    ExplicitValueStrategy,
    default_strategies,
)
from statement_engines.expression import (
    BinaryOp,
    ContextReference,
    Expression,
    FunctionCall,
    LineReference,
    Literal,
    UnaryOp,
    parse_formula,
    to_formula,
)
from statement_engines.formula import (
    CompiledTemplate,
    EvaluationContext,
    EvaluationResult,
    FormulaEvaluator,
    FormulaTrace,
    LineResult,
    compile_template,
    find_cycles,
)
from statement_engines.rollover import (
    BalanceRolloverResolver,
    ClosingBalanceSnapshot,
    OpeningBalanceComparison,
    PreviousQuarterBalances,
    RolloverTarget,
    rollover_target,
)
from statement_engines.tracer import traced_engine
from statement_engines.validation import (
    RuleResult,
    RuleSeverity,
    ValidationContext,
    ValidationEngine,
    ValidationResult,
    ValidationRule,
    build_rule_catalogue,
)
from statement_engines.variance import (
    BudgetVariance,
    LineVariance,
    VarianceCalculator,
)
from statement_engines.working_capital import (
    NO_PREVIOUS_PERIOD_WARNING,
    AccountType,
    WorkingCapitalCalculator,
    WorkingCapitalChange,
    WorkingCapitalResult,
)

__all__ = [
    # Aggregation
    "AggregationEngine",
    "AggregationResult",
    "Column",
    "EventValue",
    "LineAggregate",
    "reduce_values",
    # Closing balance
    "ClosingBalanceInputs",
    "ClosingBalanceResolution",
    "ClosingBalanceResolver",
    "ClosingBalanceStrategy",
    "ComputedTotalsAliasStrategy",
    "DerivedSumStrategy",
    "ExplicitValueStrategy",
    "default_strategies",
    # Expressions
    "BinaryOp",
    "ContextReference",
    "Expression",
    "FunctionCall",
    "LineReference",
    "Literal",
    "UnaryOp",
    "parse_formula",
    "to_formula",
    # Formula
    "CompiledTemplate",
    "EvaluationContext",
    "EvaluationResult",
    "FormulaEvaluator",
    "FormulaTrace",
    "LineResult",
    "compile_template",
    "find_cycles",
    # Rollover
    "BalanceRolloverResolver",
    "ClosingBalanceSnapshot",
    "OpeningBalanceComparison",
    "PreviousQuarterBalances",
    "RolloverTarget",
    "rollover_target",
    # Tracer
    "traced_engine",
    # Validation
    "RuleResult",
    "RuleSeverity",
    "ValidationContext",
    "ValidationEngine",
    "ValidationResult",
    "ValidationRule",
    "build_rule_catalogue",
    # Variance
    "BudgetVariance",
    "LineVariance",
    "VarianceCalculator",
    # Working capital
    "NO_PREVIOUS_PERIOD_WARNING",
    "AccountType",
    "WorkingCapitalCalculator",
    "WorkingCapitalChange",
    "WorkingCapitalResult",
]
