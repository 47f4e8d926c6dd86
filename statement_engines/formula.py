"""
statement_engines.formula -- Template compilation and formula evaluation.

Responsibility:
    ``compile_template`` parses every calculation formula of a template
    once into a typed expression tree, builds the line dependency graph,
    detects cycles and fixes a deterministic evaluation order.
    ``FormulaEvaluator`` then evaluates a compiled template against
    aggregated raw values, column by column (current, previous).

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Consumes
    ``statement_engines.aggregation.AggregationResult``; consumed by the
    statement assembler.

Invariants enforced:
    - All arithmetic is Decimal.  A missing operand is 0; division by zero
      yields 0 and a warning.
    - Operands resolve to the computed line value, then the aggregated
      event value, then 0.
    - Every member of a reference cycle fails with ``FormulaCycleError``
      naming the cycle; lines that depend on a failed line fail with
      ``DependencyFailedError``.  Other lines still compute.
    - Cycle detection is an iterative depth-first search: its stack never
      exceeds the template's line count.
    - Evaluation order is topological with ties broken by display order,
      then line code.

Failure modes:
    - ``InvalidTemplateError`` / ``TemplateNotFoundError`` from
      ``compile_template`` for templates that break structural rules.
    - Per-line structural errors (unknown reference, syntax, cycle,
      failed dependency) are recorded on the line and its trace entry,
      never raised.
"""

from __future__ import annotations

import heapq
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any

from statement_config.validator import validate_template_lines
from statement_engines.aggregation import AggregationResult, Column
from statement_engines.expression import (
    CROSS_STATEMENT_SURPLUS_DEFICIT,
    WORKING_CAPITAL_CHANGE,
    BinaryOp,
    ContextReference,
    Expression,
    FunctionCall,
    LineReference,
    Literal,
    UnaryOp,
    context_references,
    parse_formula,
    references,
    to_formula,
)
from statement_engines.tracer import traced_engine
from statement_engines.working_capital import WorkingCapitalResult
from statement_kernel.domain.dtos import TemplateLine
from statement_kernel.exceptions import (
    DependencyFailedError,
    DivisionByZeroError,
    FormulaCycleError,
    FormulaSyntaxError,
    InvalidTemplateError,
    NonNumericOperandError,
    StructuralError,
    TemplateNotFoundError,
    UnknownLineReferenceError,
)
from statement_kernel.logging_config import get_logger

logger = get_logger("engines.formula")

_ZERO = Decimal("0")


# =========================================================================
# Compilation
# =========================================================================


@dataclass(frozen=True)
class CompiledLine:
    """A template line with its parsed expression and line dependencies."""

    line: TemplateLine
    expression: Expression | None = None
    dependencies: tuple[str, ...] = ()

    @property
    def formula(self) -> str | None:
        if self.line.has_formula:
            return " ".join(self.line.calculation_formula.split())
        if self.expression is not None:
            return to_formula(self.expression)
        return None


@dataclass(frozen=True)
class CompiledTemplate:
    """
    A template ready for repeated evaluation.

    ``order`` lists every healthy line in evaluation order; ``failures``
    maps each line that cannot be computed to its structural error.
    """

    statement_code: str
    lines: tuple[TemplateLine, ...]
    compiled: Mapping[str, CompiledLine]
    order: tuple[str, ...]
    failures: Mapping[str, StructuralError] = field(default_factory=dict)
    cycles: tuple[tuple[str, ...], ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "compiled", MappingProxyType(dict(self.compiled)))
        object.__setattr__(self, "failures", MappingProxyType(dict(self.failures)))

    @property
    def line_codes(self) -> tuple[str, ...]:
        return tuple(line.line_code for line in self.lines)

    def uses_context(self, name: str) -> bool:
        """True when any healthy line references context value ``name``."""
        for code in self.order:
            expression = self.compiled[code].expression
            if expression is not None and any(
                ref.name == name for ref in context_references(expression)
            ):
                return True
        return False


def _sort_key(line: TemplateLine) -> tuple[int, str]:
    return (line.display_order, line.line_code)


def compile_template(
    statement_code: str,
    lines: Sequence[TemplateLine],
    event_codes: frozenset[str] = frozenset(),
) -> CompiledTemplate:
    """
    Parse and order a template once.

    Args:
        statement_code: Statement the lines belong to.
        lines: Template lines (any order).
        event_codes: Configured event codes formulas may reference in
            addition to the template's own line codes and mapped events.

    Raises:
        TemplateNotFoundError: if ``lines`` is empty.
        InvalidTemplateError: on duplicate codes or a broken parent tree.
    """
    if not lines:
        raise TemplateNotFoundError(statement_code)
    problems = validate_template_lines(statement_code, tuple(lines))
    if problems:
        raise InvalidTemplateError(statement_code, tuple(problems))

    ordered = tuple(sorted(lines, key=_sort_key))
    by_code = {line.line_code: line for line in ordered}

    mapped_events: set[str] = set()
    for line in ordered:
        mapped_events.update(line.event_mappings)
        mapped_events.update(line.budget_events)
        mapped_events.update(line.actual_events)
    known = set(by_code) | set(event_codes) | mapped_events

    compiled: dict[str, CompiledLine] = {}
    failures: dict[str, StructuralError] = {}

    for line in ordered:
        expression: Expression | None = None
        if line.has_formula:
            try:
                expression = parse_formula(line.calculation_formula, line.line_code)
            except FormulaSyntaxError as e:
                failures[line.line_code] = e
        elif line.is_implicit_total:
            children = [
                child.line_code for child in ordered
                if child.parent_line_code == line.sum_of
                and child.line_code != line.line_code
            ]
            if children:
                expression = FunctionCall("SUM", tuple(LineReference(c) for c in children))

        dependencies: tuple[str, ...] = ()
        if expression is not None:
            refs = references(expression)
            unknown = [ref for ref in refs if ref not in known]
            if unknown:
                failures[line.line_code] = UnknownLineReferenceError(line.line_code, unknown[0])
            dependencies = tuple(ref for ref in refs if ref in by_code)

        compiled[line.line_code] = CompiledLine(line, expression, dependencies)

    graph = {code: c.dependencies for code, c in compiled.items()}
    cycles = find_cycles(graph, order=tuple(by_code))
    for cycle in cycles:
        logger.warning(
            "formula_cycle_detected",
            extra={"statement_code": statement_code, "cycle": list(cycle)},
        )
        for member in cycle[:-1]:
            failures.setdefault(member, FormulaCycleError(cycle))

    _propagate_failures(ordered, compiled, failures)

    healthy = [line for line in ordered if line.line_code not in failures]
    order = topological_order(
        {line.line_code: compiled[line.line_code].dependencies for line in healthy},
        {line.line_code: _sort_key(line) for line in healthy},
    )

    logger.debug(
        "template_compiled",
        extra={
            "statement_code": statement_code,
            "line_count": len(ordered),
            "failed_count": len(failures),
        },
    )

    return CompiledTemplate(
        statement_code=statement_code,
        lines=ordered,
        compiled=compiled,
        order=order,
        failures=failures,
        cycles=cycles,
    )


def find_cycles(
    graph: Mapping[str, Sequence[str]],
    order: Sequence[str] | None = None,
) -> tuple[tuple[str, ...], ...]:
    """
    Find reference cycles with an iterative depth-first search.

    Each cycle is returned as a closed path, e.g. ``("A", "B", "A")``.
    Rotations of the same cycle are reported once.  Nodes are visited in
    ``order`` (default: sorted) so the result is deterministic.
    """
    white, grey, black = 0, 1, 2
    color = {node: white for node in graph}
    cycles: list[tuple[str, ...]] = []
    seen: set[frozenset[str]] = set()

    for root in order or sorted(graph):
        if color.get(root, white) != white:
            continue
        color[root] = grey
        path = [root]
        stack = [iter(graph.get(root, ()))]
        while stack:
            advanced = False
            for neighbour in stack[-1]:
                state = color.get(neighbour, black if neighbour not in graph else white)
                if state == white:
                    color[neighbour] = grey
                    path.append(neighbour)
                    stack.append(iter(graph.get(neighbour, ())))
                    advanced = True
                    break
                if state == grey:
                    start = path.index(neighbour)
                    cycle = tuple(path[start:]) + (neighbour,)
                    members = frozenset(cycle)
                    if members not in seen:
                        seen.add(members)
                        cycles.append(cycle)
            if not advanced:
                stack.pop()
                color[path.pop()] = black
    return tuple(cycles)


def topological_order(
    graph: Mapping[str, Sequence[str]],
    sort_keys: Mapping[str, tuple],
) -> tuple[str, ...]:
    """Kahn's algorithm over ``graph`` (node -> dependencies), ties by ``sort_keys``."""
    remaining = {node: {d for d in deps if d in graph and d != node} for node, deps in graph.items()}
    dependents: dict[str, list[str]] = {node: [] for node in graph}
    for node, deps in remaining.items():
        for dep in deps:
            dependents[dep].append(node)

    ready = [(sort_keys[node], node) for node, deps in remaining.items() if not deps]
    heapq.heapify(ready)
    result: list[str] = []
    while ready:
        _, node = heapq.heappop(ready)
        result.append(node)
        for dependent in dependents[node]:
            remaining[dependent].discard(node)
            if not remaining[dependent]:
                heapq.heappush(ready, (sort_keys[dependent], dependent))
    return tuple(result)


def _propagate_failures(
    ordered: Sequence[TemplateLine],
    compiled: Mapping[str, CompiledLine],
    failures: dict[str, StructuralError],
) -> None:
    changed = True
    while changed:
        changed = False
        for line in ordered:
            code = line.line_code
            if code in failures:
                continue
            failed = tuple(dep for dep in compiled[code].dependencies if dep in failures)
            if failed:
                failures[code] = DependencyFailedError(code, failed)
                changed = True


# =========================================================================
# Evaluation
# =========================================================================


@dataclass(frozen=True)
class EvaluationContext:
    """Values supplied from outside the template."""

    working_capital: WorkingCapitalResult | None = None
    cross_statement_surplus: Any = None
    cross_statement_surplus_previous: Any = None


@dataclass(frozen=True)
class LineResult:
    line_code: str
    current: Decimal | None
    previous: Decimal | None = None
    error: StructuralError | None = None

    @property
    def is_failed(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class FormulaTrace:
    """One line's evaluation record."""

    line_code: str
    formula: str | None
    inputs: Mapping[str, Decimal]
    result: Decimal | None
    duration_ms: float
    error: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict:
        data = {
            "line_code": self.line_code,
            "formula": self.formula,
            "inputs": {k: str(v) for k, v in self.inputs.items()},
            "result": str(self.result) if self.result is not None else None,
            "duration_ms": self.duration_ms,
        }
        if self.error is not None:
            data["error"] = self.error
            data["error_code"] = self.error_code
        return data


@dataclass(frozen=True)
class EvaluationResult:
    statement_code: str
    values: Mapping[str, LineResult]
    traces: tuple[FormulaTrace, ...] = ()
    warnings: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    @property
    def failed_lines(self) -> tuple[str, ...]:
        return tuple(code for code, value in self.values.items() if value.is_failed)

    def value(self, line_code: str, column: Column = Column.CURRENT) -> Decimal | None:
        result = self.values.get(line_code)
        if result is None:
            return None
        return result.current if column is Column.CURRENT else result.previous

    def totals(self) -> dict[str, Decimal]:
        """``line_code -> current`` for every line that has a value."""
        return {
            code: result.current
            for code, result in self.values.items()
            if result.current is not None
        }


class FormulaEvaluator:
    """
    Evaluates a compiled template.

    Contract:
        Stateless; every call is independent and deterministic.
    Guarantees:
        - Raw lines take their aggregated value; headers stay empty.
        - The previous column is evaluated only when the aggregation
          carries one.
        - One trace entry per line, in evaluation order, failed lines last.
    Non-goals:
        - Does not aggregate raw data or validate results.
    """

    @traced_engine("formula", "1.0", fingerprint_fields=("compiled",))
    def evaluate(
        self,
        *,
        compiled: CompiledTemplate,
        aggregation: AggregationResult,
        context: EvaluationContext | None = None,
    ) -> EvaluationResult:
        context = context or EvaluationContext()
        warnings: list[str] = []
        traces: list[FormulaTrace] = []
        results: dict[str, LineResult] = {}

        for code in compiled.order:
            compiled_line = compiled.compiled[code]
            t0 = time.monotonic()
            inputs: dict[str, Decimal] = {}

            if compiled_line.expression is None:
                current = aggregation.line_value(code, Column.CURRENT)
                previous = aggregation.line_value(code, Column.PREVIOUS)
                for event in compiled_line.line.event_mappings:
                    value = aggregation.event_value(event, Column.CURRENT)
                    if value is not None:
                        inputs[event] = value
            else:
                run = _Run(code, aggregation, context, results, warnings)
                current = run.evaluate(compiled_line.expression, Column.CURRENT, inputs)
                previous = None
                if aggregation.has_previous:
                    previous = run.evaluate(compiled_line.expression, Column.PREVIOUS, None)

            results[code] = LineResult(code, current, previous)
            traces.append(FormulaTrace(
                line_code=code,
                formula=compiled_line.formula,
                inputs=MappingProxyType(inputs),
                result=current,
                duration_ms=round((time.monotonic() - t0) * 1000, 3),
            ))

        for line in compiled.lines:
            error = compiled.failures.get(line.line_code)
            if error is None:
                continue
            results[line.line_code] = LineResult(line.line_code, None, None, error)
            warnings.append(str(error))
            traces.append(FormulaTrace(
                line_code=line.line_code,
                formula=compiled.compiled[line.line_code].formula,
                inputs=MappingProxyType({}),
                result=None,
                duration_ms=0.0,
                error=str(error),
                error_code=error.code,
            ))

        ordered = {line.line_code: results[line.line_code] for line in compiled.lines}
        return EvaluationResult(
            statement_code=compiled.statement_code,
            values=ordered,
            traces=tuple(traces),
            warnings=tuple(warnings),
        )


class _Run:
    """Evaluation of one line's expression."""

    def __init__(
        self,
        line_code: str,
        aggregation: AggregationResult,
        context: EvaluationContext,
        results: Mapping[str, LineResult],
        warnings: list[str],
    ):
        self.line_code = line_code
        self.aggregation = aggregation
        self.context = context
        self.results = results
        self.warnings = warnings

    def evaluate(
        self,
        node: Expression,
        column: Column,
        inputs: dict[str, Decimal] | None,
    ) -> Decimal:
        if isinstance(node, Literal):
            return node.value

        if isinstance(node, LineReference):
            value = self.operand(node.code, column)
            if inputs is not None:
                inputs[node.code] = value
            return value

        if isinstance(node, UnaryOp):
            value = self.evaluate(node.operand, column, inputs)
            return -value if node.op == "-" else value

        if isinstance(node, BinaryOp):
            left = self.evaluate(node.left, column, inputs)
            right = self.evaluate(node.right, column, inputs)
            if node.op == "+":
                return left + right
            if node.op == "-":
                return left - right
            if node.op == "*":
                return left * right
            if right == _ZERO:
                if column is Column.CURRENT:
                    self.warnings.append(str(DivisionByZeroError(self.line_code, left)))
                return _ZERO
            return left / right

        if isinstance(node, FunctionCall):
            args = [self.evaluate(arg, column, inputs) for arg in node.args]
            return _apply(node.name, args)

        value = self.context_value(node, column)
        if inputs is not None:
            key = node.name if node.argument is None else f"{node.name}({node.argument})"
            inputs[key] = value
        return value

    def operand(self, code: str, column: Column) -> Decimal:
        line = self.results.get(code)
        if line is not None:
            value = line.current if column is Column.CURRENT else line.previous
            if value is not None:
                return value
        value = self.aggregation.event_value(code, column)
        if value is not None:
            return self.numeric(code, value, column)
        return _ZERO

    def context_value(self, node: ContextReference, column: Column) -> Decimal:
        if node.name == WORKING_CAPITAL_CHANGE:
            wc = self.context.working_capital
            if wc is None or column is not Column.CURRENT:
                return _ZERO
            return wc.cash_flow_adjustment(node.argument)

        if node.name == CROSS_STATEMENT_SURPLUS_DEFICIT:
            raw = (
                self.context.cross_statement_surplus
                if column is Column.CURRENT
                else self.context.cross_statement_surplus_previous
            )
            if raw is None:
                if column is Column.CURRENT:
                    self.warnings.append(
                        f"{CROSS_STATEMENT_SURPLUS_DEFICIT} unavailable for line "
                        f"{self.line_code}; using 0"
                    )
                return _ZERO
            return self.numeric(CROSS_STATEMENT_SURPLUS_DEFICIT, raw, column)

        return _ZERO

    def numeric(self, operand: str, value: Any, column: Column) -> Decimal:
        try:
            if isinstance(value, bool):
                raise InvalidOperation
            number = value if isinstance(value, Decimal) else Decimal(str(value).strip())
            if not number.is_finite():
                raise InvalidOperation
            return number
        except InvalidOperation:
            if column is Column.CURRENT:
                self.warnings.append(str(NonNumericOperandError(self.line_code, operand, value)))
            return _ZERO


def _apply(name: str, args: list[Decimal]) -> Decimal:
    if name == "SUM":
        return sum(args, _ZERO)
    if name == "DIFF":
        return args[0] - args[1]
    if name == "MIN":
        return min(args)
    if name == "MAX":
        return max(args)
    if name == "AVG":
        return sum(args, _ZERO) / Decimal(len(args))
    return abs(args[0])
