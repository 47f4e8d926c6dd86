"""
Typed expression trees for calculation formulas.

Formulas are parsed once, when a template is compiled, with Python's ``ast``
module in ``eval`` mode and then converted into the small node set below.
Anything outside that set is rejected, so a formula can never execute code.

Allowed:
  - Arithmetic: +, -, *, /, unary minus/plus, parentheses
  - Numeric literals (kept exact: ``0.1`` becomes ``Decimal("0.1")``)
  - Line or event codes as bare names (``TOTAL_REVENUE``)
  - Functions: SUM, DIFF, MIN, MAX, AVG, ABS
  - Context values: ``WORKING_CAPITAL_CHANGE(RECEIVABLES|PAYABLES)`` and
    ``CROSS_STATEMENT_SURPLUS_DEFICIT``

Rejected:
  - attribute access, subscripts, comparisons, boolean logic, strings,
    keyword arguments, unknown functions, ``**`` and ``%``
"""

from __future__ import annotations

import ast
from collections.abc import Iterator
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from statement_kernel.exceptions import FormulaSyntaxError

FUNCTIONS: frozenset[str] = frozenset({"SUM", "DIFF", "MIN", "MAX", "AVG", "ABS"})

WORKING_CAPITAL_CHANGE = "WORKING_CAPITAL_CHANGE"
CROSS_STATEMENT_SURPLUS_DEFICIT = "CROSS_STATEMENT_SURPLUS_DEFICIT"
WORKING_CAPITAL_SIDES: frozenset[str] = frozenset({"RECEIVABLES", "PAYABLES"})

_ARITY: dict[str, tuple[int, int | None]] = {
    "SUM": (1, None),
    "DIFF": (2, 2),
    "MIN": (1, None),
    "MAX": (1, None),
    "AVG": (1, None),
    "ABS": (1, 1),
}

_BINARY_OPS: dict[type, str] = {
    ast.Add: "+",
    ast.Sub: "-",
    ast.Mult: "*",
    ast.Div: "/",
}

_UNARY_OPS: dict[type, str] = {
    ast.USub: "-",
    ast.UAdd: "+",
}


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Literal:
    value: Decimal


@dataclass(frozen=True)
class LineReference:
    """A line code or event code operand."""

    code: str


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: Expression


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: Expression
    right: Expression


@dataclass(frozen=True)
class FunctionCall:
    name: str
    args: tuple[Expression, ...]


@dataclass(frozen=True)
class ContextReference:
    """A value supplied by the evaluation context rather than the template.

    ``name`` is WORKING_CAPITAL_CHANGE (with ``argument`` RECEIVABLES or
    PAYABLES) or CROSS_STATEMENT_SURPLUS_DEFICIT.
    """

    name: str
    argument: str | None = None


Expression = Literal | LineReference | UnaryOp | BinaryOp | FunctionCall | ContextReference


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_formula(formula: str, line_code: str = "") -> Expression:
    """Parse ``formula`` into an expression tree.

    Raises:
        FormulaSyntaxError: if the formula is empty, not valid syntax, or
            uses a construct outside the allowed set.
    """
    source = " ".join(formula.split())
    if not source:
        raise FormulaSyntaxError(line_code, formula, "empty formula")
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as e:
        raise FormulaSyntaxError(line_code, formula, f"syntax error: {e.msg}") from e
    return _convert(tree.body, source, line_code, formula)


def _convert(node: ast.AST, source: str, line_code: str, formula: str) -> Expression:
    def fail(reason: str) -> FormulaSyntaxError:
        return FormulaSyntaxError(line_code, formula, reason)

    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise fail(f"unsupported literal {node.value!r}")
        text = ast.get_source_segment(source, node) or str(node.value)
        try:
            return Literal(Decimal(text))
        except InvalidOperation as e:
            raise fail(f"invalid number {text!r}") from e

    if isinstance(node, ast.Name):
        if node.id == CROSS_STATEMENT_SURPLUS_DEFICIT:
            return ContextReference(CROSS_STATEMENT_SURPLUS_DEFICIT)
        if node.id in FUNCTIONS or node.id == WORKING_CAPITAL_CHANGE:
            raise fail(f"function {node.id} used without arguments")
        return LineReference(node.id)

    if isinstance(node, ast.UnaryOp):
        op = _UNARY_OPS.get(type(node.op))
        if op is None:
            raise fail(f"unsupported unary operator {type(node.op).__name__}")
        return UnaryOp(op, _convert(node.operand, source, line_code, formula))

    if isinstance(node, ast.BinOp):
        op = _BINARY_OPS.get(type(node.op))
        if op is None:
            raise fail(f"unsupported operator {type(node.op).__name__}")
        return BinaryOp(
            op,
            _convert(node.left, source, line_code, formula),
            _convert(node.right, source, line_code, formula),
        )

    if isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name):
            raise fail("only named functions may be called")
        if node.keywords:
            raise fail("keyword arguments are not allowed")
        name = node.func.id.upper()
        if name == WORKING_CAPITAL_CHANGE:
            return _working_capital_reference(node, fail)
        if name not in FUNCTIONS:
            raise fail(f"unknown function {node.func.id}")
        low, high = _ARITY[name]
        count = len(node.args)
        if count < low or (high is not None and count > high):
            raise fail(f"{name} takes {low if low == high else f'at least {low}'} argument(s), got {count}")
        return FunctionCall(
            name,
            tuple(_convert(arg, source, line_code, formula) for arg in node.args),
        )

    raise fail(f"unsupported expression {type(node).__name__}")


def _working_capital_reference(node: ast.Call, fail) -> ContextReference:
    if len(node.args) != 1:
        raise fail(f"{WORKING_CAPITAL_CHANGE} takes exactly one argument")
    arg = node.args[0]
    side = None
    if isinstance(arg, ast.Name):
        side = arg.id.upper()
    elif isinstance(arg, ast.Constant) and isinstance(arg.value, str):
        side = arg.value.upper()
    if side not in WORKING_CAPITAL_SIDES:
        raise fail(f"{WORKING_CAPITAL_CHANGE} expects RECEIVABLES or PAYABLES")
    return ContextReference(WORKING_CAPITAL_CHANGE, side)


# ---------------------------------------------------------------------------
# Inspection
# ---------------------------------------------------------------------------


def walk(expression: Expression) -> Iterator[Expression]:
    """Yield every node of the tree, parents before children."""
    yield expression
    if isinstance(expression, UnaryOp):
        yield from walk(expression.operand)
    elif isinstance(expression, BinaryOp):
        yield from walk(expression.left)
        yield from walk(expression.right)
    elif isinstance(expression, FunctionCall):
        for arg in expression.args:
            yield from walk(arg)


def references(expression: Expression) -> tuple[str, ...]:
    """Codes referenced by the expression, in first-seen order, without duplicates."""
    seen: dict[str, None] = {}
    for node in walk(expression):
        if isinstance(node, LineReference):
            seen.setdefault(node.code, None)
    return tuple(seen)


def context_references(expression: Expression) -> tuple[ContextReference, ...]:
    return tuple(node for node in walk(expression) if isinstance(node, ContextReference))


def to_formula(expression: Expression) -> str:
    """Render a tree back to formula text (fully parenthesized binaries)."""
    if isinstance(expression, Literal):
        return format(expression.value, "f")
    if isinstance(expression, LineReference):
        return expression.code
    if isinstance(expression, ContextReference):
        if expression.argument:
            return f"{expression.name}({expression.argument})"
        return expression.name
    if isinstance(expression, UnaryOp):
        return f"{expression.op}{to_formula(expression.operand)}"
    if isinstance(expression, BinaryOp):
        return f"({to_formula(expression.left)} {expression.op} {to_formula(expression.right)})"
    args = ", ".join(to_formula(arg) for arg in expression.args)
    return f"{expression.name}({args})"
