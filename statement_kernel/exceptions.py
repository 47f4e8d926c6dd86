"""
Typed Exception Hierarchy for the Statement Engine.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from StatementEngineError:

    StatementEngineError (base)
    |
    +-- StructuralError
    |   +-- UnknownLineReferenceError
    |   +-- FormulaCycleError
    |   +-- FormulaSyntaxError
    |   +-- DependencyFailedError
    |
    +-- DataError
    |   +-- NonNumericOperandError
    |   +-- DivisionByZeroError
    |
    +-- ConfigurationError
        +-- TemplateNotFoundError
        +-- InvalidTemplateError
        +-- InvalidConfigurationError

Business-rule violations are never raised: they are returned as RuleResult
entries of a ValidationResult.  A missing prior quarter during rollover is
not an error either; it is reported as ``exists=False``.

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Structural      | UNKNOWN_LINE_REFERENCE      | Formula names an unknown line/event code
                | FORMULA_CYCLE               | Formula references form a cycle
                | FORMULA_SYNTAX              | Formula cannot be parsed
                | DEPENDENCY_FAILED           | A referenced line failed to compute
----------------|-----------------------------|-----------------------------------------
Data            | NON_NUMERIC_OPERAND         | Raw operand is not a number (coerced to 0)
                | DIVISION_BY_ZERO            | Formula divides by zero (result 0)
----------------|-----------------------------|-----------------------------------------
Configuration   | TEMPLATE_NOT_FOUND          | No template for a statement code
                | INVALID_TEMPLATE            | Template lines break tree/uniqueness rules
                | INVALID_CONFIGURATION       | Configuration set is malformed

===============================================================================
PROPAGATION
===============================================================================

StructuralError and DataError instances are caught by the formula evaluator
and recorded on the affected line (trace entry, line error, warning).  Only
ConfigurationError subclasses escape the assembler.
"""

from __future__ import annotations

from decimal import Decimal


class StatementEngineError(Exception):
    """
    Base exception for all statement engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STATEMENT_ENGINE_ERROR"


# Structural errors (abort only the affected subtree)


class StructuralError(StatementEngineError):
    """Base exception for template structure problems."""

    code: str = "STRUCTURAL_ERROR"


class UnknownLineReferenceError(StructuralError):
    """A formula references a code that is neither a line nor an event."""

    code: str = "UNKNOWN_LINE_REFERENCE"

    def __init__(self, line_code: str, reference: str):
        self.line_code = line_code
        self.reference = reference
        super().__init__(
            f"Line {line_code} references unknown code {reference}"
        )


class FormulaCycleError(StructuralError):
    """Formula references form a cycle."""

    code: str = "FORMULA_CYCLE"

    def __init__(self, cycle: tuple[str, ...]):
        self.cycle = cycle
        super().__init__(
            f"Circular formula dependency: {' -> '.join(cycle)}"
        )


class FormulaSyntaxError(StructuralError):
    """A calculation formula could not be parsed."""

    code: str = "FORMULA_SYNTAX"

    def __init__(self, line_code: str, formula: str, reason: str):
        self.line_code = line_code
        self.formula = formula
        self.reason = reason
        super().__init__(
            f"Invalid formula for line {line_code}: {reason} ({formula!r})"
        )


class DependencyFailedError(StructuralError):
    """A line could not be computed because a dependency failed."""

    code: str = "DEPENDENCY_FAILED"

    def __init__(self, line_code: str, failed_dependencies: tuple[str, ...]):
        self.line_code = line_code
        self.failed_dependencies = failed_dependencies
        super().__init__(
            f"Line {line_code} depends on failed line(s): "
            f"{', '.join(failed_dependencies)}"
        )


# Data errors (recovered by coercion)


class DataError(StatementEngineError):
    """Base exception for data-quality problems."""

    code: str = "DATA_ERROR"


class NonNumericOperandError(DataError):
    """An operand could not be interpreted as a number."""

    code: str = "NON_NUMERIC_OPERAND"

    def __init__(self, line_code: str, operand: str, value: object):
        self.line_code = line_code
        self.operand = operand
        self.value = value
        super().__init__(
            f"Non-numeric value {value!r} for {operand} in line {line_code}; "
            f"treated as 0"
        )


class DivisionByZeroError(DataError):
    """A formula divided by zero."""

    code: str = "DIVISION_BY_ZERO"

    def __init__(self, line_code: str, numerator: Decimal):
        self.line_code = line_code
        self.numerator = numerator
        super().__init__(
            f"Division by zero in line {line_code}; result set to 0"
        )


# Configuration errors (fatal)


class ConfigurationError(StatementEngineError):
    """Base exception for malformed configuration."""

    code: str = "CONFIGURATION_ERROR"


class TemplateNotFoundError(ConfigurationError):
    """No template lines are registered for a statement code."""

    code: str = "TEMPLATE_NOT_FOUND"

    def __init__(self, statement_code: str):
        self.statement_code = statement_code
        super().__init__(f"No template registered for statement {statement_code}")


class InvalidTemplateError(ConfigurationError):
    """Template lines violate structural invariants."""

    code: str = "INVALID_TEMPLATE"

    def __init__(self, statement_code: str, problems: tuple[str, ...]):
        self.statement_code = statement_code
        self.problems = problems
        super().__init__(
            f"Invalid template {statement_code}: " + "; ".join(problems)
        )


class InvalidConfigurationError(ConfigurationError):
    """A configuration set could not be loaded."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, config_id: str, reason: str):
        self.config_id = config_id
        self.reason = reason
        super().__init__(f"Invalid configuration {config_id}: {reason}")
