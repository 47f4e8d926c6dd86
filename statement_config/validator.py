"""
Configuration Validator (``statement_config.validator``).

Responsibility
--------------
Checks an ``EngineConfiguration`` and individual templates for structural
integrity before they are handed to the engines.

Invariants enforced
-------------------
* Line codes are unique within a statement template.
* ``parent_line_code`` edges reference lines of the same template and form
  a tree (no parent cycles).
* Thresholds are non-negative.

Failure modes
-------------
* Errors -> the configuration (or the store-loaded template) MUST NOT be
  used; callers raise ``InvalidTemplateError`` / ``InvalidConfigurationError``.
* Warnings -> usable, but should be reviewed (e.g. a mapping that targets an
  undeclared event code).
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from decimal import Decimal

from statement_config.schema import EngineConfiguration
from statement_kernel.domain.dtos import TemplateLine


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_template_lines(
    statement_code: str, lines: tuple[TemplateLine, ...]
) -> list[str]:
    """Return the structural problems of one template (empty when valid)."""
    problems: list[str] = []
    by_code: dict[str, TemplateLine] = {}
    for line in lines:
        if line.line_code in by_code:
            problems.append(f"duplicate line code {line.line_code}")
        by_code[line.line_code] = line
        if line.statement_code != statement_code:
            problems.append(
                f"line {line.line_code} belongs to {line.statement_code}, "
                f"not {statement_code}"
            )

    for line in lines:
        parent = line.parent_line_code
        if parent is not None and parent not in by_code:
            problems.append(f"line {line.line_code} has unknown parent {parent}")

    # Walk each parent chain; a chain longer than the template is a cycle.
    for line in lines:
        seen = {line.line_code}
        parent = line.parent_line_code
        while parent is not None and parent in by_code:
            if parent in seen:
                problems.append(f"parent cycle through {line.line_code}")
                break
            seen.add(parent)
            parent = by_code[parent].parent_line_code

    return problems


def validate_configuration(config: EngineConfiguration) -> ConfigValidationResult:
    """
    Validate a parsed configuration.

    Postconditions:
        - A configuration with errors MUST NOT be used.
    """
    result = ConfigValidationResult()

    _validate_templates(config, result)
    _validate_event_mappings(config, result)
    _validate_thresholds(config, result)

    return result


def _validate_templates(config: EngineConfiguration, result: ConfigValidationResult) -> None:
    for code, template in sorted(config.templates.items()):
        if not template.lines:
            result.add_error(f"Template {code} has no lines")
        for problem in validate_template_lines(code, template.lines):
            result.add_error(f"Template {code}: {problem}")


def _validate_event_mappings(config: EngineConfiguration, result: ConfigValidationResult) -> None:
    if not config.event_codes:
        return
    for rule in config.event_mappings:
        if rule.event_code not in config.event_codes:
            result.add_warning(
                f"Mapping {rule.pattern} targets undeclared event code {rule.event_code}"
            )


def _validate_thresholds(config: EngineConfiguration, result: ConfigValidationResult) -> None:
    for f in fields(config.thresholds):
        value = getattr(config.thresholds, f.name)
        if isinstance(value, Decimal) and value < 0:
            result.add_error(f"Threshold {f.name} must not be negative ({value})")
