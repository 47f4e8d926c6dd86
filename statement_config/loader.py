"""
Configuration Loader (``statement_config.loader``).

Responsibility
--------------
Loads the YAML files of a configuration set and parses them into the frozen
dataclasses of ``statement_config.schema``.  Runtime callers go through
``statement_config.get_active_config()``; the loader is its internal
building block and test tooling.

A configuration set is a directory::

    <set>/root.yaml          engine settings, event codes, mappings
    <set>/templates/*.yaml   one statement template per file

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Non-numeric thresholds  -> ``decimal.InvalidOperation`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from statement_config.schema import (
    EngineConfiguration,
    EventMappingRule,
    RolloverConfig,
    StatementLineCodes,
    StatementTemplate,
    ValidationThresholds,
    WorkingCapitalConfig,
)
from statement_kernel.domain.dtos import AggregationMethod, TemplateLine


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_event_mappings(data: list[dict[str, Any]] | dict[str, str]) -> tuple[EventMappingRule, ...]:
    """Parse mappings given as a list of ``{activity, event}`` or a plain dict."""
    if isinstance(data, dict):
        return tuple(EventMappingRule(pattern=k, event_code=v) for k, v in data.items())
    return tuple(
        EventMappingRule(pattern=item["activity"], event_code=item["event"])
        for item in data
    )


def parse_thresholds(data: dict[str, Any]) -> ValidationThresholds:
    """Parse thresholds; every value goes through ``str`` into Decimal."""
    known = {f.name for f in fields(ValidationThresholds)}
    unknown = set(data) - known
    if unknown:
        raise KeyError(f"Unknown threshold(s): {sorted(unknown)}")
    return ValidationThresholds(**{k: Decimal(str(v)) for k, v in data.items()})


def parse_line_codes(data: dict[str, Any]) -> StatementLineCodes:
    known = {f.name for f in fields(StatementLineCodes)}
    unknown = set(data) - known
    if unknown:
        raise KeyError(f"Unknown line code group(s): {sorted(unknown)}")
    return StatementLineCodes(**{k: tuple(v) for k, v in data.items()})


def parse_working_capital(data: dict[str, Any]) -> WorkingCapitalConfig:
    defaults = WorkingCapitalConfig()
    return WorkingCapitalConfig(
        receivables_event_codes=tuple(
            data.get("receivables_event_codes", defaults.receivables_event_codes)
        ),
        payables_event_codes=tuple(
            data.get("payables_event_codes", defaults.payables_event_codes)
        ),
    )


def parse_rollover(data: dict[str, Any]) -> RolloverConfig:
    defaults = RolloverConfig()
    return RolloverConfig(
        closing_balance_aliases=tuple(
            data.get("closing_balance_aliases", defaults.closing_balance_aliases)
        ),
        stock_sections=tuple(data.get("stock_sections", defaults.stock_sections)),
    )


def parse_template_line(statement_code: str, data: dict[str, Any]) -> TemplateLine:
    """
    Parse one template line.

    Raises:
        KeyError: if ``line_code``, ``line_item`` or ``display_order`` is missing.
        ValueError: if ``aggregation_method`` is not a known method.
    """
    return TemplateLine(
        statement_code=statement_code,
        line_code=data["line_code"],
        line_item=data["line_item"],
        display_order=int(data["display_order"]),
        level=int(data.get("level", 1)),
        parent_line_code=data.get("parent_line_code"),
        event_mappings=tuple(data.get("event_mappings", ())),
        calculation_formula=data.get("calculation_formula"),
        aggregation_method=AggregationMethod(
            str(data.get("aggregation_method", "SUM")).upper()
        ),
        is_total_line=bool(data.get("is_total_line", False)),
        is_subtotal_line=bool(data.get("is_subtotal_line", False)),
        is_annual_only=bool(data.get("is_annual_only", False)),
        format_rules=data.get("format_rules") or {},
        metadata=data.get("metadata") or {},
    )


def parse_template(data: dict[str, Any]) -> StatementTemplate:
    code = data["statement_code"]
    return StatementTemplate(
        statement_code=code,
        statement_name=data.get("statement_name", code),
        lines=tuple(parse_template_line(code, line) for line in data.get("lines", [])),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization (deterministic)."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_configuration(set_dir: Path) -> EngineConfiguration:
    """
    Load a configuration set directory into an ``EngineConfiguration``.

    Raises:
        FileNotFoundError: if ``root.yaml`` is missing.
    """
    root = load_yaml_file(set_dir / "root.yaml")

    raw_templates: list[dict[str, Any]] = []
    templates_dir = set_dir / "templates"
    if templates_dir.is_dir():
        for path in sorted(templates_dir.glob("*.yaml")):
            raw_templates.append(load_yaml_file(path))

    templates = {}
    for raw in raw_templates:
        template = parse_template(raw)
        templates[template.statement_code] = template

    return EngineConfiguration(
        config_id=root.get("config_id", set_dir.name),
        version=int(root.get("version", 1)),
        description=root.get("description", ""),
        event_codes=frozenset(root.get("event_codes", ())),
        event_mappings=parse_event_mappings(root.get("event_mappings", [])),
        code_remaps=MappingProxyType(dict(root.get("code_remaps") or {})),
        working_capital=parse_working_capital(root.get("working_capital") or {}),
        thresholds=parse_thresholds(root.get("thresholds") or {}),
        rollover=parse_rollover(root.get("rollover") or {}),
        line_codes=parse_line_codes(root.get("line_codes") or {}),
        templates=MappingProxyType(templates),
        checksum=compute_checksum({"root": root, "templates": raw_templates}),
    )
