"""
Tests for reporting model DTOs.

Verifies frozen dataclass construction, request normalization and
dictionary rendering.
NO database required.
"""

from __future__ import annotations

import dataclasses
import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from statement_engines.rollover import PreviousQuarterBalances
from statement_engines.variance import LineVariance
from statement_kernel.domain.dtos import EntityType
from statement_kernel.domain.quarters import Quarter, build_quarter_sequence
from statement_modules.reporting.models import (
    FinancialStatement,
    RolloverMetadata,
    StatementLine,
    StatementMetadata,
    StatementRequest,
    render_to_dict,
)
from tests.conftest import FACILITY_ID, PERIOD_ID, PROJECT_ID


def _request(**kwargs) -> StatementRequest:
    kwargs.setdefault("statement_code", "REV_EXP")
    return StatementRequest(
        facility_id=FACILITY_ID,
        project_id=PROJECT_ID,
        reporting_period_id=PERIOD_ID,
        **kwargs,
    )


class TestStatementRequest:

    def test_defaults(self):
        request = _request()
        assert request.quarter is None
        assert request.entity_type is EntityType.EXECUTION
        assert request.include_comparatives is True
        assert request.previous_fiscal_year_reporting_period_id is None

    def test_quarter_string_is_parsed(self):
        assert _request(quarter="q3").quarter is Quarter.Q3

    def test_empty_statement_code_rejected(self):
        with pytest.raises(ValueError, match="statement_code"):
            _request(statement_code="")

    def test_for_statement_keeps_scope(self):
        request = _request(quarter=Quarter.Q2)
        other = request.for_statement("NET_ASSETS")

        assert other.statement_code == "NET_ASSETS"
        assert other.quarter is Quarter.Q2
        assert other.facility_id == FACILITY_ID
        assert request.statement_code == "REV_EXP"

    def test_frozen(self):
        request = _request()
        with pytest.raises(dataclasses.FrozenInstanceError):
            request.statement_code = "BAL_SHEET"


class TestFinancialStatement:

    def _statement(self, **kwargs):
        lines = (
            StatementLine(
                line_code="TAX_REVENUE",
                description="Tax revenue",
                display_order=11,
                level=2,
                current=Decimal("500000"),
                previous=Decimal("400000"),
                note="1",
                variance=LineVariance(
                    absolute=Decimal("100000"), percentage=Decimal("25.00"),
                ),
            ),
            StatementLine(
                line_code="SURPLUS_DEFICIT",
                description="Surplus / (deficit)",
                display_order=30,
                level=1,
                current=Decimal("200000"),
                is_total=True,
                format_rules={"bold": True},
            ),
        )
        defaults = dict(
            statement_code="REV_EXP",
            facility_id=FACILITY_ID,
            project_id=PROJECT_ID,
            reporting_period_id=PERIOD_ID,
            quarter=Quarter.Q1,
            lines=lines,
            totals={"TAX_REVENUE": Decimal("500000"), "SURPLUS_DEFICIT": Decimal("200000")},
            metadata=StatementMetadata(
                template_id="REV_EXP",
                statement_name="Statement of Revenue and Expenditure",
                generated_at=datetime(2025, 10, 15, 8, 30, tzinfo=timezone.utc),
                line_count=2,
            ),
        )
        defaults.update(kwargs)
        return FinancialStatement(**defaults)

    def test_totals_are_read_only(self):
        statement = self._statement()
        with pytest.raises(TypeError):
            statement.totals["SURPLUS_DEFICIT"] = Decimal("0")

    def test_line_lookup(self):
        statement = self._statement()
        assert statement.line("SURPLUS_DEFICIT").is_total is True
        assert statement.line("UNKNOWN") is None

    def test_to_dict_renders_plain_values(self):
        data = self._statement().to_dict()

        assert data["facility_id"] == str(FACILITY_ID)
        assert data["quarter"] == "Q1"
        assert data["totals"]["SURPLUS_DEFICIT"] == "200000"
        assert data["lines"][0]["variance"] == {"absolute": "100000", "percentage": "25.00"}
        assert data["lines"][1]["format_rules"] == {"bold": True}
        assert data["metadata"]["generated_at"] == "2025-10-15T08:30:00+00:00"
        assert "working_capital" not in data["metadata"]
        json.dumps(data)

    def test_rollover_metadata_rendered_when_present(self):
        rollover = RolloverMetadata(
            quarter_sequence=build_quarter_sequence(Quarter.Q2),
            previous_quarter=PreviousQuarterBalances.missing(Quarter.Q1, PERIOD_ID),
        )
        statement = self._statement(
            metadata=StatementMetadata(
                template_id="REV_EXP", statement_name="", rollover=rollover,
            ),
        )

        data = statement.to_dict()["metadata"]["rollover"]
        assert data["quarter_sequence"]["previous"] == "Q1"
        assert data["previous_quarter"]["exists"] is False
        assert data["opening_balances"] == []


class TestRenderToDict:

    def test_scalars(self):
        assert render_to_dict(None) is None
        assert render_to_dict(True) is True
        assert render_to_dict(Decimal("1.50")) == "1.50"
        assert render_to_dict(Quarter.Q4) == "Q4"
        assert render_to_dict(FACILITY_ID) == str(FACILITY_ID)

    def test_nested_containers(self):
        assert render_to_dict({"a": [Decimal("1"), (Decimal("2"),)]}) == {"a": ["1", ["2"]]}
