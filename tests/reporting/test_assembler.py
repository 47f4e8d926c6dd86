"""
Tests for the statement assembler.

Covers:
- Revenue/expenditure totals from raw records
- Determinism of totals and line values
- Cash-flow working capital metadata and the missing-previous-period warning
- Rollover metadata and opening balance mismatches
- Failed lines carried on the statement
- Warning merging and dictionary rendering

Pure: records are built in memory, NO database required.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from statement_engines.formula import compile_template
from statement_engines.rollover import RolloverTarget
from statement_engines.working_capital import NO_PREVIOUS_PERIOD_WARNING
from statement_kernel.domain.dtos import EntityType
from statement_kernel.domain.quarters import Quarter
from statement_modules.reporting.assembler import (
    AssemblyInputs,
    StatementAssembler,
    merge_warnings,
    surplus_of,
)
from statement_modules.reporting.config import ReportingConfig
from statement_modules.reporting.models import StatementRequest
from tests.conftest import FACILITY_ID, PERIOD_ID, PREVIOUS_PERIOD_ID, PROJECT_ID

GENERATED_AT = datetime(2025, 10, 15, 8, 30, tzinfo=timezone.utc)


def _request(statement_code, quarter=Quarter.Q1, **kwargs):
    return StatementRequest(
        statement_code=statement_code,
        facility_id=FACILITY_ID,
        project_id=PROJECT_ID,
        reporting_period_id=PERIOD_ID,
        quarter=quarter,
        **kwargs,
    )


@pytest.fixture
def assembler(config):
    return StatementAssembler(config, ReportingConfig())


@pytest.fixture
def compiled(config):
    def _compile(statement_code):
        return compile_template(
            statement_code,
            config.template(statement_code).lines,
            config.event_codes,
        )

    return _compile


@pytest.fixture
def revenue_record(make_entry, make_record):
    return make_record([
        make_entry("TAX_1", 500000, event_code="TAX_REVENUE"),
        make_entry("GS_1", 300000, event_code="GOODS_SERVICES"),
    ])


class TestRevenueExpenditure:

    def test_surplus_from_raw_records(self, assembler, compiled, revenue_record):
        result = assembler.assemble(AssemblyInputs(
            request=_request("REV_EXP"),
            compiled=compiled("REV_EXP"),
            statement_name="Statement of Revenue and Expenditure",
            current_records=(revenue_record,),
            generated_at=GENERATED_AT,
        ))

        statement = result.statement
        surplus = statement.line("SURPLUS_DEFICIT")
        assert surplus.current == Decimal("200000")
        assert surplus.is_total is True
        assert statement.totals["TOTAL_REVENUE"] == Decimal("500000")
        assert statement.totals["TOTAL_EXPENSES"] == Decimal("300000")
        assert statement.line("TAX_REVENUE").note == "1"
        assert statement.metadata.generated_at == GENERATED_AT
        assert statement.metadata.source_record_count == 1
        assert result.validation.result_for("RE_NET_SURPLUS").is_valid
        assert result.validation.is_valid

    def test_lines_sorted_by_display_order(self, assembler, compiled, revenue_record):
        result = assembler.assemble(AssemblyInputs(
            request=_request("REV_EXP"),
            compiled=compiled("REV_EXP"),
            current_records=(revenue_record,),
        ))

        orders = [line.display_order for line in result.statement.lines]
        assert orders == sorted(orders)

    def test_identical_inputs_give_identical_output(self, assembler, compiled, revenue_record):
        inputs = AssemblyInputs(
            request=_request("REV_EXP"),
            compiled=compiled("REV_EXP"),
            current_records=(revenue_record,),
            generated_at=GENERATED_AT,
        )

        first = assembler.assemble(inputs)
        second = assembler.assemble(inputs)

        assert dict(first.statement.totals) == dict(second.statement.totals)
        assert [line.to_dict() for line in first.statement.lines] == [
            line.to_dict() for line in second.statement.lines
        ]
        assert first.validation == second.validation

    def test_comparatives_fill_previous_column(
        self, assembler, compiled, revenue_record, make_entry, make_record,
    ):
        previous = make_record(
            [make_entry("TAX_1", q4=400000, event_code="TAX_REVENUE")],
            quarter=Quarter.Q4,
            reporting_period_id=PREVIOUS_PERIOD_ID,
        )

        result = assembler.assemble(AssemblyInputs(
            request=_request("REV_EXP"),
            compiled=compiled("REV_EXP"),
            current_records=(revenue_record,),
            previous_records=(previous,),
        ))

        line = result.statement.line("TAX_REVENUE")
        assert line.previous == Decimal("400000")
        assert line.variance.absolute == Decimal("100000")
        assert result.statement.metadata.has_comparatives is True

    def test_traces_can_be_disabled(self, config, compiled, revenue_record):
        assembler = StatementAssembler(config, ReportingConfig(include_traces=False))

        result = assembler.assemble(AssemblyInputs(
            request=_request("REV_EXP"),
            compiled=compiled("REV_EXP"),
            current_records=(revenue_record,),
        ))

        assert result.statement.metadata.traces == ()

    def test_removed_rule_is_not_run(self, config, compiled, revenue_record):
        assembler = StatementAssembler(config, ReportingConfig())
        assert assembler.validation_engine.remove_rule("RE_NET_SURPLUS") is True

        result = assembler.assemble(AssemblyInputs(
            request=_request("REV_EXP"),
            compiled=compiled("REV_EXP"),
            current_records=(revenue_record,),
        ))

        assert result.validation.result_for("RE_NET_SURPLUS") is None
        assert result.validation.result_for("RE_POSITIVE_REVENUE") is not None

    def test_surplus_of(self, assembler, compiled, revenue_record):
        result = assembler.assemble(AssemblyInputs(
            request=_request("REV_EXP"),
            compiled=compiled("REV_EXP"),
            current_records=(revenue_record,),
        ))

        assert surplus_of(result, ("NET_SURPLUS_DEFICIT", "SURPLUS_DEFICIT")) == (
            Decimal("200000"),
            None,
        )
        assert surplus_of(result, ("MISSING",)) == (None, None)


class TestCashFlow:

    @pytest.fixture
    def current(self, make_entry, make_record):
        return make_record([
            make_entry("TAX_1", 500000, event_code="TAX_REVENUE"),
            make_entry("GS_1", 300000, event_code="GOODS_SERVICES"),
            make_entry("AR_1", 1500, event_code="RECEIVABLES_EXCHANGE"),
            make_entry("PAY_1", 800, event_code="PAYABLES"),
        ])

    @pytest.fixture
    def previous(self, make_entry, make_record):
        return make_record(
            [
                make_entry("AR_1", q4=1000, event_code="RECEIVABLES_EXCHANGE"),
                make_entry("PAY_1", q4=500, event_code="PAYABLES"),
            ],
            quarter=Quarter.Q4,
            reporting_period_id=PREVIOUS_PERIOD_ID,
        )

    def test_working_capital_changes(self, assembler, compiled, current, previous):
        result = assembler.assemble(AssemblyInputs(
            request=_request("CASH_FLOW"),
            compiled=compiled("CASH_FLOW"),
            current_records=(current,),
            previous_records=(previous,),
        ))

        statement = result.statement
        assert statement.totals["CHANGES_RECEIVABLES"] == Decimal("-500")
        assert statement.totals["CHANGES_PAYABLES"] == Decimal("300")
        assert statement.totals["NET_CASH_FLOW_OPERATING"] == Decimal("199800")

        wc = statement.metadata.working_capital
        assert wc.has_previous_period is True
        assert wc.receivables.change == Decimal("500")
        assert NO_PREVIOUS_PERIOD_WARNING not in statement.warnings
        assert result.validation.result_for("WC_MISSING_PREVIOUS_PERIOD").is_valid

    def test_missing_previous_period_warns(self, assembler, compiled, current):
        result = assembler.assemble(AssemblyInputs(
            request=_request("CASH_FLOW"),
            compiled=compiled("CASH_FLOW"),
            current_records=(current,),
        ))

        statement = result.statement
        assert NO_PREVIOUS_PERIOD_WARNING in statement.warnings
        assert statement.metadata.working_capital.has_previous_period is False
        assert statement.totals["CHANGES_RECEIVABLES"] == Decimal("-1500")

        rule = result.validation.result_for("WC_MISSING_PREVIOUS_PERIOD")
        assert rule.is_valid is False
        assert rule in result.validation.warnings
        assert result.validation.is_valid

    def test_revenue_statement_has_no_working_capital(self, assembler, compiled, current):
        result = assembler.assemble(AssemblyInputs(
            request=_request("REV_EXP"),
            compiled=compiled("REV_EXP"),
            current_records=(current,),
        ))

        assert result.statement.metadata.working_capital is None
        assert result.validation.result_for("WC_MISSING_PREVIOUS_PERIOD") is None


class TestRolloverMetadata:

    CASH = "HIV_EXEC_HOSPITAL_D_1"

    def test_opening_mismatch_is_reported(self, assembler, compiled, make_entry, make_record):
        prior = make_record([make_entry(self.CASH, 1000)], quarter=Quarter.Q1)
        current = make_record(
            [make_entry(self.CASH, 1000, 1300, opening_balance=1200)],
            quarter=Quarter.Q2,
        )

        result = assembler.assemble(AssemblyInputs(
            request=_request("REV_EXP", quarter=Quarter.Q2),
            compiled=compiled("REV_EXP"),
            current_records=(current,),
            prior_record=prior,
            rollover=RolloverTarget(reporting_period_id=PERIOD_ID, quarter=Quarter.Q1),
            rollover_source_locked=True,
        ))

        rollover = result.statement.metadata.rollover
        assert rollover.previous_quarter.exists is True
        assert rollover.previous_quarter.source_execution_id == prior.id
        assert rollover.source_locked is True
        comparison = rollover.opening_balances[0]
        assert comparison.expected == Decimal("1000")
        assert comparison.actual == Decimal("1200")
        assert comparison.difference == Decimal("200")

        rule = result.validation.result_for("OPENING_BALANCE_MISMATCH")
        assert rule.is_valid is False
        assert result.validation.is_valid is False

    def test_matching_openings_pass(self, assembler, compiled, make_entry, make_record):
        prior = make_record([make_entry(self.CASH, 1000)], quarter=Quarter.Q1)
        current = make_record([make_entry(self.CASH, 1000, 1300)], quarter=Quarter.Q2)

        result = assembler.assemble(AssemblyInputs(
            request=_request("REV_EXP", quarter=Quarter.Q2),
            compiled=compiled("REV_EXP"),
            current_records=(current,),
            prior_record=prior,
            rollover=RolloverTarget(reporting_period_id=PERIOD_ID, quarter=Quarter.Q1),
        ))

        assert result.validation.result_for("OPENING_BALANCE_MISMATCH").is_valid

    def test_first_quarter_without_previous_year(self, assembler, compiled, revenue_record):
        result = assembler.assemble(AssemblyInputs(
            request=_request("REV_EXP", quarter=Quarter.Q1),
            compiled=compiled("REV_EXP"),
            current_records=(revenue_record,),
        ))

        rollover = result.statement.metadata.rollover
        assert rollover.quarter_sequence.is_first_quarter is True
        assert rollover.quarter_sequence.previous is None
        assert rollover.previous_quarter.exists is False
        assert rollover.opening_balances == ()

    def test_planning_request_has_no_rollover(self, assembler, compiled, revenue_record):
        result = assembler.assemble(AssemblyInputs(
            request=_request("REV_EXP", entity_type=EntityType.PLANNING),
            compiled=compiled("REV_EXP"),
            current_records=(revenue_record,),
        ))

        assert result.statement.metadata.rollover is None


class TestNonFiniteValues:

    CASH = "HIV_EXEC_HOSPITAL_D_1"

    def test_nan_quarter_value_is_treated_as_zero(self, assembler, compiled, make_entry, make_record):
        record = make_record([
            make_entry("TAX_1", "NaN", event_code="TAX_REVENUE"),
            make_entry("GS_1", 300000, event_code="GOODS_SERVICES"),
        ])

        result = assembler.assemble(AssemblyInputs(
            request=_request("REV_EXP"),
            compiled=compiled("REV_EXP"),
            current_records=(record,),
        ))

        assert result.statement.totals["TOTAL_REVENUE"] == Decimal("0")
        assert result.statement.line("SURPLUS_DEFICIT").current == Decimal("-300000")
        assert result.validation.result_for("RE_NET_SURPLUS").is_valid
        assert any("Non-numeric value" in w for w in result.statement.warnings)

    def test_nan_balances_in_rollover_records(self, assembler, compiled, make_entry, make_record):
        prior = make_record([make_entry(self.CASH, "NaN")], quarter=Quarter.Q1)
        current = make_record(
            [make_entry(self.CASH, 1000, 1300, opening_balance="Infinity")],
            quarter=Quarter.Q2,
        )

        result = assembler.assemble(AssemblyInputs(
            request=_request("REV_EXP", quarter=Quarter.Q2),
            compiled=compiled("REV_EXP"),
            current_records=(current,),
            prior_record=prior,
            rollover=RolloverTarget(reporting_period_id=PERIOD_ID, quarter=Quarter.Q1),
        ))

        rollover = result.statement.metadata.rollover
        assert rollover.previous_quarter.source_execution_id == prior.id
        comparison = rollover.opening_balances[0]
        assert comparison.expected == Decimal("0")
        assert comparison.actual == Decimal("0")
        assert result.validation.result_for("OPENING_BALANCE_MISMATCH").is_valid
        assert sum("Non-numeric value" in w for w in result.statement.warnings) == 2


class TestFailedLines:

    def test_cycle_lines_carry_error(self, assembler, make_line, make_entry, make_record, config):
        lines = [
            make_line("REVENUE", event_mappings=("TAX_REVENUE",)),
            make_line("A_LINE", calculation_formula="B_LINE + REVENUE"),
            make_line("B_LINE", calculation_formula="A_LINE"),
            make_line("DOUBLE", calculation_formula="REVENUE * 2", is_total_line=True),
        ]
        compiled = compile_template("TEST", lines, config.event_codes)
        record = make_record([make_entry("TAX_1", 100, event_code="TAX_REVENUE")])

        result = assembler.assemble(AssemblyInputs(
            request=_request("TEST"),
            compiled=compiled,
            current_records=(record,),
        ))

        statement = result.statement
        assert statement.line("DOUBLE").current == Decimal("200")
        assert statement.line("A_LINE").current is None
        assert "Circular formula dependency" in statement.line("A_LINE").error
        assert statement.metadata.failed_line_count == 2
        assert "A_LINE" not in statement.totals


class TestWarningsAndRendering:

    def test_merge_warnings_keeps_first_occurrence(self):
        assert merge_warnings(["a", "b"], (), ["b", "c"], ["a"]) == ("a", "b", "c")

    def test_input_warnings_come_first(self, assembler, compiled, revenue_record):
        result = assembler.assemble(AssemblyInputs(
            request=_request("CASH_FLOW"),
            compiled=compiled("CASH_FLOW"),
            current_records=(revenue_record,),
            warnings=("rollover source period is not locked",),
        ))

        assert result.statement.warnings[0] == "rollover source period is not locked"
        assert NO_PREVIOUS_PERIOD_WARNING in result.statement.warnings

    def test_to_dict_is_json_ready(self, assembler, compiled, revenue_record):
        result = assembler.assemble(AssemblyInputs(
            request=_request("CASH_FLOW"),
            compiled=compiled("CASH_FLOW"),
            current_records=(revenue_record,),
            generated_at=GENERATED_AT,
        ))

        data = json.loads(json.dumps(result.to_dict()))
        assert data["statement"]["statement_code"] == "CASH_FLOW"
        assert data["statement"]["metadata"]["working_capital"]["has_previous_period"] is False
        assert data["validation"]["is_valid"] is True

    def test_assembly_is_logged(self, assembler, compiled, revenue_record, captured_logs):
        assembler.assemble(AssemblyInputs(
            request=_request("REV_EXP"),
            compiled=compiled("REV_EXP"),
            current_records=(revenue_record,),
        ))

        records = [r for r in captured_logs() if r["message"] == "statement_assembled"]
        assert records[0]["statement_code"] == "REV_EXP"
        assert records[0]["is_valid"] is True
