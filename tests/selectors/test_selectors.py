"""
Tests for the read-only kernel selectors.

Covers:
- TemplateSelector: ordering, active filter, parent resolution
- ActivitySelector: scoped record reads, latest record, DTO conversion
- PeriodSelector: previous fiscal year and lock status

Uses an in-memory SQLite store.
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from statement_kernel.domain.dtos import AggregationMethod, EntityType
from statement_kernel.domain.quarters import Quarter
from statement_kernel.selectors.activity_selector import ActivitySelector
from statement_kernel.selectors.period_selector import PeriodSelector
from statement_kernel.selectors.template_selector import TemplateSelector
from tests.conftest import FACILITY_ID, PERIOD_ID, PREVIOUS_PERIOD_ID, PROJECT_ID

CASH = "HIV_EXEC_HOSPITAL_D_1"


class TestTemplateSelector:

    def test_lines_ordered_with_parents(self, session, add_template_line):
        add_template_line("BAL_SHEET", "ASSETS", 10)
        add_template_line(
            "BAL_SHEET", "CASH", 11, parent="ASSETS",
            event_mappings=["CASH_EQUIVALENTS_END"],
            aggregation_method="MAX",
            line_metadata={"note": "16"},
            format_rules={"bold": True},
        )
        add_template_line("BAL_SHEET", "TOTAL", 5, calculation_formula="CASH")

        lines = TemplateSelector(session).lines_for("BAL_SHEET")

        assert [line.line_code for line in lines] == ["TOTAL", "ASSETS", "CASH"]
        cash = lines[2]
        assert cash.parent_line_code == "ASSETS"
        assert cash.event_mappings == ("CASH_EQUIVALENTS_END",)
        assert cash.aggregation_method is AggregationMethod.MAX
        assert cash.note == "16"
        assert cash.format_rules["bold"] is True

    def test_inactive_lines_skipped(self, session, add_template_line):
        add_template_line("REV_EXP", "OLD", 1, is_active=False)

        selector = TemplateSelector(session)

        assert selector.lines_for("REV_EXP") == ()
        assert selector.statement_codes() == ()

    def test_statement_codes(self, session, add_template_line):
        add_template_line("REV_EXP", "A", 1)
        add_template_line("BAL_SHEET", "B", 1)
        add_template_line("REV_EXP", "C", 2)

        assert TemplateSelector(session).statement_codes() == ("BAL_SHEET", "REV_EXP")

    def test_unknown_statement(self, session):
        assert TemplateSelector(session).lines_for("NOPE") == ()


class TestActivitySelector:

    def test_record_converted_to_dto(self, session, add_record):
        add_record(
            {
                CASH: {"q1": 1000, "opening_balance": 900, "name": "Cash at bank"},
                "TAX_1": {"q1": 50, "event_code": "TAX_REVENUE"},
            },
            computed_totals={"closingBalance": "1000"},
            vat_receivables={"medical supplies": {"q1": 300, "q1_cleared": 100}},
        )

        record = ActivitySelector(session).record(
            facility_id=FACILITY_ID,
            project_id=PROJECT_ID,
            reporting_period_id=PERIOD_ID,
            quarter=Quarter.Q1,
        )

        assert record.entity_type is EntityType.EXECUTION
        assert record.quarter is Quarter.Q1
        assert [entry.activity_code for entry in record.entries] == [CASH, "TAX_1"]
        cash = record.entry(CASH)
        assert cash.q1 == Decimal("1000")
        assert cash.opening_balance == Decimal("900")
        assert cash.name == "Cash at bank"
        assert record.entry("TAX_1").event_code == "TAX_REVENUE"
        assert record.computed_totals["closingBalance"] == "1000"
        assert record.vat_receivables[0].net_at(Quarter.Q1) == Decimal("200")

    def test_record_scope(self, session, add_record):
        add_record({CASH: (1,)}, quarter="Q1")
        add_record({CASH: (1, 2)}, quarter="Q2")
        add_record({"HIV_PLAN_HOSPITAL_A_1": (5,)}, entity_type="planning")

        selector = ActivitySelector(session)
        scope = dict(facility_id=FACILITY_ID, project_id=PROJECT_ID, reporting_period_id=PERIOD_ID)

        assert selector.record(**scope, quarter=Quarter.Q2).quarter is Quarter.Q2
        assert selector.record(**scope, quarter=Quarter.Q3) is None
        planning = selector.record(**scope, quarter=Quarter.Q1, entity_type=EntityType.PLANNING)
        assert planning.entity_type is EntityType.PLANNING

    def test_duplicate_record_scope_is_rejected(self, session, add_record):
        add_record({CASH: (1,)}, quarter="Q1")

        with pytest.raises(IntegrityError, match="activity_records"):
            add_record({CASH: (2,)}, quarter="Q1")
        session.rollback()

    def test_latest_record(self, session, add_record):
        add_record({CASH: (1,)}, quarter="Q1")
        add_record({CASH: (1, 2, 3)}, quarter="Q3")

        latest = ActivitySelector(session).latest_record(
            facility_id=FACILITY_ID,
            project_id=PROJECT_ID,
            reporting_period_id=PERIOD_ID,
            entity_type=EntityType.EXECUTION,
        )

        assert latest.quarter is Quarter.Q3

    def test_latest_record_none(self, session, periods):
        assert ActivitySelector(session).latest_record(
            facility_id=FACILITY_ID,
            project_id=PROJECT_ID,
            reporting_period_id=PREVIOUS_PERIOD_ID,
            entity_type=EntityType.PLANNING,
        ) is None


class TestPeriodSelector:

    def test_previous_fiscal_year(self, session, periods):
        selector = PeriodSelector(session)

        previous = selector.previous_fiscal_year(PERIOD_ID)

        assert previous.id == PREVIOUS_PERIOD_ID
        assert previous.year == 2024
        assert selector.previous_fiscal_year(PREVIOUS_PERIOD_ID) is None

    def test_get(self, session, periods):
        period = PeriodSelector(session).get(PERIOD_ID)
        assert period.start_date.year == 2024
        assert period.end_date.year == 2025

    @pytest.mark.parametrize(("is_locked", "expected"), [(True, True), (False, False)])
    def test_lock_status(self, session, lock_period, is_locked, expected):
        lock_period("Q1", is_locked=is_locked)

        assert PeriodSelector(session).is_locked(
            reporting_period_id=PERIOD_ID,
            facility_id=FACILITY_ID,
            project_id=PROJECT_ID,
            quarter=Quarter.Q1,
        ) is expected

    def test_missing_lock_means_unlocked(self, session, periods):
        assert PeriodSelector(session).is_locked(
            reporting_period_id=PERIOD_ID,
            facility_id=FACILITY_ID,
            project_id=PROJECT_ID,
            quarter=Quarter.Q2,
        ) is False
