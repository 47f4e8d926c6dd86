"""
Tests for domain DTOs.

Covers:
- TemplateLine normalization and derived properties
- ActivityEntry stock/flow reads
- VatReceivable netting
- ActivityRecord freezing and lookup
"""

from decimal import Decimal

import pytest

from statement_kernel.domain.dtos import (
    AggregationMethod,
    TemplateLine,
    VatReceivable,
)
from statement_kernel.domain.quarters import Quarter


class TestTemplateLine:

    def test_empty_line_code_rejected(self, make_line):
        with pytest.raises(ValueError, match="line_code"):
            make_line("")

    def test_aggregation_method_from_string(self, make_line):
        line = make_line("AVG", event_mappings=["GRANTS"], aggregation_method="median")
        assert line.aggregation_method is AggregationMethod.MEDIAN
        assert line.event_mappings == ("GRANTS",)

    def test_mappings_are_frozen(self, make_line):
        line = make_line("X", metadata={"note": 16, "sum_of": "ASSETS"}, format_rules={"bold": True})

        with pytest.raises(TypeError):
            line.metadata["note"] = "17"
        assert line.note == "16"
        assert line.sum_of == "ASSETS"

    def test_header_and_formula(self, make_line):
        assert make_line("SECTION").is_header
        assert make_line("F", calculation_formula="A + B").has_formula
        assert not make_line("BLANK", calculation_formula="   ").has_formula

    def test_implicit_total(self, make_line):
        assert make_line("T", is_total_line=True).is_implicit_total
        assert not make_line("T2", is_total_line=True, calculation_formula="A").is_implicit_total

    def test_budget_line_is_not_a_header(self, make_line):
        line = make_line(
            "BVA",
            metadata={"category": "expense", "budget_events": ["GOODS_SERVICES_PLANNING"]},
        )

        assert not line.is_header
        assert line.budget_events == ("GOODS_SERVICES_PLANNING",)
        assert line.category == "expense"

    def test_sum_of_defaults_to_itself(self):
        line = TemplateLine("BS", "TOTAL_LIABILITIES", "Total", 29, is_subtotal_line=True)
        assert line.sum_of == "TOTAL_LIABILITIES"


class TestActivityEntry:

    def test_latest_value_for_stock(self, make_entry):
        entry = make_entry("HIV_EXEC_HOSPITAL_D_1", 100, 200, None, None)

        assert entry.latest_value(Quarter.Q1) == Decimal("100")
        assert entry.latest_value(Quarter.Q3) == Decimal("200")
        assert entry.latest_value() == Decimal("200")

    def test_zero_is_a_value(self, make_entry):
        entry = make_entry("HIV_EXEC_HOSPITAL_E_1", 500, 0)
        assert entry.latest_value(Quarter.Q2) == Decimal("0")

    def test_flow_total(self, make_entry):
        entry = make_entry("HIV_EXEC_HOSPITAL_B_B-03_1", 10, None, 30, 40)

        assert entry.flow_total(Quarter.Q3) == Decimal("40")
        assert entry.flow_total() == Decimal("80")
        assert make_entry("EMPTY").flow_total() is None


class TestVatReceivable:

    def test_from_dict_and_net(self):
        vat = VatReceivable.from_dict("medical supplies", {"q1": 300, "q1_cleared": 100, "q2": "50"})

        assert vat.net_at(Quarter.Q1) == Decimal("200")
        assert vat.net_at(Quarter.Q2) == Decimal("50")
        assert vat.net_at(Quarter.Q4) == Decimal("0")
        assert vat.asset_code == "VAT_MEDICAL_SUPPLIES"


class TestActivityRecord:

    def test_entry_lookup_and_frozen_totals(self, make_entry, make_record):
        record = make_record(
            [make_entry("HIV_EXEC_HOSPITAL_D_1", 10)],
            quarter="q2",
            computed_totals={"closingBalance": 10},
        )

        assert record.quarter is Quarter.Q2
        assert record.entry("HIV_EXEC_HOSPITAL_D_1").q1 == Decimal("10")
        assert record.entry("MISSING") is None
        with pytest.raises(TypeError):
            record.computed_totals["closingBalance"] = 0
