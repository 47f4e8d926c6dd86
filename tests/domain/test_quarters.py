"""
Tests for quarter arithmetic.

Covers:
- Quarter parsing and keys
- In-year navigation
- QuarterSequence for first/last quarters and cross-year rollover
"""

import pytest

from statement_kernel.domain.quarters import (
    QUARTERS,
    Quarter,
    build_quarter_sequence,
    next_quarter,
    previous_quarter,
    quarters_through,
)


class TestQuarter:

    @pytest.mark.parametrize("raw", ["Q2", "q2", " Q2 ", Quarter.Q2])
    def test_parse(self, raw):
        assert Quarter.parse(raw) is Quarter.Q2

    def test_parse_rejects_unknown(self):
        with pytest.raises(ValueError):
            Quarter.parse("Q5")

    def test_number_and_key(self):
        assert Quarter.Q3.number == 3
        assert Quarter.Q3.key == "q3"


class TestNavigation:

    def test_previous(self):
        assert previous_quarter(Quarter.Q1) is None
        assert previous_quarter(Quarter.Q4) is Quarter.Q3

    def test_next(self):
        assert next_quarter(Quarter.Q1) is Quarter.Q2
        assert next_quarter(Quarter.Q4) is None

    def test_quarters_through(self):
        assert quarters_through(Quarter.Q1) == (Quarter.Q1,)
        assert quarters_through(Quarter.Q4) == QUARTERS


class TestQuarterSequence:

    def test_middle_quarter(self):
        sequence = build_quarter_sequence(Quarter.Q2)

        assert sequence.previous is Quarter.Q1
        assert sequence.next is Quarter.Q3
        assert sequence.has_previous and sequence.has_next
        assert sequence.is_first_quarter is False
        assert sequence.is_cross_fiscal_year_rollover is False

    def test_first_quarter_without_previous_year(self):
        sequence = build_quarter_sequence(Quarter.Q1)

        assert sequence.previous is None
        assert sequence.has_previous is False
        assert sequence.is_first_quarter is True

    def test_first_quarter_rolls_over_from_previous_year(self):
        sequence = build_quarter_sequence(Quarter.Q1, has_cross_fiscal_year_previous=True)

        assert sequence.previous is Quarter.Q4
        assert sequence.is_cross_fiscal_year_rollover is True

    def test_cross_year_flag_ignored_after_q1(self):
        sequence = build_quarter_sequence(Quarter.Q3, has_cross_fiscal_year_previous=True)

        assert sequence.previous is Quarter.Q2
        assert sequence.is_cross_fiscal_year_rollover is False

    def test_last_quarter(self):
        sequence = build_quarter_sequence(Quarter.Q4)

        assert sequence.next is None
        assert sequence.to_dict()["has_next"] is False
