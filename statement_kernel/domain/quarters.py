"""
Quarter arithmetic for the reporting calendar.

Responsibility:
    Quarter identifiers, previous/next navigation inside a fiscal year, and
    the QuarterSequence metadata attached to rollover results.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Q1 has no in-year predecessor; its predecessor is Q4 of the previous
      fiscal year only when the caller says that period exists.
    - Q4 has no successor inside the fiscal year.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Quarter(str, Enum):
    """Reporting quarter within a fiscal year."""

    Q1 = "Q1"
    Q2 = "Q2"
    Q3 = "Q3"
    Q4 = "Q4"

    @property
    def number(self) -> int:
        return int(self.value[1])

    @property
    def key(self) -> str:
        """Lower-case value key used by activity entries (``q1`` .. ``q4``)."""
        return self.value.lower()

    @classmethod
    def parse(cls, value: str | Quarter) -> Quarter:
        """Accept ``Q2``, ``q2`` or a Quarter instance."""
        if isinstance(value, Quarter):
            return value
        return cls(str(value).strip().upper())


QUARTERS: tuple[Quarter, ...] = (Quarter.Q1, Quarter.Q2, Quarter.Q3, Quarter.Q4)


def previous_quarter(current: Quarter) -> Quarter | None:
    """Previous quarter in the same fiscal year (None for Q1)."""
    if current is Quarter.Q1:
        return None
    return QUARTERS[current.number - 2]


def next_quarter(current: Quarter) -> Quarter | None:
    """Next quarter in the same fiscal year (None for Q4)."""
    if current is Quarter.Q4:
        return None
    return QUARTERS[current.number]


def quarters_through(current: Quarter) -> tuple[Quarter, ...]:
    """All quarters from Q1 up to and including ``current``."""
    return QUARTERS[: current.number]


@dataclass(frozen=True)
class QuarterSequence:
    """Navigation metadata for a quarter."""

    current: Quarter
    previous: Quarter | None
    next: Quarter | None
    has_previous: bool
    has_next: bool
    is_first_quarter: bool
    is_cross_fiscal_year_rollover: bool

    def to_dict(self) -> dict:
        return {
            "current": self.current.value,
            "previous": self.previous.value if self.previous else None,
            "next": self.next.value if self.next else None,
            "has_previous": self.has_previous,
            "has_next": self.has_next,
            "is_first_quarter": self.is_first_quarter,
            "is_cross_fiscal_year_rollover": self.is_cross_fiscal_year_rollover,
        }


def build_quarter_sequence(
    current: Quarter,
    has_cross_fiscal_year_previous: bool = False,
) -> QuarterSequence:
    """Build the sequence for ``current``.

    For Q1 the previous quarter is Q4 (of the prior fiscal year) when
    ``has_cross_fiscal_year_previous`` is set.
    """
    cross_year = current is Quarter.Q1 and has_cross_fiscal_year_previous
    previous = Quarter.Q4 if cross_year else previous_quarter(current)
    following = next_quarter(current)
    return QuarterSequence(
        current=current,
        previous=previous,
        next=following,
        has_previous=previous is not None,
        has_next=following is not None,
        is_first_quarter=current is Quarter.Q1,
        is_cross_fiscal_year_rollover=cross_year,
    )
