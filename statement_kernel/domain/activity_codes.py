"""
Activity code parsing.

Activity codes follow ``{PROJECT}_EXEC_{FACILITY_TYPE}_{SECTION}_{SUB?}_{N}``,
for example ``HIV_EXEC_HOSPITAL_D_1``, ``HIV_EXEC_HEALTH_CENTER_B_B-04_1`` or
``MAL_EXEC_HOSPITAL_G_G-01_2``.  The section is the first single letter A-G
after the ``EXEC`` marker; the part after it is a subsection when it contains
a hyphen.  ``(section, subsection, index)`` is the canonical key used to match
activities across projects and facility types.

Section meaning:
    A  receipts            (flow)
    B  expenditures        (flow)
    C  surplus/deficit     (flow)
    D  financial assets    (stock)
    E  financial liabilities (stock)
    F  net financial assets (derived)
    G  closing balance / equity
"""

from __future__ import annotations

from dataclasses import dataclass

SECTIONS: frozenset[str] = frozenset("ABCDEFG")
STOCK_SECTIONS: frozenset[str] = frozenset({"D", "E"})

_EXEC_MARKERS: tuple[str, ...] = ("EXEC", "PLAN")


@dataclass(frozen=True)
class ActivityCode:
    """Structured view of an activity code."""

    raw: str
    project: str | None
    facility_type: str | None
    section: str | None
    subsection: str | None
    index: str | None

    @property
    def canonical_key(self) -> tuple[str, str, str] | None:
        """``(section, subsection, index)`` or None for unparseable codes."""
        if self.section is None or self.index is None:
            return None
        return (self.section, self.subsection or "", self.index)

    @property
    def is_stock(self) -> bool:
        return self.section in STOCK_SECTIONS


def parse_activity_code(code: str) -> ActivityCode:
    """Parse an activity code; unknown shapes keep section/index as None."""
    parts = code.split("_")
    marker_at = next(
        (i for i, part in enumerate(parts) if part in _EXEC_MARKERS), None
    )
    project = parts[0] if marker_at else None
    start = (marker_at + 1) if marker_at is not None else 0

    section_at = None
    for i in range(start, len(parts)):
        if len(parts[i]) == 1 and parts[i] in SECTIONS:
            section_at = i
            break
    if section_at is None:
        return ActivityCode(code, project, None, None, None, None)

    facility_type = "_".join(parts[start:section_at]) or None
    rest = parts[section_at + 1:]
    subsection = None
    if rest and "-" in rest[0]:
        subsection = rest[0]
        rest = rest[1:]
    index = "_".join(rest) if rest else None
    return ActivityCode(
        raw=code,
        project=project,
        facility_type=facility_type,
        section=parts[section_at],
        subsection=subsection,
        index=index,
    )


def section_of(code: str) -> str | None:
    return parse_activity_code(code).section


def _matches_g_line(code: ActivityCode, index: str, subsection: str | None = None) -> bool:
    return (
        code.section == "G"
        and code.index == index
        and (code.subsection or None) == subsection
    )


def is_accumulated_surplus(code: str, name: str | None = None) -> bool:
    """Section G line 1: constant for the whole fiscal year."""
    if _matches_g_line(parse_activity_code(code), "1"):
        return True
    if name:
        lowered = name.lower()
        return "accumulated" in lowered and (
            "surplus" in lowered or "deficit" in lowered
        )
    return False


def is_prior_year_adjustment(code: str) -> bool:
    """Section G subsection G-01 lines (cash, payable, receivable)."""
    parsed = parse_activity_code(code)
    return parsed.section == "G" and (parsed.subsection or "").upper() == "G-01"


def is_period_surplus(code: str) -> bool:
    """Section G line 4: surplus/deficit of the period (A - B)."""
    return _matches_g_line(parse_activity_code(code), "4")


def is_closing_balance_total(code: str) -> bool:
    """Section G line 5: closing balance total."""
    return _matches_g_line(parse_activity_code(code), "5")
