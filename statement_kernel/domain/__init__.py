"""
Pure domain layer.

Data transfer objects and domain helpers with NO dependencies on the ORM,
database, clock or any I/O.  All domain objects are immutable.
"""

from statement_kernel.domain.activity_codes import ActivityCode, parse_activity_code
from statement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from statement_kernel.domain.dtos import (
    ActivityEntry,
    ActivityRecord,
    AggregationMethod,
    EntityType,
    ReportingPeriodInfo,
    TemplateLine,
    VatReceivable,
)
from statement_kernel.domain.quarters import (
    Quarter,
    QuarterSequence,
    build_quarter_sequence,
    next_quarter,
    previous_quarter,
)

__all__ = [
    "ActivityCode",
    "ActivityEntry",
    "ActivityRecord",
    "AggregationMethod",
    "Clock",
    "DeterministicClock",
    "EntityType",
    "Quarter",
    "QuarterSequence",
    "ReportingPeriodInfo",
    "SystemClock",
    "TemplateLine",
    "VatReceivable",
    "build_quarter_sequence",
    "next_quarter",
    "parse_activity_code",
    "previous_quarter",
]
