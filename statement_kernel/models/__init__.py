"""ORM tables backing the Template Store and the Raw Data Store."""

from statement_kernel.models.activity import ActivityEntryRow, ActivityRecordRow
from statement_kernel.models.period import PeriodLock, ReportingPeriod
from statement_kernel.models.template import StatementTemplateLineRow

__all__ = [
    "ActivityEntryRow",
    "ActivityRecordRow",
    "PeriodLock",
    "ReportingPeriod",
    "StatementTemplateLineRow",
]
