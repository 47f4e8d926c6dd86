"""
Module: statement_kernel.selectors.period_selector
Responsibility: Reporting period lookup (including the previous fiscal year)
    and period-lock status reads.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from statement_kernel.domain.dtos import ReportingPeriodInfo
from statement_kernel.domain.quarters import Quarter
from statement_kernel.models.period import PeriodLock, ReportingPeriod
from statement_kernel.selectors.base import BaseSelector


class PeriodSelector(BaseSelector[ReportingPeriod]):
    """Selector for reporting periods and their locks."""

    def __init__(self, session: Session):
        super().__init__(session)

    def get(self, reporting_period_id: UUID) -> ReportingPeriodInfo | None:
        row = self.session.get(ReportingPeriod, reporting_period_id)
        return ReportingPeriodInfo.from_model(row) if row is not None else None

    def previous_fiscal_year(self, reporting_period_id: UUID) -> ReportingPeriodInfo | None:
        """Period of the same type for year - 1, if registered."""
        current = self.session.get(ReportingPeriod, reporting_period_id)
        if current is None:
            return None
        row = self.session.execute(
            select(ReportingPeriod)
            .where(ReportingPeriod.year == current.year - 1)
            .where(ReportingPeriod.period_type == current.period_type)
        ).scalar_one_or_none()
        return ReportingPeriodInfo.from_model(row) if row is not None else None

    def is_locked(
        self,
        *,
        reporting_period_id: UUID,
        facility_id: UUID,
        project_id: UUID,
        quarter: Quarter,
    ) -> bool:
        """Lock status; a missing lock row means unlocked."""
        locked = self.session.execute(
            select(PeriodLock.is_locked)
            .where(PeriodLock.reporting_period_id == reporting_period_id)
            .where(PeriodLock.facility_id == facility_id)
            .where(PeriodLock.project_id == project_id)
            .where(PeriodLock.quarter == quarter.value)
        ).scalar_one_or_none()
        return bool(locked)
