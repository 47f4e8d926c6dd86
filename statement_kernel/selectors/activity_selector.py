"""
Module: statement_kernel.selectors.activity_selector
Responsibility: Read planning/execution records for a facility, project,
    reporting period and quarter.

Failure modes:
    - MultipleResultsFound if the uniqueness constraint on records has been
      bypassed; the rollover resolver depends on exactly one prior record.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from statement_kernel.domain.dtos import ActivityRecord, EntityType
from statement_kernel.domain.quarters import Quarter
from statement_kernel.models.activity import ActivityRecordRow
from statement_kernel.selectors.base import BaseSelector


class ActivitySelector(BaseSelector[ActivityRecordRow]):
    """Selector for raw activity records."""

    def __init__(self, session: Session):
        super().__init__(session)

    def record(
        self,
        *,
        facility_id: UUID,
        project_id: UUID,
        reporting_period_id: UUID,
        quarter: Quarter,
        entity_type: EntityType = EntityType.EXECUTION,
    ) -> ActivityRecord | None:
        """The unique record for the scope, or None."""
        row = self.session.execute(
            select(ActivityRecordRow)
            .where(ActivityRecordRow.facility_id == facility_id)
            .where(ActivityRecordRow.project_id == project_id)
            .where(ActivityRecordRow.reporting_period_id == reporting_period_id)
            .where(ActivityRecordRow.entity_type == entity_type.value)
            .where(ActivityRecordRow.quarter == quarter.value)
        ).scalar_one_or_none()
        return ActivityRecord.from_model(row) if row is not None else None

    def latest_record(
        self,
        *,
        facility_id: UUID,
        project_id: UUID,
        reporting_period_id: UUID,
        entity_type: EntityType,
    ) -> ActivityRecord | None:
        """The record with the highest quarter in a period (planning is annual)."""
        rows = self.session.execute(
            select(ActivityRecordRow)
            .where(ActivityRecordRow.facility_id == facility_id)
            .where(ActivityRecordRow.project_id == project_id)
            .where(ActivityRecordRow.reporting_period_id == reporting_period_id)
            .where(ActivityRecordRow.entity_type == entity_type.value)
            .order_by(ActivityRecordRow.quarter.desc())
        ).scalars().all()
        return ActivityRecord.from_model(rows[0]) if rows else None
