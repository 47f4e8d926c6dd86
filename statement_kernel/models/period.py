"""
Module: statement_kernel.models.period
Responsibility: Reporting periods (fiscal years) and period locks.
Architecture position: Kernel > Models.  May import from db/base.py only.

A PeriodLock row is written by the external approval workflow once a
facility's report for a period/quarter has progressed through approval.
The engine only reads it to decide whether rollover reads are final.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from statement_kernel.db.base import Base, UUIDString


class ReportingPeriod(Base):
    """A fiscal reporting period (one fiscal year)."""

    __tablename__ = "reporting_periods"

    __table_args__ = (
        UniqueConstraint("year", "period_type", name="uq_reporting_period_year"),
    )

    year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_type: Mapped[str] = mapped_column(String(20), nullable=False, default="ANNUAL")
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    def __repr__(self) -> str:
        return f"<ReportingPeriod {self.year} {self.period_type}>"


class PeriodLock(Base):
    """Lock status of one facility/project reporting quarter."""

    __tablename__ = "period_locks"

    __table_args__ = (
        UniqueConstraint(
            "reporting_period_id", "facility_id", "project_id", "quarter",
            name="uq_period_lock_scope",
        ),
        Index("idx_period_lock_lookup", "reporting_period_id", "facility_id"),
    )

    reporting_period_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("reporting_periods.id"), nullable=False,
    )
    facility_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    quarter: Mapped[str] = mapped_column(String(2), nullable=False)
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
