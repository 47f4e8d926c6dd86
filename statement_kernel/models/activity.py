"""
Module: statement_kernel.models.activity
Responsibility: Raw Data Store tables -- planning/execution records and their
    per-activity quarterly entries.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One record per (facility, project, reporting period, entity type,
      quarter); the rollover resolver relies on this uniqueness.
    - One entry per (record, activity_code).
    - Quarterly values are Numeric and nullable: NULL means "not entered".
"""

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from statement_kernel.db.base import Base, UUIDString


class ActivityRecordRow(Base):
    """A submitted planning or execution form for one facility quarter."""

    __tablename__ = "activity_records"

    __table_args__ = (
        UniqueConstraint(
            "facility_id", "project_id", "reporting_period_id", "entity_type", "quarter",
            name="uq_activity_record_scope",
        ),
        Index("idx_activity_record_lookup", "project_id", "facility_id", "reporting_period_id"),
    )

    facility_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    reporting_period_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("reporting_periods.id"), nullable=False,
    )
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    quarter: Mapped[str] = mapped_column(String(2), nullable=False)
    project_code: Mapped[str | None] = mapped_column(String(40), nullable=True)
    facility_type: Mapped[str | None] = mapped_column(String(60), nullable=True)

    computed_totals: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    # {category: {"q1": .., "q1_cleared": .., ...}}
    vat_receivables: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    entries: Mapped[list["ActivityEntryRow"]] = relationship(
        back_populates="record",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class ActivityEntryRow(Base):
    """Quarterly values of one activity inside a record."""

    __tablename__ = "activity_entries"

    __table_args__ = (
        UniqueConstraint("record_id", "activity_code", name="uq_activity_entry_code"),
    )

    record_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("activity_records.id"), nullable=False,
    )
    activity_code: Mapped[str] = mapped_column(String(120), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    q1: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    q2: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    q3: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    q4: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_code: Mapped[str | None] = mapped_column(String(80), nullable=True)
    opening_balance: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    amount_paid: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    payment_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    record: Mapped[ActivityRecordRow] = relationship(back_populates="entries")
