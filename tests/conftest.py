"""
Pytest fixtures for the statement engine test suite.

Provides:
- Structured logging setup and log capture
- The packaged default configuration
- In-memory SQLite sessions for selector/service tests
- Builders for template lines, activity entries and records
- Store seeding helpers for periods, locks, records and template lines
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest

from statement_config import get_active_config
from statement_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from statement_kernel.domain.clock import DeterministicClock
from statement_kernel.domain.dtos import (
    ActivityEntry,
    ActivityRecord,
    EntityType,
    TemplateLine,
    VatReceivable,
)
from statement_kernel.domain.quarters import Quarter
from statement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from statement_kernel.models.activity import ActivityEntryRow, ActivityRecordRow
from statement_kernel.models.period import PeriodLock, ReportingPeriod
from statement_kernel.models.template import StatementTemplateLineRow

FACILITY_ID = UUID("00000000-0000-0000-0000-00000000f001")
PROJECT_ID = UUID("00000000-0000-0000-0000-00000000b001")
PERIOD_ID = UUID("00000000-0000-0000-0000-000000002025")
PREVIOUS_PERIOD_ID = UUID("00000000-0000-0000-0000-000000002024")


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture statement_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            logs = captured_logs()
            assert any(r["message"] == "statement_generated" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("statement_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Configuration
# =============================================================================


@pytest.fixture(scope="session")
def config():
    """The packaged default configuration set."""
    return get_active_config()


@pytest.fixture
def clock():
    return DeterministicClock(datetime(2025, 10, 15, 8, 30, tzinfo=timezone.utc))


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def session():
    """A session on a fresh in-memory SQLite database."""
    init_engine_from_url("sqlite://")
    create_tables()
    db = get_session()
    try:
        yield db
    finally:
        db.close()
        drop_tables()
        reset_engine()


# =============================================================================
# Builders
# =============================================================================


def _dec(value):
    if value is None or isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@pytest.fixture
def make_line():
    """Build a TemplateLine with sensible defaults."""

    def _make(line_code, statement_code="TEST", display_order=None, **kwargs):
        _make.counter += 1
        kwargs.setdefault("line_item", line_code.replace("_", " ").title())
        return TemplateLine(
            statement_code=statement_code,
            line_code=line_code,
            display_order=display_order if display_order is not None else _make.counter * 10,
            **kwargs,
        )

    _make.counter = 0
    return _make


@pytest.fixture
def make_entry():
    """Build an ActivityEntry; quarter values may be given as ints or strings."""

    def _make(
        activity_code,
        q1=None,
        q2=None,
        q3=None,
        q4=None,
        *,
        entity_type=EntityType.EXECUTION,
        facility_id=FACILITY_ID,
        project_id=PROJECT_ID,
        reporting_period_id=PERIOD_ID,
        opening_balance=None,
        **kwargs,
    ):
        return ActivityEntry(
            activity_code=activity_code,
            facility_id=facility_id,
            project_id=project_id,
            reporting_period_id=reporting_period_id,
            entity_type=entity_type,
            q1=_dec(q1),
            q2=_dec(q2),
            q3=_dec(q3),
            q4=_dec(q4),
            opening_balance=_dec(opening_balance),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_record():
    """Build an ActivityRecord around entries."""

    def _make(
        entries=(),
        *,
        quarter=Quarter.Q1,
        entity_type=EntityType.EXECUTION,
        facility_id=FACILITY_ID,
        project_id=PROJECT_ID,
        reporting_period_id=PERIOD_ID,
        computed_totals=None,
        vat=None,
        record_id=None,
        **kwargs,
    ):
        return ActivityRecord(
            id=record_id or uuid4(),
            facility_id=facility_id,
            project_id=project_id,
            reporting_period_id=reporting_period_id,
            entity_type=entity_type,
            quarter=Quarter.parse(quarter),
            entries=tuple(entries),
            computed_totals=computed_totals or {},
            vat_receivables=tuple(
                VatReceivable.from_dict(category, data)
                for category, data in sorted((vat or {}).items())
            ),
            **kwargs,
        )

    return _make


@pytest.fixture
def fiscal_years():
    """Start/end dates of the two fiscal years used across tests."""
    return {
        PREVIOUS_PERIOD_ID: (2024, date(2023, 7, 1), date(2024, 6, 30)),
        PERIOD_ID: (2025, date(2024, 7, 1), date(2025, 6, 30)),
    }


# =============================================================================
# Store seeding
# =============================================================================


@pytest.fixture
def periods(session, fiscal_years):
    """Register fiscal years 2024 and 2025."""
    for period_id, (year, start, end) in fiscal_years.items():
        session.add(ReportingPeriod(
            id=period_id, year=year, period_type="ANNUAL", start_date=start, end_date=end,
        ))
    session.flush()
    return {year: period_id for period_id, (year, _, _) in fiscal_years.items()}


@pytest.fixture
def add_record(session, periods):
    """
    Store an activity record.

    ``entries`` maps activity codes to a tuple of up to four quarter values
    or to a dict of ActivityEntryRow fields.
    """

    def _add(
        entries,
        *,
        quarter="Q1",
        entity_type="execution",
        reporting_period_id=PERIOD_ID,
        facility_id=FACILITY_ID,
        project_id=PROJECT_ID,
        computed_totals=None,
        vat_receivables=None,
    ):
        record = ActivityRecordRow(
            facility_id=facility_id,
            project_id=project_id,
            reporting_period_id=reporting_period_id,
            entity_type=entity_type,
            quarter=quarter,
            project_code="HIV",
            facility_type="hospital",
            computed_totals=computed_totals,
            vat_receivables=vat_receivables,
        )
        for code, values in entries.items():
            if isinstance(values, dict):
                fields = dict(values)
            else:
                quarters = tuple(values) + (None,) * (4 - len(values))
                fields = dict(zip(("q1", "q2", "q3", "q4"), quarters))
            for key in ("q1", "q2", "q3", "q4", "opening_balance"):
                if key in fields:
                    fields[key] = _dec(fields[key])
            record.entries.append(ActivityEntryRow(activity_code=code, **fields))
        session.add(record)
        session.flush()
        return record

    return _add


@pytest.fixture
def lock_period(session, periods):
    """Mark a facility quarter as locked."""

    def _lock(quarter, reporting_period_id=PERIOD_ID, is_locked=True):
        session.add(PeriodLock(
            reporting_period_id=reporting_period_id,
            facility_id=FACILITY_ID,
            project_id=PROJECT_ID,
            quarter=quarter,
            is_locked=is_locked,
        ))
        session.flush()

    return _lock


@pytest.fixture
def add_template_line(session):
    """Store one template line; parents are referenced by line code."""

    def _add(statement_code, line_code, display_order, *, parent=None, **kwargs):
        parent_id = None
        if parent is not None:
            parent_id = session.query(StatementTemplateLineRow.id).filter_by(
                statement_code=statement_code, line_code=parent,
            ).scalar()
        kwargs.setdefault("line_item", line_code.replace("_", " ").title())
        row = StatementTemplateLineRow(
            statement_code=statement_code,
            line_code=line_code,
            display_order=display_order,
            parent_line_id=parent_id,
            **kwargs,
        )
        session.add(row)
        session.flush()
        return row

    return _add
