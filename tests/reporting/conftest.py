"""
Reporting-specific test fixtures.

Provides:
- ReportingConfig and StatementService instances
"""

import pytest

from statement_modules.reporting.config import ReportingConfig
from statement_modules.reporting.service import StatementService


@pytest.fixture
def reporting_config() -> ReportingConfig:
    """Standard reporting configuration for tests."""
    return ReportingConfig.with_defaults()


@pytest.fixture
def statement_service(session, clock, config, reporting_config) -> StatementService:
    """StatementService wired to the test session."""
    return StatementService(
        session=session,
        clock=clock,
        config=config,
        reporting=reporting_config,
    )
