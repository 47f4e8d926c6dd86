"""
Reporting Configuration Schema.

Options of statement generation that are not part of the engine
configuration set: comparatives, tracing, the statement that supplies the
cross-statement surplus/deficit, and the period-lock policy for rollover
reads.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Self

from statement_kernel.logging_config import get_logger

logger = get_logger("modules.reporting.config")


@dataclass
class ReportingConfig:
    """
    Configuration schema for the reporting module.

    Controls comparatives, traces and cross-statement wiring.
    """

    # Fill the previous column from the prior fiscal year
    include_comparatives: bool = True

    # Attach per-line formula traces to statement metadata
    include_traces: bool = True

    # Statement whose surplus/deficit feeds CROSS_STATEMENT_SURPLUS_DEFICIT
    cross_statement_source: str = "REV_EXP"

    # Warn when the rollover source quarter is not locked yet
    warn_on_unlocked_rollover_source: bool = True

    def __post_init__(self):
        if not self.cross_statement_source:
            raise ValueError("cross_statement_source must not be empty")

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with standard defaults."""
        logger.info("reporting_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary."""
        logger.info(
            "reporting_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
