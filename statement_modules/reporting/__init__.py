"""
Statement Reporting Module (``statement_modules.reporting``).

Responsibility
--------------
Read-only module that generates facility financial statements from raw
planning/execution records and statement templates: revenue and
expenditure, balance sheet (assets and liabilities), cash flow,
changes in net assets and budget vs actual, each returned with its
validation result.

Architecture position
---------------------
**Modules layer** -- ``StatementAssembler`` is pure orchestration over the
engines; ``StatementService`` loads templates, records and period locks
through kernel selectors and calls it.

Invariants enforced
-------------------
* No data is written by this module (read-only guarantee).
* Statement figures derive entirely from raw records and templates.

Failure modes
-------------
* Missing or malformed templates -> ``ConfigurationError`` subclasses.
* Missing prior quarter -> ``exists=False`` rollover metadata, not an error.

Audit relevance
---------------
Statement metadata carries the generation timestamp, formula traces and
the rollover source, so each figure can be traced back to its inputs.
"""

from statement_modules.reporting.assembler import (
    AssemblyInputs,
    StatementAssembler,
    merge_warnings,
)
from statement_modules.reporting.config import ReportingConfig
from statement_modules.reporting.models import (
    FinancialStatement,
    RolloverMetadata,
    StatementLine,
    StatementMetadata,
    StatementRequest,
    StatementResult,
    render_to_dict,
)
from statement_modules.reporting.service import (
    ROLLOVER_SOURCE_UNLOCKED_WARNING,
    StatementService,
)

__all__ = [
    # Service
    "StatementService",
    "ROLLOVER_SOURCE_UNLOCKED_WARNING",
    # Assembler
    "AssemblyInputs",
    "StatementAssembler",
    "merge_warnings",
    # Config
    "ReportingConfig",
    # Models
    "FinancialStatement",
    "RolloverMetadata",
    "StatementLine",
    "StatementMetadata",
    "StatementRequest",
    "StatementResult",
    "render_to_dict",
]
