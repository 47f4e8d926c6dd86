"""
Statement Modules.

Thin orchestration layers over the statement kernel and engines.  Each
module contains:
- Domain models (requests and outputs)
- Configuration schemas (generation options)
- A pure assembler and a service facade that loads data through kernel
  selectors

Modules:
- Reporting: financial statements (revenue/expenditure, balance sheet,
  cash flow, changes in net assets, budget vs actual) with validation

Actual processing logic lives in the engines.
"""

from statement_modules import reporting

__all__ = ["reporting"]
