"""
Statement Kernel

Shared foundation for the statement computation engine:
- Structured JSON logging with request-scoped context
- Typed exception hierarchy with machine-readable codes
- Pure domain types (quarters, activity codes, DTOs, clock)
- Read-only persistence layer (ORM tables and selectors)
"""

__version__ = "0.1.0"
