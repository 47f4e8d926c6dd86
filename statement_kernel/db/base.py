"""
Module: statement_kernel.db.base
Responsibility: Declarative base for the read-side ORM tables (templates,
    reporting periods, period locks, activity records and entries).
Architecture position: Kernel > DB.  Lowest-level import target; MUST NOT
    import from models/, selectors/ or outer layers.

Invariants enforced:
    - UUID primary keys generated with uuid4 and stored as String(36).
    - Decimal precision: Python Decimal maps to Numeric(38, 9).  Quarterly
      amounts are NEVER stored as float.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import JSON, DateTime, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID stored as String(36).

    Bound values may be UUIDs or UUID strings (facility and project ids
    arrive as text from the data-entry workflow); both are normalized to
    the canonical lowercase form so lookups match.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, PyUUID):
            value = PyUUID(str(value))
        return str(value)

    def process_result_value(self, value, dialect):
        return PyUUID(value) if value is not None else None


class Base(DeclarativeBase):
    """
    Declarative base for all statement-engine tables.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - Decimal maps to Numeric(38, 9).
        - dict maps to JSON (formData-style payloads: mappings, totals, VAT).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        dict[str, Any]: JSON,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )
