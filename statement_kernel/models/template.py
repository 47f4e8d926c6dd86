"""
Module: statement_kernel.models.template
Responsibility: ORM persistence for statement template lines (the Template
    Store).  Rows are owned by configuration management; the engine reads
    them through TemplateSelector and never writes them.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (statement_code, line_code) is unique.
    - parent_line_id edges stay within one statement_code (checked when the
      template is compiled, since SQL cannot express it portably).
"""

from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from statement_kernel.db.base import Base, UUIDString


class StatementTemplateLineRow(Base):
    """One line definition of a statement template."""

    __tablename__ = "statement_template_lines"

    __table_args__ = (
        UniqueConstraint("statement_code", "line_code", name="uq_template_line_code"),
        Index("idx_template_statement", "statement_code", "display_order"),
    )

    statement_code: Mapped[str] = mapped_column(String(40), nullable=False)
    line_code: Mapped[str] = mapped_column(String(120), nullable=False)
    line_item: Mapped[str] = mapped_column(String(255), nullable=False)

    parent_line_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("statement_template_lines.id"),
        nullable=True,
    )

    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Source (event) codes feeding this line
    event_mappings: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    calculation_formula: Mapped[str | None] = mapped_column(Text, nullable=True)
    aggregation_method: Mapped[str] = mapped_column(String(10), nullable=False, default="SUM")

    is_total_line: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_subtotal_line: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_annual_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    format_rules: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    # "metadata" is reserved on declarative classes
    line_metadata: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<StatementTemplateLineRow {self.statement_code}:{self.line_code}>"
