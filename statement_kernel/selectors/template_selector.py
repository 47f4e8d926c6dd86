"""
Module: statement_kernel.selectors.template_selector
Responsibility: Read template lines for a statement code, ordered by
    display order, with parent references resolved to line codes.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from statement_kernel.domain.dtos import TemplateLine
from statement_kernel.models.template import StatementTemplateLineRow
from statement_kernel.selectors.base import BaseSelector


class TemplateSelector(BaseSelector[StatementTemplateLineRow]):
    """
    Selector for statement template lines.

    Guarantees:
        - Only active lines are returned.
        - Lines come back ordered by (display_order, line_code).
        - An unknown statement code yields an empty tuple; deciding whether
          that is fatal is the caller's job.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def lines_for(self, statement_code: str) -> tuple[TemplateLine, ...]:
        rows = self.session.execute(
            select(StatementTemplateLineRow)
            .where(StatementTemplateLineRow.statement_code == statement_code)
            .where(StatementTemplateLineRow.is_active.is_(True))
            .order_by(
                StatementTemplateLineRow.display_order,
                StatementTemplateLineRow.line_code,
            )
        ).scalars().all()

        codes_by_id = {row.id: row.line_code for row in rows}
        return tuple(
            TemplateLine.from_model(
                row,
                parent_line_code=codes_by_id.get(row.parent_line_id)
                if row.parent_line_id else None,
            )
            for row in rows
        )

    def statement_codes(self) -> tuple[str, ...]:
        """All statement codes that have at least one active line."""
        codes = self.session.execute(
            select(StatementTemplateLineRow.statement_code)
            .where(StatementTemplateLineRow.is_active.is_(True))
            .distinct()
        ).scalars().all()
        return tuple(sorted(codes))
