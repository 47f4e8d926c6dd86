"""Read-only selectors over the Template Store and Raw Data Store."""

from statement_kernel.selectors.activity_selector import ActivitySelector
from statement_kernel.selectors.period_selector import PeriodSelector
from statement_kernel.selectors.template_selector import TemplateSelector

__all__ = ["ActivitySelector", "PeriodSelector", "TemplateSelector"]
