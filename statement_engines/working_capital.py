"""
statement_engines.working_capital -- Receivable/payable changes for cash flow.

Responsibility:
    Compare current and previous balances of the configured receivable and
    payable event codes and derive the indirect-method cash-flow
    adjustment for each side.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Fed with event balances
    by the assembler; its result is both a formula context value
    (``WORKING_CAPITAL_CHANGE``) and statement metadata read by the
    working-capital validation rules.

Invariants enforced:
    - change = current - previous.
    - Receivables: adjustment = -change (an increase absorbs cash).
    - Payables: adjustment = +change (an increase retains cash).
    - Without previous balances the baseline is 0 and a warning is
      recorded.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from statement_config.schema import WorkingCapitalConfig
from statement_engines.tracer import traced_engine
from statement_kernel.logging_config import get_logger

logger = get_logger("engines.working_capital")

NO_PREVIOUS_PERIOD_WARNING = (
    "No previous period found. Using zero as baseline for previous period balances."
)

_ZERO = Decimal("0")


class AccountType(str, Enum):
    RECEIVABLES = "RECEIVABLES"
    PAYABLES = "PAYABLES"


@dataclass(frozen=True)
class WorkingCapitalChange:
    """Period-over-period movement of one side of working capital."""

    account_type: AccountType
    current_balance: Decimal
    previous_balance: Decimal
    change: Decimal
    cash_flow_adjustment: Decimal
    event_codes: tuple[str, ...]

    def to_dict(self) -> dict:
        return {
            "account_type": self.account_type.value,
            "current_balance": str(self.current_balance),
            "previous_balance": str(self.previous_balance),
            "change": str(self.change),
            "cash_flow_adjustment": str(self.cash_flow_adjustment),
            "event_codes": list(self.event_codes),
        }


@dataclass(frozen=True)
class WorkingCapitalResult:
    receivables: WorkingCapitalChange
    payables: WorkingCapitalChange
    has_previous_period: bool
    warnings: tuple[str, ...] = ()

    def side(self, account_type: AccountType | str) -> WorkingCapitalChange:
        if AccountType(account_type) is AccountType.RECEIVABLES:
            return self.receivables
        return self.payables

    def cash_flow_adjustment(self, account_type: AccountType | str) -> Decimal:
        return self.side(account_type).cash_flow_adjustment

    def to_dict(self) -> dict:
        return {
            "receivables": self.receivables.to_dict(),
            "payables": self.payables.to_dict(),
            "has_previous_period": self.has_previous_period,
            "warnings": list(self.warnings),
        }


def apply_cash_flow_sign(account_type: AccountType, change: Decimal) -> Decimal:
    """Indirect-method sign: receivables move against cash, payables with it."""
    if account_type is AccountType.RECEIVABLES:
        return -change
    return change


class WorkingCapitalCalculator:
    """
    Working-capital change calculator.

    Contract:
        No I/O, deterministic.  Balances are passed in as
        ``event_code -> balance`` maps.
    Guarantees:
        - Event codes missing from a map count as 0.
        - ``warnings`` carries ``NO_PREVIOUS_PERIOD_WARNING`` exactly when
          ``previous_balances`` is None.
    Non-goals:
        - Does not judge whether balances are plausible; that is the
          validation engine's job.
    """

    def __init__(self, config: WorkingCapitalConfig | None = None):
        self._config = config or WorkingCapitalConfig()

    @traced_engine(
        "working_capital", "1.0",
        fingerprint_fields=("current_balances", "previous_balances"),
    )
    def calculate(
        self,
        *,
        current_balances: Mapping[str, Decimal],
        previous_balances: Mapping[str, Decimal] | None,
    ) -> WorkingCapitalResult:
        warnings: list[str] = []
        if previous_balances is None:
            warnings.append(NO_PREVIOUS_PERIOD_WARNING)
            logger.warning("working_capital_no_previous_period")

        receivables = self._side(
            AccountType.RECEIVABLES,
            self._config.receivables_event_codes,
            current_balances,
            previous_balances or {},
        )
        payables = self._side(
            AccountType.PAYABLES,
            self._config.payables_event_codes,
            current_balances,
            previous_balances or {},
        )

        logger.info(
            "working_capital_calculated",
            extra={
                "receivables_change": str(receivables.change),
                "receivables_adjustment": str(receivables.cash_flow_adjustment),
                "payables_change": str(payables.change),
                "payables_adjustment": str(payables.cash_flow_adjustment),
            },
        )

        return WorkingCapitalResult(
            receivables=receivables,
            payables=payables,
            has_previous_period=previous_balances is not None,
            warnings=tuple(warnings),
        )

    @staticmethod
    def _side(
        account_type: AccountType,
        event_codes: tuple[str, ...],
        current: Mapping[str, Decimal],
        previous: Mapping[str, Decimal],
    ) -> WorkingCapitalChange:
        current_total = sum((current.get(code) or _ZERO for code in event_codes), _ZERO)
        previous_total = sum((previous.get(code) or _ZERO for code in event_codes), _ZERO)
        change = current_total - previous_total
        return WorkingCapitalChange(
            account_type=account_type,
            current_balance=current_total,
            previous_balance=previous_total,
            change=change,
            cash_flow_adjustment=apply_cash_flow_sign(account_type, change),
            event_codes=tuple(event_codes),
        )
