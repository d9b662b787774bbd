"""
Budget Aggregator (``budget_modules.reporting.aggregator``).

Responsibility
--------------
Roll-ups of ledger figures and the budget health classification used by
every report.  Pure functions over ledger DTOs.  ZERO I/O.

Invariants enforced
-------------------
* ``available == budgeted - committed - actual`` at every level.
* Account totals are sums over the account's sub-accounts; project
  totals are sums over the account totals.
* Health thresholds are fixed: negative available is ``exceeded``,
  available under 10 % of budget is ``warning``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from budget_kernel.db.types import round_money
from budget_modules.ledger.models import Account, SubAccount

ZERO = Decimal("0")
WARNING_THRESHOLD = Decimal("0.10")


class BudgetHealth(str, Enum):
    """Budget health of a line, account or project."""

    OK = "ok"
    WARNING = "warning"
    EXCEEDED = "exceeded"

    @property
    def label(self) -> str:
        return _HEALTH_LABELS[self]


_HEALTH_LABELS = {
    BudgetHealth.OK: "OK",
    BudgetHealth.WARNING: "ALERTA",
    BudgetHealth.EXCEEDED: "SOBREPASADO",
}


@dataclass(frozen=True)
class BudgetTotals:
    budgeted: Decimal = ZERO
    committed: Decimal = ZERO
    actual: Decimal = ZERO

    @property
    def available(self) -> Decimal:
        return self.budgeted - self.committed - self.actual

    @property
    def available_to_commit(self) -> Decimal:
        return self.budgeted - self.committed

    @property
    def health(self) -> BudgetHealth:
        return classify(self.available, self.budgeted)

    def __add__(self, other: BudgetTotals) -> BudgetTotals:
        return BudgetTotals(
            budgeted=self.budgeted + other.budgeted,
            committed=self.committed + other.committed,
            actual=self.actual + other.actual,
        )


def sub_account_available(sub_account: SubAccount) -> Decimal:
    return sub_account.budgeted - sub_account.committed - sub_account.actual


def sub_account_totals(sub_account: SubAccount) -> BudgetTotals:
    return BudgetTotals(sub_account.budgeted, sub_account.committed, sub_account.actual)


def account_totals(account: Account) -> BudgetTotals:
    total = BudgetTotals()
    for sub in account.sub_accounts:
        total = total + sub_account_totals(sub)
    return total


def project_totals(accounts: Iterable[Account]) -> BudgetTotals:
    total = BudgetTotals()
    for account in accounts:
        total = total + account_totals(account)
    return total


def classify(available: Decimal, budgeted: Decimal) -> BudgetHealth:
    if available < 0:
        return BudgetHealth.EXCEEDED
    if available < budgeted * WARNING_THRESHOLD:
        return BudgetHealth.WARNING
    return BudgetHealth.OK


def percent(part: Decimal, whole: Decimal) -> str:
    """``part`` as a percentage of ``whole`` to 2 decimals; ``0.00%`` when whole is 0."""
    if whole == 0:
        return "0.00%"
    return f"{round_money(part / whole * 100):.2f}%"
