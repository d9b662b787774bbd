"""
Ledger Account Store domain models.

Frozen DTOs for the two-level chart of accounts.  Sub-accounts hold the
budget figures; ``available`` is always derived, never stored.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

ZERO = Decimal("0")


class LedgerFigure(str, Enum):
    """Sub-account figures that engines may adjust."""

    COMMITTED = "committed"
    ACTUAL = "actual"


class BudgetLineType(str, Enum):
    """Row type used by budget CSV templates, imports and exports."""

    ACCOUNT = "CUENTA"
    SUB_ACCOUNT = "SUBCUENTA"


@dataclass(frozen=True)
class SubAccount:
    """A budget line owned by exactly one account."""

    id: UUID
    project_id: UUID
    account_id: UUID
    code: str
    description: str
    budgeted: Decimal
    committed: Decimal = ZERO
    actual: Decimal = ZERO
    created_at: datetime | None = None
    version: int = 0

    @property
    def available(self) -> Decimal:
        return self.budgeted - self.committed - self.actual


@dataclass(frozen=True)
class Account:
    """A chart-of-accounts heading with its sub-accounts ordered by code."""

    id: UUID
    project_id: UUID
    code: str
    description: str
    sub_accounts: tuple[SubAccount, ...] = ()
    created_at: datetime | None = None


@dataclass(frozen=True)
class BudgetImportRow:
    """One parsed line of a budget CSV."""

    line_number: int
    code: str
    description: str
    line_type: BudgetLineType
    budgeted: Decimal = ZERO


@dataclass(frozen=True)
class ImportSkip:
    line_number: int
    reason: str


@dataclass(frozen=True)
class BudgetImportResult:
    accounts_created: int
    sub_accounts_created: int
    skipped: tuple[ImportSkip, ...] = ()
