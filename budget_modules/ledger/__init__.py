"""
Ledger Account Store (``budget_modules.ledger``).

Responsibility
--------------
The two-level chart of accounts of a project (accounts -> sub-accounts)
and the budget figures held on each sub-account: ``budgeted``,
``committed`` and ``actual``, with ``available`` derived.

Architecture position
---------------------
**Modules layer** -- the single choke point for figure changes.  The
procurement and invoice engines call ``adjust_committed`` /
``adjust_actual`` and never write figures directly.
"""

from budget_modules.ledger.config import LedgerStoreConfig
from budget_modules.ledger.models import (
    Account,
    BudgetImportResult,
    BudgetImportRow,
    BudgetLineType,
    ImportSkip,
    LedgerFigure,
    SubAccount,
)

__all__ = [
    "Account",
    "BudgetImportResult",
    "BudgetImportRow",
    "BudgetLineType",
    "ImportSkip",
    "LedgerFigure",
    "SubAccount",
    "LedgerStoreConfig",
]
