"""
Reporting Module (``budget_modules.reporting``).

Read-only budget aggregation (roll-ups, health classification) and the
CSV report set: budget detail, cost control, purchase orders, invoices,
suppliers and the executive summary.
"""

from budget_modules.reporting.aggregator import (
    BudgetHealth,
    BudgetTotals,
    account_totals,
    classify,
    percent,
    project_totals,
    sub_account_available,
)
from budget_modules.reporting.reports import report_filename, rows_to_csv

__all__ = [
    "BudgetHealth",
    "BudgetTotals",
    "account_totals",
    "classify",
    "percent",
    "project_totals",
    "sub_account_available",
    "report_filename",
    "rows_to_csv",
]
