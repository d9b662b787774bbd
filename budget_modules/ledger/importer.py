"""
Budget CSV parsing (``budget_modules.ledger.importer``).

Pure functions: text in, parsed rows out.  ZERO database access.  The
service turns parsed rows into accounts and sub-accounts.

Columns: ``CÓDIGO, DESCRIPCIÓN, TIPO, PRESUPUESTADO``.  ``TIPO`` is
``CUENTA`` or ``SUBCUENTA``.  The header line is always skipped.  A UTF-8
BOM is stripped.
"""

from __future__ import annotations

import csv
import io
from decimal import Decimal

from budget_kernel.db.types import to_decimal
from budget_kernel.exceptions import InvalidAmountError
from budget_modules.ledger.models import BudgetImportRow, BudgetLineType, ImportSkip

IMPORT_HEADER = ("CÓDIGO", "DESCRIPCIÓN", "TIPO", "PRESUPUESTADO")

TEMPLATE_ROWS: tuple[tuple[str, ...], ...] = (
    IMPORT_HEADER,
    ("01", "GUION Y MÚSICA", "CUENTA", ""),
    ("01-01-01", "Derechos de autor", "SUBCUENTA", "5000"),
    ("01-01-02", "Revisiones de guion", "SUBCUENTA", "2000"),
    ("02", "PREPRODUCCIÓN", "CUENTA", ""),
    ("02-01-01", "Casting", "SUBCUENTA", "3000"),
)


def parent_code_of(sub_account_code: str) -> str:
    """The owning account code: everything before the first ``-``."""
    return sub_account_code.split("-")[0]


def parse_budget_csv(text: str) -> tuple[list[BudgetImportRow], list[ImportSkip]]:
    """
    Parse budget CSV text into rows, collecting unusable lines as skips.

    Lines missing a code, description or type are skipped silently
    (blank spacer lines are common); lines with an unknown type or an
    unreadable amount are reported.
    """
    rows: list[BudgetImportRow] = []
    skips: list[ImportSkip] = []

    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    for line_number, raw in enumerate(reader, start=1):
        if line_number == 1:
            continue
        cells = [c.strip() for c in raw] + [""] * (4 - len(raw))
        code, description, type_label, budgeted_raw = cells[:4]
        if not code or not description or not type_label:
            continue

        try:
            line_type = BudgetLineType(type_label.upper())
        except ValueError:
            skips.append(ImportSkip(line_number, f"unknown type {type_label!r}"))
            continue

        budgeted = Decimal("0")
        if line_type == BudgetLineType.SUB_ACCOUNT and budgeted_raw:
            try:
                budgeted = to_decimal(budgeted_raw, "budgeted")
            except InvalidAmountError:
                skips.append(ImportSkip(line_number, f"invalid amount {budgeted_raw!r}"))
                continue
            if budgeted < 0:
                skips.append(ImportSkip(line_number, "negative budget"))
                continue

        rows.append(BudgetImportRow(line_number, code, description, line_type, budgeted))

    return rows, skips
