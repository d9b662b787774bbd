"""
Invoice Module (``budget_modules.invoices``).

Responsibility
--------------
Supplier invoices with VAT/IRPF item math, multi-step approval, payment
(which realises actual spend on the ledger), cancellation and
time-based overdue detection.

Architecture position
---------------------
**Modules layer** -- ``InvoiceService`` is the sole public entry point;
ledger figures change only through ``LedgerService.adjust_actual``.
"""

from budget_modules.invoices.config import InvoiceConfig
from budget_modules.invoices.models import (
    Invoice,
    InvoiceItem,
    InvoiceItemInput,
    InvoiceSortField,
    InvoiceStats,
    InvoiceStatus,
    SweepResult,
)
from budget_modules.invoices.workflows import INVOICE_WORKFLOW

__all__ = [
    "Invoice",
    "InvoiceItem",
    "InvoiceItemInput",
    "InvoiceSortField",
    "InvoiceStats",
    "InvoiceStatus",
    "SweepResult",
    "INVOICE_WORKFLOW",
    "InvoiceConfig",
]
