"""
Report row builders (``budget_modules.reporting.reports``).

Each builder turns DTOs into an ordered list of string rows ready for
CSV encoding.  Column headers and labels are the Spanish ones used by
the production office.  Pure functions; the caller supplies "now".
"""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable, Sequence
from datetime import date, datetime
from decimal import Decimal

from budget_kernel.db.types import format_amount
from budget_modules.invoices.models import Invoice
from budget_modules.ledger.models import Account, BudgetLineType
from budget_modules.procurement.models import PurchaseOrder
from budget_modules.reporting.aggregator import (
    BudgetTotals,
    account_totals,
    percent,
    sub_account_totals,
)
from budget_modules.suppliers.models import Supplier

Row = list[str]

BOM = "\ufeff"

BUDGET_HEADER = [
    "CÓDIGO", "DESCRIPCIÓN", "TIPO", "PRESUPUESTADO", "COMPROMETIDO",
    "REALIZADO", "DISPONIBLE", "% EJECUTADO",
]
COST_CONTROL_HEADER = [
    "CÓDIGO", "DESCRIPCIÓN", "PRESUPUESTADO", "COMPROMETIDO (POs)", "% COMPROMETIDO",
    "DISPONIBLE PARA COMPROMETER", "REALIZADO (Facturas)", "% REALIZADO",
    "DISPONIBLE TOTAL", "ESTADO",
]
PURCHASE_ORDER_HEADER = [
    "NÚMERO PO", "PROVEEDOR", "DESCRIPCIÓN", "CUENTA PRESUPUESTARIA", "IMPORTE",
    "ESTADO", "FECHA CREACIÓN", "FECHA APROBACIÓN", "COMPROMETIDO",
]
INVOICE_HEADER = [
    "NÚMERO FACTURA", "PROVEEDOR", "DESCRIPCIÓN", "PO ASOCIADA", "CUENTA PRESUPUESTARIA",
    "IMPORTE", "ESTADO", "FECHA EMISIÓN", "FECHA VENCIMIENTO", "FECHA PAGO",
]
SUPPLIER_HEADER = [
    "NOMBRE FISCAL", "NOMBRE COMERCIAL", "NIF/CIF", "PAÍS", "MÉTODO DE PAGO",
    "CUENTA BANCARIA", "CERT. BANCARIO", "CERT. CONTRATISTA", "ESTADO CERTIFICADOS",
]


def format_date(value: date | datetime | None) -> str:
    """Day/month/year without zero padding, as the office spreadsheets show it."""
    if value is None:
        return ""
    return f"{value.day}/{value.month}/{value.year}"


def format_timestamp(value: datetime) -> str:
    return f"{format_date(value)}, {value:%H:%M:%S}"


def format_euros(value: Decimal) -> str:
    return f"{format_amount(value)} €"


def _title_rows(title: str, project_name: str, generated_at: datetime) -> list[Row]:
    return [
        [f"{title} - {project_name.upper()}"],
        [f"Fecha de generación: {format_timestamp(generated_at)}"],
        [],
    ]


def _budget_row(code: str, description: str, line_type: str, t: BudgetTotals) -> Row:
    return [
        code, description, line_type,
        format_amount(t.budgeted), format_amount(t.committed),
        format_amount(t.actual), format_amount(t.available),
        percent(t.actual, t.budgeted),
    ]


def budget_rows(accounts: Sequence[Account], totals: BudgetTotals) -> list[Row]:
    """Budget detail: each account row precedes its sub-account rows."""
    rows: list[Row] = [list(BUDGET_HEADER)]
    for account in accounts:
        rows.append(_budget_row(
            account.code, account.description, BudgetLineType.ACCOUNT.value,
            account_totals(account),
        ))
        for sub in account.sub_accounts:
            rows.append(_budget_row(
                sub.code, sub.description, BudgetLineType.SUB_ACCOUNT.value,
                sub_account_totals(sub),
            ))
    rows.append([])
    rows.append(_budget_row("", "TOTAL PROYECTO", "", totals))
    return rows


def _cost_control_row(code: str, description: str, t: BudgetTotals) -> Row:
    return [
        code, description,
        format_amount(t.budgeted),
        format_amount(t.committed), percent(t.committed, t.budgeted),
        format_amount(t.available_to_commit),
        format_amount(t.actual), percent(t.actual, t.budgeted),
        format_amount(t.available),
        t.health.label,
    ]


def cost_control_rows(
    accounts: Sequence[Account],
    totals: BudgetTotals,
    project_name: str,
    generated_at: datetime,
) -> list[Row]:
    rows = _title_rows("INFORME DE COST CONTROL", project_name, generated_at)
    rows.append(list(COST_CONTROL_HEADER))
    for account in accounts:
        rows.append(_cost_control_row(
            account.code, f"{account.description} (TOTAL)", account_totals(account),
        ))
        for sub in account.sub_accounts:
            rows.append(_cost_control_row(sub.code, sub.description, sub_account_totals(sub)))
        rows.append([])
    rows.append(_cost_control_row("", "TOTAL PROYECTO", totals))
    return rows


def purchase_order_rows(
    purchase_orders: Iterable[PurchaseOrder],
    totals: BudgetTotals,
) -> list[Row]:
    """POs newest first as given, then a summary block."""
    rows: list[Row] = [list(PURCHASE_ORDER_HEADER)]
    count = 0
    for po in purchase_orders:
        count += 1
        rows.append([
            po.number, po.supplier_name, po.description, po.budget_account_code,
            format_amount(po.amount), po.status.value,
            format_date(po.created_at), format_date(po.approved_at),
            "SÍ" if po.is_committed else "NO",
        ])
    rows.extend([
        [],
        ["RESUMEN"],
        ["Total POs", str(count)],
        ["Total Comprometido", format_euros(totals.committed)],
    ])
    return rows


def invoice_rows(invoices: Iterable[Invoice], totals: BudgetTotals) -> list[Row]:
    rows: list[Row] = [list(INVOICE_HEADER)]
    count = 0
    for invoice in invoices:
        count += 1
        rows.append([
            invoice.number, invoice.supplier_name, invoice.description,
            invoice.po_number or "", ", ".join(invoice.budget_account_codes),
            format_amount(invoice.total_amount), invoice.status.value,
            format_date(invoice.created_at), format_date(invoice.due_date),
            format_date(invoice.payment_date),
        ])
    rows.extend([
        [],
        ["RESUMEN"],
        ["Total Facturas", str(count)],
        ["Total Pagado", format_euros(totals.actual)],
    ])
    return rows


def supplier_rows(suppliers: Iterable[Supplier]) -> list[Row]:
    rows: list[Row] = [list(SUPPLIER_HEADER)]
    count = 0
    for supplier in suppliers:
        count += 1
        rows.append([
            supplier.fiscal_name, supplier.commercial_name or "", supplier.tax_id,
            supplier.country, supplier.payment_method.value, supplier.bank_account or "",
            "SUBIDO" if supplier.bank_certificate.uploaded else "PENDIENTE",
            "SUBIDO" if supplier.contractors_certificate.uploaded else "PENDIENTE",
            "COMPLETO" if supplier.has_all_certificates else "INCOMPLETO",
        ])
    rows.extend([
        [],
        ["RESUMEN"],
        ["Total Proveedores", str(count)],
    ])
    return rows


def executive_summary_rows(
    totals: BudgetTotals,
    po_count: int,
    invoice_count: int,
    supplier_count: int,
    project_name: str,
    generated_at: datetime,
) -> list[Row]:
    rows = _title_rows("RESUMEN EJECUTIVO", project_name, generated_at)
    rows.extend([
        ["PRESUPUESTO"],
        ["Total Presupuestado", format_euros(totals.budgeted)],
        ["Total Comprometido", format_euros(totals.committed)],
        ["Total Realizado", format_euros(totals.actual)],
        ["Disponible", format_euros(totals.available)],
        ["% Ejecutado", percent(totals.actual, totals.budgeted)],
        [],
        ["ÓRDENES DE COMPRA"],
        ["Total POs", str(po_count)],
        ["Importe Comprometido", format_euros(totals.committed)],
        [],
        ["FACTURAS"],
        ["Total Facturas", str(invoice_count)],
        ["Importe Pagado", format_euros(totals.actual)],
        [],
        ["PROVEEDORES"],
        ["Total Proveedores", str(supplier_count)],
    ])
    return rows


def rows_to_csv(rows: Iterable[Sequence[str]]) -> str:
    """Comma-separated text prefixed with a UTF-8 byte order mark."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerows(rows)
    return BOM + buffer.getvalue()


def report_filename(prefix: str, project_name: str, today: date) -> str:
    return f"{prefix}_{project_name}_{today.isoformat()}.csv"
