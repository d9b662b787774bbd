"""
Reporting Service (``budget_modules.reporting.service``).

Responsibility
--------------
Reads the ledger, documents and suppliers of one project and renders
the six CSV reports.  Project totals always come from the ledger
roll-up, never from document sums.

Architecture position
---------------------
**Modules layer** -- read side only.  It never writes; invoice listing
runs with ``refresh_overdue=False`` so a report cannot flip statuses.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from sqlalchemy.orm import Session

from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.logging_config import get_logger
from budget_modules.invoices.service import InvoiceService
from budget_modules.ledger.service import LedgerService
from budget_modules.procurement.service import ProcurementService
from budget_modules.reporting import reports
from budget_modules.reporting.aggregator import BudgetTotals, project_totals
from budget_modules.suppliers.service import SupplierService

logger = get_logger("modules.reporting.service")


class ReportKind(str, Enum):
    """Available reports; the value is the CLI name."""

    BUDGET = "budget"
    COST_CONTROL = "cost-control"
    PURCHASE_ORDERS = "pos"
    INVOICES = "invoices"
    SUPPLIERS = "suppliers"
    EXECUTIVE = "executive"

    @property
    def file_prefix(self) -> str:
        return _FILE_PREFIXES[self]


_FILE_PREFIXES = {
    ReportKind.BUDGET: "Presupuesto",
    ReportKind.COST_CONTROL: "Cost_Control",
    ReportKind.PURCHASE_ORDERS: "Ordenes_Compra",
    ReportKind.INVOICES: "Facturas",
    ReportKind.SUPPLIERS: "Proveedores",
    ReportKind.EXECUTIVE: "Resumen_Ejecutivo",
}


@dataclass(frozen=True)
class RenderedReport:
    kind: ReportKind
    filename: str
    rows: list
    content: str


class ReportingService:
    """Report generation for one project."""

    def __init__(
        self,
        session: Session,
        project_id: UUID,
        project_name: str = "Proyecto",
        clock: Clock | None = None,
    ):
        self._project_name = project_name
        self._clock = clock or SystemClock()
        self._ledger = LedgerService(session, project_id, clock=self._clock, auto_commit=False)
        self._procurement = ProcurementService(session, project_id, clock=self._clock)
        self._invoices = InvoiceService(session, project_id, clock=self._clock)
        self._suppliers = SupplierService(session, project_id, clock=self._clock)

    def totals(self) -> BudgetTotals:
        return project_totals(self._ledger.list_accounts())

    def budget_report(self) -> list:
        accounts = self._ledger.list_accounts()
        return reports.budget_rows(accounts, project_totals(accounts))

    def cost_control_report(self) -> list:
        accounts = self._ledger.list_accounts()
        return reports.cost_control_rows(
            accounts, project_totals(accounts), self._project_name, self._clock.now(),
        )

    def purchase_orders_report(self) -> list:
        return reports.purchase_order_rows(self._procurement.list_pos(), self.totals())

    def invoices_report(self) -> list:
        invoices = self._invoices.list_invoices(refresh_overdue=False)
        return reports.invoice_rows(invoices, self.totals())

    def suppliers_report(self) -> list:
        return reports.supplier_rows(self._suppliers.list_suppliers())

    def executive_summary(self) -> list:
        return reports.executive_summary_rows(
            self.totals(),
            po_count=len(self._procurement.list_pos()),
            invoice_count=len(self._invoices.list_invoices(refresh_overdue=False)),
            supplier_count=len(self._suppliers.list_suppliers()),
            project_name=self._project_name,
            generated_at=self._clock.now(),
        )

    def render(self, kind: ReportKind | str) -> RenderedReport:
        """Build the rows of ``kind`` and encode them as CSV text."""
        kind = ReportKind(kind)
        builders = {
            ReportKind.BUDGET: self.budget_report,
            ReportKind.COST_CONTROL: self.cost_control_report,
            ReportKind.PURCHASE_ORDERS: self.purchase_orders_report,
            ReportKind.INVOICES: self.invoices_report,
            ReportKind.SUPPLIERS: self.suppliers_report,
            ReportKind.EXECUTIVE: self.executive_summary,
        }
        rows = builders[kind]()
        filename = reports.report_filename(
            kind.file_prefix, self._project_name, self._clock.today(),
        )
        logger.info("report_generated", extra={
            "report": kind.value,
            "report_filename": filename,
            "row_count": len(rows),
        })
        return RenderedReport(
            kind=kind, filename=filename, rows=rows, content=reports.rows_to_csv(rows),
        )
