"""
Tests for budget roll-ups, health classification and CSV reports.
"""

from __future__ import annotations

from datetime import date, datetime, UTC
from decimal import Decimal
from uuid import uuid4

import pytest

from budget_modules.invoices.models import InvoiceItemInput
from budget_modules.ledger.models import SubAccount
from budget_modules.reporting.aggregator import (
    BudgetHealth,
    BudgetTotals,
    classify,
    percent,
    sub_account_available,
    sub_account_totals,
)
from budget_modules.reporting.reports import (
    BOM,
    format_date,
    report_filename,
    rows_to_csv,
)
from budget_modules.reporting.service import ReportKind
from budget_modules.suppliers.models import Certificate
from tests.conftest import TEST_ACTOR_ID


class TestAggregator:
    @pytest.mark.parametrize("available, budgeted, expected", [
        (Decimal("-0.01"), Decimal("100"), BudgetHealth.EXCEEDED),
        (Decimal("9.99"), Decimal("100"), BudgetHealth.WARNING),
        (Decimal("10"), Decimal("100"), BudgetHealth.OK),
        (Decimal("0"), Decimal("0"), BudgetHealth.OK),
    ])
    def test_classify(self, available, budgeted, expected):
        assert classify(available, budgeted) == expected

    def test_health_labels(self):
        assert [h.label for h in BudgetHealth] == ["OK", "ALERTA", "SOBREPASADO"]

    def test_percent(self):
        assert percent(Decimal("1900"), Decimal("12000")) == "15.83%"
        assert percent(Decimal("5"), Decimal("0")) == "0.00%"

    def test_totals_add(self):
        total = BudgetTotals(Decimal("100"), Decimal("20"), Decimal("30")) + BudgetTotals(
            Decimal("50"), Decimal("0"), Decimal("60"),
        )
        assert total.available == Decimal("40")
        assert total.available_to_commit == Decimal("130")
        assert total.health == BudgetHealth.OK

    def test_sub_account_available(self):
        sub = SubAccount(
            id=uuid4(), project_id=uuid4(), account_id=uuid4(), code="01-01-01",
            description="Guion", budgeted=Decimal("1000"),
            committed=Decimal("300"), actual=Decimal("750"),
        )
        assert sub_account_available(sub) == Decimal("-50")
        assert sub_account_totals(sub).health == BudgetHealth.EXCEEDED


class TestFormatting:
    def test_csv_has_bom_and_quotes(self):
        content = rows_to_csv([["CÓDIGO", "A, B"], []])
        assert content.startswith(BOM)
        assert content == BOM + 'CÓDIGO,"A, B"\n\n'

    def test_dates_without_padding(self):
        assert format_date(date(2024, 3, 5)) == "5/3/2024"
        assert format_date(None) == ""

    def test_filename(self):
        assert report_filename("Presupuesto", "Rodaje", date(2024, 1, 1)) == (
            "Presupuesto_Rodaje_2024-01-01.csv"
        )


@pytest.fixture
def activity(
    procurement_service, invoice_service, supplier_service, sub_account, second_sub_account,
):
    """1500 committed on 01-01-01; 1900 paid on 01-01-02, leaving it under 10 %."""
    procurement_service.create_po(
        "Alquiler de focos", sub_account.id, "1500", TEST_ACTOR_ID, supplier_name="Luces SL",
    )
    invoice = invoice_service.create_invoice(
        "Revisión final",
        [InvoiceItemInput("Revisión", second_sub_account.id, 1, "1900")],
        TEST_ACTOR_ID, supplier_name="Guionistas SL",
    )
    invoice_service.mark_as_paid(invoice.id, TEST_ACTOR_ID)
    supplier_service.create_supplier(
        "Luces SL", "B1", "ES", TEST_ACTOR_ID,
        bank_certificate=Certificate(True, date(2025, 1, 1)),
    )


class TestReportingService:
    def test_budget_report(self, reporting_service, activity):
        rows = reporting_service.budget_report()

        assert rows[1] == [
            "01", "GUION Y MÚSICA", "CUENTA",
            "12000.00", "1500.00", "1900.00", "8600.00", "15.83%",
        ]
        assert rows[2][:3] == ["01-01-01", "Derechos de autor", "SUBCUENTA"]
        assert rows[3][-2:] == ["100.00", "95.00%"]
        assert rows[-2] == []
        assert rows[-1][:2] == ["", "TOTAL PROYECTO"]

    def test_cost_control_report(self, reporting_service, activity):
        rows = reporting_service.cost_control_report()

        assert rows[:3] == [
            ["INFORME DE COST CONTROL - RODAJE"],
            ["Fecha de generación: 1/1/2024, 12:00:00"],
            [],
        ]
        assert rows[4] == [
            "01", "GUION Y MÚSICA (TOTAL)", "12000.00", "1500.00", "12.50%",
            "10500.00", "1900.00", "15.83%", "8600.00", "OK",
        ]
        assert rows[5][-1] == "OK"
        assert rows[6][-1] == "ALERTA"
        assert rows[7] == []
        assert rows[8][1] == "TOTAL PROYECTO"

    def test_exceeded_line(self, reporting_service, ledger_service, second_sub_account, activity):
        ledger_service.adjust_actual(second_sub_account.id, "200", actor_id=TEST_ACTOR_ID)
        rows = reporting_service.cost_control_report()
        assert rows[6][-2:] == ["-100.00", "SOBREPASADO"]

    def test_zero_budget_percentages(self, reporting_service, ledger_service, account):
        ledger_service.create_sub_account(account.id, "01-01-09", "Sin presupuesto", "0", TEST_ACTOR_ID)
        rows = reporting_service.budget_report()
        assert rows[2][-1] == "0.00%"

    def test_purchase_order_report(self, reporting_service, activity):
        rows = reporting_service.purchase_orders_report()
        assert rows[1] == [
            "0001", "Luces SL", "Alquiler de focos", "01-01-01", "1500.00",
            "approved", "1/1/2024", "1/1/2024", "SÍ",
        ]
        assert rows[-2:] == [["Total POs", "1"], ["Total Comprometido", "1500.00 €"]]

    def test_invoice_report(self, reporting_service, activity):
        rows = reporting_service.invoices_report()
        assert rows[1][:7] == [
            "0001", "Guionistas SL", "Revisión final", "", "01-01-02", "2299.00", "paid",
        ]
        assert rows[1][-1] == "1/1/2024"
        assert rows[-1] == ["Total Pagado", "1900.00 €"]

    def test_supplier_report(self, reporting_service, activity):
        rows = reporting_service.suppliers_report()
        assert rows[1][-3:] == ["SUBIDO", "PENDIENTE", "INCOMPLETO"]
        assert rows[-1] == ["Total Proveedores", "1"]

    def test_executive_summary(self, reporting_service, activity):
        rows = reporting_service.executive_summary()
        assert rows[0] == ["RESUMEN EJECUTIVO - RODAJE"]
        assert ["% Ejecutado", "15.83%"] in rows
        assert ["Total Facturas", "1"] in rows

    @pytest.mark.parametrize("kind, filename", [
        ("budget", "Presupuesto_Rodaje_2024-01-01.csv"),
        ("cost-control", "Cost_Control_Rodaje_2024-01-01.csv"),
        ("pos", "Ordenes_Compra_Rodaje_2024-01-01.csv"),
        ("invoices", "Facturas_Rodaje_2024-01-01.csv"),
        ("suppliers", "Proveedores_Rodaje_2024-01-01.csv"),
        ("executive", "Resumen_Ejecutivo_Rodaje_2024-01-01.csv"),
    ])
    def test_render_every_kind(self, reporting_service, activity, captured_logs, kind, filename):
        rendered = reporting_service.render(kind)

        assert rendered.kind == ReportKind(kind)
        assert rendered.filename == filename
        assert rendered.content.startswith(BOM)
        assert rendered.content.count("\n") == len(rendered.rows)
        logged = [r for r in captured_logs() if r["message"] == "report_generated"]
        assert logged[-1]["report"] == kind
        assert logged[-1]["report_filename"] == filename

    def test_render_does_not_flip_overdue(
        self, reporting_service, invoice_service, sub_account, deterministic_clock,
    ):
        invoice_service.create_invoice(
            "Catering", [InvoiceItemInput("Comida", sub_account.id, 1, "10")],
            TEST_ACTOR_ID, supplier_name="X", due_date=date(2023, 12, 1),
        )
        deterministic_clock.set_time(datetime(2024, 2, 1, 9, 0, tzinfo=UTC))

        rows = reporting_service.invoices_report()
        assert rows[1][6] == "pending"
