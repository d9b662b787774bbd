"""
Tests for the Invoice engine.

Validates:
- item math (base rounded first, then VAT, IRPF and total)
- creation: validation, PO linkage, approval routing
- payment: realises item base amounts on the ledger, atomically
- cancellation and deletion rules
- overdue sweep and listing
"""

from __future__ import annotations

from datetime import date, datetime, UTC
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, strategies as st
from sqlalchemy import update

from budget_kernel.domain.approval import ApproverType
from budget_kernel.exceptions import (
    ApproverNotAllowedError,
    ConflictError,
    DocumentDeletionBlockedError,
    InvalidAmountError,
    InvalidStateError,
    SubAccountNotFoundError,
    ValidationError,
)
from budget_modules.approvals.models import ApprovalStepTemplate, DocumentKind
from budget_modules.invoices.calculations import compute_item_amounts
from budget_modules.invoices.models import InvoiceItemInput, InvoiceStatus
from budget_modules.invoices.orm import InvoiceModel
from budget_modules.invoices.service import InvoiceService
from tests.conftest import APPROVER_A, APPROVER_B, TEST_ACTOR_ID, TEST_PROJECT_ID


def _item(sub_account_id, unit_price, quantity=1, vat_rate=21, irpf_rate=0, description="Línea"):
    return InvoiceItemInput(description, sub_account_id, quantity, unit_price, vat_rate, irpf_rate)


@pytest.fixture
def approval_invoice_service(session, deterministic_clock, approval_service) -> InvoiceService:
    """Invoice engine whose invoices need APPROVER_A's sign-off."""
    approval_service.set_templates(DocumentKind.INVOICE, [
        ApprovalStepTemplate(ApproverType.FIXED, approvers=(APPROVER_A,)),
    ], TEST_ACTOR_ID)
    return InvoiceService(session, TEST_PROJECT_ID, clock=deterministic_clock)


@pytest.fixture
def two_line_invoice(invoice_service, sub_account, second_sub_account):
    return invoice_service.create_invoice(
        "Factura rodaje",
        [_item(sub_account.id, "100"), _item(second_sub_account.id, "250", irpf_rate=15)],
        TEST_ACTOR_ID,
        supplier_name="Luces SL",
    )


class TestItemMath:
    def test_rounding_order(self):
        amounts = compute_item_amounts(
            Decimal("3"), Decimal("33.335"), Decimal("21"), Decimal("15"),
        )
        assert amounts.base_amount == Decimal("100.01")
        assert amounts.vat_amount == Decimal("21.00")
        assert amounts.irpf_amount == Decimal("15.00")
        assert amounts.total_amount == Decimal("106.01")

    @given(
        quantity=st.decimals(min_value=Decimal("0.01"), max_value=1000, places=2),
        unit_price=st.decimals(min_value=Decimal("0.01"), max_value=100000, places=2),
        vat=st.sampled_from([Decimal("0"), Decimal("4"), Decimal("10"), Decimal("21")]),
        irpf=st.sampled_from([Decimal("0"), Decimal("7"), Decimal("15"), Decimal("19")]),
    )
    def test_total_identity(self, quantity, unit_price, vat, irpf):
        a = compute_item_amounts(quantity, unit_price, vat, irpf)
        assert a.total_amount == a.base_amount + a.vat_amount - a.irpf_amount
        assert a.base_amount.as_tuple().exponent == -2


class TestCreateInvoice:
    def test_auto_approved_when_no_approvers(self, two_line_invoice):
        invoice = two_line_invoice
        assert invoice.number == "0001"
        assert invoice.status == InvoiceStatus.PENDING
        assert invoice.auto_approved is True
        assert invoice.due_date == date(2024, 1, 31)
        assert invoice.base_amount == Decimal("350.00")
        assert invoice.vat_amount == Decimal("73.50")
        assert invoice.irpf_amount == Decimal("37.50")
        assert invoice.total_amount == Decimal("386.00")
        assert invoice.budget_account_codes == ("01-01-01", "01-01-02")
        assert [i.position for i in invoice.items] == [0, 1]

    def test_routed_to_approval(self, approval_invoice_service, sub_account):
        invoice = approval_invoice_service.create_invoice(
            "Factura", [_item(sub_account.id, "10")], TEST_ACTOR_ID, supplier_name="X",
        )
        assert invoice.status == InvoiceStatus.PENDING_APPROVAL
        assert invoice.auto_approved is False
        assert invoice.approval_steps[0].approvers == frozenset({APPROVER_A})

    def test_default_templates_without_members_auto_approve(self, session, deterministic_clock, sub_account):
        service = InvoiceService(session, TEST_PROJECT_ID, clock=deterministic_clock)
        invoice = service.create_invoice(
            "Factura", [_item(sub_account.id, "10")], TEST_ACTOR_ID, supplier_name="X",
        )
        assert invoice.status == InvoiceStatus.PENDING

    def test_blank_description_rejected(self, invoice_service, sub_account):
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(" ", [_item(sub_account.id, "1")], TEST_ACTOR_ID, supplier_name="X")

    @pytest.mark.parametrize("item, error", [
        (InvoiceItemInput("x", None, 1, "1"), ValidationError),
        (InvoiceItemInput(" ", "sub", 1, "1"), ValidationError),
        (InvoiceItemInput("x", "sub", 0, "1"), InvalidAmountError),
        (InvoiceItemInput("x", "sub", 1, "-1"), InvalidAmountError),
        (InvoiceItemInput("x", "sub", 1, "1", vat_rate=16), InvalidAmountError),
        (InvoiceItemInput("x", "sub", 1, "1", irpf_rate=21), InvalidAmountError),
    ])
    def test_invalid_items_rejected(self, invoice_service, sub_account, item, error):
        if item.sub_account_id == "sub":
            item = InvoiceItemInput(
                item.description, sub_account.id, item.quantity, item.unit_price,
                item.vat_rate, item.irpf_rate,
            )
        with pytest.raises(error):
            invoice_service.create_invoice("Factura", [item], TEST_ACTOR_ID, supplier_name="X")

    def test_at_least_one_item(self, invoice_service):
        with pytest.raises(ValidationError):
            invoice_service.create_invoice("Factura", [], TEST_ACTOR_ID, supplier_name="X")

    def test_unknown_sub_account(self, invoice_service):
        with pytest.raises(SubAccountNotFoundError):
            invoice_service.create_invoice("Factura", [_item(uuid4(), "1")], TEST_ACTOR_ID, supplier_name="X")

    def test_po_must_be_approved(
        self, invoice_service, procurement_service, approval_service, sub_account,
    ):
        approval_service.set_templates(DocumentKind.PURCHASE_ORDER, [
            ApprovalStepTemplate(ApproverType.FIXED, approvers=(APPROVER_B,)),
        ], TEST_ACTOR_ID)
        po = procurement_service.create_po("Focos", sub_account.id, "500", TEST_ACTOR_ID, supplier_name="X")

        with pytest.raises(InvalidStateError):
            invoice_service.create_invoice("Factura", [_item(sub_account.id, "1")], TEST_ACTOR_ID, po_id=po.id)

        procurement_service.approve_po(po.id, APPROVER_B)
        invoice = invoice_service.create_invoice(
            "Factura", [_item(sub_account.id, "1")], TEST_ACTOR_ID, po_id=po.id,
        )
        assert invoice.po_number == po.number
        assert invoice.supplier_name == "X"

    def test_supplier_or_po_required(self, invoice_service, sub_account):
        with pytest.raises(ValidationError):
            invoice_service.create_invoice("Factura", [_item(sub_account.id, "1")], TEST_ACTOR_ID)


class TestApproval:
    def test_approve_moves_to_pending(self, approval_invoice_service, sub_account):
        invoice = approval_invoice_service.create_invoice(
            "Factura", [_item(sub_account.id, "10")], TEST_ACTOR_ID, supplier_name="X",
        )
        approved = approval_invoice_service.approve_invoice(invoice.id, APPROVER_A)
        assert approved.status == InvoiceStatus.PENDING
        assert approved.approved_at is not None

    def test_outsider_cannot_approve(self, approval_invoice_service, sub_account):
        invoice = approval_invoice_service.create_invoice(
            "Factura", [_item(sub_account.id, "10")], TEST_ACTOR_ID, supplier_name="X",
        )
        with pytest.raises(ApproverNotAllowedError):
            approval_invoice_service.approve_invoice(invoice.id, APPROVER_B)

    def test_reject(self, approval_invoice_service, sub_account):
        invoice = approval_invoice_service.create_invoice(
            "Factura", [_item(sub_account.id, "10")], TEST_ACTOR_ID, supplier_name="X",
        )
        with pytest.raises(ValidationError):
            approval_invoice_service.reject_invoice(invoice.id, APPROVER_A, "")
        rejected = approval_invoice_service.reject_invoice(invoice.id, APPROVER_A, "Duplicada")
        assert rejected.status == InvoiceStatus.REJECTED
        assert rejected.rejection_reason == "Duplicada"


class TestPayment:
    def test_payment_realises_item_base_amounts(
        self, invoice_service, ledger_service, sub_account, second_sub_account, two_line_invoice,
    ):
        paid = invoice_service.mark_as_paid(two_line_invoice.id, TEST_ACTOR_ID)

        assert paid.status == InvoiceStatus.PAID
        assert paid.payment_date == date(2024, 1, 1)
        assert paid.paid_by == TEST_ACTOR_ID
        assert ledger_service.get_sub_account(sub_account.id).actual == Decimal("100")
        assert ledger_service.get_sub_account(second_sub_account.id).actual == Decimal("250")

    def test_lines_on_same_sub_account_accumulate(self, invoice_service, ledger_service, sub_account):
        invoice = invoice_service.create_invoice(
            "Factura",
            [_item(sub_account.id, "100"), _item(sub_account.id, "250")],
            TEST_ACTOR_ID, supplier_name="X",
        )
        invoice_service.mark_as_paid(invoice.id, TEST_ACTOR_ID, payment_date=date(2024, 1, 15))
        assert ledger_service.get_sub_account(sub_account.id).actual == Decimal("350")

    def test_unapproved_invoice_cannot_be_paid(
        self, approval_invoice_service, ledger_service, sub_account,
    ):
        invoice = approval_invoice_service.create_invoice(
            "Factura", [_item(sub_account.id, "10")], TEST_ACTOR_ID, supplier_name="X",
        )
        with pytest.raises(InvalidStateError):
            approval_invoice_service.mark_as_paid(invoice.id, TEST_ACTOR_ID)
        assert ledger_service.get_sub_account(sub_account.id).actual == 0
        assert approval_invoice_service.get_invoice(invoice.id).status == InvoiceStatus.PENDING_APPROVAL

    def test_double_payment_rejected(self, invoice_service, ledger_service, sub_account, two_line_invoice):
        invoice_service.mark_as_paid(two_line_invoice.id, TEST_ACTOR_ID)
        with pytest.raises(InvalidStateError):
            invoice_service.mark_as_paid(two_line_invoice.id, TEST_ACTOR_ID)
        assert ledger_service.get_sub_account(sub_account.id).actual == Decimal("100")

    def test_stale_version_surfaces_as_conflict(
        self, invoice_service, session, session_factory, two_line_invoice,
    ):
        model = session.get(InvoiceModel, two_line_invoice.id)
        other = session_factory()
        other.execute(
            update(InvoiceModel)
            .where(InvoiceModel.id == two_line_invoice.id)
            .values(version=InvoiceModel.version + 1)
        )
        other.commit()

        model.status = InvoiceStatus.PAID.value
        with pytest.raises(ConflictError, match=f"Invoice {two_line_invoice.number} was modified"):
            invoice_service._flush_claim(model)
        session.rollback()

        assert invoice_service.get_invoice(two_line_invoice.id).status == InvoiceStatus.PENDING

    def test_failed_ledger_write_rolls_back_status(
        self, invoice_service, ledger_service, sub_account, second_sub_account,
        two_line_invoice, monkeypatch,
    ):
        original = invoice_service._ledger.adjust_actual
        calls = []

        def failing_adjust(sub_account_id, delta, actor_id=None):
            calls.append(sub_account_id)
            if len(calls) == 2:
                raise RuntimeError("disk full")
            return original(sub_account_id, delta, actor_id=actor_id)

        monkeypatch.setattr(invoice_service._ledger, "adjust_actual", failing_adjust)
        with pytest.raises(RuntimeError):
            invoice_service.mark_as_paid(two_line_invoice.id, TEST_ACTOR_ID)
        monkeypatch.undo()

        assert invoice_service.get_invoice(two_line_invoice.id).status == InvoiceStatus.PENDING
        assert ledger_service.get_sub_account(sub_account.id).actual == 0
        assert ledger_service.get_sub_account(second_sub_account.id).actual == 0

    def test_payment_does_not_touch_committed(
        self, invoice_service, procurement_service, ledger_service, sub_account,
    ):
        po = procurement_service.create_po("Focos", sub_account.id, "1000", TEST_ACTOR_ID, supplier_name="X")
        invoice = invoice_service.create_invoice(
            "Factura", [_item(sub_account.id, "400")], TEST_ACTOR_ID, po_id=po.id,
        )
        invoice_service.mark_as_paid(invoice.id, TEST_ACTOR_ID)

        figures = ledger_service.get_sub_account(sub_account.id)
        assert figures.committed == Decimal("1000")
        assert figures.actual == Decimal("400")
        assert figures.available == Decimal("8600")


class TestCancelAndDelete:
    def test_cancel_requires_reason_first(self, invoice_service, two_line_invoice):
        invoice_service.mark_as_paid(two_line_invoice.id, TEST_ACTOR_ID)
        with pytest.raises(ValidationError):
            invoice_service.cancel_invoice(two_line_invoice.id, TEST_ACTOR_ID, "  ")
        with pytest.raises(InvalidStateError):
            invoice_service.cancel_invoice(two_line_invoice.id, TEST_ACTOR_ID, "Error")

    def test_cancel_pending(self, invoice_service, ledger_service, sub_account, two_line_invoice):
        cancelled = invoice_service.cancel_invoice(two_line_invoice.id, TEST_ACTOR_ID, "Duplicada")
        assert cancelled.status == InvoiceStatus.CANCELLED
        assert cancelled.cancellation_reason == "Duplicada"
        assert ledger_service.get_sub_account(sub_account.id).actual == 0

    def test_paid_invoice_cannot_be_deleted(self, invoice_service, two_line_invoice):
        invoice_service.mark_as_paid(two_line_invoice.id, TEST_ACTOR_ID)
        with pytest.raises(DocumentDeletionBlockedError):
            invoice_service.delete_invoice(two_line_invoice.id, TEST_ACTOR_ID)

    def test_delete_pending(self, invoice_service, two_line_invoice):
        invoice_service.delete_invoice(two_line_invoice.id, TEST_ACTOR_ID)
        assert invoice_service.list_invoices() == ()


class TestOverdue:
    def test_sweep_flips_past_due_and_is_idempotent(
        self, invoice_service, sub_account, deterministic_clock, captured_logs,
    ):
        early = invoice_service.create_invoice(
            "A", [_item(sub_account.id, "10")], TEST_ACTOR_ID,
            supplier_name="X", due_date=date(2024, 1, 10),
        )
        due_today = invoice_service.create_invoice(
            "B", [_item(sub_account.id, "10")], TEST_ACTOR_ID,
            supplier_name="X", due_date=date(2024, 1, 20),
        )

        result = invoice_service.sweep_overdue(now=datetime(2024, 1, 20, 9, 0, tzinfo=UTC))
        assert result.flipped_ids == (early.id,)
        assert result.failed == 0
        assert invoice_service.get_invoice(early.id).status == InvoiceStatus.OVERDUE
        assert invoice_service.get_invoice(due_today.id).status == InvoiceStatus.PENDING

        again = invoice_service.sweep_overdue(now=datetime(2024, 1, 20, 9, 0, tzinfo=UTC))
        assert again.flipped == 0
        assert any(r["message"] == "overdue_sweep_completed" for r in captured_logs())

    def test_overdue_invoice_can_still_be_paid(self, invoice_service, ledger_service, sub_account):
        invoice = invoice_service.create_invoice(
            "A", [_item(sub_account.id, "10")], TEST_ACTOR_ID,
            supplier_name="X", due_date=date(2023, 12, 1),
        )
        invoice_service.sweep_overdue()
        paid = invoice_service.mark_as_paid(invoice.id, TEST_ACTOR_ID)
        assert paid.status == InvoiceStatus.PAID
        assert ledger_service.get_sub_account(sub_account.id).actual == Decimal("10")

    def test_listing_refreshes_overdue(self, invoice_service, sub_account, deterministic_clock):
        invoice = invoice_service.create_invoice(
            "A", [_item(sub_account.id, "10")], TEST_ACTOR_ID, supplier_name="X",
        )
        deterministic_clock.advance_days(31)

        assert invoice_service.list_invoices(refresh_overdue=False)[0].status == InvoiceStatus.PENDING
        (listed,) = invoice_service.list_invoices()
        assert listed.id == invoice.id
        assert listed.status == InvoiceStatus.OVERDUE


class TestQueries:
    @pytest.fixture
    def invoices(self, invoice_service, sub_account, deterministic_clock):
        cheap = invoice_service.create_invoice(
            "Catering", [_item(sub_account.id, "10")], TEST_ACTOR_ID,
            supplier_name="Comidas SL", due_date=date(2024, 3, 1),
        )
        deterministic_clock.advance(60)
        dear = invoice_service.create_invoice(
            "Grúa", [_item(sub_account.id, "900")], TEST_ACTOR_ID,
            supplier_name="Grúas SA", due_date=date(2024, 2, 1),
        )
        return cheap, dear

    def test_sorting(self, invoice_service, invoices):
        cheap, dear = invoices
        assert [i.id for i in invoice_service.list_invoices()] == [dear.id, cheap.id]
        assert [i.id for i in invoice_service.list_invoices(sort_by="total_amount", descending=False)] == [
            cheap.id, dear.id,
        ]
        assert [i.id for i in invoice_service.list_invoices(sort_by="due_date", descending=False)] == [
            dear.id, cheap.id,
        ]

    def test_unknown_sort_field(self, invoice_service, invoices):
        with pytest.raises(ValidationError):
            invoice_service.list_invoices(sort_by="supplier")

    def test_search_and_status_filter(self, invoice_service, invoices):
        cheap, dear = invoices
        assert [i.id for i in invoice_service.list_invoices(search="grúas")] == [dear.id]
        invoice_service.mark_as_paid(cheap.id, TEST_ACTOR_ID)
        assert [i.id for i in invoice_service.list_invoices(status="paid")] == [cheap.id]

    def test_stats(self, invoice_service, invoices):
        cheap, dear = invoices
        invoice_service.mark_as_paid(cheap.id, TEST_ACTOR_ID)

        stats = invoice_service.invoice_stats()
        assert stats.total == 2
        assert stats.counts["paid"] == 1
        assert stats.counts["pending"] == 1
        assert stats.paid_amount == Decimal("12.10")
        assert stats.pending_amount == Decimal("1089.00")
        assert stats.overdue_amount == 0
