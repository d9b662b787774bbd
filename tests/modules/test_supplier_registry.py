"""
Tests for the supplier registry and certificate status.
"""

from __future__ import annotations

from datetime import date, timedelta
from uuid import uuid4

import pytest

from budget_kernel.exceptions import (
    SupplierInUseError,
    SupplierNotFoundError,
    ValidationError,
)
from budget_modules.suppliers.models import Certificate, CertificateStatus, PaymentMethod, Supplier
from budget_modules.suppliers.service import certificate_status
from tests.conftest import TEST_ACTOR_ID, TEST_PROJECT_ID

TODAY = date(2024, 1, 1)


def _supplier(bank: Certificate, contractors: Certificate) -> Supplier:
    return Supplier(
        id=uuid4(), project_id=TEST_PROJECT_ID,
        fiscal_name="Luces SL", tax_id="B123", country="ES",
        bank_certificate=bank, contractors_certificate=contractors,
    )


class TestCertificateStatus:
    @pytest.mark.parametrize("bank, contractors, expected", [
        (Certificate(), Certificate(True, TODAY + timedelta(days=90)), CertificateStatus.EXPIRED),
        (
            Certificate(True, TODAY - timedelta(days=1)),
            Certificate(True, TODAY + timedelta(days=90)),
            CertificateStatus.EXPIRED,
        ),
        (
            Certificate(True, TODAY + timedelta(days=30)),
            Certificate(True, TODAY + timedelta(days=90)),
            CertificateStatus.EXPIRING,
        ),
        (
            Certificate(True, TODAY),
            Certificate(True, None),
            CertificateStatus.EXPIRING,
        ),
        (
            Certificate(True, TODAY + timedelta(days=31)),
            Certificate(True, None),
            CertificateStatus.VALID,
        ),
    ])
    def test_classification(self, bank, contractors, expected):
        assert certificate_status(_supplier(bank, contractors), TODAY) == expected


class TestSupplierService:
    def test_create_and_get(self, supplier_service):
        created = supplier_service.create_supplier(
            "Luces y Grúas SL", " B12345678 ", "ES", TEST_ACTOR_ID,
            commercial_name="LyG", payment_method="tb30",
            bank_certificate=Certificate(True, date(2024, 6, 1)),
        )
        fetched = supplier_service.get_supplier(created.id)

        assert fetched.tax_id == "B12345678"
        assert fetched.display_name == "LyG"
        assert fetched.payment_method == PaymentMethod.TB30
        assert fetched.bank_certificate == Certificate(True, date(2024, 6, 1))
        assert fetched.contractors_certificate == Certificate()
        assert not fetched.has_all_certificates

    @pytest.mark.parametrize("field", ["fiscal_name", "tax_id", "country"])
    def test_required_fields(self, supplier_service, field):
        values = {"fiscal_name": "A", "tax_id": "B", "country": "ES"}
        values[field] = " "
        with pytest.raises(ValidationError) as exc_info:
            supplier_service.create_supplier(actor_id=TEST_ACTOR_ID, **values)
        assert exc_info.value.field == field

    def test_unknown_payment_method(self, supplier_service):
        with pytest.raises(ValidationError):
            supplier_service.create_supplier("A", "B", "ES", TEST_ACTOR_ID, payment_method="bitcoin")

    def test_update(self, supplier_service):
        supplier = supplier_service.create_supplier("A", "B", "ES", TEST_ACTOR_ID)
        updated = supplier_service.update_supplier(
            supplier.id, TEST_ACTOR_ID,
            email="pagos@a.es",
            contractors_certificate=Certificate(True, date(2025, 1, 1)),
        )
        assert updated.email == "pagos@a.es"
        assert updated.contractors_certificate.uploaded

    def test_update_unknown_field_rejected(self, supplier_service):
        supplier = supplier_service.create_supplier("A", "B", "ES", TEST_ACTOR_ID)
        with pytest.raises(ValidationError):
            supplier_service.update_supplier(supplier.id, TEST_ACTOR_ID, iban="x")

    def test_list_ordered_and_searchable(self, supplier_service):
        supplier_service.create_supplier("Zeta Sonido", "B2", "ES", TEST_ACTOR_ID)
        supplier_service.create_supplier("Alfa Cámaras", "B1", "ES", TEST_ACTOR_ID)

        assert [s.fiscal_name for s in supplier_service.list_suppliers()] == [
            "Alfa Cámaras", "Zeta Sonido",
        ]
        assert [s.tax_id for s in supplier_service.list_suppliers("sonido")] == ["B2"]

    def test_certificate_status_uses_clock(self, supplier_service):
        supplier = supplier_service.create_supplier(
            "A", "B", "ES", TEST_ACTOR_ID,
            bank_certificate=Certificate(True, date(2024, 1, 20)),
            contractors_certificate=Certificate(True, date(2025, 1, 1)),
        )
        assert supplier_service.certificate_status(supplier.id) == CertificateStatus.EXPIRING

    def test_delete_unused(self, supplier_service):
        supplier = supplier_service.create_supplier("A", "B", "ES", TEST_ACTOR_ID)
        supplier_service.delete_supplier(supplier.id, TEST_ACTOR_ID)
        with pytest.raises(SupplierNotFoundError):
            supplier_service.get_supplier(supplier.id)

    def test_delete_blocked_when_referenced(
        self, supplier_service, procurement_service, sub_account,
    ):
        supplier = supplier_service.create_supplier("A", "B", "ES", TEST_ACTOR_ID)
        procurement_service.create_po(
            "Focos", sub_account.id, "100", TEST_ACTOR_ID, supplier_id=supplier.id,
        )
        with pytest.raises(SupplierInUseError) as exc_info:
            supplier_service.delete_supplier(supplier.id, TEST_ACTOR_ID)
        assert exc_info.value.po_count == 1
        assert exc_info.value.invoice_count == 0
