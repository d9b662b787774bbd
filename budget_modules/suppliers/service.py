"""
Supplier Registry Service (``budget_modules.suppliers.service``).

Responsibility
--------------
CRUD over a project's suppliers plus the certificate status check used
by the supplier list and report.

Failure modes
-------------
* ``ValidationError`` -- fiscal name, tax id or country missing; unknown
  payment method; unknown field on update.
* ``SupplierNotFoundError`` -- unknown id.
* ``SupplierInUseError`` -- delete while purchase orders or invoices
  reference the supplier.
"""

from __future__ import annotations

from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.exceptions import SupplierInUseError, SupplierNotFoundError, ValidationError
from budget_kernel.logging_config import get_logger
from budget_modules.suppliers.models import (
    Certificate,
    CertificateStatus,
    PaymentMethod,
    Supplier,
)
from budget_modules.suppliers.orm import SupplierModel

logger = get_logger("modules.suppliers.service")

CERTIFICATE_WARNING_DAYS = 30

_UPDATABLE_FIELDS = frozenset({
    "fiscal_name", "commercial_name", "tax_id", "country", "payment_method",
    "bank_account", "address", "email", "bank_certificate", "contractors_certificate",
})
_REQUIRED_FIELDS = ("fiscal_name", "tax_id", "country")


def certificate_status(supplier: Supplier, today: date) -> CertificateStatus:
    """
    ``expired`` if either certificate is missing or past expiry,
    ``expiring`` if either expires within 30 days, otherwise ``valid``.
    """
    certificates = (supplier.bank_certificate, supplier.contractors_certificate)
    if any(not c.uploaded for c in certificates):
        return CertificateStatus.EXPIRED
    expiries = [c.expiry_date for c in certificates if c.expiry_date is not None]
    if any(e < today for e in expiries):
        return CertificateStatus.EXPIRED
    horizon = today + timedelta(days=CERTIFICATE_WARNING_DAYS)
    if any(e <= horizon for e in expiries):
        return CertificateStatus.EXPIRING
    return CertificateStatus.VALID


def _parse_payment_method(value: PaymentMethod | str) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError:
        raise ValidationError(
            f"Unknown payment method: {value!r}", field="payment_method",
        ) from None


class SupplierService:
    """Supplier registry for one project."""

    def __init__(
        self,
        session: Session,
        project_id: UUID,
        clock: Clock | None = None,
    ):
        self._session = session
        self._project_id = project_id
        self._clock = clock or SystemClock()

    def _load(self, supplier_id: UUID) -> SupplierModel:
        supplier = self._session.execute(
            select(SupplierModel).where(
                SupplierModel.id == supplier_id,
                SupplierModel.project_id == self._project_id,
            )
        ).scalar_one_or_none()
        if supplier is None:
            raise SupplierNotFoundError(supplier_id)
        return supplier

    def create_supplier(
        self,
        fiscal_name: str,
        tax_id: str,
        country: str,
        actor_id: str,
        commercial_name: str | None = None,
        payment_method: PaymentMethod | str = PaymentMethod.TRANSFER,
        bank_account: str | None = None,
        address: str | None = None,
        email: str | None = None,
        bank_certificate: Certificate | None = None,
        contractors_certificate: Certificate | None = None,
    ) -> Supplier:
        values = {"fiscal_name": fiscal_name, "tax_id": tax_id, "country": country}
        for name in _REQUIRED_FIELDS:
            values[name] = (values[name] or "").strip()
            if not values[name]:
                raise ValidationError(f"{name} is required", field=name)
        method = _parse_payment_method(payment_method)

        try:
            supplier = SupplierModel(
                project_id=self._project_id,
                commercial_name=(commercial_name or "").strip() or None,
                payment_method=method.value,
                bank_account=bank_account,
                address=address,
                email=email,
                created_at=self._clock.now(),
                created_by=actor_id,
                **values,
            )
            supplier.apply_certificates(
                bank_certificate or Certificate(),
                contractors_certificate or Certificate(),
            )
            self._session.add(supplier)
            self._session.flush()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info("supplier_created", extra={
            "project_id": str(self._project_id),
            "supplier_id": str(supplier.id),
            "tax_id": supplier.tax_id,
        })
        return supplier.to_dto()

    def update_supplier(self, supplier_id: UUID, actor_id: str, **changes) -> Supplier:
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Unknown supplier field(s): {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
            )
        try:
            supplier = self._load(supplier_id)
            for name, value in changes.items():
                if name in _REQUIRED_FIELDS:
                    value = (value or "").strip()
                    if not value:
                        raise ValidationError(f"{name} is required", field=name)
                if name == "payment_method":
                    value = _parse_payment_method(value).value
                if name == "bank_certificate":
                    supplier.apply_certificates(bank=value)
                elif name == "contractors_certificate":
                    supplier.apply_certificates(contractors=value)
                else:
                    setattr(supplier, name, value)
            supplier.updated_by = actor_id
            self._session.flush()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info("supplier_updated", extra={
            "supplier_id": str(supplier_id),
            "fields": sorted(changes),
            "actor_id": actor_id,
        })
        return supplier.to_dto()

    def get_supplier(self, supplier_id: UUID) -> Supplier:
        return self._load(supplier_id).to_dto()

    def list_suppliers(self, search: str | None = None) -> tuple[Supplier, ...]:
        """Suppliers ordered by fiscal name, optionally filtered by name or tax id."""
        stmt = select(SupplierModel).where(SupplierModel.project_id == self._project_id)
        term = (search or "").strip().lower()
        if term:
            pattern = f"%{term}%"
            stmt = stmt.where(or_(
                func.lower(SupplierModel.fiscal_name).like(pattern),
                func.lower(func.coalesce(SupplierModel.commercial_name, "")).like(pattern),
                func.lower(SupplierModel.tax_id).like(pattern),
            ))
        rows = self._session.execute(stmt.order_by(SupplierModel.fiscal_name)).scalars().all()
        return tuple(r.to_dto() for r in rows)

    def delete_supplier(self, supplier_id: UUID, actor_id: str) -> None:
        """Delete a supplier that no purchase order or invoice references."""
        from budget_modules.invoices.orm import InvoiceModel
        from budget_modules.procurement.orm import PurchaseOrderModel

        try:
            supplier = self._load(supplier_id)
            po_count = self._session.execute(
                select(func.count(PurchaseOrderModel.id)).where(
                    PurchaseOrderModel.project_id == self._project_id,
                    PurchaseOrderModel.supplier_id == supplier_id,
                )
            ).scalar_one()
            invoice_count = self._session.execute(
                select(func.count(InvoiceModel.id)).where(
                    InvoiceModel.project_id == self._project_id,
                    InvoiceModel.supplier_id == supplier_id,
                )
            ).scalar_one()
            if po_count or invoice_count:
                raise SupplierInUseError(supplier_id, po_count, invoice_count)

            self._session.delete(supplier)
            self._session.flush()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info("supplier_deleted", extra={
            "supplier_id": str(supplier_id),
            "actor_id": actor_id,
        })

    def certificate_status(self, supplier_id: UUID) -> CertificateStatus:
        return certificate_status(self.get_supplier(supplier_id), self._clock.today())
