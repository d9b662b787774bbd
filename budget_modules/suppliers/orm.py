"""
Supplier registry ORM Models (``budget_modules.suppliers.orm``).

Responsibility
--------------
Persistence for suppliers.  The two certificates are flattened into
upload-flag / expiry-date column pairs.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import Boolean, Date, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import ProjectScopedBase
from budget_modules.suppliers.models import Certificate, PaymentMethod, Supplier


class SupplierModel(ProjectScopedBase):
    """
    ORM model for suppliers.  Maps to the ``Supplier`` frozen dataclass.

    Guarantees:
        - payment_method stored as string enum value.
        - certificate expiry dates are calendar dates (no time component).
    """

    __tablename__ = "suppliers"

    __table_args__ = (
        Index("idx_suppliers_fiscal_name", "project_id", "fiscal_name"),
        Index("idx_suppliers_tax_id", "project_id", "tax_id"),
    )

    fiscal_name: Mapped[str] = mapped_column(String(255), nullable=False)
    commercial_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tax_id: Mapped[str] = mapped_column(String(50), nullable=False)
    country: Mapped[str] = mapped_column(String(100), nullable=False)
    payment_method: Mapped[str] = mapped_column(
        String(20), default=PaymentMethod.TRANSFER.value, nullable=False,
    )
    bank_account: Mapped[str | None] = mapped_column(String(64), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    bank_cert_uploaded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    bank_cert_expiry: Mapped[date | None] = mapped_column(Date, nullable=True)
    contractors_cert_uploaded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    contractors_cert_expiry: Mapped[date | None] = mapped_column(Date, nullable=True)

    def to_dto(self) -> Supplier:
        return Supplier(
            id=self.id,
            project_id=self.project_id,
            fiscal_name=self.fiscal_name,
            commercial_name=self.commercial_name,
            tax_id=self.tax_id,
            country=self.country,
            payment_method=PaymentMethod(self.payment_method),
            bank_account=self.bank_account,
            address=self.address,
            email=self.email,
            bank_certificate=Certificate(self.bank_cert_uploaded, self.bank_cert_expiry),
            contractors_certificate=Certificate(
                self.contractors_cert_uploaded, self.contractors_cert_expiry,
            ),
            created_at=self.created_at,
        )

    def apply_certificates(
        self,
        bank: Certificate | None = None,
        contractors: Certificate | None = None,
    ) -> None:
        if bank is not None:
            self.bank_cert_uploaded = bank.uploaded
            self.bank_cert_expiry = bank.expiry_date
        if contractors is not None:
            self.contractors_cert_uploaded = contractors.uploaded
            self.contractors_cert_expiry = contractors.expiry_date

    def __repr__(self) -> str:
        return f"<SupplierModel {self.tax_id} {self.fiscal_name}>"
