"""
Invoice ORM Models (``budget_modules.invoices.orm``).

Responsibility
--------------
Persistence for invoices and their items.  Items are written once at
creation and never edited; they are loaded with the invoice.

Invariants enforced
-------------------
* Invoice number unique per project (uq_invoices_number).
* ``version`` is the mapper's version counter: concurrent payment or
  cancellation of the same invoice raises ``StaleDataError`` on the
  loser instead of applying twice.
* Item amounts are stored as derived at creation; reads never recompute.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from budget_kernel.db.base import ProjectScopedBase
from budget_kernel.domain.approval import ApprovalStep
from budget_modules.invoices.models import Invoice, InvoiceItem, InvoiceStatus
from budget_modules.procurement.orm import dump_steps, load_steps


class InvoiceItemModel(ProjectScopedBase):
    """
    ORM model for one invoice line.  Maps to ``InvoiceItem``.

    Guarantees:
        - position orders items within their invoice.
        - sub_account_id references a ledger sub-account of the project.
    """

    __tablename__ = "invoice_items"

    __table_args__ = (
        Index("idx_invoice_items_invoice", "invoice_id", "position"),
        Index("idx_invoice_items_sub_account", "sub_account_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(2000), nullable=False)
    sub_account_id: Mapped[UUID] = mapped_column(nullable=False)
    sub_account_code: Mapped[str] = mapped_column(String(50), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    base_amount: Mapped[Decimal] = mapped_column(nullable=False)
    vat_rate: Mapped[Decimal] = mapped_column(nullable=False)
    vat_amount: Mapped[Decimal] = mapped_column(nullable=False)
    irpf_rate: Mapped[Decimal] = mapped_column(nullable=False)
    irpf_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    def to_dto(self) -> InvoiceItem:
        return InvoiceItem(
            id=self.id,
            position=self.position,
            description=self.description,
            sub_account_id=self.sub_account_id,
            sub_account_code=self.sub_account_code,
            quantity=self.quantity,
            unit_price=self.unit_price,
            base_amount=self.base_amount,
            vat_rate=self.vat_rate,
            vat_amount=self.vat_amount,
            irpf_rate=self.irpf_rate,
            irpf_amount=self.irpf_amount,
            total_amount=self.total_amount,
        )

    @classmethod
    def from_dto(cls, dto: InvoiceItem, project_id: UUID, created_by: str) -> InvoiceItemModel:
        return cls(
            project_id=project_id,
            position=dto.position,
            description=dto.description,
            sub_account_id=dto.sub_account_id,
            sub_account_code=dto.sub_account_code,
            quantity=dto.quantity,
            unit_price=dto.unit_price,
            base_amount=dto.base_amount,
            vat_rate=dto.vat_rate,
            vat_amount=dto.vat_amount,
            irpf_rate=dto.irpf_rate,
            irpf_amount=dto.irpf_amount,
            total_amount=dto.total_amount,
            created_by=created_by,
        )


class InvoiceModel(ProjectScopedBase):
    """
    ORM model for invoices.  Maps to ``Invoice``.

    Guarantees:
        - status stored as string enum value.
        - due_date and payment_date are calendar dates.
        - aggregate amounts equal the sums of the item amounts.
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("project_id", "number", name="uq_invoices_number"),
        Index("idx_invoices_status_due", "project_id", "status", "due_date"),
        Index("idx_invoices_supplier", "supplier_id"),
        Index("idx_invoices_po", "po_id"),
    )

    number: Mapped[str] = mapped_column(String(20), nullable=False)
    supplier_id: Mapped[UUID | None] = mapped_column(nullable=True)
    supplier_name: Mapped[str] = mapped_column(String(255), nullable=False)
    po_id: Mapped[UUID | None] = mapped_column(nullable=True)
    po_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    description: Mapped[str] = mapped_column(String(2000), nullable=False)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    base_amount: Mapped[Decimal] = mapped_column(nullable=False)
    vat_amount: Mapped[Decimal] = mapped_column(nullable=False)
    irpf_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=InvoiceStatus.PENDING_APPROVAL.value, nullable=False,
    )
    approval_steps_json: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    current_approval_step: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    auto_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    items: Mapped[list[InvoiceItemModel]] = relationship(
        order_by=InvoiceItemModel.position,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def approval_steps(self) -> tuple[ApprovalStep, ...]:
        return load_steps(self.approval_steps_json)

    @approval_steps.setter
    def approval_steps(self, steps) -> None:
        self.approval_steps_json = dump_steps(steps)

    def to_dto(self) -> Invoice:
        return Invoice(
            id=self.id,
            project_id=self.project_id,
            number=self.number,
            supplier_id=self.supplier_id,
            supplier_name=self.supplier_name,
            po_id=self.po_id,
            po_number=self.po_number,
            description=self.description,
            department=self.department,
            items=tuple(item.to_dto() for item in self.items),
            base_amount=self.base_amount,
            vat_amount=self.vat_amount,
            irpf_amount=self.irpf_amount,
            total_amount=self.total_amount,
            status=InvoiceStatus(self.status),
            approval_steps=self.approval_steps,
            current_approval_step=self.current_approval_step,
            auto_approved=self.auto_approved,
            approved_at=self.approved_at,
            due_date=self.due_date,
            payment_date=self.payment_date,
            paid_at=self.paid_at,
            paid_by=self.paid_by,
            rejected_at=self.rejected_at,
            rejected_by=self.rejected_by,
            rejection_reason=self.rejection_reason,
            cancelled_at=self.cancelled_at,
            cancelled_by=self.cancelled_by,
            cancellation_reason=self.cancellation_reason,
            created_at=self.created_at,
            created_by=self.created_by,
        )

    def __repr__(self) -> str:
        return f"<InvoiceModel {self.number} {self.status} {self.total_amount}>"
