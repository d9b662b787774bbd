"""
Invoice domain models.

Invoices realise actual spend: paying one adds each item's base amount
to the ``actual`` figure of the item's sub-account.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from budget_kernel.domain.approval import ApprovalStep

ZERO = Decimal("0")


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    PENDING_APPROVAL = "pending_approval"
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class InvoiceSortField(str, Enum):
    CREATED_AT = "created_at"
    TOTAL_AMOUNT = "total_amount"
    DUE_DATE = "due_date"


@dataclass(frozen=True)
class InvoiceItemInput:
    """A line as submitted by the caller, before amounts are derived."""

    description: str
    sub_account_id: UUID | None
    quantity: Decimal | int | str
    unit_price: Decimal | int | str
    vat_rate: Decimal | int | str = Decimal("21")
    irpf_rate: Decimal | int | str = Decimal("0")


@dataclass(frozen=True)
class ItemAmounts:
    """Derived amounts of one line, each rounded half-up to cents."""

    base_amount: Decimal
    vat_amount: Decimal
    irpf_amount: Decimal
    total_amount: Decimal


@dataclass(frozen=True)
class InvoiceItem:
    """A stored invoice line with its derived amounts."""

    description: str
    sub_account_id: UUID
    sub_account_code: str
    quantity: Decimal
    unit_price: Decimal
    base_amount: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    irpf_rate: Decimal
    irpf_amount: Decimal
    total_amount: Decimal
    position: int = 0
    id: UUID | None = None


@dataclass(frozen=True)
class Invoice:
    """A supplier invoice, optionally linked to an approved purchase order."""

    id: UUID
    project_id: UUID
    number: str
    supplier_name: str
    description: str
    due_date: date
    status: InvoiceStatus = InvoiceStatus.PENDING_APPROVAL
    items: tuple[InvoiceItem, ...] = ()
    base_amount: Decimal = ZERO
    vat_amount: Decimal = ZERO
    irpf_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    supplier_id: UUID | None = None
    po_id: UUID | None = None
    po_number: str | None = None
    department: str | None = None
    approval_steps: tuple[ApprovalStep, ...] = ()
    current_approval_step: int = 0
    auto_approved: bool = False
    approved_at: datetime | None = None
    payment_date: date | None = None
    paid_at: datetime | None = None
    paid_by: str | None = None
    rejected_at: datetime | None = None
    rejected_by: str | None = None
    rejection_reason: str | None = None
    cancelled_at: datetime | None = None
    cancelled_by: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None
    created_by: str | None = None

    @property
    def budget_account_codes(self) -> tuple[str, ...]:
        """Distinct sub-account codes of the items, in item order."""
        seen: dict[str, None] = {}
        for item in self.items:
            seen.setdefault(item.sub_account_code, None)
        return tuple(seen)


@dataclass(frozen=True)
class SweepResult:
    """Outcome of one overdue pass."""

    checked: int = 0
    flipped: int = 0
    failed: int = 0
    flipped_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class InvoiceStats:
    """Counts per status and the headline amounts of a project's invoices."""

    counts: dict[str, int] = field(default_factory=dict)
    total: int = 0
    paid_amount: Decimal = ZERO
    pending_amount: Decimal = ZERO
    overdue_amount: Decimal = ZERO
