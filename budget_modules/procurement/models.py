"""
Procurement domain models.

Purchase orders commit budget on a sub-account once every approval step
is approved.  All DTOs are frozen; the engine returns fresh copies after
each command.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from budget_kernel.domain.approval import ApprovalStep

ZERO = Decimal("0")


class POStatus(str, Enum):
    """Purchase order lifecycle status."""

    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class PurchaseOrder:
    """
    A commitment to buy, charged to one budget sub-account.

    ``committed_amount`` is set when the PO is approved and is the exact
    delta that was applied to the sub-account's committed figure.
    """

    id: UUID
    project_id: UUID
    number: str
    supplier_name: str
    description: str
    budget_account_id: UUID
    budget_account_code: str
    amount: Decimal
    status: POStatus = POStatus.DRAFT
    supplier_id: UUID | None = None
    department: str | None = None
    approval_steps: tuple[ApprovalStep, ...] = ()
    current_approval_step: int = 0
    created_at: datetime | None = None
    created_by: str | None = None
    approved_at: datetime | None = None
    approved_by: str | None = None
    rejected_at: datetime | None = None
    rejected_by: str | None = None
    rejection_reason: str | None = None
    committed_amount: Decimal | None = None

    @property
    def is_committed(self) -> bool:
        return self.status == POStatus.APPROVED


@dataclass(frozen=True)
class POInvoicing:
    """How much of a purchase order has been invoiced."""

    po_id: UUID
    po_amount: Decimal
    invoiced_amount: Decimal
    pending_approval_amount: Decimal
    invoice_count: int
    percentage: Decimal

    @property
    def remaining_amount(self) -> Decimal:
        return self.po_amount - self.invoiced_amount

    @property
    def is_over_invoiced(self) -> bool:
        return self.invoiced_amount > self.po_amount
