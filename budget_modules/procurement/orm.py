"""
Procurement ORM Models (``budget_modules.procurement.orm``).

Responsibility
--------------
Persistence for purchase orders.  Approval steps are stored as a JSON
list in ``approval_steps_json``.

Invariants enforced
-------------------
* PO number unique per project (uq_purchase_orders_number).
* ``version`` is the mapper's version counter: a stale UPDATE raises
  ``StaleDataError`` instead of overwriting a concurrent decision.
"""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import ProjectScopedBase
from budget_kernel.domain.approval import ApprovalStep
from budget_modules.procurement.models import POStatus, PurchaseOrder


def dump_steps(steps) -> str:
    return json.dumps([s.to_dict() for s in steps])


def load_steps(raw: str | None) -> tuple[ApprovalStep, ...]:
    if not raw:
        return ()
    return tuple(ApprovalStep.from_dict(d) for d in json.loads(raw))


class PurchaseOrderModel(ProjectScopedBase):
    """
    ORM model for purchase orders.  Maps to ``PurchaseOrder``.

    Guarantees:
        - status stored as string enum value.
        - budget_account_id references a ledger sub-account of the project.
    """

    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint("project_id", "number", name="uq_purchase_orders_number"),
        Index("idx_purchase_orders_status", "project_id", "status"),
        Index("idx_purchase_orders_supplier", "supplier_id"),
        Index("idx_purchase_orders_budget_account", "budget_account_id"),
    )

    number: Mapped[str] = mapped_column(String(20), nullable=False)
    supplier_id: Mapped[UUID | None] = mapped_column(nullable=True)
    supplier_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(String(2000), nullable=False)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    budget_account_id: Mapped[UUID] = mapped_column(nullable=False)
    budget_account_code: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=POStatus.DRAFT.value, nullable=False)
    approval_steps_json: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    current_approval_step: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    committed_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def approval_steps(self) -> tuple[ApprovalStep, ...]:
        return load_steps(self.approval_steps_json)

    @approval_steps.setter
    def approval_steps(self, steps) -> None:
        self.approval_steps_json = dump_steps(steps)

    def to_dto(self) -> PurchaseOrder:
        return PurchaseOrder(
            id=self.id,
            project_id=self.project_id,
            number=self.number,
            supplier_id=self.supplier_id,
            supplier_name=self.supplier_name,
            description=self.description,
            department=self.department,
            budget_account_id=self.budget_account_id,
            budget_account_code=self.budget_account_code,
            amount=self.amount,
            status=POStatus(self.status),
            approval_steps=self.approval_steps,
            current_approval_step=self.current_approval_step,
            created_at=self.created_at,
            created_by=self.created_by,
            approved_at=self.approved_at,
            approved_by=self.approved_by,
            rejected_at=self.rejected_at,
            rejected_by=self.rejected_by,
            rejection_reason=self.rejection_reason,
            committed_amount=self.committed_amount,
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrderModel {self.number} {self.status} {self.amount}>"
