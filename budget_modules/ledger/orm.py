"""
SQLAlchemy ORM persistence models for the Ledger Account Store.

Responsibility
--------------
Database-backed persistence for accounts and sub-accounts.  Figures are
stored on ``SubAccountModel``; account totals are always computed.

Invariants enforced
-------------------
* All monetary fields use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* Account code unique per project.
* ``SubAccountModel.version`` increments on every figure adjustment; it is
  the compare-and-swap token used by ``LedgerService``.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import ProjectScopedBase
from budget_modules.ledger.models import Account, SubAccount


class AccountModel(ProjectScopedBase):
    """A chart-of-accounts heading.  Maps to ``Account``."""

    __tablename__ = "ledger_accounts"

    __table_args__ = (
        UniqueConstraint("project_id", "code", name="uq_ledger_account_project_code"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)

    def to_dto(self, sub_accounts: tuple[SubAccount, ...] = ()) -> Account:
        return Account(
            id=self.id,
            project_id=self.project_id,
            code=self.code,
            description=self.description,
            sub_accounts=sub_accounts,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return f"<AccountModel {self.code} {self.description}>"


class SubAccountModel(ProjectScopedBase):
    """A budget line.  Maps to ``SubAccount``."""

    __tablename__ = "ledger_sub_accounts"

    __table_args__ = (
        Index("idx_ledger_sub_account_account", "account_id"),
        Index("idx_ledger_sub_account_code", "project_id", "code"),
    )

    account_id: Mapped[UUID] = mapped_column(
        ForeignKey("ledger_accounts.id"), nullable=False,
    )
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    budgeted: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    committed: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    actual: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def to_dto(self) -> SubAccount:
        return SubAccount(
            id=self.id,
            project_id=self.project_id,
            account_id=self.account_id,
            code=self.code,
            description=self.description,
            budgeted=self.budgeted,
            committed=self.committed,
            actual=self.actual,
            created_at=self.created_at,
            version=self.version,
        )

    def __repr__(self) -> str:
        return (
            f"<SubAccountModel {self.code} b={self.budgeted} "
            f"c={self.committed} a={self.actual} v{self.version}>"
        )
