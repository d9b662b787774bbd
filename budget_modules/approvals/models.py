"""
Approval setup domain models.

Project members and the step templates that the approval setup resolves
into concrete ``ApprovalStep`` values when a document is submitted.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from budget_kernel.domain.approval import ApproverType


class DocumentKind(str, Enum):
    """Documents that go through approval."""

    PURCHASE_ORDER = "po"
    INVOICE = "invoice"


class MemberPosition(str, Enum):
    """Positions that department-scoped templates select on."""

    HOD = "HOD"
    COORDINATOR = "Coordinator"


@dataclass(frozen=True)
class ProjectMember:
    """A user's role and department within a project."""

    user_id: str
    display_name: str
    role: str
    department: str | None = None
    position: str | None = None
    id: UUID | None = None


@dataclass(frozen=True)
class ApprovalStepTemplate:
    """
    A project-level rule that becomes one approval step on submission.

    ``approvers`` is used by ``fixed`` templates, ``roles`` by ``role``
    templates and ``department`` by ``hod`` / ``coordinator`` templates
    (falling back to the document's department when unset).
    """

    approver_type: ApproverType
    approvers: tuple[str, ...] = ()
    roles: tuple[str, ...] = ()
    department: str | None = None
    require_all: bool = False
    order: int = 0


@dataclass(frozen=True)
class PendingApprovals:
    """Documents awaiting a given user's decision, newest first."""

    user_id: str
    purchase_orders: tuple = ()
    invoices: tuple = ()

    @property
    def total(self) -> int:
        return len(self.purchase_orders) + len(self.invoices)
