"""
Approval setup ORM Models (``budget_modules.approvals.orm``).

Responsibility
--------------
Persistence for project members and approval step templates.  Template
approver and role lists are stored as JSON text.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``budget_kernel.db.base``
and sibling ``models.py``.
"""

from __future__ import annotations

import json

from sqlalchemy import Boolean, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import ProjectScopedBase
from budget_kernel.domain.approval import ApproverType
from budget_modules.approvals.models import ApprovalStepTemplate, ProjectMember


class ProjectMemberModel(ProjectScopedBase):
    """
    ORM model for project members.

    Guarantees:
        - user_id is unique within a project (uq_project_members_user).
    """

    __tablename__ = "project_members"

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_members_user"),
    )

    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(100), nullable=False)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    position: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def to_dto(self) -> ProjectMember:
        return ProjectMember(
            id=self.id,
            user_id=self.user_id,
            display_name=self.display_name,
            role=self.role,
            department=self.department,
            position=self.position,
        )

    def __repr__(self) -> str:
        return f"<ProjectMemberModel {self.user_id} {self.role}>"


class ApprovalTemplateModel(ProjectScopedBase):
    """
    ORM model for one approval step template of a document kind.

    Guarantees:
        - step_order is the position of the step within its kind.
        - approvers_json and roles_json hold JSON string lists.
    """

    __tablename__ = "approval_templates"

    __table_args__ = (
        Index("idx_approval_templates_kind", "project_id", "document_kind", "step_order"),
    )

    document_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_type: Mapped[str] = mapped_column(String(20), nullable=False)
    approvers_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    roles_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    require_all: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def to_dto(self) -> ApprovalStepTemplate:
        return ApprovalStepTemplate(
            approver_type=ApproverType(self.approver_type),
            approvers=tuple(json.loads(self.approvers_json or "[]")),
            roles=tuple(json.loads(self.roles_json or "[]")),
            department=self.department,
            require_all=self.require_all,
            order=self.step_order,
        )

    @classmethod
    def from_dto(cls, dto: ApprovalStepTemplate, project_id, document_kind: str,
                 order: int, created_by: str) -> ApprovalTemplateModel:
        return cls(
            project_id=project_id,
            document_kind=document_kind,
            step_order=order,
            approver_type=dto.approver_type.value,
            approvers_json=json.dumps(list(dto.approvers)),
            roles_json=json.dumps(list(dto.roles)),
            department=dto.department,
            require_all=dto.require_all,
            created_by=created_by,
        )

    def __repr__(self) -> str:
        return f"<ApprovalTemplateModel {self.document_kind}#{self.step_order} {self.approver_type}>"
