"""
Approval Setup Service (``budget_modules.approvals.service``).

Responsibility
--------------
Keeps the people side of approval: project members (role, department,
position) and the step templates of each document kind.  Resolves
templates into concrete ``ApprovalStep`` tuples for the document engines
and answers "what is waiting for this user".

Architecture position
---------------------
**Modules layer**.  Decision logic (who may act, what a decision does)
lives in ``budget_kernel.domain.approval.ApprovalPolicyResolver``; this
service only produces the steps the resolver works on.

Invariants enforced
-------------------
* Steps whose templates match nobody are dropped.  A document with no
  remaining steps is auto-approved by its engine.
* Project templates replace the configured defaults for their kind as a
  whole; they are never merged.

Failure modes
-------------
* ``ValidationError`` -- blank user id / role, malformed template.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from budget_kernel.domain.approval import ApprovalPolicyResolver, ApprovalStep, ApproverType
from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.exceptions import ValidationError
from budget_kernel.logging_config import get_logger
from budget_modules.approvals.config import ApprovalConfig
from budget_modules.approvals.models import (
    ApprovalStepTemplate,
    DocumentKind,
    MemberPosition,
    PendingApprovals,
    ProjectMember,
)
from budget_modules.approvals.orm import ApprovalTemplateModel, ProjectMemberModel

logger = get_logger("modules.approvals.service")


class ApprovalService:
    """
    Members, templates and template resolution for one project.

    Guarantees
    ----------
    * ``resolve_steps`` is deterministic: approver sets are built from the
      member table as it is at call time and frozen into the steps.
    * Each write command owns its transaction when ``auto_commit=True``.
    """

    def __init__(
        self,
        session: Session,
        project_id: UUID,
        clock: Clock | None = None,
        config: ApprovalConfig | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._project_id = project_id
        self._clock = clock or SystemClock()
        self._config = config or ApprovalConfig.with_defaults()
        self._auto_commit = auto_commit
        self._resolver = ApprovalPolicyResolver()

    # =========================================================================
    # Members
    # =========================================================================

    def add_member(
        self,
        user_id: str,
        display_name: str,
        role: str,
        actor_id: str,
        department: str | None = None,
        position: str | MemberPosition | None = None,
    ) -> ProjectMember:
        """Add a member, or update the role/department/position of an existing one."""
        user_id = (user_id or "").strip()
        role = (role or "").strip()
        if not user_id:
            raise ValidationError("user_id is required", field="user_id")
        if not role:
            raise ValidationError("role is required", field="role")
        if isinstance(position, MemberPosition):
            position = position.value

        try:
            member = self._session.execute(
                select(ProjectMemberModel).where(
                    ProjectMemberModel.project_id == self._project_id,
                    ProjectMemberModel.user_id == user_id,
                )
            ).scalar_one_or_none()
            if member is None:
                member = ProjectMemberModel(
                    project_id=self._project_id,
                    user_id=user_id,
                    display_name=display_name or user_id,
                    role=role,
                    department=department,
                    position=position,
                    created_at=self._clock.now(),
                    created_by=actor_id,
                )
                self._session.add(member)
                event = "member_added"
            else:
                member.display_name = display_name or member.display_name
                member.role = role
                member.department = department
                member.position = position
                member.updated_by = actor_id
                event = "member_updated"
            self._session.flush()
            if self._auto_commit:
                self._session.commit()
            logger.info(event, extra={
                "project_id": str(self._project_id),
                "user_id": user_id,
                "role": role,
                "department": department,
                "position": position,
            })
            return member.to_dto()
        except Exception:
            if self._auto_commit:
                self._session.rollback()
            raise

    def remove_member(self, user_id: str, actor_id: str) -> bool:
        """Remove a member.  Returns False when the user was not a member."""
        try:
            result = self._session.execute(
                delete(ProjectMemberModel).where(
                    ProjectMemberModel.project_id == self._project_id,
                    ProjectMemberModel.user_id == user_id,
                )
            )
            if self._auto_commit:
                self._session.commit()
        except Exception:
            if self._auto_commit:
                self._session.rollback()
            raise
        removed = result.rowcount > 0
        logger.info("member_removed", extra={
            "user_id": user_id,
            "removed": removed,
            "actor_id": actor_id,
        })
        return removed

    def list_members(self) -> tuple[ProjectMember, ...]:
        rows = self._session.execute(
            select(ProjectMemberModel)
            .where(ProjectMemberModel.project_id == self._project_id)
            .order_by(ProjectMemberModel.display_name, ProjectMemberModel.user_id)
        ).scalars().all()
        return tuple(r.to_dto() for r in rows)

    # =========================================================================
    # Templates
    # =========================================================================

    def set_templates(
        self,
        kind: DocumentKind,
        templates: Sequence[ApprovalStepTemplate],
        actor_id: str,
    ) -> tuple[ApprovalStepTemplate, ...]:
        """
        Replace the project's templates for ``kind``.

        An empty sequence clears them, so the configured defaults apply
        again.
        """
        for template in templates:
            if template.approver_type == ApproverType.FIXED and not template.approvers:
                raise ValidationError("fixed templates need approvers", field="approvers")
            if template.approver_type == ApproverType.ROLE and not template.roles:
                raise ValidationError("role templates need roles", field="roles")

        try:
            self._session.execute(
                delete(ApprovalTemplateModel).where(
                    ApprovalTemplateModel.project_id == self._project_id,
                    ApprovalTemplateModel.document_kind == kind.value,
                )
            )
            for order, template in enumerate(templates):
                self._session.add(ApprovalTemplateModel.from_dto(
                    template, self._project_id, kind.value, order, created_by=actor_id,
                ))
            self._session.flush()
            if self._auto_commit:
                self._session.commit()
        except Exception:
            if self._auto_commit:
                self._session.rollback()
            raise

        logger.info("approval_templates_set", extra={
            "project_id": str(self._project_id),
            "document_kind": kind.value,
            "step_count": len(templates),
            "actor_id": actor_id,
        })
        return self.get_templates(kind)

    def get_templates(self, kind: DocumentKind) -> tuple[ApprovalStepTemplate, ...]:
        """The project's templates for ``kind``, else the configured defaults."""
        rows = self._session.execute(
            select(ApprovalTemplateModel)
            .where(
                ApprovalTemplateModel.project_id == self._project_id,
                ApprovalTemplateModel.document_kind == kind.value,
            )
            .order_by(ApprovalTemplateModel.step_order)
        ).scalars().all()
        if rows:
            return tuple(r.to_dto() for r in rows)
        return self._config.defaults_for(kind)

    def resolve_steps(
        self,
        kind: DocumentKind,
        department: str | None = None,
    ) -> tuple[ApprovalStep, ...]:
        """Concrete steps for a new document of ``kind``; empty means auto-approve."""
        members = self.list_members()
        steps: list[ApprovalStep] = []
        for template in self.get_templates(kind):
            approvers = self._approvers_for(template, members, department)
            if not approvers:
                logger.info("approval_step_skipped", extra={
                    "document_kind": kind.value,
                    "approver_type": template.approver_type.value,
                    "reason": "no matching approvers",
                })
                continue
            steps.append(ApprovalStep(
                approvers=approvers,
                require_all=template.require_all,
                approver_type=template.approver_type,
            ))
        return tuple(steps)

    @staticmethod
    def _approvers_for(
        template: ApprovalStepTemplate,
        members: Sequence[ProjectMember],
        department: str | None,
    ) -> frozenset[str]:
        if template.approver_type == ApproverType.FIXED:
            return frozenset(a for a in template.approvers if a)
        if template.approver_type == ApproverType.ROLE:
            roles = set(template.roles)
            return frozenset(m.user_id for m in members if m.role in roles)

        position = (
            MemberPosition.HOD.value
            if template.approver_type == ApproverType.HOD
            else MemberPosition.COORDINATOR.value
        )
        target = template.department or department
        if not target:
            return frozenset()
        return frozenset(
            m.user_id for m in members
            if m.position == position and m.department == target
        )

    # =========================================================================
    # Inbox
    # =========================================================================

    def pending_for_user(self, user_id: str) -> PendingApprovals:
        """POs (pending) and invoices (pending_approval) ``user_id`` can act on now."""
        from budget_modules.invoices.models import InvoiceStatus
        from budget_modules.invoices.orm import InvoiceModel
        from budget_modules.procurement.models import POStatus
        from budget_modules.procurement.orm import PurchaseOrderModel

        pos = self._session.execute(
            select(PurchaseOrderModel)
            .where(
                PurchaseOrderModel.project_id == self._project_id,
                PurchaseOrderModel.status == POStatus.PENDING.value,
            )
            .order_by(PurchaseOrderModel.created_at.desc())
        ).scalars().all()
        invoices = self._session.execute(
            select(InvoiceModel)
            .where(
                InvoiceModel.project_id == self._project_id,
                InvoiceModel.status == InvoiceStatus.PENDING_APPROVAL.value,
            )
            .order_by(InvoiceModel.created_at.desc())
        ).scalars().all()

        actionable_pos = tuple(
            dto for dto in (po.to_dto() for po in pos)
            if self._resolver.can_act(dto, user_id)
        )
        actionable_invoices = tuple(
            dto for dto in (inv.to_dto() for inv in invoices)
            if self._resolver.can_act(dto, user_id)
        )
        return PendingApprovals(
            user_id=user_id,
            purchase_orders=actionable_pos,
            invoices=actionable_invoices,
        )
