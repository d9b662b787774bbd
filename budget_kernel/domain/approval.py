"""
Approval domain types (``budget_kernel.domain.approval``).

Responsibility
--------------
Pure value objects and decision logic for multi-step document approval.
``ApprovalPolicyResolver`` is the only place that decides whether a user
may act on a document's current step and what the document's approval
position becomes after a decision.  Both the procurement and invoice
engines consult it instead of checking approver membership inline.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/`` or from ``budget_modules``.

Invariants enforced
-------------------
* Step ordering -- only the step at ``current_approval_step`` can be acted
  on; earlier steps are already approved, later steps wait.
* Approver membership -- the acting user must be in the step's
  ``approvers`` set and must not have voted on that step already.
* Rejection short-circuit -- a rejected step is terminal for the document
  regardless of how many steps remain.
* Immutability -- resolution returns new step tuples; inputs are never
  mutated.

Failure modes
-------------
* ``ApproverNotAllowedError`` (a ``ForbiddenError``) when ``can_act`` is
  false for the acting user.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Protocol, Sequence
from uuid import UUID

from budget_kernel.exceptions import ApproverNotAllowedError


class StepStatus(str, Enum):
    """Status of one approval step."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApproverType(str, Enum):
    """How a step template selects its approvers."""

    FIXED = "fixed"
    ROLE = "role"
    HOD = "hod"
    COORDINATOR = "coordinator"


class ApprovalDecision(str, Enum):
    """Decision types that an approver can make."""

    APPROVE = "approve"
    REJECT = "reject"


class ResolutionOutcome(str, Enum):
    """What a decision did to the document's approval position."""

    RECORDED = "recorded"
    ADVANCED = "advanced"
    FULLY_APPROVED = "fully_approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ApprovalStep:
    """One stage in a sign-off sequence.

    With ``require_all=False`` any single approver completes the step; with
    ``require_all=True`` every member of ``approvers`` must approve.
    """

    approvers: frozenset[str]
    status: StepStatus = StepStatus.PENDING
    require_all: bool = False
    approver_type: ApproverType = ApproverType.FIXED
    approved_by: tuple[str, ...] = ()
    rejected_by: tuple[str, ...] = ()

    def has_voted(self, user_id: str) -> bool:
        return user_id in self.approved_by or user_id in self.rejected_by

    def is_complete(self) -> bool:
        if self.require_all:
            return bool(self.approvers) and self.approvers <= set(self.approved_by)
        return len(self.approved_by) > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "approvers": sorted(self.approvers),
            "status": self.status.value,
            "require_all": self.require_all,
            "approver_type": self.approver_type.value,
            "approved_by": list(self.approved_by),
            "rejected_by": list(self.rejected_by),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ApprovalStep:
        return cls(
            approvers=frozenset(data.get("approvers", ())),
            status=StepStatus(data.get("status", StepStatus.PENDING.value)),
            require_all=bool(data.get("require_all", False)),
            approver_type=ApproverType(data.get("approver_type", ApproverType.FIXED.value)),
            approved_by=tuple(data.get("approved_by", ())),
            rejected_by=tuple(data.get("rejected_by", ())),
        )


class ApprovableDocument(Protocol):
    """Anything carrying an ordered step list and a current-step index."""

    id: UUID
    approval_steps: tuple[ApprovalStep, ...]
    current_approval_step: int


@dataclass(frozen=True)
class StepResolution:
    """Result of applying one decision to a document's steps."""

    steps: tuple[ApprovalStep, ...]
    current_approval_step: int
    outcome: ResolutionOutcome

    @property
    def is_fully_approved(self) -> bool:
        return self.outcome == ResolutionOutcome.FULLY_APPROVED

    @property
    def is_rejected(self) -> bool:
        return self.outcome == ResolutionOutcome.REJECTED


class ApprovalPolicyResolver:
    """
    Decides who may act on a document and applies their decision.

    Contract:
        Stateless; every method is a pure function of its arguments.

    Guarantees:
        - ``resolve_step`` never returns FULLY_APPROVED unless every step's
          status is APPROVED.
        - A REJECT decision always yields REJECTED.

    Non-goals:
        - Does not know document statuses; the engine checks that the
          document is awaiting approval before consulting the resolver.
    """

    def denial_reason(self, document: ApprovableDocument, user_id: str) -> str | None:
        """Why ``user_id`` cannot act now, or None when they can."""
        steps = document.approval_steps
        index = document.current_approval_step
        if index < 0 or index >= len(steps):
            return "no pending approval step"
        step = steps[index]
        if step.status != StepStatus.PENDING:
            return f"current step is {step.status.value}"
        if step.has_voted(user_id):
            return "user already voted on this step"
        if user_id not in step.approvers:
            return "user is not an approver of the current step"
        return None

    def can_act(self, document: ApprovableDocument, user_id: str) -> bool:
        return self.denial_reason(document, user_id) is None

    def resolve_step(
        self,
        document: ApprovableDocument,
        user_id: str,
        decision: ApprovalDecision,
    ) -> StepResolution:
        """
        Apply ``decision`` by ``user_id`` to the current step.

        Raises:
            ApproverNotAllowedError: ``can_act`` is false.
        """
        reason = self.denial_reason(document, user_id)
        index = document.current_approval_step
        if reason is not None:
            raise ApproverNotAllowedError(document.id, user_id, index, reason)

        steps = list(document.approval_steps)
        step = steps[index]

        if decision == ApprovalDecision.REJECT:
            steps[index] = replace(
                step,
                status=StepStatus.REJECTED,
                rejected_by=step.rejected_by + (user_id,),
            )
            return StepResolution(tuple(steps), index, ResolutionOutcome.REJECTED)

        step = replace(step, approved_by=step.approved_by + (user_id,))
        if not step.is_complete():
            steps[index] = step
            return StepResolution(tuple(steps), index, ResolutionOutcome.RECORDED)

        steps[index] = replace(step, status=StepStatus.APPROVED)
        next_index = index + 1
        if next_index >= len(steps):
            return StepResolution(tuple(steps), next_index, ResolutionOutcome.FULLY_APPROVED)
        return StepResolution(tuple(steps), next_index, ResolutionOutcome.ADVANCED)


def has_recorded_approvals(steps: Sequence[ApprovalStep]) -> bool:
    """True once any approver has voted approve on any step."""
    return any(step.approved_by for step in steps)


def all_steps_approved(steps: Sequence[ApprovalStep]) -> bool:
    return all(step.status == StepStatus.APPROVED for step in steps)
