"""
Approval Setup Module (``budget_modules.approvals``).

Project members and per-document-kind step templates, resolved into
concrete approval steps when a purchase order or invoice is submitted.
"""

from budget_modules.approvals.config import ApprovalConfig
from budget_modules.approvals.models import (
    ApprovalStepTemplate,
    DocumentKind,
    MemberPosition,
    PendingApprovals,
    ProjectMember,
)

__all__ = [
    "ApprovalConfig",
    "ApprovalStepTemplate",
    "DocumentKind",
    "MemberPosition",
    "PendingApprovals",
    "ProjectMember",
]
