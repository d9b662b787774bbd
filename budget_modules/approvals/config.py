"""
Approval Setup Configuration Schema.

Default step templates used when a project has not configured its own.
"""

from dataclasses import dataclass, field
from typing import Self

from budget_kernel.domain.approval import ApproverType
from budget_kernel.logging_config import get_logger
from budget_modules.approvals.models import ApprovalStepTemplate, DocumentKind

logger = get_logger("modules.approvals.config")

DEFAULT_INVOICE_TEMPLATES = (
    ApprovalStepTemplate(
        approver_type=ApproverType.ROLE,
        roles=("Controller", "PM", "EP"),
        require_all=False,
    ),
)


@dataclass
class ApprovalConfig:
    """Fallback templates per document kind.  An empty tuple means auto-approval."""

    po_templates: tuple[ApprovalStepTemplate, ...] = ()
    invoice_templates: tuple[ApprovalStepTemplate, ...] = field(
        default_factory=lambda: DEFAULT_INVOICE_TEMPLATES,
    )

    def __post_init__(self):
        logger.debug("approval_config_initialized", extra={
            "po_template_count": len(self.po_templates),
            "invoice_template_count": len(self.invoice_templates),
        })

    def defaults_for(self, kind: DocumentKind) -> tuple[ApprovalStepTemplate, ...]:
        if kind == DocumentKind.PURCHASE_ORDER:
            return self.po_templates
        return self.invoice_templates

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()
