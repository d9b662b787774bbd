"""
Procurement Workflows.

State machine for the purchase order lifecycle.
"""

from budget_kernel.domain.workflow import Guard, Transition, Workflow
from budget_kernel.logging_config import get_logger

logger = get_logger("modules.procurement.workflows")


APPROVAL_COMPLETE = Guard(
    name="approval_complete",
    description="Every approval step is approved",
)

NO_APPROVERS_RESOLVED = Guard(
    name="no_approvers_resolved",
    description="Templates resolved to no approval steps",
)


PO_WORKFLOW = Workflow(
    name="purchase_order",
    description="Purchase order lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "pending",
        "approved",
        "rejected",
    ),
    transitions=(
        Transition("draft", "pending", action="submit"),
        Transition(
            "draft", "approved", action="auto_approve",
            guard=NO_APPROVERS_RESOLVED, touches_ledger=True,
        ),
        Transition(
            "pending", "approved", action="approve",
            guard=APPROVAL_COMPLETE, requires_approval=True, touches_ledger=True,
        ),
        Transition("pending", "rejected", action="reject", requires_approval=True),
    ),
    terminal_states=("approved", "rejected"),
)

logger.info(
    "procurement_po_workflow_registered",
    extra={
        "workflow_name": PO_WORKFLOW.name,
        "state_count": len(PO_WORKFLOW.states),
        "transition_count": len(PO_WORKFLOW.transitions),
        "initial_state": PO_WORKFLOW.initial_state,
    },
)
