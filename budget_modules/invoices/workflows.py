"""
Invoice Workflows.

State machine for the invoice lifecycle.  ``overdue`` is reached only
by the time-based overdue pass, never by a user command.
"""

from budget_kernel.domain.workflow import Guard, Transition, Workflow
from budget_kernel.logging_config import get_logger

logger = get_logger("modules.invoices.workflows")


APPROVAL_COMPLETE = Guard(
    name="approval_complete",
    description="Every approval step is approved",
)

NO_APPROVERS_RESOLVED = Guard(
    name="no_approvers_resolved",
    description="Templates resolved to no approval steps",
)

PAST_DUE = Guard(
    name="past_due",
    description="Due date is before today",
)

REASON_GIVEN = Guard(
    name="reason_given",
    description="A non-blank reason accompanies the action",
)


INVOICE_WORKFLOW = Workflow(
    name="invoice",
    description="Supplier invoice lifecycle",
    initial_state="pending_approval",
    states=(
        "pending_approval",
        "pending",
        "overdue",
        "paid",
        "cancelled",
        "rejected",
    ),
    transitions=(
        Transition(
            "pending_approval", "pending", action="approve",
            guard=APPROVAL_COMPLETE, requires_approval=True,
        ),
        Transition(
            "pending_approval", "pending", action="auto_approve",
            guard=NO_APPROVERS_RESOLVED,
        ),
        Transition(
            "pending_approval", "rejected", action="reject",
            guard=REASON_GIVEN, requires_approval=True,
        ),
        Transition("pending", "overdue", action="mark_overdue", guard=PAST_DUE),
        Transition("pending", "paid", action="pay", touches_ledger=True),
        Transition("overdue", "paid", action="pay", touches_ledger=True),
        Transition("pending", "cancelled", action="cancel", guard=REASON_GIVEN),
        Transition("overdue", "cancelled", action="cancel", guard=REASON_GIVEN),
    ),
    terminal_states=("paid", "cancelled", "rejected"),
)

logger.info(
    "invoice_workflow_registered",
    extra={
        "workflow_name": INVOICE_WORKFLOW.name,
        "state_count": len(INVOICE_WORKFLOW.states),
        "transition_count": len(INVOICE_WORKFLOW.transitions),
        "initial_state": INVOICE_WORKFLOW.initial_state,
    },
)
