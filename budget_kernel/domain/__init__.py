"""
Pure domain layer.

Value objects and decision logic with NO dependencies on the ORM, the
database or I/O.  Time is only read through an injected Clock.
"""

from budget_kernel.domain.approval import (
    ApprovalDecision,
    ApprovalPolicyResolver,
    ApprovalStep,
    ApproverType,
    ResolutionOutcome,
    StepResolution,
    StepStatus,
)
from budget_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from budget_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "ApprovalDecision",
    "ApprovalPolicyResolver",
    "ApprovalStep",
    "ApproverType",
    "ResolutionOutcome",
    "StepResolution",
    "StepStatus",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Guard",
    "Transition",
    "Workflow",
]
