"""Petty-Cash Workflows.

State machines for expense claims, reimbursements and top-ups.
"""

from petty_cash.domain.workflow import Guard, Transition, Workflow
from petty_cash.logging_config import get_logger

logger = get_logger("workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

ATTACHMENTS_PRESENT = Guard(
    name="attachments_present",
    description="at least one receipt attachment is required",
)


# -----------------------------------------------------------------------------
# Expense Claim Workflow
# -----------------------------------------------------------------------------

EXPENSE_CLAIM_WORKFLOW = Workflow(
    name="petty_cash_expense_claim",
    description="Petty-cash expense claim lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "submitted",
        "approved",
        "paid",
        "rejected",
    ),
    transitions=(
        Transition("draft", "submitted", action="submit", guard=ATTACHMENTS_PRESENT),
        Transition("submitted", "approved", action="review"),
        Transition("approved", "paid", action="pay"),
        Transition("draft", "rejected", action="reject"),
        Transition("submitted", "rejected", action="reject"),
        Transition("approved", "rejected", action="reject"),
    ),
    terminal_states=("paid", "rejected"),
)


# -----------------------------------------------------------------------------
# Reimbursement Workflow
# -----------------------------------------------------------------------------

REIMBURSEMENT_WORKFLOW = Workflow(
    name="petty_cash_reimbursement",
    description="Reimbursement of a submitted claim from company funds",
    initial_state="pending",
    states=(
        "pending",
        "approved",
        "paid",
        "rejected",
    ),
    transitions=(
        Transition("pending", "approved", action="approve"),
        Transition("approved", "paid", action="pay"),
        Transition("pending", "rejected", action="reject"),
        Transition("approved", "rejected", action="reject"),
    ),
    terminal_states=("paid", "rejected"),
)


# -----------------------------------------------------------------------------
# Top-up Workflow
# -----------------------------------------------------------------------------

TOP_UP_WORKFLOW = Workflow(
    name="petty_cash_top_up",
    description="Funding a wallet from a company bank account",
    initial_state="pending",
    states=(
        "pending",
        "approved",
        "completed",
        "cancelled",  # pseudo-state: the request is removed
    ),
    transitions=(
        Transition("pending", "approved", action="approve"),
        Transition("pending", "completed", action="complete"),
        Transition("approved", "completed", action="complete"),
        Transition("pending", "cancelled", action="cancel", deletes_record=True),
    ),
    terminal_states=("completed", "cancelled"),
)

ALL_WORKFLOWS = (
    EXPENSE_CLAIM_WORKFLOW,
    REIMBURSEMENT_WORKFLOW,
    TOP_UP_WORKFLOW,
)

for _workflow in ALL_WORKFLOWS:
    logger.debug(
        "petty_cash_workflow_registered",
        extra={
            "workflow_name": _workflow.name,
            "state_count": len(_workflow.states),
            "transition_count": len(_workflow.transitions),
            "initial_state": _workflow.initial_state,
        },
    )
