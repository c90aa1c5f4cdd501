"""
Workflow declaration tests.

Verifies the three petty-cash state machines: every state reachable from
the initial state, terminal states without outgoing transitions, and the
structural validation done by ``Workflow``.
"""

import pytest

from petty_cash.domain.workflow import Guard, Transition, Workflow
from petty_cash.workflows import (
    ALL_WORKFLOWS,
    EXPENSE_CLAIM_WORKFLOW,
    REIMBURSEMENT_WORKFLOW,
    TOP_UP_WORKFLOW,
)


def _reachable(workflow: Workflow) -> set[str]:
    seen = {workflow.initial_state}
    frontier = [workflow.initial_state]
    while frontier:
        state = frontier.pop()
        for t in workflow.transitions:
            if t.from_state == state and t.to_state not in seen:
                seen.add(t.to_state)
                frontier.append(t.to_state)
    return seen


@pytest.mark.parametrize("workflow", ALL_WORKFLOWS, ids=lambda w: w.name)
class TestDeclaredWorkflows:

    def test_every_state_reachable(self, workflow):
        assert _reachable(workflow) == set(workflow.states)

    def test_terminal_states_have_no_exits(self, workflow):
        for state in workflow.terminal_states:
            assert workflow.allowed_actions(state) == ()


class TestExpenseClaimWorkflow:

    def test_submit_is_guarded(self):
        transition = EXPENSE_CLAIM_WORKFLOW.find_transition("draft", "submit")

        assert transition.to_state == "submitted"
        assert transition.guard.name == "attachments_present"

    def test_allowed_actions(self):
        assert EXPENSE_CLAIM_WORKFLOW.allowed_actions("draft") == ("submit", "reject")
        assert EXPENSE_CLAIM_WORKFLOW.allowed_actions("submitted") == ("review", "reject")
        assert EXPENSE_CLAIM_WORKFLOW.allowed_actions("approved") == ("pay", "reject")


class TestReimbursementWorkflow:

    def test_no_payment_before_approval(self):
        assert REIMBURSEMENT_WORKFLOW.find_transition("pending", "pay") is None
        assert REIMBURSEMENT_WORKFLOW.find_transition("approved", "pay").to_state == "paid"


class TestTopUpWorkflow:

    def test_only_cancel_deletes(self):
        deleting = [t for t in TOP_UP_WORKFLOW.transitions if t.deletes_record]

        assert [(t.from_state, t.action) for t in deleting] == [("pending", "cancel")]

    def test_complete_allowed_from_pending_and_approved(self):
        assert TOP_UP_WORKFLOW.find_transition("pending", "complete") is not None
        assert TOP_UP_WORKFLOW.find_transition("approved", "complete") is not None
        assert TOP_UP_WORKFLOW.find_transition("approved", "cancel") is None


class TestWorkflowValidation:

    def test_unknown_initial_state(self):
        with pytest.raises(ValueError, match="initial state"):
            Workflow("w", "", initial_state="x", states=("a",), transitions=())

    def test_unknown_state_in_transition(self):
        with pytest.raises(ValueError, match="unknown state"):
            Workflow(
                "w", "", initial_state="a", states=("a",),
                transitions=(Transition("a", "b", action="go"),),
            )

    def test_duplicate_action_from_state(self):
        with pytest.raises(ValueError, match="duplicate action"):
            Workflow(
                "w", "", initial_state="a", states=("a", "b", "c"),
                transitions=(
                    Transition("a", "b", action="go"),
                    Transition("a", "c", action="go", guard=Guard("g", "")),
                ),
            )
