"""
Hypothesis fuzzing for claim totals, workflow resolution and wallet balances.

- Claim totals satisfy the line-item sum identities for any valid lines.
- The executor never crashes and returns a well-formed TransitionResult
  for any (workflow, state, action, context).
- Any sequence of deductions and additions keeps a wallet within
  ``0 <= balance <= balance_limit`` and the final balance equals the sum
  of the accepted operations.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from petty_cash.domain.clock import DeterministicClock
from petty_cash.domain.models import CreateWalletInput, ExpenseLineItem
from petty_cash.domain.totals import compute_claim_totals, quantize
from petty_cash.persistence import InMemoryStore
from petty_cash.services import PettyCashOrchestrator, WorkflowExecutor
from petty_cash.workflows import ALL_WORKFLOWS

money = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("999999.99"),
    places=2, allow_nan=False, allow_infinity=False,
)
positive_money = st.decimals(
    min_value=Decimal("0.01"), max_value=Decimal("5000.00"),
    places=2, allow_nan=False, allow_infinity=False,
)


@st.composite
def line_items(draw):
    pre_vat = draw(money)
    vat = draw(money)
    wht = draw(st.decimals(
        min_value=Decimal("0"), max_value=pre_vat + vat,
        places=2, allow_nan=False, allow_infinity=False,
    ))
    return ExpenseLineItem("line", pre_vat, vat, wht)


@st.composite
def workflow_state_action(draw):
    """(workflow, state, action) -- may or may not match a declared transition."""
    workflow = draw(st.sampled_from(ALL_WORKFLOWS))
    if draw(st.booleans()):
        t = draw(st.sampled_from(workflow.transitions))
        return workflow, t.from_state, t.action
    state = draw(st.sampled_from(workflow.states))
    action = draw(st.text(alphabet=st.characters(whitelist_categories=("Ll",)), max_size=20))
    return workflow, state, action


class TestClaimTotalsFuzzing:

    @settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(items=st.lists(line_items(), min_size=1, max_size=8))
    def test_sum_identities(self, items):
        totals = compute_claim_totals(Decimal("0"), items)

        assert totals.subtotal == quantize(sum((i.pre_vat_amount for i in items), Decimal("0")))
        assert totals.total_amount == totals.subtotal + totals.vat_amount
        assert totals.net_amount == totals.total_amount - totals.wht_amount
        assert totals.net_amount >= 0

    @settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(amount=positive_money)
    def test_no_lines_means_amount(self, amount):
        totals = compute_claim_totals(amount, [])

        assert totals.total_amount == totals.net_amount == amount


class TestWorkflowExecutorFuzzing:

    @settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(
        case=workflow_state_action(),
        attachment_count=st.integers(min_value=-3, max_value=5),
    )
    def test_result_well_formed(self, case, attachment_count):
        workflow, state, action = case
        executor = WorkflowExecutor(clock=DeterministicClock())

        result = executor.execute_transition(
            workflow, "entity", uuid4(), state, action,
            {"attachment_count": attachment_count},
        )

        declared = workflow.find_transition(state, action)
        if result.success:
            assert declared is not None
            assert result.new_state == declared.to_state
            assert result.new_state in workflow.states
        elif result.guard_failed:
            assert declared is not None and declared.guard is not None
            assert attachment_count <= 0
        else:
            assert declared is None
            assert result.transition is None


class TestWalletBalanceFuzzing:

    @settings(max_examples=50, suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture])
    @given(
        start=positive_money,
        limit_headroom=positive_money,
        ops=st.lists(st.tuples(st.booleans(), positive_money), max_size=25),
    )
    def test_balance_stays_within_bounds(self, start, limit_headroom, ops):
        petty_cash = PettyCashOrchestrator(InMemoryStore(), clock=DeterministicClock())
        limit = start + limit_headroom
        wallet = petty_cash.wallets.create_wallet(
            CreateWalletInput("Fuzz", "h", "H", "company-a", "THB", start, balance_limit=limit)
        ).unwrap()

        expected = start
        for is_credit, amount in ops:
            if is_credit:
                result = petty_cash.wallets.add_to_wallet(wallet.id, amount)
                if result.is_success:
                    expected += amount
            else:
                result = petty_cash.wallets.deduct_from_wallet(wallet.id, amount)
                if result.is_success:
                    expected -= amount
            balance = petty_cash.wallets.get_wallet(wallet.id).balance
            assert Decimal("0") <= balance <= limit

        assert petty_cash.wallets.get_wallet(wallet.id).balance == expected
