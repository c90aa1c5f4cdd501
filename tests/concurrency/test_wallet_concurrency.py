"""
Concurrency tests for wallet balances, claim submission and numbering.

Threads hammer one ``InMemoryStore`` through a shared orchestrator.  The
invariants must hold regardless of interleaving:

- A wallet balance never goes negative and never exceeds its limit.
- Each claim gets exactly one reimbursement, however many submits race.
- Document numbers are never duplicated.

Run with: pytest tests/concurrency -v
Skip with: pytest -m "not slow_locks"
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from threading import Barrier

import pytest

from petty_cash.config import PettyCashConfig
from petty_cash.domain.models import CreateClaimInput, CreateWalletInput
from petty_cash.domain.results import ResultStatus
from petty_cash.persistence import InMemoryStore
from petty_cash.services import PettyCashOrchestrator

pytestmark = pytest.mark.slow_locks

THREADS = 8


@pytest.fixture
def shared(clock):
    return PettyCashOrchestrator(InMemoryStore(), clock=clock)


def _wallet(petty_cash, balance="100", limit=None):
    return petty_cash.wallets.create_wallet(
        CreateWalletInput(
            wallet_name="Shared float",
            holder_id="holder-1",
            holder_name="Holder",
            company_id="company-a",
            currency="THB",
            beginning_balance=Decimal(balance),
            balance_limit=Decimal(limit) if limit else None,
        )
    ).unwrap()


def _race(fn, count):
    barrier = Barrier(min(count, THREADS))

    def run(i):
        barrier.wait()
        return fn(i)

    with ThreadPoolExecutor(max_workers=THREADS) as pool:
        return list(pool.map(run, range(count)))


class TestBalanceRaces:

    def test_concurrent_deductions_never_overdraw(self, shared):
        wallet = _wallet(shared, balance="100")

        results = _race(lambda i: shared.wallets.deduct_from_wallet(wallet.id, Decimal("15")), THREADS)

        succeeded = [r for r in results if r.is_success]
        refused = [r for r in results if r.status is ResultStatus.INSUFFICIENT_FUNDS]
        assert len(succeeded) == 6
        assert len(refused) == 2
        assert shared.wallets.get_wallet(wallet.id).balance == Decimal("10")

    def test_concurrent_credits_never_exceed_limit(self, shared):
        wallet = _wallet(shared, balance="0", limit="50")

        results = _race(lambda i: shared.wallets.add_to_wallet(wallet.id, Decimal("10")), THREADS)

        assert sum(1 for r in results if r.is_success) == 5
        assert shared.wallets.get_wallet(wallet.id).balance == Decimal("50")

    def test_mixed_debits_and_credits_balance_out(self, shared):
        wallet = _wallet(shared, balance="1000")

        def op(i):
            if i % 2:
                return shared.wallets.add_to_wallet(wallet.id, Decimal("7"))
            return shared.wallets.deduct_from_wallet(wallet.id, Decimal("7"))

        results = _race(op, THREADS * 4)

        assert all(r.is_success for r in results)
        assert shared.wallets.get_wallet(wallet.id).balance == Decimal("1000")


class TestSubmitRaces:

    def test_same_claim_submitted_concurrently_gets_one_reimbursement(self, shared):
        wallet = _wallet(shared)
        claim = shared.expense_claims.create(
            CreateClaimInput(
                wallet_id=wallet.id, expense_date=date(2025, 1, 8),
                amount=Decimal("30"), attachments=("r.jpg",),
            )
        ).unwrap()

        results = _race(lambda i: shared.expense_claims.submit(claim.id), THREADS)

        assert sum(1 for r in results if r.is_success) == 1
        assert all(
            r.status is ResultStatus.INVALID_STATE_TRANSITION
            for r in results if not r.is_success
        )
        assert len(shared.reimbursements.list_reimbursements()) == 1

    def test_distinct_claims_each_get_one_reimbursement(self, shared):
        wallet = _wallet(shared)
        claims = [
            shared.expense_claims.create(
                CreateClaimInput(
                    wallet_id=wallet.id, expense_date=date(2025, 1, 8),
                    amount=Decimal("5"), attachments=("r.jpg",),
                )
            ).unwrap()
            for _ in range(THREADS)
        ]

        results = _race(lambda i: shared.expense_claims.submit(claims[i].id), THREADS)

        assert all(r.is_success for r in results)
        reimbursements = shared.reimbursements.list_reimbursements()
        assert sorted(r.expense_id for r in reimbursements) == sorted(c.id for c in claims)
        assert len({r.reimbursement_number for r in reimbursements}) == THREADS

    def test_deducting_submits_respect_balance(self, clock):
        shared = PettyCashOrchestrator(
            InMemoryStore(), PettyCashConfig(deduct_wallet_on_claim_submission=True), clock,
        )
        wallet = _wallet(shared, balance="100")
        claims = [
            shared.expense_claims.create(
                CreateClaimInput(
                    wallet_id=wallet.id, expense_date=date(2025, 1, 8),
                    amount=Decimal("30"), attachments=("r.jpg",),
                )
            ).unwrap()
            for _ in range(THREADS)
        ]

        results = _race(lambda i: shared.expense_claims.submit(claims[i].id), THREADS)

        assert sum(1 for r in results if r.is_success) == 3
        assert shared.wallets.get_wallet(wallet.id).balance == Decimal("10")
        assert len(shared.reimbursements.list_reimbursements()) == 3


class TestNumberingRaces:

    def test_document_numbers_unique(self, shared):
        numbers = _race(lambda i: shared.document_numbers.expense_claim_number(), THREADS * 10)

        assert len(set(numbers)) == len(numbers)
        assert max(numbers) == f"PC-EXP-2501-{THREADS * 10:04d}"

    def test_sql_counter_unique_under_threads(self, sql_store):
        values = _race(lambda i: sql_store.next_sequence_value("doc:race"), THREADS * 4)

        assert sorted(values) == list(range(1, THREADS * 4 + 1))
