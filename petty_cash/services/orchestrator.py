"""
petty_cash.services.orchestrator -- Composition root for the petty-cash services.

Responsibility:
    Creates every service exactly once over one store, one configuration
    and one clock, and wires them together.  No service constructs another
    service internally.

Usage:
    from petty_cash.persistence import InMemoryStore
    from petty_cash.services import PettyCashOrchestrator

    petty_cash = PettyCashOrchestrator(InMemoryStore())

    petty_cash.wallets.create_wallet(...)
    petty_cash.expense_claims.submit(claim_id)
    petty_cash.reimbursements.approve(...)
    petty_cash.top_ups.complete(...)
    petty_cash.ledger.get_all_transactions()
"""

from __future__ import annotations

from petty_cash.config import PettyCashConfig
from petty_cash.domain.clock import Clock, SystemClock
from petty_cash.logging_config import get_logger
from petty_cash.persistence.port import PettyCashStore
from petty_cash.services.document_numbers import DocumentNumberGenerator
from petty_cash.services.expense_claims import ExpenseClaimWorkflow
from petty_cash.services.ledger import LedgerProjector
from petty_cash.services.reimbursements import ReimbursementWorkflow
from petty_cash.services.top_ups import TopUpWorkflow
from petty_cash.services.wallet_store import WalletStore
from petty_cash.services.workflow_executor import GuardExecutor, WorkflowExecutor

logger = get_logger("services.orchestrator")


class PettyCashOrchestrator:
    """Central factory for the petty-cash services.

    Guarantees:
        - Single-instance lifecycle for every service within this
          orchestrator's scope.
        - All services share the same store, configuration and clock.

    Non-goals:
        - Does NOT own the store's lifecycle (engine disposal is the
          caller's responsibility).
    """

    def __init__(
        self,
        store: PettyCashStore,
        config: PettyCashConfig | None = None,
        clock: Clock | None = None,
        guard_executor: GuardExecutor | None = None,
    ) -> None:
        self.store = store
        self.config = config or PettyCashConfig()
        self.clock = clock or SystemClock()

        self.workflow_executor = WorkflowExecutor(
            clock=self.clock, guard_executor=guard_executor,
        )
        self.document_numbers = DocumentNumberGenerator.from_config(
            store, self.clock, self.config,
        )

        common = dict(
            store=store,
            config=self.config,
            clock=self.clock,
            workflow_executor=self.workflow_executor,
        )
        self.wallets = WalletStore(**common)
        self.reimbursements = ReimbursementWorkflow(**common)
        self.expense_claims = ExpenseClaimWorkflow(numbers=self.document_numbers, **common)
        self.top_ups = TopUpWorkflow(numbers=self.document_numbers, **common)
        self.ledger = LedgerProjector(store)

        logger.info(
            "petty_cash_orchestrator_initialized",
            extra={
                "store": type(store).__name__,
                "counter_reset": self.config.counter_reset,
            },
        )
