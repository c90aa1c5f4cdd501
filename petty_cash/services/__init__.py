"""Petty-cash services: wallets, the three workflows, ledger and numbering."""

from petty_cash.services.document_numbers import DocumentKind, DocumentNumberGenerator
from petty_cash.services.expense_claims import ExpenseClaimWorkflow
from petty_cash.services.ledger import LedgerProjector, build_transaction_history
from petty_cash.services.orchestrator import PettyCashOrchestrator
from petty_cash.services.reimbursements import ReimbursementWorkflow
from petty_cash.services.top_ups import TopUpWorkflow
from petty_cash.services.wallet_store import WalletStore, credit_wallet, debit_wallet
from petty_cash.services.workflow_executor import (
    GuardExecutor,
    WorkflowExecutor,
    default_guard_executor,
)

__all__ = [
    "DocumentKind",
    "DocumentNumberGenerator",
    "ExpenseClaimWorkflow",
    "GuardExecutor",
    "LedgerProjector",
    "PettyCashOrchestrator",
    "ReimbursementWorkflow",
    "TopUpWorkflow",
    "WalletStore",
    "WorkflowExecutor",
    "build_transaction_history",
    "credit_wallet",
    "debit_wallet",
    "default_guard_executor",
]
