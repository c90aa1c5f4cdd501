"""
Pure domain layer.

Immutable records, workflow definitions, results and calculation helpers
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O
"""

from petty_cash.domain.clock import Clock, DeterministicClock, SystemClock
from petty_cash.domain.models import (
    ClaimStatus,
    ClaimTotals,
    CompanyExpenseSummary,
    CreateClaimInput,
    CreateTopUpInput,
    CreateWalletInput,
    ExpenseClaim,
    ExpenseLineItem,
    LedgerTransaction,
    PendingReimbursementTotals,
    ReceiptStatus,
    ReimbursementRecord,
    ReimbursementStatus,
    SubmittedClaim,
    TopUpRequest,
    TopUpStatus,
    TransactionType,
    Wallet,
    WalletStatus,
    WalletSummary,
)
from petty_cash.domain.results import OperationResult, ResultStatus
from petty_cash.domain.totals import compute_claim_totals
from petty_cash.domain.workflow import Guard, Transition, TransitionResult, Workflow

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "ClaimStatus",
    "ClaimTotals",
    "CompanyExpenseSummary",
    "CreateClaimInput",
    "CreateTopUpInput",
    "CreateWalletInput",
    "ExpenseClaim",
    "ExpenseLineItem",
    "LedgerTransaction",
    "PendingReimbursementTotals",
    "ReceiptStatus",
    "ReimbursementRecord",
    "ReimbursementStatus",
    "SubmittedClaim",
    "TopUpRequest",
    "TopUpStatus",
    "TransactionType",
    "Wallet",
    "WalletStatus",
    "WalletSummary",
    "OperationResult",
    "ResultStatus",
    "compute_claim_totals",
    "Guard",
    "Transition",
    "TransitionResult",
    "Workflow",
]
