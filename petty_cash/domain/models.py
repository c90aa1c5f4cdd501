"""
Petty-Cash Domain Models.

The nouns of custodial cash: wallets, expense claims and their line items,
reimbursements, top-ups, and the derived ledger transaction.  Every record
is a frozen dataclass; state changes produce a new instance via
``dataclasses.replace``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class WalletStatus(Enum):
    """Wallet lifecycle states."""
    ACTIVE = "active"
    CLOSED = "closed"


class ClaimStatus(Enum):
    """Expense claim lifecycle states."""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    PAID = "paid"
    REJECTED = "rejected"


class ReceiptStatus(Enum):
    """Whether the original paper receipt has reached accounting."""
    PENDING = "pending"
    ORIGINAL_RECEIVED = "original_received"


class ReimbursementStatus(Enum):
    """Reimbursement lifecycle states."""
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    REJECTED = "rejected"


class TopUpStatus(Enum):
    """Top-up lifecycle states (cancellation removes the record)."""
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"


class TransactionType(Enum):
    """Discriminator for ledger transactions."""
    EXPENSE = "expense"
    TOPUP = "topup"
    REIMBURSEMENT_PAID = "reimbursement_paid"


# Claims that have been submitted at some point and not rejected.
RECOGNIZED_CLAIM_STATUSES = frozenset(
    {ClaimStatus.SUBMITTED, ClaimStatus.APPROVED, ClaimStatus.PAID}
)


@dataclass(frozen=True)
class Wallet:
    """A float-cash account held by one person for one company."""
    id: UUID
    wallet_name: str
    holder_id: str
    holder_name: str
    company_id: str
    currency: str  # opaque tag, never converted here
    balance: Decimal
    beginning_balance: Decimal = Decimal("0")
    status: WalletStatus = WalletStatus.ACTIVE
    balance_limit: Decimal | None = None
    low_balance_threshold: Decimal | None = None
    reimbursement_bank_account_ref: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status is WalletStatus.ACTIVE

    @property
    def is_low_balance(self) -> bool:
        return (
            self.low_balance_threshold is not None
            and self.balance <= self.low_balance_threshold
        )


@dataclass(frozen=True)
class ExpenseLineItem:
    """One line of an itemized claim.  VAT/WHT figures arrive precomputed."""
    description: str
    pre_vat_amount: Decimal
    vat_amount: Decimal = Decimal("0")
    wht_amount: Decimal = Decimal("0")
    project_ref: str | None = None
    category_ref: str | None = None

    @property
    def gross_amount(self) -> Decimal:
        return self.pre_vat_amount + self.vat_amount


@dataclass(frozen=True)
class ClaimTotals:
    """Derived totals of an expense claim."""
    subtotal: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    wht_amount: Decimal
    net_amount: Decimal


@dataclass(frozen=True)
class ExpenseClaim:
    """A cash outlay recognized against a wallet."""
    id: UUID
    claim_number: str
    wallet_id: UUID
    company_id: str
    expense_date: date
    description: str
    amount: Decimal
    subtotal: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    wht_amount: Decimal
    net_amount: Decimal  # what the wallet actually paid out
    line_items: tuple[ExpenseLineItem, ...] = ()
    attachments: tuple[str, ...] = ()  # opaque attachment-store references
    status: ClaimStatus = ClaimStatus.DRAFT
    receipt_status: ReceiptStatus = ReceiptStatus.PENDING
    receipt_received_date: date | None = None
    project_ref: str | None = None
    created_by: str | None = None
    submitted_at: datetime | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    paid_at: datetime | None = None
    rejected_by: str | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def totals(self) -> ClaimTotals:
        return ClaimTotals(
            subtotal=self.subtotal,
            vat_amount=self.vat_amount,
            total_amount=self.total_amount,
            wht_amount=self.wht_amount,
            net_amount=self.net_amount,
        )


@dataclass(frozen=True)
class ReimbursementRecord:
    """Company funds paid back for exactly one expense claim."""
    id: UUID
    reimbursement_number: str
    expense_id: UUID
    expense_number: str  # denormalized copy of the claim number
    wallet_id: UUID
    company_id: str
    amount: Decimal
    final_amount: Decimal  # amount + adjustment_amount
    status: ReimbursementStatus = ReimbursementStatus.PENDING
    adjustment_amount: Decimal | None = None
    adjustment_reason: str | None = None
    bank_account_ref: str | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejected_by: str | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    payment_date: date | None = None
    payment_reference: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class TopUpRequest:
    """An inbound transfer from a company bank account into a wallet."""
    id: UUID
    top_up_number: str
    wallet_id: UUID
    company_id: str
    bank_account_ref: str
    amount: Decimal
    top_up_date: date
    status: TopUpStatus = TopUpStatus.PENDING
    reference: str | None = None
    notes: str | None = None
    created_by: str | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    completed_by: str | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class SubmittedClaim:
    """A submitted claim together with the reimbursement created alongside it."""
    claim: ExpenseClaim
    reimbursement: ReimbursementRecord


@dataclass(frozen=True)
class LedgerTransaction:
    """One balance-affecting event.  Derived on demand, never persisted."""
    id: UUID
    type: TransactionType
    date: date
    amount: Decimal  # negative for expenses, positive for credits
    wallet_id: UUID
    company_id: str
    reference_number: str
    description: str
    status: str


# -----------------------------------------------------------------------------
# Inputs
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class CreateWalletInput:
    """Fields needed to open a wallet."""
    wallet_name: str
    holder_id: str
    holder_name: str
    company_id: str
    currency: str
    beginning_balance: Decimal = Decimal("0")
    balance_limit: Decimal | None = None
    low_balance_threshold: Decimal | None = None
    reimbursement_bank_account_ref: str | None = None


@dataclass(frozen=True)
class CreateClaimInput:
    """Fields needed to record an expense claim."""
    wallet_id: UUID
    expense_date: date
    amount: Decimal
    description: str = ""
    company_id: str | None = None  # defaults to the wallet's company
    attachments: tuple[str, ...] = ()
    project_ref: str | None = None
    created_by: str | None = None


@dataclass(frozen=True)
class CreateTopUpInput:
    """Fields needed to request a top-up."""
    wallet_id: UUID
    amount: Decimal
    bank_account_ref: str
    top_up_date: date
    company_id: str | None = None  # defaults to the wallet's company
    reference: str | None = None
    notes: str | None = None
    created_by: str | None = None


@dataclass(frozen=True)
class WalletSummary:
    """Dashboard figures across all wallets."""
    total_balance: Decimal
    total_pending_reimbursement: Decimal
    monthly_expenses: Decimal
    low_balance_wallets: int
    active_wallets: int


@dataclass(frozen=True)
class CompanyExpenseSummary:
    """Per-company expense figures for a period."""
    company_id: str
    total_expenses: Decimal
    pending_reimbursements: Decimal
    transaction_count: int


@dataclass(frozen=True)
class PendingReimbursementTotals:
    """Count and sum of reimbursements awaiting approval."""
    count: int
    amount: Decimal
