"""
LedgerProjector -- the derived, read-only transaction history.

Responsibility:
    Merges recognized expense claims, completed top-ups and paid
    reimbursements into one list of signed ``LedgerTransaction`` entries,
    newest first, and answers the reporting questions built on it.  Every
    method reads a single store snapshot, so the result is a consistent
    point-in-time view even while writers are active.  Nothing is persisted.

Recognized claims:
    A claim counts as an expense once it has been submitted, and keeps
    counting as it moves on to approved and paid.  Review and payment do not
    undo the cash outlay the submission recorded.  Drafts and rejected
    claims never appear.

Ordering:
    Entries are concatenated expenses, then top-ups, then reimbursements,
    and sorted by date descending with a stable sort, so entries sharing a
    date keep that concatenation order.

Date ranges:
    Monthly totals use the half-open interval ``[month_start, next_month)``.
    Caller-supplied ranges (``transactions_between``,
    ``company_expense_total``, ``company_expense_summaries``) are inclusive
    at both ends.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from petty_cash.domain.models import (
    RECOGNIZED_CLAIM_STATUSES,
    CompanyExpenseSummary,
    ExpenseClaim,
    LedgerTransaction,
    PendingReimbursementTotals,
    ReimbursementRecord,
    ReimbursementStatus,
    TopUpRequest,
    TopUpStatus,
    TransactionType,
    WalletSummary,
)
from petty_cash.domain.totals import in_closed, in_half_open, month_bounds
from petty_cash.logging_config import get_logger
from petty_cash.persistence.port import Collection, PettyCashStore, StoreTransaction

logger = get_logger("services.ledger")

ZERO = Decimal("0")


def _reimbursement_date(record: ReimbursementRecord) -> date:
    if record.payment_date is not None:
        return record.payment_date
    return record.updated_at.date()


def build_transaction_history(
    claims: Iterable[ExpenseClaim],
    top_ups: Iterable[TopUpRequest],
    reimbursements: Iterable[ReimbursementRecord],
) -> list[LedgerTransaction]:
    """Pure merge of the three sources into a date-descending ledger."""
    expenses = [
        LedgerTransaction(
            id=c.id,
            type=TransactionType.EXPENSE,
            date=c.expense_date,
            amount=-c.net_amount,
            wallet_id=c.wallet_id,
            company_id=c.company_id,
            reference_number=c.claim_number,
            description=c.description,
            status=c.status.value,
        )
        for c in claims
        if c.status in RECOGNIZED_CLAIM_STATUSES
    ]
    credits = [
        LedgerTransaction(
            id=t.id,
            type=TransactionType.TOPUP,
            date=t.top_up_date,
            amount=t.amount,
            wallet_id=t.wallet_id,
            company_id=t.company_id,
            reference_number=t.top_up_number,
            description=t.notes or "",
            status=t.status.value,
        )
        for t in top_ups
        if t.status is TopUpStatus.COMPLETED
    ]
    repayments = [
        LedgerTransaction(
            id=r.id,
            type=TransactionType.REIMBURSEMENT_PAID,
            date=_reimbursement_date(r),
            amount=r.final_amount,
            wallet_id=r.wallet_id,
            company_id=r.company_id,
            reference_number=r.reimbursement_number,
            description=r.expense_number,
            status=r.status.value,
        )
        for r in reimbursements
        if r.status is ReimbursementStatus.PAID
    ]
    return sorted(expenses + credits + repayments, key=lambda t: t.date, reverse=True)


def _expense_total(entries: Iterable[LedgerTransaction]) -> Decimal:
    return sum(
        (-t.amount for t in entries if t.type is TransactionType.EXPENSE), ZERO,
    )


class LedgerProjector:
    """Read-only reporting over a ``PettyCashStore``."""

    def __init__(self, store: PettyCashStore):
        self._store = store

    @staticmethod
    def _history(view: StoreTransaction) -> list[LedgerTransaction]:
        return build_transaction_history(
            view.list(Collection.EXPENSE_CLAIMS),
            view.list(Collection.TOP_UPS),
            view.list(Collection.REIMBURSEMENTS),
        )

    @staticmethod
    def _pending(view: StoreTransaction) -> list[ReimbursementRecord]:
        return view.list(
            Collection.REIMBURSEMENTS,
            lambda r: r.status is ReimbursementStatus.PENDING,
        )

    # ------------------------------------------------------------------
    # Transaction lists
    # ------------------------------------------------------------------

    def get_all_transactions(
        self,
        wallet_id: UUID | None = None,
        company_id: str | None = None,
    ) -> list[LedgerTransaction]:
        with self._store.snapshot() as view:
            history = self._history(view)
        return [
            t for t in history
            if (wallet_id is None or t.wallet_id == wallet_id)
            and (company_id is None or t.company_id == company_id)
        ]

    def transactions_between(
        self,
        date_from: date,
        date_to: date,
        wallet_id: UUID | None = None,
        company_id: str | None = None,
    ) -> list[LedgerTransaction]:
        """Entries dated within ``[date_from, date_to]``."""
        return [
            t for t in self.get_all_transactions(wallet_id=wallet_id, company_id=company_id)
            if in_closed(t.date, date_from, date_to)
        ]

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------

    def monthly_expense_total(self, wallet_id: UUID, year: int, month: int) -> Decimal:
        start, end = month_bounds(year, month)
        return _expense_total(
            t for t in self.get_all_transactions(wallet_id=wallet_id)
            if in_half_open(t.date, start, end)
        )

    def monthly_top_up_total(self, wallet_id: UUID, year: int, month: int) -> Decimal:
        start, end = month_bounds(year, month)
        return sum(
            (
                t.amount for t in self.get_all_transactions(wallet_id=wallet_id)
                if t.type is TransactionType.TOPUP and in_half_open(t.date, start, end)
            ),
            ZERO,
        )

    def company_expense_total(self, company_id: str, date_from: date, date_to: date) -> Decimal:
        return _expense_total(
            self.transactions_between(date_from, date_to, company_id=company_id)
        )

    def calculated_balance(self, wallet_id: UUID) -> Decimal | None:
        """Beginning balance plus the wallet's signed ledger entries.

        Returns ``None`` for an unknown wallet.
        """
        with self._store.snapshot() as view:
            wallet = view.get(Collection.WALLETS, wallet_id)
            if wallet is None:
                return None
            history = self._history(view)
        return wallet.beginning_balance + sum(
            (t.amount for t in history if t.wallet_id == wallet_id), ZERO,
        )

    # ------------------------------------------------------------------
    # Pending reimbursements
    # ------------------------------------------------------------------

    def pending_amount_for_wallet(self, wallet_id: UUID) -> Decimal:
        with self._store.snapshot() as view:
            pending = self._pending(view)
        return sum((r.final_amount for r in pending if r.wallet_id == wallet_id), ZERO)

    def total_pending_reimbursements(self) -> PendingReimbursementTotals:
        with self._store.snapshot() as view:
            pending = self._pending(view)
        return PendingReimbursementTotals(
            count=len(pending),
            amount=sum((r.final_amount for r in pending), ZERO),
        )

    def pending_reimbursements_by_company(self) -> dict[str, list[ReimbursementRecord]]:
        with self._store.snapshot() as view:
            pending = self._pending(view)
        grouped: dict[str, list[ReimbursementRecord]] = defaultdict(list)
        for record in pending:
            grouped[record.company_id].append(record)
        return dict(grouped)

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    def wallet_summary(self, year: int, month: int) -> WalletSummary:
        start, end = month_bounds(year, month)
        with self._store.snapshot() as view:
            active = view.list(Collection.WALLETS, lambda w: w.is_active)
            pending = self._pending(view)
            history = self._history(view)
        summary = WalletSummary(
            total_balance=sum((w.balance for w in active), ZERO),
            total_pending_reimbursement=sum((r.final_amount for r in pending), ZERO),
            monthly_expenses=_expense_total(
                t for t in history if in_half_open(t.date, start, end)
            ),
            low_balance_wallets=sum(1 for w in active if w.is_low_balance),
            active_wallets=len(active),
        )
        logger.debug(
            "wallet_summary_computed",
            extra={"year": year, "month": month, "active_wallets": summary.active_wallets},
        )
        return summary

    def company_expense_summaries(
        self,
        date_from: date,
        date_to: date,
    ) -> list[CompanyExpenseSummary]:
        """Per-company expense figures within ``[date_from, date_to]``."""
        with self._store.snapshot() as view:
            companies = {w.company_id for w in view.list(Collection.WALLETS)}
            pending = self._pending(view)
            history = self._history(view)
        expenses = [
            t for t in history
            if t.type is TransactionType.EXPENSE and in_closed(t.date, date_from, date_to)
        ]
        companies |= {t.company_id for t in expenses}
        companies |= {r.company_id for r in pending}
        return [
            CompanyExpenseSummary(
                company_id=company,
                total_expenses=_expense_total(t for t in expenses if t.company_id == company),
                pending_reimbursements=sum(
                    (r.final_amount for r in pending if r.company_id == company), ZERO,
                ),
                transaction_count=sum(1 for t in expenses if t.company_id == company),
            )
            for company in sorted(companies)
        ]
