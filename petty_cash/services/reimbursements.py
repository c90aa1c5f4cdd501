"""
ReimbursementWorkflow -- paying a submitted claim back out of company funds.

State machine (``REIMBURSEMENT_WORKFLOW``)::

    pending --approve--> approved --pay--> paid
    pending|approved --reject--> rejected

Records are created only by ``ExpenseClaimWorkflow`` at submission
(``build_reimbursement``), one per claim, and are never deleted.

Invariants enforced:
    - ``final_amount == amount + (adjustment_amount or 0)`` and is never
      negative.
    - Approval happens once; re-approving fails without touching the
      adjustment.
    - Payment only from ``approved``.
    - Rejecting a claim rejects its open reimbursement in the same unit of
      work; a claim whose reimbursement is paid cannot be rejected.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from petty_cash.domain.models import (
    ExpenseClaim,
    ReimbursementRecord,
    ReimbursementStatus,
)
from petty_cash.domain.results import OperationResult
from petty_cash.domain.totals import require_positive, to_amount
from petty_cash.exceptions import (
    IntegrityViolationError,
    InvalidStateTransitionError,
    ValidationError,
)
from petty_cash.logging_config import get_logger
from petty_cash.persistence.port import Collection, StoreTransaction
from petty_cash.services.base import BaseService
from petty_cash.services.wallet_store import credit_wallet
from petty_cash.workflows import REIMBURSEMENT_WORKFLOW

logger = get_logger("services.reimbursements")

ENTITY_TYPE = "reimbursement"

LOCKED_STATUSES = frozenset({ReimbursementStatus.PAID, ReimbursementStatus.REJECTED})


def build_reimbursement(
    claim: ExpenseClaim,
    reimbursement_number: str,
    now: datetime,
) -> ReimbursementRecord:
    """The pending reimbursement that accompanies a newly submitted claim."""
    return ReimbursementRecord(
        id=uuid4(),
        reimbursement_number=reimbursement_number,
        expense_id=claim.id,
        expense_number=claim.claim_number,
        wallet_id=claim.wallet_id,
        company_id=claim.company_id,
        amount=claim.amount,
        final_amount=claim.amount,
        status=ReimbursementStatus.PENDING,
        created_at=now,
        updated_at=now,
    )


def find_by_expense(tx: StoreTransaction, expense_id: UUID) -> ReimbursementRecord | None:
    matches = tx.list(Collection.REIMBURSEMENTS, lambda r: r.expense_id == expense_id)
    return matches[0] if matches else None


def _final_amount(amount: Decimal, adjustment: Decimal | None, record_id: UUID) -> Decimal:
    final = amount + (adjustment if adjustment is not None else Decimal("0"))
    if final < 0:
        raise ValidationError(
            f"Reimbursement {record_id}: final amount {final} would be negative",
            field="adjustment_amount",
        )
    return final


def apply_amount_change(
    record: ReimbursementRecord,
    new_amount: Decimal,
    now: datetime,
) -> ReimbursementRecord:
    """Return ``record`` with a new base amount and recomputed final amount.

    Raises:
        InvalidStateTransitionError: the record is paid or rejected.
        ValidationError: the final amount would be negative.
    """
    if record.status in LOCKED_STATUSES:
        raise InvalidStateTransitionError(
            entity_type=ENTITY_TYPE,
            entity_id=str(record.id),
            current_state=record.status.value,
            action="update_amount",
        )
    final = _final_amount(new_amount, record.adjustment_amount, record.id)
    return replace(record, amount=new_amount, final_amount=final, updated_at=now)


def sync_claim_amount(
    tx: StoreTransaction,
    expense_id: UUID,
    new_amount: Decimal,
    now: datetime,
) -> ReimbursementRecord | None:
    """Carry a claim's amount change to its reimbursement within ``tx``."""
    record = find_by_expense(tx, expense_id)
    if record is None or record.amount == new_amount:
        return record
    updated = apply_amount_change(record, new_amount, now)
    tx.upsert(updated)
    logger.info(
        "reimbursement_amount_synced",
        extra={
            "reimbursement_id": str(record.id),
            "expense_id": str(expense_id),
            "amount": new_amount,
            "final_amount": updated.final_amount,
        },
    )
    return updated


def reject_with_claim(
    tx: StoreTransaction,
    workflows,
    claim: ExpenseClaim,
    rejected_by: str,
    reason: str,
    now: datetime,
) -> ReimbursementRecord | None:
    """Reject the open reimbursement of a claim being rejected, within ``tx``.

    Raises:
        IntegrityViolationError: the reimbursement has already been paid.
    """
    record = find_by_expense(tx, claim.id)
    if record is None or record.status is ReimbursementStatus.REJECTED:
        return record
    if record.status is ReimbursementStatus.PAID:
        raise IntegrityViolationError(
            "expense_claim",
            str(claim.id),
            f"reimbursement {record.reimbursement_number} has already been paid",
        )
    transition = workflows.require_transition(
        REIMBURSEMENT_WORKFLOW, ENTITY_TYPE, record.id, record.status.value, "reject",
    )
    updated = replace(
        record,
        status=ReimbursementStatus(transition.to_state),
        rejected_by=rejected_by,
        rejected_at=now,
        rejection_reason=reason,
        updated_at=now,
    )
    tx.upsert(updated)
    logger.info(
        "reimbursement_rejected_with_claim",
        extra={
            "reimbursement_id": str(record.id),
            "expense_id": str(claim.id),
            "from_status": record.status.value,
        },
    )
    return updated


class ReimbursementWorkflow(BaseService):
    """Accounting approval, payment and rejection of reimbursements."""

    def _transition(self, tx: StoreTransaction, reimbursement_id: UUID, action: str):
        record = self._require(tx, Collection.REIMBURSEMENTS, reimbursement_id, ENTITY_TYPE)
        transition = self._workflows.require_transition(
            REIMBURSEMENT_WORKFLOW,
            ENTITY_TYPE,
            record.id,
            record.status.value,
            action,
        )
        return record, ReimbursementStatus(transition.to_state)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def approve(
        self,
        reimbursement_id: UUID,
        approved_by: str,
        bank_account_ref: str,
        adjustment_amount: Decimal | None = None,
        adjustment_reason: str | None = None,
    ) -> OperationResult[ReimbursementRecord]:
        def op() -> ReimbursementRecord:
            wallet_id = self._locate_wallet_id(
                Collection.REIMBURSEMENTS, reimbursement_id, ENTITY_TYPE,
            )
            with self._store.transaction(wallet_id=wallet_id) as tx:
                record, new_status = self._transition(tx, reimbursement_id, "approve")
                if not bank_account_ref or not bank_account_ref.strip():
                    raise ValidationError(
                        "bank_account_ref is required to approve a reimbursement",
                        field="bank_account_ref",
                    )
                adjustment = (
                    to_amount(adjustment_amount, "adjustment_amount")
                    if adjustment_amount is not None
                    else None
                )
                now = self._clock.now()
                updated = replace(
                    record,
                    status=new_status,
                    adjustment_amount=adjustment,
                    adjustment_reason=adjustment_reason,
                    final_amount=_final_amount(record.amount, adjustment, record.id),
                    bank_account_ref=bank_account_ref,
                    approved_by=approved_by,
                    approved_at=now,
                    updated_at=now,
                )
                tx.upsert(updated)
            logger.info(
                "reimbursement_approved",
                extra={
                    "reimbursement_id": str(record.id),
                    "amount": record.amount,
                    "adjustment_amount": adjustment,
                    "final_amount": updated.final_amount,
                },
            )
            return updated

        return self._run(
            "approve_reimbursement", op,
            entity_id=reimbursement_id, actor_id=approved_by,
        )

    def process_payment(
        self,
        reimbursement_id: UUID,
        payment_date: date,
        payment_reference: str | None = None,
    ) -> OperationResult[ReimbursementRecord]:
        def op() -> ReimbursementRecord:
            if payment_date is None:
                raise ValidationError("payment_date is required", field="payment_date")
            wallet_id = self._locate_wallet_id(
                Collection.REIMBURSEMENTS, reimbursement_id, ENTITY_TYPE,
            )
            with self._store.transaction(wallet_id=wallet_id) as tx:
                record, new_status = self._transition(tx, reimbursement_id, "pay")
                now = self._clock.now()
                updated = replace(
                    record,
                    status=new_status,
                    payment_date=payment_date,
                    payment_reference=payment_reference,
                    updated_at=now,
                )
                tx.upsert(updated)
                if self._config.credit_wallet_on_reimbursement_payment:
                    credit_wallet(tx, record.wallet_id, record.final_amount, now)
            logger.info(
                "reimbursement_paid",
                extra={
                    "reimbursement_id": str(record.id),
                    "final_amount": record.final_amount,
                    "payment_date": payment_date,
                },
            )
            return updated

        return self._run("process_reimbursement_payment", op, entity_id=reimbursement_id)

    def reject(
        self,
        reimbursement_id: UUID,
        rejected_by: str,
        reason: str,
    ) -> OperationResult[ReimbursementRecord]:
        def op() -> ReimbursementRecord:
            wallet_id = self._locate_wallet_id(
                Collection.REIMBURSEMENTS, reimbursement_id, ENTITY_TYPE,
            )
            with self._store.transaction(wallet_id=wallet_id) as tx:
                record, new_status = self._transition(tx, reimbursement_id, "reject")
                if not reason or not reason.strip():
                    raise ValidationError(
                        "A reason is required to reject a reimbursement",
                        field="reason",
                    )
                now = self._clock.now()
                updated = replace(
                    record,
                    status=new_status,
                    rejected_by=rejected_by,
                    rejected_at=now,
                    rejection_reason=reason,
                    updated_at=now,
                )
                tx.upsert(updated)
            logger.info(
                "reimbursement_rejected",
                extra={
                    "reimbursement_id": str(record.id),
                    "from_status": record.status.value,
                },
            )
            return updated

        return self._run(
            "reject_reimbursement", op,
            entity_id=reimbursement_id, actor_id=rejected_by,
        )

    def update_amount(
        self,
        reimbursement_id: UUID,
        new_amount: Decimal,
    ) -> OperationResult[ReimbursementRecord]:
        def op() -> ReimbursementRecord:
            amount = require_positive(new_amount)
            wallet_id = self._locate_wallet_id(
                Collection.REIMBURSEMENTS, reimbursement_id, ENTITY_TYPE,
            )
            with self._store.transaction(wallet_id=wallet_id) as tx:
                record = self._require(
                    tx, Collection.REIMBURSEMENTS, reimbursement_id, ENTITY_TYPE,
                )
                updated = apply_amount_change(record, amount, self._clock.now())
                tx.upsert(updated)
            logger.info(
                "reimbursement_amount_updated",
                extra={
                    "reimbursement_id": str(record.id),
                    "amount": amount,
                    "final_amount": updated.final_amount,
                },
            )
            return updated

        return self._run("update_reimbursement_amount", op, entity_id=reimbursement_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, reimbursement_id: UUID) -> ReimbursementRecord | None:
        with self._store.snapshot() as view:
            return view.get(Collection.REIMBURSEMENTS, reimbursement_id)

    def get_by_expense_id(self, expense_id: UUID) -> ReimbursementRecord | None:
        with self._store.snapshot() as view:
            return find_by_expense(view, expense_id)

    def list_reimbursements(
        self,
        status: ReimbursementStatus | None = None,
        wallet_id: UUID | None = None,
        company_id: str | None = None,
    ) -> list[ReimbursementRecord]:
        def matches(r: ReimbursementRecord) -> bool:
            return (
                (status is None or r.status is status)
                and (wallet_id is None or r.wallet_id == wallet_id)
                and (company_id is None or r.company_id == company_id)
            )

        with self._store.snapshot() as view:
            return view.list(Collection.REIMBURSEMENTS, matches)

    def pending_for_reconciliation(
        self,
        bank_account_ref: str | None = None,
    ) -> list[ReimbursementRecord]:
        """Approved but unpaid reimbursements, oldest approval first."""
        approved = [
            r for r in self.list_reimbursements(status=ReimbursementStatus.APPROVED)
            if bank_account_ref is None or r.bank_account_ref == bank_account_ref
        ]
        return sorted(approved, key=lambda r: r.approved_at)
