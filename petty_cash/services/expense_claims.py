"""
ExpenseClaimWorkflow -- cash outlays recorded against a wallet.

State machine (``EXPENSE_CLAIM_WORKFLOW``)::

    draft --submit--> submitted --review--> approved --pay--> paid
    draft|submitted|approved --reject--> rejected

Submission is the compound step: the status change and the creation of the
claim's single ``ReimbursementRecord`` are staged in one unit of work under
the wallet's lock and committed together.

Edit permission by status:
    draft                fully editable
    submitted, approved  editable only with ``edit_mode=True``
    paid                 ``edit_mode=True`` and never the amount or lines
    rejected             immutable

Once submitted, a claim keeps at least one attachment.  Rejecting a claim
also rejects its open reimbursement; a claim whose reimbursement has been
paid cannot be rejected.

When ``deduct_wallet_on_claim_submission`` is on, the wallet balance tracks
recognized claims: submission debits ``net_amount``, an edit that changes
``net_amount`` debits or credits the difference, and rejecting a recognized
claim credits it back.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Any, Mapping, Sequence
from uuid import UUID, uuid4

from petty_cash.domain.models import (
    RECOGNIZED_CLAIM_STATUSES,
    ClaimStatus,
    CreateClaimInput,
    ExpenseClaim,
    ExpenseLineItem,
    ReceiptStatus,
    SubmittedClaim,
    Wallet,
)
from petty_cash.domain.results import OperationResult
from petty_cash.domain.totals import (
    compute_claim_totals,
    require_positive,
    to_amount,
    validate_line_items,
)
from petty_cash.exceptions import (
    IntegrityViolationError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from petty_cash.logging_config import get_logger
from petty_cash.persistence.port import Collection, StoreTransaction
from petty_cash.services.base import BaseService
from petty_cash.services.document_numbers import DocumentNumberGenerator
from petty_cash.services.reimbursements import (
    build_reimbursement,
    find_by_expense,
    reject_with_claim,
    sync_claim_amount,
)
from petty_cash.services.wallet_store import credit_wallet, debit_wallet
from petty_cash.workflows import EXPENSE_CLAIM_WORKFLOW

logger = get_logger("services.expense_claims")

ENTITY_TYPE = "expense_claim"

EDITABLE_FIELDS = frozenset({
    "description",
    "expense_date",
    "amount",
    "line_items",
    "attachments",
    "project_ref",
})
MONETARY_FIELDS = frozenset({"amount", "line_items"})


def _normalize_line_items(line_items: Sequence[ExpenseLineItem] | None) -> tuple[ExpenseLineItem, ...]:
    normalized = []
    for index, item in enumerate(line_items or (), start=1):
        if not isinstance(item, ExpenseLineItem):
            raise ValidationError(
                f"line_items must contain ExpenseLineItem, got {type(item).__name__}",
                field="line_items",
            )
        normalized.append(replace(
            item,
            pre_vat_amount=to_amount(item.pre_vat_amount, f"line_items[{index}].pre_vat_amount"),
            vat_amount=to_amount(item.vat_amount, f"line_items[{index}].vat_amount"),
            wht_amount=to_amount(item.wht_amount, f"line_items[{index}].wht_amount"),
        ))
    items = tuple(normalized)
    validate_line_items(items)
    return items


def _normalize_attachments(refs: Sequence[str]) -> tuple[str, ...]:
    result: list[str] = []
    for ref in refs:
        if not isinstance(ref, str) or not ref.strip():
            raise ValidationError("attachment references must be non-empty strings", field="attachments")
        if ref not in result:
            result.append(ref)
    return tuple(result)


def _check_editable(claim: ExpenseClaim, fields: set[str], edit_mode: bool) -> None:
    def refuse(reason: str) -> InvalidStateTransitionError:
        return InvalidStateTransitionError(
            entity_type=ENTITY_TYPE,
            entity_id=str(claim.id),
            current_state=claim.status.value,
            action="update",
            reason=reason,
        )

    if claim.status is ClaimStatus.REJECTED:
        raise refuse("rejected claims are immutable")
    if claim.status is ClaimStatus.DRAFT:
        return
    if not edit_mode:
        raise refuse("edit mode is required after submission")
    if claim.status is ClaimStatus.PAID and fields & MONETARY_FIELDS:
        raise refuse("amount is locked once paid")


class ExpenseClaimWorkflow(BaseService):
    """Expense claim lifecycle, including the atomic submit step."""

    def __init__(self, *args, numbers: DocumentNumberGenerator, **kwargs):
        super().__init__(*args, **kwargs)
        self._numbers = numbers

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create(
        self,
        data: CreateClaimInput,
        line_items: Sequence[ExpenseLineItem] | None = None,
    ) -> OperationResult[ExpenseClaim]:
        """Record a draft claim."""

        def op() -> ExpenseClaim:
            claim = self._new_claim(data, line_items)
            with self._store.transaction(wallet_id=claim.wallet_id) as tx:
                self._require(tx, Collection.WALLETS, claim.wallet_id, "wallet")
                tx.upsert(claim)
            logger.info(
                "expense_claim_created",
                extra={
                    "claim_id": str(claim.id),
                    "claim_number": claim.claim_number,
                    "net_amount": claim.net_amount,
                },
            )
            return claim

        return self._run("create_expense_claim", op, wallet_id=data.wallet_id, actor_id=data.created_by)

    def create_submitted(
        self,
        data: CreateClaimInput,
        line_items: Sequence[ExpenseLineItem] | None = None,
    ) -> OperationResult[SubmittedClaim]:
        """Holder-facing path: the claim starts out submitted, with its reimbursement."""

        def op() -> SubmittedClaim:
            if not _normalize_attachments(data.attachments):
                raise ValidationError(
                    "At least one receipt attachment is required to submit a claim",
                    field="attachments",
                )
            draft = self._new_claim(data, line_items)
            reimbursement_number = self._numbers.reimbursement_number()
            now = self._clock.now()
            claim = replace(draft, status=ClaimStatus.SUBMITTED, submitted_at=now)
            reimbursement = build_reimbursement(claim, reimbursement_number, now)
            with self._store.transaction(wallet_id=claim.wallet_id) as tx:
                self._require(tx, Collection.WALLETS, claim.wallet_id, "wallet")
                tx.upsert(claim, reimbursement)
                if self._config.deduct_wallet_on_claim_submission:
                    debit_wallet(tx, claim.wallet_id, claim.net_amount, now)
            self._log_submitted(claim, reimbursement.reimbursement_number)
            return SubmittedClaim(claim=claim, reimbursement=reimbursement)

        return self._run("create_submitted_expense_claim", op, wallet_id=data.wallet_id, actor_id=data.created_by)

    def _new_claim(
        self,
        data: CreateClaimInput,
        line_items: Sequence[ExpenseLineItem] | None,
    ) -> ExpenseClaim:
        amount = require_positive(data.amount)
        items = _normalize_line_items(line_items)
        attachments = _normalize_attachments(data.attachments)
        if data.expense_date is None:
            raise ValidationError("expense_date is required", field="expense_date")
        with self._store.snapshot() as view:
            wallet: Wallet | None = view.get(Collection.WALLETS, data.wallet_id)
        if wallet is None:
            raise NotFoundError("wallet", str(data.wallet_id))
        totals = compute_claim_totals(amount, items, self._config.amount_precision)
        now = self._clock.now()
        return ExpenseClaim(
            id=uuid4(),
            claim_number=self._numbers.expense_claim_number(),
            wallet_id=wallet.id,
            company_id=data.company_id or wallet.company_id,
            expense_date=data.expense_date,
            description=data.description,
            amount=amount,
            subtotal=totals.subtotal,
            vat_amount=totals.vat_amount,
            total_amount=totals.total_amount,
            wht_amount=totals.wht_amount,
            net_amount=totals.net_amount,
            line_items=items,
            attachments=attachments,
            project_ref=data.project_ref,
            created_by=data.created_by,
            created_at=now,
            updated_at=now,
        )

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def update(
        self,
        claim_id: UUID,
        patch: Mapping[str, Any],
        *,
        edit_mode: bool = False,
    ) -> OperationResult[ExpenseClaim]:
        """Apply ``patch``; totals are recomputed from the resulting amount and lines."""

        def op() -> ExpenseClaim:
            fields = set(patch)
            unknown = fields - EDITABLE_FIELDS
            if unknown:
                raise ValidationError(
                    f"Fields not editable on an expense claim: {sorted(unknown)}",
                    field=sorted(unknown)[0],
                )
            values = dict(patch)
            if "amount" in values:
                values["amount"] = require_positive(values["amount"])
            if "line_items" in values:
                values["line_items"] = _normalize_line_items(values["line_items"])
            if "attachments" in values:
                values["attachments"] = _normalize_attachments(values["attachments"])
            if "expense_date" in values and values["expense_date"] is None:
                raise ValidationError("expense_date is required", field="expense_date")

            wallet_id = self._locate_wallet_id(Collection.EXPENSE_CLAIMS, claim_id, ENTITY_TYPE)
            with self._store.transaction(wallet_id=wallet_id) as tx:
                claim = self._require(tx, Collection.EXPENSE_CLAIMS, claim_id, ENTITY_TYPE)
                _check_editable(claim, fields, edit_mode)
                merged = replace(claim, **values)
                if claim.status is not ClaimStatus.DRAFT and not merged.attachments:
                    raise ValidationError(
                        "A submitted claim must keep at least one receipt attachment",
                        field="attachments",
                    )
                totals = compute_claim_totals(
                    merged.amount, merged.line_items, self._config.amount_precision,
                )
                now = self._clock.now()
                updated = replace(
                    merged,
                    subtotal=totals.subtotal,
                    vat_amount=totals.vat_amount,
                    total_amount=totals.total_amount,
                    wht_amount=totals.wht_amount,
                    net_amount=totals.net_amount,
                    updated_at=now,
                )
                tx.upsert(updated)
                if updated.amount != claim.amount:
                    sync_claim_amount(tx, claim.id, updated.amount, now)
                if claim.status in RECOGNIZED_CLAIM_STATUSES:
                    self._rebalance(tx, claim, updated.net_amount - claim.net_amount)
            logger.info(
                "expense_claim_updated",
                extra={
                    "claim_id": str(claim.id),
                    "fields": sorted(fields),
                    "status": claim.status.value,
                    "edit_mode": edit_mode,
                },
            )
            return updated

        return self._run("update_expense_claim", op, entity_id=claim_id)

    def attach(self, claim_id: UUID, *refs: str) -> OperationResult[ExpenseClaim]:
        """Add attachment references.  Allowed in any state except rejected."""

        def op() -> ExpenseClaim:
            new_refs = _normalize_attachments(refs)
            if not new_refs:
                raise ValidationError("No attachment references given", field="attachments")
            wallet_id = self._locate_wallet_id(Collection.EXPENSE_CLAIMS, claim_id, ENTITY_TYPE)
            with self._store.transaction(wallet_id=wallet_id) as tx:
                claim = self._require(tx, Collection.EXPENSE_CLAIMS, claim_id, ENTITY_TYPE)
                if claim.status is ClaimStatus.REJECTED:
                    raise InvalidStateTransitionError(
                        entity_type=ENTITY_TYPE,
                        entity_id=str(claim.id),
                        current_state=claim.status.value,
                        action="attach",
                        reason="rejected claims are immutable",
                    )
                updated = replace(
                    claim,
                    attachments=_normalize_attachments(claim.attachments + new_refs),
                    updated_at=self._clock.now(),
                )
                tx.upsert(updated)
            logger.info(
                "expense_claim_attachments_added",
                extra={
                    "claim_id": str(claim.id),
                    "attachment_count": len(updated.attachments),
                },
            )
            return updated

        return self._run("attach_to_expense_claim", op, entity_id=claim_id)

    def mark_receipt_received(
        self,
        claim_id: UUID,
        received_date: date | None = None,
    ) -> OperationResult[ExpenseClaim]:
        """Record that the original paper receipt reached accounting."""

        def op() -> ExpenseClaim:
            wallet_id = self._locate_wallet_id(Collection.EXPENSE_CLAIMS, claim_id, ENTITY_TYPE)
            with self._store.transaction(wallet_id=wallet_id) as tx:
                claim = self._require(tx, Collection.EXPENSE_CLAIMS, claim_id, ENTITY_TYPE)
                if claim.receipt_status is ReceiptStatus.ORIGINAL_RECEIVED:
                    raise InvalidStateTransitionError(
                        entity_type=ENTITY_TYPE,
                        entity_id=str(claim.id),
                        current_state=claim.receipt_status.value,
                        action="mark_receipt_received",
                    )
                updated = replace(
                    claim,
                    receipt_status=ReceiptStatus.ORIGINAL_RECEIVED,
                    receipt_received_date=received_date or self._clock.today(),
                    updated_at=self._clock.now(),
                )
                tx.upsert(updated)
            logger.info(
                "expense_claim_receipt_received",
                extra={
                    "claim_id": str(claim.id),
                    "received_date": updated.receipt_received_date,
                },
            )
            return updated

        return self._run("mark_receipt_received", op, entity_id=claim_id)

    def delete(self, claim_id: UUID) -> OperationResult[None]:
        """Remove a claim.  Only drafts can be deleted."""

        def op() -> None:
            wallet_id = self._locate_wallet_id(Collection.EXPENSE_CLAIMS, claim_id, ENTITY_TYPE)
            with self._store.transaction(wallet_id=wallet_id) as tx:
                claim = self._require(tx, Collection.EXPENSE_CLAIMS, claim_id, ENTITY_TYPE)
                if claim.status is not ClaimStatus.DRAFT:
                    raise IntegrityViolationError(
                        ENTITY_TYPE,
                        str(claim.id),
                        f"only draft claims can be deleted (status is {claim.status.value})",
                    )
                tx.delete(Collection.EXPENSE_CLAIMS, claim.id)
            logger.info(
                "expense_claim_deleted",
                extra={"claim_id": str(claim.id), "claim_number": claim.claim_number},
            )

        return self._run("delete_expense_claim", op, entity_id=claim_id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit(self, claim_id: UUID) -> OperationResult[SubmittedClaim]:
        """Move a draft to submitted and create its reimbursement, atomically."""

        def op() -> SubmittedClaim:
            with self._store.snapshot() as view:
                current = view.get(Collection.EXPENSE_CLAIMS, claim_id)
            if current is None:
                raise NotFoundError(ENTITY_TYPE, str(claim_id))
            # Refuse before consuming a reimbursement number.
            self._precheck_submit(current)
            reimbursement_number = self._numbers.reimbursement_number()

            with self._store.transaction(wallet_id=current.wallet_id) as tx:
                claim = self._require(tx, Collection.EXPENSE_CLAIMS, claim_id, ENTITY_TYPE)
                transition = self._workflows.require_transition(
                    EXPENSE_CLAIM_WORKFLOW,
                    ENTITY_TYPE,
                    claim.id,
                    claim.status.value,
                    "submit",
                    context={"attachment_count": len(claim.attachments)},
                )
                existing = find_by_expense(tx, claim.id)
                if existing is not None:
                    raise IntegrityViolationError(
                        ENTITY_TYPE,
                        str(claim.id),
                        f"reimbursement {existing.reimbursement_number} already exists",
                    )
                now = self._clock.now()
                submitted = replace(
                    claim,
                    status=ClaimStatus(transition.to_state),
                    submitted_at=now,
                    updated_at=now,
                )
                reimbursement = build_reimbursement(submitted, reimbursement_number, now)
                tx.upsert(submitted, reimbursement)
                if self._config.deduct_wallet_on_claim_submission:
                    debit_wallet(tx, claim.wallet_id, submitted.net_amount, now)
            self._log_submitted(submitted, reimbursement.reimbursement_number)
            return SubmittedClaim(claim=submitted, reimbursement=reimbursement)

        return self._run("submit_expense_claim", op, entity_id=claim_id)

    def review(self, claim_id: UUID, reviewed_by: str) -> OperationResult[ExpenseClaim]:
        def op() -> ExpenseClaim:
            def apply(claim: ExpenseClaim, status: ClaimStatus, tx) -> ExpenseClaim:
                now = self._clock.now()
                return replace(
                    claim, status=status, reviewed_by=reviewed_by,
                    reviewed_at=now, updated_at=now,
                )

            return self._transition(claim_id, "review", apply)

        return self._run("review_expense_claim", op, entity_id=claim_id, actor_id=reviewed_by)

    def mark_paid(self, claim_id: UUID) -> OperationResult[ExpenseClaim]:
        def op() -> ExpenseClaim:
            def apply(claim: ExpenseClaim, status: ClaimStatus, tx) -> ExpenseClaim:
                now = self._clock.now()
                return replace(claim, status=status, paid_at=now, updated_at=now)

            return self._transition(claim_id, "pay", apply)

        return self._run("mark_expense_claim_paid", op, entity_id=claim_id)

    def reject(
        self,
        claim_id: UUID,
        rejected_by: str,
        reason: str,
    ) -> OperationResult[ExpenseClaim]:
        def op() -> ExpenseClaim:
            def apply(claim: ExpenseClaim, status: ClaimStatus, tx) -> ExpenseClaim:
                if not reason or not reason.strip():
                    raise ValidationError(
                        "A reason is required to reject a claim", field="reason",
                    )
                now = self._clock.now()
                reject_with_claim(tx, self._workflows, claim, rejected_by, reason, now)
                if claim.status in RECOGNIZED_CLAIM_STATUSES:
                    self._rebalance(tx, claim, -claim.net_amount)
                return replace(
                    claim, status=status, rejected_by=rejected_by,
                    rejected_at=now, rejection_reason=reason, updated_at=now,
                )

            return self._transition(claim_id, "reject", apply)

        return self._run("reject_expense_claim", op, entity_id=claim_id, actor_id=rejected_by)

    def _transition(self, claim_id: UUID, action: str, apply) -> ExpenseClaim:
        wallet_id = self._locate_wallet_id(Collection.EXPENSE_CLAIMS, claim_id, ENTITY_TYPE)
        with self._store.transaction(wallet_id=wallet_id) as tx:
            claim = self._require(tx, Collection.EXPENSE_CLAIMS, claim_id, ENTITY_TYPE)
            transition = self._workflows.require_transition(
                EXPENSE_CLAIM_WORKFLOW,
                ENTITY_TYPE,
                claim.id,
                claim.status.value,
                action,
                context={"attachment_count": len(claim.attachments)},
            )
            updated = apply(claim, ClaimStatus(transition.to_state), tx)
            tx.upsert(updated)
        logger.info(
            "expense_claim_transitioned",
            extra={
                "claim_id": str(claim.id),
                "action": action,
                "from_status": claim.status.value,
                "to_status": updated.status.value,
            },
        )
        return updated

    def _precheck_submit(self, claim: ExpenseClaim) -> None:
        if EXPENSE_CLAIM_WORKFLOW.find_transition(claim.status.value, "submit") is None:
            raise InvalidStateTransitionError(
                entity_type=ENTITY_TYPE,
                entity_id=str(claim.id),
                current_state=claim.status.value,
                action="submit",
            )
        if not claim.attachments:
            raise ValidationError(
                "At least one receipt attachment is required to submit a claim",
                field="attachments",
            )

    def _rebalance(self, tx: StoreTransaction, claim: ExpenseClaim, delta: Decimal) -> None:
        """Move the wallet by the change in recognized net amount."""
        if not self._config.deduct_wallet_on_claim_submission or delta == 0:
            return
        now = self._clock.now()
        if delta > 0:
            debit_wallet(tx, claim.wallet_id, delta, now)
        else:
            credit_wallet(tx, claim.wallet_id, -delta, now)

    def _log_submitted(self, claim: ExpenseClaim, reimbursement_number: str) -> None:
        logger.info(
            "expense_claim_submitted",
            extra={
                "claim_id": str(claim.id),
                "claim_number": claim.claim_number,
                "reimbursement_number": reimbursement_number,
                "amount": claim.amount,
                "net_amount": claim.net_amount,
            },
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, claim_id: UUID) -> ExpenseClaim | None:
        with self._store.snapshot() as view:
            return view.get(Collection.EXPENSE_CLAIMS, claim_id)

    def list_claims(
        self,
        wallet_id: UUID | None = None,
        company_id: str | None = None,
        status: ClaimStatus | None = None,
    ) -> list[ExpenseClaim]:
        def matches(c: ExpenseClaim) -> bool:
            return (
                (wallet_id is None or c.wallet_id == wallet_id)
                and (company_id is None or c.company_id == company_id)
                and (status is None or c.status is status)
            )

        with self._store.snapshot() as view:
            return view.list(Collection.EXPENSE_CLAIMS, matches)

    def pending_receipts(self) -> list[ExpenseClaim]:
        """Recognized claims whose original receipt has not arrived."""
        with self._store.snapshot() as view:
            return view.list(
                Collection.EXPENSE_CLAIMS,
                lambda c: c.status in RECOGNIZED_CLAIM_STATUSES
                and c.receipt_status is ReceiptStatus.PENDING,
            )
