"""
TopUpWorkflow -- funding a wallet from a company bank account.

State machine (``TOP_UP_WORKFLOW``)::

    pending --approve--> approved --complete--> completed
    pending --complete--> completed          (approval backfilled)
    pending --cancel--> (record deleted)

Completing a top-up changes the wallet balance only when
``credit_wallet_on_top_up_completion`` is enabled; otherwise crediting is
left to whatever funds the wallet outside this package.  Cancellation
removes the request permanently.
"""

from __future__ import annotations

from dataclasses import replace
from uuid import UUID, uuid4

from petty_cash.domain.models import CreateTopUpInput, TopUpRequest, TopUpStatus
from petty_cash.domain.results import OperationResult
from petty_cash.domain.totals import require_positive
from petty_cash.exceptions import NotFoundError, ValidationError
from petty_cash.logging_config import get_logger
from petty_cash.persistence.port import Collection
from petty_cash.services.base import BaseService
from petty_cash.services.document_numbers import DocumentNumberGenerator
from petty_cash.services.wallet_store import credit_wallet
from petty_cash.workflows import TOP_UP_WORKFLOW

logger = get_logger("services.top_ups")

ENTITY_TYPE = "top_up"


class TopUpWorkflow(BaseService):
    """Top-up request lifecycle."""

    def __init__(self, *args, numbers: DocumentNumberGenerator, **kwargs):
        super().__init__(*args, **kwargs)
        self._numbers = numbers

    def create(self, data: CreateTopUpInput) -> OperationResult[TopUpRequest]:
        def op() -> TopUpRequest:
            amount = require_positive(data.amount)
            if not data.bank_account_ref or not data.bank_account_ref.strip():
                raise ValidationError("bank_account_ref is required", field="bank_account_ref")
            if data.top_up_date is None:
                raise ValidationError("top_up_date is required", field="top_up_date")
            with self._store.snapshot() as view:
                wallet = view.get(Collection.WALLETS, data.wallet_id)
            if wallet is None:
                raise NotFoundError("wallet", str(data.wallet_id))

            now = self._clock.now()
            request = TopUpRequest(
                id=uuid4(),
                top_up_number=self._numbers.top_up_number(),
                wallet_id=wallet.id,
                company_id=data.company_id or wallet.company_id,
                bank_account_ref=data.bank_account_ref,
                amount=amount,
                top_up_date=data.top_up_date,
                status=TopUpStatus.PENDING,
                reference=data.reference,
                notes=data.notes,
                created_by=data.created_by,
                created_at=now,
            )
            with self._store.transaction(wallet_id=wallet.id) as tx:
                self._require(tx, Collection.WALLETS, wallet.id, "wallet")
                tx.upsert(request)
            logger.info(
                "top_up_created",
                extra={
                    "top_up_id": str(request.id),
                    "top_up_number": request.top_up_number,
                    "amount": amount,
                },
            )
            return request

        return self._run("create_top_up", op, wallet_id=data.wallet_id, actor_id=data.created_by)

    def approve(self, top_up_id: UUID, approved_by: str) -> OperationResult[TopUpRequest]:
        def op() -> TopUpRequest:
            wallet_id = self._locate_wallet_id(Collection.TOP_UPS, top_up_id, ENTITY_TYPE)
            with self._store.transaction(wallet_id=wallet_id) as tx:
                request = self._require(tx, Collection.TOP_UPS, top_up_id, ENTITY_TYPE)
                transition = self._workflows.require_transition(
                    TOP_UP_WORKFLOW, ENTITY_TYPE, request.id, request.status.value, "approve",
                )
                updated = replace(
                    request,
                    status=TopUpStatus(transition.to_state),
                    approved_by=approved_by,
                    approved_at=self._clock.now(),
                )
                tx.upsert(updated)
            logger.info("top_up_approved", extra={"top_up_id": str(request.id)})
            return updated

        return self._run("approve_top_up", op, entity_id=top_up_id, actor_id=approved_by)

    def complete(
        self,
        top_up_id: UUID,
        completed_by: str,
        reference: str | None = None,
    ) -> OperationResult[TopUpRequest]:
        def op() -> TopUpRequest:
            wallet_id = self._locate_wallet_id(Collection.TOP_UPS, top_up_id, ENTITY_TYPE)
            with self._store.transaction(wallet_id=wallet_id) as tx:
                request = self._require(tx, Collection.TOP_UPS, top_up_id, ENTITY_TYPE)
                transition = self._workflows.require_transition(
                    TOP_UP_WORKFLOW, ENTITY_TYPE, request.id, request.status.value, "complete",
                )
                now = self._clock.now()
                updated = replace(
                    request,
                    status=TopUpStatus(transition.to_state),
                    approved_by=request.approved_by or completed_by,
                    approved_at=request.approved_at or now,
                    completed_by=completed_by,
                    completed_at=now,
                    reference=reference if reference is not None else request.reference,
                )
                tx.upsert(updated)
                if self._config.credit_wallet_on_top_up_completion:
                    credit_wallet(tx, request.wallet_id, request.amount, now)
            logger.info(
                "top_up_completed",
                extra={
                    "top_up_id": str(request.id),
                    "amount": request.amount,
                    "approval_backfilled": request.approved_at is None,
                    "wallet_credited": self._config.credit_wallet_on_top_up_completion,
                },
            )
            return updated

        return self._run("complete_top_up", op, entity_id=top_up_id, actor_id=completed_by)

    def cancel(self, top_up_id: UUID) -> OperationResult[TopUpRequest]:
        """Delete a pending request.  Returns the removed record."""

        def op() -> TopUpRequest:
            wallet_id = self._locate_wallet_id(Collection.TOP_UPS, top_up_id, ENTITY_TYPE)
            with self._store.transaction(wallet_id=wallet_id) as tx:
                request = self._require(tx, Collection.TOP_UPS, top_up_id, ENTITY_TYPE)
                transition = self._workflows.require_transition(
                    TOP_UP_WORKFLOW, ENTITY_TYPE, request.id, request.status.value, "cancel",
                )
                if transition.deletes_record:
                    tx.delete(Collection.TOP_UPS, request.id)
            logger.warning(
                "top_up_cancelled",
                extra={
                    "top_up_id": str(request.id),
                    "top_up_number": request.top_up_number,
                    "amount": request.amount,
                },
            )
            return request

        return self._run("cancel_top_up", op, entity_id=top_up_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, top_up_id: UUID) -> TopUpRequest | None:
        with self._store.snapshot() as view:
            return view.get(Collection.TOP_UPS, top_up_id)

    def list_top_ups(
        self,
        wallet_id: UUID | None = None,
        company_id: str | None = None,
        status: TopUpStatus | None = None,
    ) -> list[TopUpRequest]:
        def matches(t: TopUpRequest) -> bool:
            return (
                (wallet_id is None or t.wallet_id == wallet_id)
                and (company_id is None or t.company_id == company_id)
                and (status is None or t.status is status)
            )

        with self._store.snapshot() as view:
            return view.list(Collection.TOP_UPS, matches)

    def pending(self) -> list[TopUpRequest]:
        return self.list_top_ups(status=TopUpStatus.PENDING)
