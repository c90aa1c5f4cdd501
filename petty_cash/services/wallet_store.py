"""
WalletStore -- wallet records and balance mutation primitives.

Responsibility:
    Creates, edits, closes/reopens and deletes wallets, and moves their
    balances.  ``debit_wallet`` / ``credit_wallet`` are the only code paths
    that change ``Wallet.balance``; the workflow services call them inside
    their own units of work so a balance effect commits with the status
    change that caused it.

Invariants enforced:
    - ``balance >= 0`` after every debit (all-or-nothing).
    - ``balance <= balance_limit`` after every credit when a limit is set.
      The limit is not checked on debits or on wallet creation.
    - A wallet is deleted only at zero balance.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from petty_cash.domain.models import CreateWalletInput, Wallet, WalletStatus
from petty_cash.domain.results import OperationResult
from petty_cash.domain.totals import require_non_negative, require_positive
from petty_cash.exceptions import (
    IntegrityViolationError,
    InsufficientFundsError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)
from petty_cash.logging_config import get_logger
from petty_cash.persistence.port import Collection, StoreTransaction
from petty_cash.services.base import BaseService

logger = get_logger("services.wallet_store")

ENTITY_TYPE = "wallet"

EDITABLE_FIELDS = frozenset({
    "wallet_name",
    "holder_id",
    "holder_name",
    "company_id",
    "currency",
    "balance_limit",
    "low_balance_threshold",
    "reimbursement_bank_account_ref",
})


def _get_wallet(tx: StoreTransaction, wallet_id: UUID) -> Wallet:
    wallet = tx.get(Collection.WALLETS, wallet_id)
    if wallet is None:
        raise NotFoundError(ENTITY_TYPE, str(wallet_id))
    return wallet


def debit_wallet(
    tx: StoreTransaction,
    wallet_id: UUID,
    amount: Decimal,
    now: datetime,
) -> Wallet:
    """Subtract ``amount`` from the wallet within ``tx``.

    Raises:
        NotFoundError: unknown wallet.
        InsufficientFundsError: the balance would go negative.
    """
    wallet = _get_wallet(tx, wallet_id)
    new_balance = wallet.balance - amount
    if new_balance < 0:
        raise InsufficientFundsError(str(wallet_id), wallet.balance, amount)
    updated = replace(wallet, balance=new_balance, updated_at=now)
    tx.upsert(updated)
    logger.info(
        "wallet_debited",
        extra={
            "wallet_id": str(wallet_id),
            "amount": amount,
            "balance_before": wallet.balance,
            "balance_after": new_balance,
        },
    )
    return updated


def credit_wallet(
    tx: StoreTransaction,
    wallet_id: UUID,
    amount: Decimal,
    now: datetime,
) -> Wallet:
    """Add ``amount`` to the wallet within ``tx``.

    Raises:
        NotFoundError: unknown wallet.
        LimitExceededError: the balance would exceed ``balance_limit``.
    """
    wallet = _get_wallet(tx, wallet_id)
    new_balance = wallet.balance + amount
    if wallet.balance_limit is not None and new_balance > wallet.balance_limit:
        raise LimitExceededError(
            str(wallet_id), wallet.balance, amount, wallet.balance_limit,
        )
    updated = replace(wallet, balance=new_balance, updated_at=now)
    tx.upsert(updated)
    logger.info(
        "wallet_credited",
        extra={
            "wallet_id": str(wallet_id),
            "amount": amount,
            "balance_before": wallet.balance,
            "balance_after": new_balance,
        },
    )
    return updated


def _require_text(value: str | None, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", field=field)
    return value


def _optional_non_negative(value, field: str) -> Decimal | None:
    if value is None:
        return None
    return require_non_negative(value, field)


class WalletStore(BaseService):
    """
    Wallet lifecycle and balance operations.

    Every mutating method returns an ``OperationResult[Wallet]`` (``None``
    value for deletion).
    """

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_wallet(self, data: CreateWalletInput) -> OperationResult[Wallet]:
        def op() -> Wallet:
            beginning = require_non_negative(data.beginning_balance, "beginning_balance")
            now = self._clock.now()
            wallet = Wallet(
                id=uuid4(),
                wallet_name=_require_text(data.wallet_name, "wallet_name"),
                holder_id=_require_text(data.holder_id, "holder_id"),
                holder_name=data.holder_name,
                company_id=_require_text(data.company_id, "company_id"),
                currency=_require_text(data.currency, "currency"),
                balance=beginning,
                beginning_balance=beginning,
                status=WalletStatus.ACTIVE,
                balance_limit=_optional_non_negative(data.balance_limit, "balance_limit"),
                low_balance_threshold=_optional_non_negative(
                    data.low_balance_threshold, "low_balance_threshold",
                ),
                reimbursement_bank_account_ref=data.reimbursement_bank_account_ref,
                created_at=now,
                updated_at=now,
            )
            with self._store.transaction(wallet_id=wallet.id) as tx:
                tx.upsert(wallet)
            logger.info(
                "wallet_created",
                extra={
                    "wallet_id": str(wallet.id),
                    "company_id": wallet.company_id,
                    "beginning_balance": beginning,
                },
            )
            return wallet

        return self._run("create_wallet", op)

    def deduct_from_wallet(self, wallet_id: UUID, amount: Decimal) -> OperationResult[Wallet]:
        def op() -> Wallet:
            value = require_positive(amount)
            with self._store.transaction(wallet_id=wallet_id) as tx:
                return debit_wallet(tx, wallet_id, value, self._clock.now())

        return self._run("deduct_from_wallet", op, wallet_id=wallet_id)

    def add_to_wallet(self, wallet_id: UUID, amount: Decimal) -> OperationResult[Wallet]:
        def op() -> Wallet:
            value = require_positive(amount)
            with self._store.transaction(wallet_id=wallet_id) as tx:
                return credit_wallet(tx, wallet_id, value, self._clock.now())

        return self._run("add_to_wallet", op, wallet_id=wallet_id)

    def toggle_status(self, wallet_id: UUID) -> OperationResult[Wallet]:
        def op() -> Wallet:
            with self._store.transaction(wallet_id=wallet_id) as tx:
                wallet = _get_wallet(tx, wallet_id)
                new_status = (
                    WalletStatus.CLOSED if wallet.is_active else WalletStatus.ACTIVE
                )
                updated = replace(wallet, status=new_status, updated_at=self._clock.now())
                tx.upsert(updated)
            logger.info(
                "wallet_status_changed",
                extra={
                    "wallet_id": str(wallet_id),
                    "from_status": wallet.status.value,
                    "to_status": new_status.value,
                },
            )
            return updated

        return self._run("toggle_status", op, wallet_id=wallet_id)

    def update_wallet(self, wallet_id: UUID, **changes) -> OperationResult[Wallet]:
        """Edit descriptive fields, limit and threshold.  Never the balance."""

        def op() -> Wallet:
            unknown = set(changes) - EDITABLE_FIELDS
            if unknown:
                raise ValidationError(
                    f"Fields not editable on a wallet: {sorted(unknown)}",
                    field=sorted(unknown)[0],
                )
            values = dict(changes)
            for name in ("wallet_name", "holder_id", "company_id", "currency"):
                if name in values:
                    _require_text(values[name], name)
            for name in ("balance_limit", "low_balance_threshold"):
                if name in values:
                    values[name] = _optional_non_negative(values[name], name)
            with self._store.transaction(wallet_id=wallet_id) as tx:
                wallet = _get_wallet(tx, wallet_id)
                updated = replace(wallet, **values, updated_at=self._clock.now())
                tx.upsert(updated)
            logger.info(
                "wallet_updated",
                extra={"wallet_id": str(wallet_id), "fields": sorted(values)},
            )
            return updated

        return self._run("update_wallet", op, wallet_id=wallet_id)

    def delete_wallet(self, wallet_id: UUID) -> OperationResult[None]:
        def op() -> None:
            with self._store.transaction(wallet_id=wallet_id) as tx:
                wallet = _get_wallet(tx, wallet_id)
                if wallet.balance != 0:
                    raise IntegrityViolationError(
                        ENTITY_TYPE,
                        str(wallet_id),
                        f"balance is {wallet.balance}; only an empty wallet can be deleted",
                    )
                tx.delete(Collection.WALLETS, wallet_id)
            logger.info("wallet_deleted", extra={"wallet_id": str(wallet_id)})

        return self._run("delete_wallet", op, wallet_id=wallet_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_wallet(self, wallet_id: UUID) -> Wallet | None:
        with self._store.snapshot() as view:
            return view.get(Collection.WALLETS, wallet_id)

    def list_wallets(
        self,
        company_id: str | None = None,
        status: WalletStatus | None = None,
        holder_id: str | None = None,
    ) -> list[Wallet]:
        def matches(w: Wallet) -> bool:
            return (
                (company_id is None or w.company_id == company_id)
                and (status is None or w.status is status)
                and (holder_id is None or w.holder_id == holder_id)
            )

        with self._store.snapshot() as view:
            return view.list(Collection.WALLETS, matches)

    def get_wallets_by_holder(self, holder_id: str) -> list[Wallet]:
        return self.list_wallets(holder_id=holder_id)

    def get_low_balance_wallets(self) -> list[Wallet]:
        with self._store.snapshot() as view:
            return view.list(
                Collection.WALLETS, lambda w: w.is_active and w.is_low_balance,
            )

    def total_active_balance(self) -> Decimal:
        wallets = self.list_wallets(status=WalletStatus.ACTIVE)
        return sum((w.balance for w in wallets), Decimal("0"))
