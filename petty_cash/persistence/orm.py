"""
SQLAlchemy ORM persistence models for the petty-cash ledger.

Responsibility
--------------
Database-backed rows for the four collections plus the named sequence
counters behind document numbering.  Each model converts to and from its
frozen domain DTO (``to_dto`` / ``from_dto``); services never touch these
classes directly, only ``SqlAlchemyStore`` does.

Architecture position
---------------------
**Persistence layer** -- inherits from ``TrackedBase`` (db layer) and
imports domain DTOs for conversion.

Invariants enforced
-------------------
* All monetary fields use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* Enum fields stored as String(50) for readability and portability.
* ``reimbursements.expense_id`` is unique: at most one reimbursement per
  expense claim.
* Document numbers are unique within their table.
* Line items and attachment references are stored as JSON arrays; amounts
  inside them are serialized as decimal strings.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from petty_cash.db.base import Base, TrackedBase
from petty_cash.domain.models import (
    ClaimStatus,
    ExpenseClaim,
    ExpenseLineItem,
    ReceiptStatus,
    ReimbursementRecord,
    ReimbursementStatus,
    TopUpRequest,
    TopUpStatus,
    Wallet,
    WalletStatus,
)


def _aware(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo; every timestamp written here is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _timestamps(dto) -> dict:
    # Omitted values fall back to the server defaults.
    stamps = {}
    for name in ("created_at", "updated_at"):
        value = getattr(dto, name, None)
        if value is not None:
            stamps[name] = value
    return stamps


# ---------------------------------------------------------------------------
# WalletModel
# ---------------------------------------------------------------------------


class WalletModel(TrackedBase):
    """
    Float-cash wallet row.

    Maps to the ``Wallet`` DTO in ``petty_cash.domain.models``.
    """

    __tablename__ = "petty_cash_wallets"

    __table_args__ = (
        Index("idx_wallet_company", "company_id"),
        Index("idx_wallet_holder", "holder_id"),
        Index("idx_wallet_status", "status"),
    )

    wallet_name: Mapped[str] = mapped_column(String(200), nullable=False)
    holder_id: Mapped[str] = mapped_column(String(100), nullable=False)
    holder_name: Mapped[str] = mapped_column(String(200), nullable=False)
    company_id: Mapped[str] = mapped_column(String(100), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    balance: Mapped[Decimal]
    beginning_balance: Mapped[Decimal]
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active")
    balance_limit: Mapped[Decimal | None]
    low_balance_threshold: Mapped[Decimal | None]
    reimbursement_bank_account_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def to_dto(self) -> Wallet:
        return Wallet(
            id=self.id,
            wallet_name=self.wallet_name,
            holder_id=self.holder_id,
            holder_name=self.holder_name,
            company_id=self.company_id,
            currency=self.currency,
            balance=self.balance,
            beginning_balance=self.beginning_balance,
            status=WalletStatus(self.status),
            balance_limit=self.balance_limit,
            low_balance_threshold=self.low_balance_threshold,
            reimbursement_bank_account_ref=self.reimbursement_bank_account_ref,
            created_at=_aware(self.created_at),
            updated_at=_aware(self.updated_at),
        )

    @classmethod
    def from_dto(cls, dto: Wallet) -> "WalletModel":
        return cls(
            id=dto.id,
            wallet_name=dto.wallet_name,
            holder_id=dto.holder_id,
            holder_name=dto.holder_name,
            company_id=dto.company_id,
            currency=dto.currency,
            balance=dto.balance,
            beginning_balance=dto.beginning_balance,
            status=dto.status.value,
            balance_limit=dto.balance_limit,
            low_balance_threshold=dto.low_balance_threshold,
            reimbursement_bank_account_ref=dto.reimbursement_bank_account_ref,
            **_timestamps(dto),
        )


# ---------------------------------------------------------------------------
# ExpenseClaimModel
# ---------------------------------------------------------------------------


def _line_item_to_json(item: ExpenseLineItem) -> dict:
    return {
        "description": item.description,
        "pre_vat_amount": str(item.pre_vat_amount),
        "vat_amount": str(item.vat_amount),
        "wht_amount": str(item.wht_amount),
        "project_ref": item.project_ref,
        "category_ref": item.category_ref,
    }


def _line_item_from_json(data: dict) -> ExpenseLineItem:
    return ExpenseLineItem(
        description=data["description"],
        pre_vat_amount=Decimal(data["pre_vat_amount"]),
        vat_amount=Decimal(data["vat_amount"]),
        wht_amount=Decimal(data["wht_amount"]),
        project_ref=data.get("project_ref"),
        category_ref=data.get("category_ref"),
    )


class ExpenseClaimModel(TrackedBase):
    """
    Expense claim row.

    Maps to the ``ExpenseClaim`` DTO.  ``line_items`` and ``attachments``
    are JSON arrays.
    """

    __tablename__ = "petty_cash_expense_claims"

    __table_args__ = (
        Index("idx_claim_wallet", "wallet_id"),
        Index("idx_claim_company", "company_id"),
        Index("idx_claim_status", "status"),
        Index("idx_claim_expense_date", "expense_date"),
    )

    claim_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    wallet_id: Mapped[UUID]
    company_id: Mapped[str] = mapped_column(String(100), nullable=False)
    expense_date: Mapped[date]
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    amount: Mapped[Decimal]
    subtotal: Mapped[Decimal]
    vat_amount: Mapped[Decimal]
    total_amount: Mapped[Decimal]
    wht_amount: Mapped[Decimal]
    net_amount: Mapped[Decimal]
    line_items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    attachments: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")
    receipt_status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    receipt_received_date: Mapped[date | None]
    project_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    submitted_at: Mapped[datetime | None]
    reviewed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reviewed_at: Mapped[datetime | None]
    paid_at: Mapped[datetime | None]
    rejected_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    rejected_at: Mapped[datetime | None]
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self) -> ExpenseClaim:
        return ExpenseClaim(
            id=self.id,
            claim_number=self.claim_number,
            wallet_id=self.wallet_id,
            company_id=self.company_id,
            expense_date=self.expense_date,
            description=self.description,
            amount=self.amount,
            subtotal=self.subtotal,
            vat_amount=self.vat_amount,
            total_amount=self.total_amount,
            wht_amount=self.wht_amount,
            net_amount=self.net_amount,
            line_items=tuple(_line_item_from_json(i) for i in self.line_items or ()),
            attachments=tuple(self.attachments or ()),
            status=ClaimStatus(self.status),
            receipt_status=ReceiptStatus(self.receipt_status),
            receipt_received_date=self.receipt_received_date,
            project_ref=self.project_ref,
            created_by=self.created_by,
            submitted_at=_aware(self.submitted_at),
            reviewed_by=self.reviewed_by,
            reviewed_at=_aware(self.reviewed_at),
            paid_at=_aware(self.paid_at),
            rejected_by=self.rejected_by,
            rejected_at=_aware(self.rejected_at),
            rejection_reason=self.rejection_reason,
            created_at=_aware(self.created_at),
            updated_at=_aware(self.updated_at),
        )

    @classmethod
    def from_dto(cls, dto: ExpenseClaim) -> "ExpenseClaimModel":
        return cls(
            id=dto.id,
            claim_number=dto.claim_number,
            wallet_id=dto.wallet_id,
            company_id=dto.company_id,
            expense_date=dto.expense_date,
            description=dto.description,
            amount=dto.amount,
            subtotal=dto.subtotal,
            vat_amount=dto.vat_amount,
            total_amount=dto.total_amount,
            wht_amount=dto.wht_amount,
            net_amount=dto.net_amount,
            line_items=[_line_item_to_json(i) for i in dto.line_items],
            attachments=list(dto.attachments),
            status=dto.status.value,
            receipt_status=dto.receipt_status.value,
            receipt_received_date=dto.receipt_received_date,
            project_ref=dto.project_ref,
            created_by=dto.created_by,
            submitted_at=dto.submitted_at,
            reviewed_by=dto.reviewed_by,
            reviewed_at=dto.reviewed_at,
            paid_at=dto.paid_at,
            rejected_by=dto.rejected_by,
            rejected_at=dto.rejected_at,
            rejection_reason=dto.rejection_reason,
            **_timestamps(dto),
        )


# ---------------------------------------------------------------------------
# ReimbursementModel
# ---------------------------------------------------------------------------


class ReimbursementModel(TrackedBase):
    """
    Reimbursement row, one per submitted expense claim.

    Maps to the ``ReimbursementRecord`` DTO.
    """

    __tablename__ = "petty_cash_reimbursements"

    __table_args__ = (
        Index("idx_reimbursement_wallet", "wallet_id"),
        Index("idx_reimbursement_company", "company_id"),
        Index("idx_reimbursement_status", "status"),
    )

    reimbursement_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    expense_id: Mapped[UUID] = mapped_column(unique=True)
    expense_number: Mapped[str] = mapped_column(String(50), nullable=False)
    wallet_id: Mapped[UUID]
    company_id: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal]
    final_amount: Mapped[Decimal]
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    adjustment_amount: Mapped[Decimal | None]
    adjustment_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    bank_account_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    approved_at: Mapped[datetime | None]
    rejected_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    rejected_at: Mapped[datetime | None]
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_date: Mapped[date | None]
    payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def to_dto(self) -> ReimbursementRecord:
        return ReimbursementRecord(
            id=self.id,
            reimbursement_number=self.reimbursement_number,
            expense_id=self.expense_id,
            expense_number=self.expense_number,
            wallet_id=self.wallet_id,
            company_id=self.company_id,
            amount=self.amount,
            final_amount=self.final_amount,
            status=ReimbursementStatus(self.status),
            adjustment_amount=self.adjustment_amount,
            adjustment_reason=self.adjustment_reason,
            bank_account_ref=self.bank_account_ref,
            approved_by=self.approved_by,
            approved_at=_aware(self.approved_at),
            rejected_by=self.rejected_by,
            rejected_at=_aware(self.rejected_at),
            rejection_reason=self.rejection_reason,
            payment_date=self.payment_date,
            payment_reference=self.payment_reference,
            created_at=_aware(self.created_at),
            updated_at=_aware(self.updated_at),
        )

    @classmethod
    def from_dto(cls, dto: ReimbursementRecord) -> "ReimbursementModel":
        return cls(
            id=dto.id,
            reimbursement_number=dto.reimbursement_number,
            expense_id=dto.expense_id,
            expense_number=dto.expense_number,
            wallet_id=dto.wallet_id,
            company_id=dto.company_id,
            amount=dto.amount,
            final_amount=dto.final_amount,
            status=dto.status.value,
            adjustment_amount=dto.adjustment_amount,
            adjustment_reason=dto.adjustment_reason,
            bank_account_ref=dto.bank_account_ref,
            approved_by=dto.approved_by,
            approved_at=dto.approved_at,
            rejected_by=dto.rejected_by,
            rejected_at=dto.rejected_at,
            rejection_reason=dto.rejection_reason,
            payment_date=dto.payment_date,
            payment_reference=dto.payment_reference,
            **_timestamps(dto),
        )


# ---------------------------------------------------------------------------
# TopUpModel
# ---------------------------------------------------------------------------


class TopUpModel(TrackedBase):
    """
    Top-up request row.  Cancelled requests are deleted, never stored.

    Maps to the ``TopUpRequest`` DTO.
    """

    __tablename__ = "petty_cash_top_ups"

    __table_args__ = (
        Index("idx_top_up_wallet", "wallet_id"),
        Index("idx_top_up_status", "status"),
        Index("idx_top_up_date", "top_up_date"),
    )

    top_up_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    wallet_id: Mapped[UUID]
    company_id: Mapped[str] = mapped_column(String(100), nullable=False)
    bank_account_ref: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal]
    top_up_date: Mapped[date]
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    approved_at: Mapped[datetime | None]
    completed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    completed_at: Mapped[datetime | None]

    def to_dto(self) -> TopUpRequest:
        return TopUpRequest(
            id=self.id,
            top_up_number=self.top_up_number,
            wallet_id=self.wallet_id,
            company_id=self.company_id,
            bank_account_ref=self.bank_account_ref,
            amount=self.amount,
            top_up_date=self.top_up_date,
            status=TopUpStatus(self.status),
            reference=self.reference,
            notes=self.notes,
            created_by=self.created_by,
            approved_by=self.approved_by,
            approved_at=_aware(self.approved_at),
            completed_by=self.completed_by,
            completed_at=_aware(self.completed_at),
            created_at=_aware(self.created_at),
        )

    @classmethod
    def from_dto(cls, dto: TopUpRequest) -> "TopUpModel":
        return cls(
            id=dto.id,
            top_up_number=dto.top_up_number,
            wallet_id=dto.wallet_id,
            company_id=dto.company_id,
            bank_account_ref=dto.bank_account_ref,
            amount=dto.amount,
            top_up_date=dto.top_up_date,
            status=dto.status.value,
            reference=dto.reference,
            notes=dto.notes,
            created_by=dto.created_by,
            approved_by=dto.approved_by,
            approved_at=dto.approved_at,
            completed_by=dto.completed_by,
            completed_at=dto.completed_at,
            **_timestamps(dto),
        )


# ---------------------------------------------------------------------------
# SequenceCounter
# ---------------------------------------------------------------------------


class SequenceCounter(Base):
    """
    Named sequence counter.

    Each row holds the last value handed out for one sequence name
    (``doc:expense_claim``, ``doc:top_up:2501``, ...).  Row-level locking
    keeps allocation unique under concurrency.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
