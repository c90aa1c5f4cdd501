"""
ExpenseClaimWorkflow tests.

Covers creation and derived totals, the attachment-guarded submit step
(claim + reimbursement committed together), the remaining transitions,
edit permissions by status, and deletion.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from petty_cash.config import PettyCashConfig
from petty_cash.domain.models import (
    ClaimStatus,
    CreateClaimInput,
    CreateWalletInput,
    ExpenseLineItem,
    ReceiptStatus,
    ReimbursementStatus,
)
from petty_cash.domain.results import ResultStatus
from petty_cash.services import PettyCashOrchestrator


def _lines():
    return [
        ExpenseLineItem("Diesel", pre_vat_amount=Decimal("100.00"),
                        vat_amount=Decimal("7.00"), wht_amount=Decimal("1.00")),
        ExpenseLineItem("Ice", pre_vat_amount=Decimal("50.00"),
                        vat_amount=Decimal("3.50"), wht_amount=Decimal("0.50")),
    ]


class TestCreateClaim:

    def test_draft_without_line_items(self, make_claim):
        claim = make_claim(amount=Decimal("300"))

        assert claim.status is ClaimStatus.DRAFT
        assert claim.net_amount == Decimal("300")
        assert claim.total_amount == Decimal("300")
        assert claim.vat_amount == Decimal("0")
        assert claim.receipt_status is ReceiptStatus.PENDING
        assert claim.claim_number == "PC-EXP-2501-0001"

    def test_totals_from_line_items(self, make_claim):
        claim = make_claim(amount=Decimal("160.50"), line_items=_lines())

        assert claim.subtotal == Decimal("150.00")
        assert claim.vat_amount == Decimal("10.50")
        assert claim.total_amount == Decimal("160.50")
        assert claim.wht_amount == Decimal("1.50")
        assert claim.net_amount == Decimal("159.00")
        assert len(claim.line_items) == 2

    def test_company_defaults_to_wallet_company(self, make_claim, wallet):
        assert make_claim().company_id == wallet.company_id

    def test_unknown_wallet(self, petty_cash):
        result = petty_cash.expense_claims.create(
            CreateClaimInput(wallet_id=uuid4(), expense_date=date(2025, 1, 8), amount=Decimal("10"))
        )

        assert result.status is ResultStatus.NOT_FOUND

    def test_non_positive_amount(self, petty_cash, wallet):
        result = petty_cash.expense_claims.create(
            CreateClaimInput(wallet_id=wallet.id, expense_date=date(2025, 1, 8), amount=Decimal("0"))
        )

        assert result.status is ResultStatus.VALIDATION_ERROR

    def test_withholding_above_line_total_rejected(self, petty_cash, wallet):
        bad = [ExpenseLineItem("x", pre_vat_amount=Decimal("10"), wht_amount=Decimal("11"))]

        result = petty_cash.expense_claims.create(
            CreateClaimInput(wallet_id=wallet.id, expense_date=date(2025, 1, 8), amount=Decimal("10")),
            bad,
        )

        assert result.status is ResultStatus.VALIDATION_ERROR

    def test_numeric_string_line_amounts_become_decimals(self, make_claim):
        lines = [ExpenseLineItem("Diesel", pre_vat_amount="100", vat_amount="7", wht_amount="1")]

        claim = make_claim(amount=Decimal("107"), line_items=lines)

        assert claim.net_amount == Decimal("106")
        assert claim.line_items[0].pre_vat_amount == Decimal("100")
        assert isinstance(claim.line_items[0].vat_amount, Decimal)

    @pytest.mark.parametrize("bad_amount", ["ten", 1.5, None])
    def test_unusable_line_amount_is_a_validation_error(self, petty_cash, wallet, bad_amount):
        lines = [ExpenseLineItem("Diesel", pre_vat_amount=bad_amount)]

        result = petty_cash.expense_claims.create(
            CreateClaimInput(wallet_id=wallet.id, expense_date=date(2025, 1, 8), amount=Decimal("10")),
            lines,
        )

        assert result.status is ResultStatus.VALIDATION_ERROR
        assert result.error.field == "line_items[1].pre_vat_amount"


class TestSubmit:

    def test_submit_without_attachment_then_with(self, petty_cash, make_claim):
        claim = make_claim(amount=Decimal("300"), attachments=())

        refused = petty_cash.expense_claims.submit(claim.id)

        assert refused.status is ResultStatus.VALIDATION_ERROR
        assert petty_cash.reimbursements.get_by_expense_id(claim.id) is None
        assert petty_cash.expense_claims.get(claim.id).status is ClaimStatus.DRAFT

        petty_cash.expense_claims.attach(claim.id, "receipt-001.jpg").unwrap()
        submitted = petty_cash.expense_claims.submit(claim.id)

        assert submitted.is_success
        assert submitted.value.claim.status is ClaimStatus.SUBMITTED
        reimbursement = petty_cash.reimbursements.get_by_expense_id(claim.id)
        assert reimbursement == submitted.value.reimbursement
        assert reimbursement.status is ReimbursementStatus.PENDING
        assert reimbursement.amount == Decimal("300")
        assert reimbursement.final_amount == Decimal("300")
        assert reimbursement.expense_number == claim.claim_number
        assert reimbursement.wallet_id == claim.wallet_id

    def test_refused_submit_consumes_no_reimbursement_number(self, petty_cash, make_claim):
        bare = make_claim(attachments=())
        petty_cash.expense_claims.submit(bare.id)
        ok = make_claim()

        result = petty_cash.expense_claims.submit(ok.id).unwrap()

        assert result.reimbursement.reimbursement_number == "PC-RMB-2501-0001"

    def test_resubmit_fails(self, petty_cash, make_claim):
        claim = make_claim()
        petty_cash.expense_claims.submit(claim.id).unwrap()

        again = petty_cash.expense_claims.submit(claim.id)

        assert again.status is ResultStatus.INVALID_STATE_TRANSITION
        assert len(petty_cash.reimbursements.list_reimbursements()) == 1

    def test_submit_unknown_claim(self, petty_cash):
        assert petty_cash.expense_claims.submit(uuid4()).status is ResultStatus.NOT_FOUND

    def test_create_submitted_path(self, petty_cash, wallet):
        result = petty_cash.expense_claims.create_submitted(
            CreateClaimInput(
                wallet_id=wallet.id,
                expense_date=date(2025, 1, 9),
                amount=Decimal("120"),
                attachments=("photo.jpg",),
            )
        )

        assert result.is_success
        assert result.value.claim.status is ClaimStatus.SUBMITTED
        assert result.value.claim.submitted_at is not None
        assert petty_cash.reimbursements.get_by_expense_id(result.value.claim.id).amount == Decimal("120")

    def test_create_submitted_requires_attachment(self, petty_cash, wallet):
        result = petty_cash.expense_claims.create_submitted(
            CreateClaimInput(wallet_id=wallet.id, expense_date=date(2025, 1, 9), amount=Decimal("120"))
        )

        assert result.status is ResultStatus.VALIDATION_ERROR
        assert petty_cash.expense_claims.list_claims() == []

    def test_submit_leaves_wallet_alone_by_default(self, petty_cash, make_claim, wallet):
        petty_cash.expense_claims.submit(make_claim().id).unwrap()

        assert petty_cash.wallets.get_wallet(wallet.id).balance == Decimal("1000")


class TestSubmitWithWalletDeduction:

    @pytest.fixture
    def config(self):
        return PettyCashConfig(deduct_wallet_on_claim_submission=True)

    def test_submit_debits_net_amount(self, petty_cash, make_claim, wallet):
        claim = make_claim(amount=Decimal("160.50"), line_items=_lines())

        petty_cash.expense_claims.submit(claim.id).unwrap()

        assert petty_cash.wallets.get_wallet(wallet.id).balance == Decimal("841.00")

    def test_insufficient_funds_rolls_back_everything(self, petty_cash, make_claim, wallet):
        claim = make_claim(amount=Decimal("1500"))

        result = petty_cash.expense_claims.submit(claim.id)

        assert result.status is ResultStatus.INSUFFICIENT_FUNDS
        assert petty_cash.expense_claims.get(claim.id).status is ClaimStatus.DRAFT
        assert petty_cash.reimbursements.get_by_expense_id(claim.id) is None
        assert petty_cash.wallets.get_wallet(wallet.id).balance == Decimal("1000")

    def test_rejecting_recognized_claim_credits_back(self, petty_cash, make_claim, wallet):
        claim = make_claim(amount=Decimal("200"))
        petty_cash.expense_claims.submit(claim.id).unwrap()

        petty_cash.expense_claims.reject(claim.id, "acct-1", "duplicate").unwrap()

        assert petty_cash.wallets.get_wallet(wallet.id).balance == Decimal("1000")


class TestTransitions:

    def test_happy_path_to_paid(self, petty_cash, make_claim):
        claim = make_claim()
        petty_cash.expense_claims.submit(claim.id).unwrap()

        reviewed = petty_cash.expense_claims.review(claim.id, "acct-1").unwrap()
        paid = petty_cash.expense_claims.mark_paid(claim.id).unwrap()

        assert reviewed.status is ClaimStatus.APPROVED
        assert reviewed.reviewed_by == "acct-1"
        assert paid.status is ClaimStatus.PAID
        assert paid.paid_at is not None

    def test_pay_requires_review(self, petty_cash, make_claim):
        claim = make_claim()
        petty_cash.expense_claims.submit(claim.id).unwrap()

        assert petty_cash.expense_claims.mark_paid(claim.id).status is ResultStatus.INVALID_STATE_TRANSITION

    @pytest.mark.parametrize("steps", [0, 1, 2])
    def test_reject_from_open_states(self, petty_cash, make_claim, steps):
        claim = make_claim()
        if steps >= 1:
            petty_cash.expense_claims.submit(claim.id).unwrap()
        if steps >= 2:
            petty_cash.expense_claims.review(claim.id, "acct-1").unwrap()

        result = petty_cash.expense_claims.reject(claim.id, "acct-1", "no receipt")

        assert result.is_success
        assert result.value.status is ClaimStatus.REJECTED
        assert result.value.rejection_reason == "no receipt"

    def test_reject_requires_reason(self, petty_cash, make_claim):
        claim = make_claim()

        assert petty_cash.expense_claims.reject(claim.id, "acct-1", " ").status is ResultStatus.VALIDATION_ERROR

    def test_paid_claim_cannot_be_rejected(self, petty_cash, make_claim):
        claim = make_claim()
        petty_cash.expense_claims.submit(claim.id).unwrap()
        petty_cash.expense_claims.review(claim.id, "acct-1").unwrap()
        petty_cash.expense_claims.mark_paid(claim.id).unwrap()

        result = petty_cash.expense_claims.reject(claim.id, "acct-1", "late")

        assert result.status is ResultStatus.INVALID_STATE_TRANSITION

    @pytest.mark.parametrize("approve_first", [False, True])
    def test_reject_also_rejects_open_reimbursement(self, petty_cash, make_claim, approve_first):
        claim = make_claim()
        record = petty_cash.expense_claims.submit(claim.id).unwrap().reimbursement
        if approve_first:
            petty_cash.reimbursements.approve(record.id, "acct-1", "bank-1").unwrap()

        petty_cash.expense_claims.reject(claim.id, "acct-2", "duplicate").unwrap()

        reimbursement = petty_cash.reimbursements.get(record.id)
        assert reimbursement.status is ReimbursementStatus.REJECTED
        assert reimbursement.rejected_by == "acct-2"
        assert reimbursement.rejection_reason == "duplicate"

    def test_rejected_claim_reimbursement_cannot_be_paid_out(self, petty_cash, make_claim, wallet):
        claim = make_claim(amount=Decimal("300"))
        record = petty_cash.expense_claims.submit(claim.id).unwrap().reimbursement
        petty_cash.expense_claims.reject(claim.id, "acct-1", "duplicate").unwrap()

        approved = petty_cash.reimbursements.approve(record.id, "acct-1", "bank-1")
        paid = petty_cash.reimbursements.process_payment(record.id, date(2025, 1, 10))

        assert approved.status is ResultStatus.INVALID_STATE_TRANSITION
        assert paid.status is ResultStatus.INVALID_STATE_TRANSITION
        assert petty_cash.ledger.get_all_transactions(wallet_id=wallet.id) == []

    def test_claim_with_paid_reimbursement_cannot_be_rejected(self, petty_cash, make_claim):
        claim = make_claim()
        record = petty_cash.expense_claims.submit(claim.id).unwrap().reimbursement
        petty_cash.reimbursements.approve(record.id, "acct-1", "bank-1").unwrap()
        petty_cash.reimbursements.process_payment(record.id, date(2025, 1, 10)).unwrap()

        result = petty_cash.expense_claims.reject(claim.id, "acct-1", "late")

        assert result.status is ResultStatus.INTEGRITY_VIOLATION
        assert petty_cash.expense_claims.get(claim.id).status is ClaimStatus.SUBMITTED
        assert petty_cash.reimbursements.get(record.id).status is ReimbursementStatus.PAID


class TestEditing:

    def test_draft_is_freely_editable(self, petty_cash, make_claim):
        claim = make_claim(amount=Decimal("300"))

        updated = petty_cash.expense_claims.update(
            claim.id, {"amount": Decimal("320"), "description": "Fuel + oil"},
        ).unwrap()

        assert updated.amount == Decimal("320")
        assert updated.net_amount == Decimal("320")
        assert updated.description == "Fuel + oil"

    def test_line_item_change_recomputes_totals(self, petty_cash, make_claim):
        claim = make_claim(amount=Decimal("160.50"))

        updated = petty_cash.expense_claims.update(claim.id, {"line_items": _lines()}).unwrap()

        assert updated.net_amount == Decimal("159.00")
        assert updated.wht_amount == Decimal("1.50")

    def test_submitted_claim_needs_edit_mode(self, petty_cash, make_claim):
        claim = make_claim()
        petty_cash.expense_claims.submit(claim.id).unwrap()

        result = petty_cash.expense_claims.update(claim.id, {"description": "x"})

        assert result.status is ResultStatus.INVALID_STATE_TRANSITION

    def test_submitted_claim_keeps_an_attachment(self, petty_cash, make_claim):
        claim = make_claim(attachments=("receipt-001.jpg",))
        petty_cash.expense_claims.submit(claim.id).unwrap()

        emptied = petty_cash.expense_claims.update(claim.id, {"attachments": ()}, edit_mode=True)
        swapped = petty_cash.expense_claims.update(
            claim.id, {"attachments": ("receipt-002.jpg",)}, edit_mode=True,
        )

        assert emptied.status is ResultStatus.VALIDATION_ERROR
        assert emptied.error.field == "attachments"
        assert swapped.value.attachments == ("receipt-002.jpg",)

    def test_draft_may_drop_its_attachments(self, petty_cash, make_claim):
        claim = make_claim(attachments=("receipt-001.jpg",))

        updated = petty_cash.expense_claims.update(claim.id, {"attachments": ()}).unwrap()

        assert updated.attachments == ()

    def test_amount_edit_syncs_reimbursement(self, petty_cash, make_claim):
        claim = make_claim(amount=Decimal("300"))
        petty_cash.expense_claims.submit(claim.id).unwrap()

        petty_cash.expense_claims.update(claim.id, {"amount": Decimal("350")}, edit_mode=True).unwrap()

        reimbursement = petty_cash.reimbursements.get_by_expense_id(claim.id)
        assert reimbursement.amount == Decimal("350")
        assert reimbursement.final_amount == Decimal("350")

    def test_amount_edit_blocked_when_reimbursement_paid(self, petty_cash, make_claim):
        claim = make_claim(amount=Decimal("300"))
        rmb = petty_cash.expense_claims.submit(claim.id).unwrap().reimbursement
        petty_cash.reimbursements.approve(rmb.id, "acct-1", "bank-1").unwrap()
        petty_cash.reimbursements.process_payment(rmb.id, date(2025, 1, 10)).unwrap()

        result = petty_cash.expense_claims.update(claim.id, {"amount": Decimal("350")}, edit_mode=True)

        assert result.status is ResultStatus.INVALID_STATE_TRANSITION
        assert petty_cash.expense_claims.get(claim.id).amount == Decimal("300")

    def test_paid_claim_amount_locked(self, petty_cash, make_claim):
        claim = make_claim()
        petty_cash.expense_claims.submit(claim.id).unwrap()
        petty_cash.expense_claims.review(claim.id, "acct-1").unwrap()
        petty_cash.expense_claims.mark_paid(claim.id).unwrap()

        locked = petty_cash.expense_claims.update(claim.id, {"amount": Decimal("1")}, edit_mode=True)
        described = petty_cash.expense_claims.update(claim.id, {"description": "fixed typo"}, edit_mode=True)

        assert locked.status is ResultStatus.INVALID_STATE_TRANSITION
        assert described.is_success

    def test_rejected_claim_is_immutable(self, petty_cash, make_claim):
        claim = make_claim()
        petty_cash.expense_claims.reject(claim.id, "acct-1", "wrong wallet").unwrap()

        assert petty_cash.expense_claims.update(
            claim.id, {"description": "x"}, edit_mode=True,
        ).status is ResultStatus.INVALID_STATE_TRANSITION
        assert petty_cash.expense_claims.attach(claim.id, "late.jpg").status is ResultStatus.INVALID_STATE_TRANSITION

    def test_unknown_field_rejected(self, petty_cash, make_claim):
        claim = make_claim()

        assert petty_cash.expense_claims.update(claim.id, {"status": "paid"}).status is ResultStatus.VALIDATION_ERROR

    def test_attach_deduplicates(self, petty_cash, make_claim):
        claim = make_claim(attachments=("a.jpg",))

        updated = petty_cash.expense_claims.attach(claim.id, "a.jpg", "b.jpg").unwrap()

        assert updated.attachments == ("a.jpg", "b.jpg")


class TestReceiptsAndDeletion:

    def test_mark_receipt_received_defaults_to_today(self, petty_cash, make_claim, clock):
        claim = make_claim()

        updated = petty_cash.expense_claims.mark_receipt_received(claim.id).unwrap()

        assert updated.receipt_status is ReceiptStatus.ORIGINAL_RECEIVED
        assert updated.receipt_received_date == clock.today()
        again = petty_cash.expense_claims.mark_receipt_received(claim.id)
        assert again.status is ResultStatus.INVALID_STATE_TRANSITION

    def test_pending_receipts_lists_recognized_claims_only(self, petty_cash, make_claim):
        draft = make_claim()
        submitted = make_claim()
        petty_cash.expense_claims.submit(submitted.id).unwrap()

        ids = [c.id for c in petty_cash.expense_claims.pending_receipts()]

        assert ids == [submitted.id]
        assert draft.id not in ids

    def test_delete_draft(self, petty_cash, make_claim):
        claim = make_claim()

        assert petty_cash.expense_claims.delete(claim.id).is_success
        assert petty_cash.expense_claims.get(claim.id) is None

    def test_delete_submitted_fails(self, petty_cash, make_claim):
        claim = make_claim()
        petty_cash.expense_claims.submit(claim.id).unwrap()

        result = petty_cash.expense_claims.delete(claim.id)

        assert result.status is ResultStatus.INTEGRITY_VIOLATION
        assert petty_cash.expense_claims.get(claim.id) is not None


class TestQueries:

    def test_list_claims_filters(self, petty_cash, make_wallet, make_claim):
        other = make_wallet(holder_id="holder-2", company_id="company-b")
        mine = make_claim()
        theirs = make_claim(wallet_id=other.id)
        petty_cash.expense_claims.submit(theirs.id).unwrap()

        assert [c.id for c in petty_cash.expense_claims.list_claims(wallet_id=other.id)] == [theirs.id]
        assert [c.id for c in petty_cash.expense_claims.list_claims(status=ClaimStatus.DRAFT)] == [mine.id]
        assert [c.id for c in petty_cash.expense_claims.list_claims(company_id="company-b")] == [theirs.id]


def test_orchestrator_shares_one_number_sequence_per_kind(store, clock):
    petty_cash = PettyCashOrchestrator(store, clock=clock)

    wallet = petty_cash.wallets.create_wallet(
        CreateWalletInput("w", "h", "H", "company-a", "THB", Decimal("10"))
    ).unwrap()
    numbers = [
        petty_cash.expense_claims.create(
            CreateClaimInput(wallet_id=wallet.id, expense_date=date(2025, 1, 1), amount=Decimal("1"))
        ).unwrap().claim_number
        for _ in range(3)
    ]

    assert numbers == ["PC-EXP-2501-0001", "PC-EXP-2501-0002", "PC-EXP-2501-0003"]
