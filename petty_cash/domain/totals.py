"""
Claim Totals Helpers (``petty_cash.domain.totals``).

Responsibility
--------------
Pure calculation functions for expense claims: derived totals from line
items, amount validation, and month/date-range boundary helpers shared by
the ledger projection.

Architecture position
---------------------
**Domain layer** -- pure helper functions.  No I/O, no store, no clock.

Invariants enforced
-------------------
* All numeric inputs and outputs use ``Decimal`` -- NEVER ``float``.
* With line items: ``subtotal = sum(pre_vat)``, ``vat = sum(vat)``,
  ``total = subtotal + vat``, ``wht = sum(wht)``, ``net = total - wht``.
* Without line items every total equals the claim amount and VAT/WHT are 0.
"""

from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Sequence

from petty_cash.domain.models import ClaimTotals, ExpenseLineItem
from petty_cash.exceptions import ValidationError

DEFAULT_PRECISION = Decimal("0.01")


def to_amount(value: object, field: str = "amount") -> Decimal:
    """
    Coerce ``value`` to a finite ``Decimal``.

    Floats are rejected: money must arrive as ``Decimal``, ``int`` or a
    numeric string.

    Raises:
        ValidationError: for floats, non-numeric or non-finite values.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{field} must be a Decimal, got {type(value).__name__}", field=field)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{field} is not a number: {value!r}", field=field) from exc
    if not amount.is_finite():
        raise ValidationError(f"{field} must be finite, got {amount}", field=field)
    return amount


def require_positive(value: object, field: str = "amount") -> Decimal:
    """Coerce and require ``> 0``."""
    amount = to_amount(value, field)
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than 0, got {amount}", field=field)
    return amount


def require_non_negative(value: object, field: str = "amount") -> Decimal:
    """Coerce and require ``>= 0``."""
    amount = to_amount(value, field)
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative, got {amount}", field=field)
    return amount


def quantize(amount: Decimal, precision: Decimal = DEFAULT_PRECISION) -> Decimal:
    return amount.quantize(precision, rounding=ROUND_HALF_UP)


def validate_line_items(line_items: Sequence[ExpenseLineItem]) -> None:
    """
    Validate line-item amounts.

    Raises:
        ValidationError: if any amount is negative or WHT exceeds the line total.
    """
    for index, item in enumerate(line_items, start=1):
        require_non_negative(item.pre_vat_amount, f"line_items[{index}].pre_vat_amount")
        require_non_negative(item.vat_amount, f"line_items[{index}].vat_amount")
        require_non_negative(item.wht_amount, f"line_items[{index}].wht_amount")
        if item.wht_amount > item.gross_amount:
            raise ValidationError(
                f"Line {index}: withholding {item.wht_amount} exceeds line total "
                f"{item.gross_amount}",
                field=f"line_items[{index}].wht_amount",
            )


def compute_claim_totals(
    amount: Decimal,
    line_items: Sequence[ExpenseLineItem] | None,
    precision: Decimal = DEFAULT_PRECISION,
) -> ClaimTotals:
    """
    Derive the totals of a claim.

    Preconditions:
        - ``line_items`` (when given) passed ``validate_line_items``.
    Postconditions:
        - Returned totals satisfy the line-item sum invariants, quantized to
          ``precision`` with ROUND_HALF_UP.
    """
    if line_items:
        subtotal = sum((i.pre_vat_amount for i in line_items), Decimal("0"))
        vat_amount = sum((i.vat_amount for i in line_items), Decimal("0"))
        wht_amount = sum((i.wht_amount for i in line_items), Decimal("0"))
        subtotal = quantize(subtotal, precision)
        vat_amount = quantize(vat_amount, precision)
        wht_amount = quantize(wht_amount, precision)
        total_amount = subtotal + vat_amount
        return ClaimTotals(
            subtotal=subtotal,
            vat_amount=vat_amount,
            total_amount=total_amount,
            wht_amount=wht_amount,
            net_amount=total_amount - wht_amount,
        )

    zero = Decimal("0")
    return ClaimTotals(
        subtotal=amount,
        vat_amount=zero,
        total_amount=amount,
        wht_amount=zero,
        net_amount=amount,
    )


# -----------------------------------------------------------------------------
# Date boundaries
# -----------------------------------------------------------------------------


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """Return ``(period_start, next_period_start)`` for a calendar month."""
    if not 1 <= month <= 12:
        raise ValidationError(f"month must be 1..12, got {month}", field="month")
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end


def in_half_open(value: date, start: date, end: date) -> bool:
    """``start <= value < end`` -- used for monthly totals."""
    return start <= value < end


def in_closed(value: date, date_from: date, date_to: date) -> bool:
    """``date_from <= value <= date_to`` -- used for caller-supplied ranges."""
    return date_from <= value <= date_to
