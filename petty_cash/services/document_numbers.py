"""
DocumentNumberGenerator -- human-readable numbers for claims, reimbursements
and top-ups.

Format::

    {PREFIX}-{YY}{MM}-{NNNN}      e.g. PC-EXP-2501-0001

``YYMM`` comes from the clock at generation time.  ``NNNN`` is the next
value of a per-kind counter, zero-padded to ``sequence_width`` and widening
past it rather than wrapping.  Counters never reset unless the
configuration asks for monthly reset, in which case each month gets its
own counter.

Allocation goes through the store's ``next_sequence_value`` (a locked
counter, never a count of existing records), independent of any wallet
lock.  A value consumed by an operation that later fails is not reused;
gaps are permitted, duplicates are not.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol

from petty_cash.config import PettyCashConfig
from petty_cash.domain.clock import Clock
from petty_cash.logging_config import get_logger

logger = get_logger("services.document_numbers")


class DocumentKind(str, Enum):
    EXPENSE_CLAIM = "expense_claim"
    REIMBURSEMENT = "reimbursement"
    TOP_UP = "top_up"


class SequenceAllocator(Protocol):
    def next_sequence_value(self, sequence_name: str) -> int: ...


class DocumentNumberGenerator:
    """Formats document numbers from a sequence allocator and a clock."""

    def __init__(
        self,
        allocator: SequenceAllocator,
        clock: Clock,
        prefixes: dict[DocumentKind, str],
        counter_reset: str = "never",
        width: int = 4,
    ):
        missing = set(DocumentKind) - set(prefixes)
        if missing:
            raise ValueError(f"No prefix for document kinds: {sorted(k.value for k in missing)}")
        self._allocator = allocator
        self._clock = clock
        self._prefixes = dict(prefixes)
        self._counter_reset = counter_reset
        self._width = width

    @classmethod
    def from_config(
        cls,
        allocator: SequenceAllocator,
        clock: Clock,
        config: PettyCashConfig,
    ) -> DocumentNumberGenerator:
        return cls(
            allocator=allocator,
            clock=clock,
            prefixes={
                DocumentKind.EXPENSE_CLAIM: config.expense_claim_prefix,
                DocumentKind.REIMBURSEMENT: config.reimbursement_prefix,
                DocumentKind.TOP_UP: config.top_up_prefix,
            },
            counter_reset=config.counter_reset,
            width=config.sequence_width,
        )

    def sequence_name(self, kind: DocumentKind, yymm: str) -> str:
        if self._counter_reset == "monthly":
            return f"doc:{kind.value}:{yymm}"
        return f"doc:{kind.value}"

    def next_number(self, kind: DocumentKind) -> str:
        now = self._clock.now()
        yymm = f"{now.year % 100:02d}{now.month:02d}"
        value = self._allocator.next_sequence_value(self.sequence_name(kind, yymm))
        number = f"{self._prefixes[kind]}-{yymm}-{value:0{self._width}d}"
        logger.debug(
            "document_number_generated",
            extra={"document_kind": kind.value, "document_number": number},
        )
        return number

    def expense_claim_number(self) -> str:
        return self.next_number(DocumentKind.EXPENSE_CLAIM)

    def reimbursement_number(self) -> str:
        return self.next_number(DocumentKind.REIMBURSEMENT)

    def top_up_number(self) -> str:
        return self.next_number(DocumentKind.TOP_UP)
