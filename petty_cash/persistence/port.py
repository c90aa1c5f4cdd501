"""
Persistence port (``petty_cash.persistence.port``).

Responsibility
--------------
The narrow interface every service talks to.  Services never see a
database session or a module-level list: they receive a ``PettyCashStore``
at construction and open units of work on it.

Contract
--------
* ``transaction(wallet_id=...)`` -- a unit of work.  Reads see committed
  data overlaid with the unit's own staged writes.  ``upsert`` and
  ``delete`` are staged and applied together on normal exit; any exception
  discards them.  When ``wallet_id`` is given, the wallet's lock is held
  for the whole unit, serializing every operation on that wallet.
* ``snapshot()`` -- a read-only, point-in-time view.
* ``next_sequence_value(name)`` -- serialized counter allocation that does
  not take any wallet lock.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from enum import Enum
from typing import Callable, Protocol, Union, runtime_checkable
from uuid import UUID

from petty_cash.domain.models import (
    ExpenseClaim,
    ReimbursementRecord,
    TopUpRequest,
    Wallet,
)


class Collection(str, Enum):
    """The four independent persisted collections."""

    WALLETS = "wallets"
    EXPENSE_CLAIMS = "expense_claims"
    REIMBURSEMENTS = "reimbursements"
    TOP_UPS = "top_ups"


Record = Union[Wallet, ExpenseClaim, ReimbursementRecord, TopUpRequest]
Predicate = Callable[[Record], bool]

COLLECTION_BY_TYPE: dict[type, Collection] = {
    Wallet: Collection.WALLETS,
    ExpenseClaim: Collection.EXPENSE_CLAIMS,
    ReimbursementRecord: Collection.REIMBURSEMENTS,
    TopUpRequest: Collection.TOP_UPS,
}


def collection_for(record: Record) -> Collection:
    """Return the collection a record belongs to."""
    try:
        return COLLECTION_BY_TYPE[type(record)]
    except KeyError:
        raise TypeError(f"Not a petty cash record: {type(record).__name__}") from None


@runtime_checkable
class StoreTransaction(Protocol):
    """Reads and staged writes within one unit of work."""

    def get(self, collection: Collection, record_id: UUID) -> Record | None: ...

    def list(
        self,
        collection: Collection,
        predicate: Predicate | None = None,
    ) -> list[Record]: ...

    def upsert(self, *records: Record) -> None: ...

    def delete(self, collection: Collection, record_id: UUID) -> None: ...


@runtime_checkable
class PettyCashStore(Protocol):
    """Storage backend for the four petty-cash collections."""

    def transaction(
        self, *, wallet_id: UUID | None = None
    ) -> AbstractContextManager[StoreTransaction]: ...

    def snapshot(self) -> AbstractContextManager[StoreTransaction]: ...

    def next_sequence_value(self, sequence_name: str) -> int: ...
