"""
InMemoryStore -- process-local implementation of ``PettyCashStore``.

Responsibility:
    Holds the four collections in dictionaries keyed by id.  Used as the
    test double for every service and as a single-process store.

Concurrency model:
    - One ``threading.Lock`` per wallet, held for the duration of a unit of
      work opened with ``wallet_id``.  Different wallets proceed in parallel.
    - One commit lock.  Staged writes of a unit of work are applied while
      holding it, and snapshots copy the collections while holding it, so a
      reader never observes half of a multi-record commit.
    - One counter lock for sequence allocation, independent of the wallet
      locks.

Non-goals:
    Durability.  Counter values and records vanish with the process; use
    ``SqlAlchemyStore`` when numbering must survive restarts.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator
from uuid import UUID

from petty_cash.logging_config import get_logger
from petty_cash.persistence.port import (
    Collection,
    Predicate,
    Record,
    collection_for,
)

logger = get_logger("persistence.memory")


class _InMemoryTransaction:
    """Unit of work over an ``InMemoryStore``: overlay of staged writes."""

    def __init__(self, store: InMemoryStore, *, read_only: bool = False):
        self._store = store
        self._read_only = read_only
        self._staged: dict[Collection, dict[UUID, Record]] = {c: {} for c in Collection}
        self._deleted: dict[Collection, set[UUID]] = {c: set() for c in Collection}
        self._closed = False

    def get(self, collection: Collection, record_id: UUID) -> Record | None:
        self._check_open()
        if record_id in self._deleted[collection]:
            return None
        staged = self._staged[collection].get(record_id)
        if staged is not None:
            return staged
        return self._store._read(collection, record_id)

    def list(
        self,
        collection: Collection,
        predicate: Predicate | None = None,
    ) -> list[Record]:
        self._check_open()
        merged = self._store._read_all(collection)
        merged.update(self._staged[collection])
        records = [
            r for rid, r in merged.items() if rid not in self._deleted[collection]
        ]
        if predicate is None:
            return records
        return [r for r in records if predicate(r)]

    def upsert(self, *records: Record) -> None:
        self._check_writable()
        for record in records:
            collection = collection_for(record)
            self._deleted[collection].discard(record.id)
            self._staged[collection][record.id] = record

    def delete(self, collection: Collection, record_id: UUID) -> None:
        self._check_writable()
        self._staged[collection].pop(record_id, None)
        self._deleted[collection].add(record_id)

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("Transaction is closed")

    def _check_writable(self) -> None:
        self._check_open()
        if self._read_only:
            raise RuntimeError("Snapshot is read-only")


class _SnapshotView(_InMemoryTransaction):
    """Read-only view over collections copied at one instant."""

    def __init__(self, store: InMemoryStore, data: dict[Collection, dict[UUID, Record]]):
        super().__init__(store, read_only=True)
        self._data = data

    def get(self, collection: Collection, record_id: UUID) -> Record | None:
        self._check_open()
        return self._data[collection].get(record_id)

    def list(
        self,
        collection: Collection,
        predicate: Predicate | None = None,
    ) -> list[Record]:
        self._check_open()
        records = list(self._data[collection].values())
        if predicate is None:
            return records
        return [r for r in records if predicate(r)]


class InMemoryStore:
    """
    Dictionary-backed ``PettyCashStore``.

    Guarantees:
        - Staged writes of one unit of work become visible together or not
          at all.
        - Operations opened with the same ``wallet_id`` run one at a time.
        - ``next_sequence_value`` never returns the same value twice for the
          same sequence name.
    """

    def __init__(self) -> None:
        self._data: dict[Collection, dict[UUID, Record]] = {c: {} for c in Collection}
        self._commit_lock = threading.Lock()
        self._wallet_locks: dict[UUID, threading.Lock] = {}
        self._wallet_locks_guard = threading.Lock()
        self._counters: dict[str, int] = {}
        self._counter_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Units of work
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self, *, wallet_id: UUID | None = None) -> Iterator[_InMemoryTransaction]:
        lock = self._wallet_lock(wallet_id) if wallet_id is not None else None
        if lock is not None:
            lock.acquire()
        tx = _InMemoryTransaction(self)
        try:
            yield tx
            self._commit(tx)
        finally:
            tx._closed = True
            if lock is not None:
                lock.release()

    @contextmanager
    def snapshot(self) -> Iterator[_SnapshotView]:
        with self._commit_lock:
            data = {c: dict(records) for c, records in self._data.items()}
        view = _SnapshotView(self, data)
        try:
            yield view
        finally:
            view._closed = True

    def next_sequence_value(self, sequence_name: str) -> int:
        with self._counter_lock:
            value = self._counters.get(sequence_name, 0) + 1
            self._counters[sequence_name] = value
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": value},
        )
        return value

    def current_sequence_value(self, sequence_name: str) -> int | None:
        with self._counter_lock:
            return self._counters.get(sequence_name)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _wallet_lock(self, wallet_id: UUID) -> threading.Lock:
        with self._wallet_locks_guard:
            lock = self._wallet_locks.get(wallet_id)
            if lock is None:
                lock = threading.Lock()
                self._wallet_locks[wallet_id] = lock
            return lock

    def _read(self, collection: Collection, record_id: UUID) -> Record | None:
        with self._commit_lock:
            return self._data[collection].get(record_id)

    def _read_all(self, collection: Collection) -> dict[UUID, Record]:
        with self._commit_lock:
            return dict(self._data[collection])

    def _commit(self, tx: _InMemoryTransaction) -> None:
        with self._commit_lock:
            for collection in Collection:
                target = self._data[collection]
                for record_id in tx._deleted[collection]:
                    target.pop(record_id, None)
                target.update(tx._staged[collection])
        written = sum(len(s) for s in tx._staged.values())
        removed = sum(len(d) for d in tx._deleted.values())
        if written or removed:
            logger.debug(
                "store_committed",
                extra={"records_written": written, "records_deleted": removed},
            )
