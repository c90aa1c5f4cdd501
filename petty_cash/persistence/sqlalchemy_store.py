"""
SqlAlchemyStore -- database-backed implementation of ``PettyCashStore``.

Responsibility:
    Maps units of work onto SQLAlchemy sessions.  Each ``transaction()``
    opens one session, stages writes through ``session.merge`` and commits
    on normal exit (``session_scope``).

Concurrency model:
    - PostgreSQL: a unit of work opened with ``wallet_id`` locks the wallet
      row with ``SELECT ... FOR UPDATE`` (cross-process) and holds an
      in-process per-wallet lock (so threads sharing one engine queue
      instead of blocking pooled connections).  Snapshots run at
      REPEATABLE READ.
    - SQLite: all threads share one connection (StaticPool), so every unit
      of work, snapshot and sequence allocation is serialized on a single
      store-wide lock.
    - Sequence counters: locked counter rows (never aggregate MAX+1),
      allocated in their own short transaction.

Failure modes:
    - IntegrityError on a duplicate document number or a second
      reimbursement for one claim (unique constraints).  Propagates; the
      unit of work rolls back.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager, nullcontext
from typing import Iterator
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from petty_cash.db.engine import is_postgres, make_session_factory, session_scope
from petty_cash.logging_config import get_logger
from petty_cash.persistence.orm import (
    ExpenseClaimModel,
    ReimbursementModel,
    SequenceCounter,
    TopUpModel,
    WalletModel,
)
from petty_cash.persistence.port import (
    Collection,
    Predicate,
    Record,
    collection_for,
)

logger = get_logger("persistence.sqlalchemy")

MODEL_BY_COLLECTION = {
    Collection.WALLETS: WalletModel,
    Collection.EXPENSE_CLAIMS: ExpenseClaimModel,
    Collection.REIMBURSEMENTS: ReimbursementModel,
    Collection.TOP_UPS: TopUpModel,
}


class _SqlTransaction:
    """Unit of work bound to one SQLAlchemy session."""

    def __init__(self, session: Session, *, read_only: bool = False):
        self._session = session
        self._read_only = read_only
        self._closed = False

    def get(self, collection: Collection, record_id: UUID) -> Record | None:
        self._check_open()
        row = self._session.get(MODEL_BY_COLLECTION[collection], record_id)
        return row.to_dto() if row is not None else None

    def list(
        self,
        collection: Collection,
        predicate: Predicate | None = None,
    ) -> list[Record]:
        self._check_open()
        model = MODEL_BY_COLLECTION[collection]
        rows = self._session.execute(
            select(model).order_by(model.created_at, model.id)
        ).scalars()
        records = [row.to_dto() for row in rows]
        if predicate is None:
            return records
        return [r for r in records if predicate(r)]

    def upsert(self, *records: Record) -> None:
        self._check_writable()
        for record in records:
            model = MODEL_BY_COLLECTION[collection_for(record)]
            self._session.merge(model.from_dto(record))
        self._session.flush()

    def delete(self, collection: Collection, record_id: UUID) -> None:
        self._check_writable()
        row = self._session.get(MODEL_BY_COLLECTION[collection], record_id)
        if row is not None:
            self._session.delete(row)
            self._session.flush()

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("Transaction is closed")

    def _check_writable(self) -> None:
        self._check_open()
        if self._read_only:
            raise RuntimeError("Snapshot is read-only")


class SqlAlchemyStore:
    """
    ``PettyCashStore`` over a SQLAlchemy engine.

    Contract:
        The caller owns the engine and must have created the tables
        (``petty_cash.db.engine.create_tables``).

    Guarantees:
        - Writes of one unit of work commit together or roll back together.
        - Operations opened with the same ``wallet_id`` are serialized,
          within the process and (on PostgreSQL) across processes.
        - ``next_sequence_value`` is strictly monotonic per sequence name
          and survives restarts.
    """

    def __init__(self, engine: Engine):
        self._engine = engine
        self._session_factory = make_session_factory(engine)
        self._postgres = is_postgres(engine)
        # One shared connection on SQLite: serialize everything.
        self._serial_lock = None if self._postgres else threading.RLock()
        self._wallet_locks: dict[UUID, threading.Lock] = {}
        self._sequence_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @property
    def engine(self) -> Engine:
        return self._engine

    # ------------------------------------------------------------------
    # Units of work
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self, *, wallet_id: UUID | None = None) -> Iterator[_SqlTransaction]:
        wallet_lock = (
            self._named_lock(self._wallet_locks, wallet_id)
            if wallet_id is not None and self._postgres
            else nullcontext()
        )
        with self._serialized(), wallet_lock:
            with session_scope(self._session_factory) as session:
                if wallet_id is not None:
                    self._lock_wallet_row(session, wallet_id)
                tx = _SqlTransaction(session)
                try:
                    yield tx
                finally:
                    tx._closed = True

    @contextmanager
    def snapshot(self) -> Iterator[_SqlTransaction]:
        with self._serialized():
            session = self._session_factory()
            try:
                if self._postgres:
                    session.connection(
                        execution_options={"isolation_level": "REPEATABLE READ"}
                    )
                view = _SqlTransaction(session, read_only=True)
                try:
                    yield view
                finally:
                    view._closed = True
                session.rollback()
            finally:
                session.close()

    def next_sequence_value(self, sequence_name: str) -> int:
        with self._serialized(), self._named_lock(self._sequence_locks, sequence_name):
            with session_scope(self._session_factory) as session:
                value = self._increment_counter(session, sequence_name)
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": value},
        )
        return value

    def current_sequence_value(self, sequence_name: str) -> int | None:
        with self._serialized():
            with session_scope(self._session_factory) as session:
                counter = session.execute(
                    select(SequenceCounter).where(SequenceCounter.name == sequence_name)
                ).scalar_one_or_none()
                return counter.current_value if counter else None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _serialized(self):
        return self._serial_lock if self._serial_lock is not None else nullcontext()

    def _named_lock(self, registry: dict, key) -> threading.Lock:
        with self._locks_guard:
            lock = registry.get(key)
            if lock is None:
                lock = threading.Lock()
                registry[key] = lock
            return lock

    def _lock_wallet_row(self, session: Session, wallet_id: UUID) -> None:
        # Absent rows lock nothing; the caller reports NOT_FOUND after re-reading.
        session.execute(
            select(WalletModel.id)
            .where(WalletModel.id == wallet_id)
            .with_for_update()
        ).first()

    def _increment_counter(self, session: Session, sequence_name: str) -> int:
        counter = session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if counter is None:
            savepoint = session.begin_nested()
            try:
                session.add(SequenceCounter(name=sequence_name, current_value=1))
                session.flush()
                savepoint.commit()
                return 1
            except IntegrityError:
                # Another process created the counter first.
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                session.expire_all()
                counter = session.execute(
                    select(SequenceCounter)
                    .where(SequenceCounter.name == sequence_name)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalar_one()

        counter.current_value += 1
        session.flush()
        return counter.current_value
