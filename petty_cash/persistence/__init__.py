"""Persistence port and its two adapters."""

from petty_cash.persistence.memory import InMemoryStore
from petty_cash.persistence.port import (
    Collection,
    PettyCashStore,
    StoreTransaction,
    collection_for,
)
from petty_cash.persistence.sqlalchemy_store import SqlAlchemyStore

__all__ = [
    "Collection",
    "InMemoryStore",
    "PettyCashStore",
    "SqlAlchemyStore",
    "StoreTransaction",
    "collection_for",
]
