# Overview: Locking and transaction helpers shared by every ledger write.

from __future__ import annotations

import threading
import weakref
from contextlib import contextmanager
from typing import Hashable, Iterable

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


_registry_guard = threading.Lock()
# Entries vanish once no caller holds the lock, so the map tracks only
# resources currently in use.
_resource_locks: weakref.WeakValueDictionary[Hashable, threading.RLock] = weakref.WeakValueDictionary()


def _lock_for(key: Hashable) -> threading.RLock:
    with _registry_guard:
        lock = _resource_locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _resource_locks[key] = lock
        return lock


def product_key(product_id: int) -> tuple:
    return ("product", product_id)


def sale_key(sale_id: int) -> tuple:
    return ("sale", sale_id)


@contextmanager
def resource_locks(keys: Iterable[Hashable]):
    """
    Hold in-process exclusive locks on the given keys for the block.

    Keys are acquired in sorted order so two writers touching overlapping
    products cannot deadlock. Locks are re-entrant: a sale transition that
    already holds its products can call into the ledger, which takes them
    again.
    """
    ordered = sorted(set(keys), key=repr)
    acquired = []
    try:
        for key in ordered:
            lock = _lock_for(key)
            lock.acquire()
            acquired.append(lock)
        yield
    finally:
        for lock in reversed(acquired):
            lock.release()


def begin_immediate() -> None:
    """
    Take SQLite's database write lock up front.

    pysqlite defers BEGIN until the first INSERT, which would let the
    availability SUM run outside the transaction. Other backends rely on
    SELECT ... FOR UPDATE on the product row instead.
    """
    conn = db.session.connection()
    if conn.dialect.name != "sqlite":
        return
    raw = conn.connection.dbapi_connection
    if not getattr(raw, "in_transaction", True):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


@contextmanager
def write_transaction():
    """
    Run the block as one atomic unit: commit on success, roll back on any
    exception and re-raise it. No retries.
    """
    try:
        begin_immediate()
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
