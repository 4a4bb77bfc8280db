# backend/slotwise/core/calendar_lock.py
"""
Per-worker calendar lock.

The conflict check and the booking insert/update for a worker must run in
one transaction that no other writer for the same worker can interleave
with. ``calendar_transaction`` opens that transaction:

- PostgreSQL: ``pg_advisory_xact_lock`` per worker, released by the
  database at commit/rollback. Works across processes and hosts. The
  ``bookings_no_overlap_per_worker`` exclusion constraint backs it up.
- Other dialects (SQLite in development and tests): an in-process lock per
  worker held until the transaction has committed or rolled back. Only
  safe for single-process deployments.

Locks for several workers (a reschedule onto another worker) are taken in
sorted order so two transactions cannot deadlock on each other.
"""

from __future__ import annotations

from contextlib import contextmanager
import hashlib
import logging
import threading
from typing import Iterable, Iterator, List
from weakref import WeakValueDictionary

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database.session_utils import get_dialect_name
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

_LOCAL_LOCKS: "WeakValueDictionary[str, threading.Lock]" = WeakValueDictionary()
_LOCAL_LOCKS_GUARD = threading.Lock()


def _lock_key(worker_id: str) -> str:
    return f"worker:{worker_id}:calendar"


def advisory_key(worker_id: str) -> int:
    """Stable signed 64-bit key for ``pg_advisory_xact_lock``."""
    digest = hashlib.blake2b(_lock_key(worker_id).encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


def _local_lock(worker_id: str) -> threading.Lock:
    key = _lock_key(worker_id)
    with _LOCAL_LOCKS_GUARD:
        lock = _LOCAL_LOCKS.get(key)
        if lock is None:
            lock = threading.Lock()
            _LOCAL_LOCKS[key] = lock
        return lock


@contextmanager
def calendar_transaction(db: Session, worker_ids: Iterable[str]) -> Iterator[Session]:
    """
    Run a transaction that holds the calendar lock of every given worker.

    Commits on normal exit and rolls back on any exception. The locks are
    held until after the commit/rollback.
    """
    ids = sorted({worker_id for worker_id in worker_ids if worker_id})
    use_advisory = get_dialect_name(db) == "postgresql"
    held: List[threading.Lock] = []

    if not use_advisory:
        for worker_id in ids:
            lock = _local_lock(worker_id)
            lock.acquire()
            held.append(lock)
        prometheus_metrics.record_calendar_lock("local", "acquired")

    try:
        try:
            if use_advisory:
                for worker_id in ids:
                    db.execute(
                        text("SELECT pg_advisory_xact_lock(:key)"),
                        {"key": advisory_key(worker_id)},
                    )
                prometheus_metrics.record_calendar_lock("advisory", "acquired")
            yield db
            db.commit()
        except SQLAlchemyError as exc:
            logger.warning(
                "calendar_transaction_failed",
                extra={"worker_ids": ids, "error": str(exc), "error_type": type(exc).__name__},
            )
            db.rollback()
            raise
        except Exception:
            db.rollback()
            raise
    finally:
        for lock in reversed(held):
            lock.release()
