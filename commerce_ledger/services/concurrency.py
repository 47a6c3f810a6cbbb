# Overview: Row locking, per-key serialization and retry for ledger writes.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import LedgerError, StorageUnavailable
from ..extensions import db

# Keys hash onto a fixed pool of re-entrant locks. Sections never nest across
# keys, so a shared stripe only serializes.
LOCK_STRIPES = 256
_stripes = tuple(threading.RLock() for _ in range(LOCK_STRIPES))


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    serialized() covers the single-process SQLite case. Rows already in the
    session are refreshed so checks made under the lock see committed values.
    """
    return query.with_for_update().populate_existing()


def _lock_for(namespace: str, key) -> threading.RLock:
    return _stripes[hash((namespace, str(key))) % LOCK_STRIPES]


@contextmanager
def serialized(namespace: str, key):
    """
    Serialize critical sections per (namespace, key) inside this process.

    Used alongside lock_for_update: row locks order writers across processes
    on databases that honor them, this orders threads of one process.
    """
    lock = _lock_for(namespace, key)
    with lock:
        yield


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Once attempts are exhausted the failure
    surfaces as StorageUnavailable. Business errors roll back and propagate
    unchanged on the first occurrence.
    """
    if attempts is None:
        attempts = current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("LEDGER_RETRY_BACKOFF", 0.1)

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except LedgerError:
            db.session.rollback()
            raise
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            current_app.logger.warning(
                "Ledger write conflict (attempt %s/%s): %s", attempt + 1, attempts, exc
            )
            if attempt < attempts - 1:
                time.sleep(backoff_base * (2 ** attempt))

    raise StorageUnavailable(
        "Storage is temporarily unavailable, please retry",
        details={"attempts": attempts, "cause": str(last_exc)},
    ) from last_exc
