# Overview: Row locking and conflict-retry helpers shared by the sale workflows.

from __future__ import annotations

import time

from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_immediate() covers it.
    """
    return query.with_for_update()


def begin_immediate() -> None:
    """
    On SQLite, take the database write lock before the first read so that
    check-then-write sequences are serialized. No-op on other backends,
    which rely on row locks.
    """
    if db.engine.dialect.name != "sqlite":
        return
    conn = db.session.connection()
    if not conn.connection.dbapi_connection.in_transaction:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, retry_on=(StaleDataError,)):
    """
    Execute a DB operation with retry on optimistic-locking conflicts.

    Only the exception types in retry_on are retried, after a rollback.
    OperationalError (lock waits, statement timeouts) is not in the default
    set: a timed-out workflow is reported as a failure, not replayed.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
