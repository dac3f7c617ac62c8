# Overview: Transaction and retry helpers shared by every mutating service.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Correctness never depends on this lock alone; the conditional UPDATEs
    in inventory_service and settlement_service are the real guards.
    """
    return query.with_for_update()


def _ensure_transaction() -> None:
    """
    Make sure the connection is inside a real transaction before a SAVEPOINT.

    pysqlite only emits BEGIN ahead of DML; a SAVEPOINT issued outside a
    transaction would open one of its own and commit on RELEASE.
    """
    conn = db.session.connection()
    if conn.dialect.name != "sqlite":
        return
    if not conn.connection.dbapi_connection.in_transaction:
        conn.exec_driver_sql("BEGIN")


def run_with_retry(func, *, commit: bool = True, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB unit of work with retry on concurrency-related failures.

    When the service owns the transaction (commit=True), retries on
    OperationalError (deadlocks, locks) and StaleDataError (optimistic
    locking conflicts). Any other exception rolls the session back and
    propagates, so a failed operation leaves no partial writes.

    When the caller owns the transaction (commit=False), the unit of work
    runs once under a SAVEPOINT. A failure rolls back only the savepoint and
    propagates; the caller's earlier work stays pending and nothing is retried.
    """
    if not commit:
        _ensure_transaction()
        with db.session.begin_nested():
            return func()

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning("Retrying unit of work after %s (attempt %d)", type(exc).__name__, attempt + 1)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc


def finish(commit: bool) -> None:
    """Commit when the service owns the transaction, otherwise just flush."""
    if commit:
        db.session.commit()
    else:
        db.session.flush()
