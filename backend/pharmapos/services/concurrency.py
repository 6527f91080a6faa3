# Overview: Transaction helpers for contended writes (batch stock, invoice counters).

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyError
from ..extensions import db


RETRYABLE = (OperationalError, StaleDataError, ConcurrencyError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_transaction()
    takes the database write lock up front there instead.
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    Start the current unit of work as a write transaction.

    On SQLite this issues BEGIN IMMEDIATE so concurrent checkouts serialize
    at the start instead of failing at commit. Other backends rely on the
    FOR UPDATE locks taken by the caller.
    """
    if db.engine.dialect.name != "sqlite":
        return
    dbapi_conn = db.session.connection().connection.dbapi_connection
    if not dbapi_conn.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.05):
    """
    Execute a whole DB unit of work with retry on concurrency failures.

    Retries on OperationalError (deadlocks, busy database), StaleDataError
    and ConcurrencyError (a guarded stock decrement found less stock than it
    allocated). func must redo everything from its first read: allocations
    are never reused across attempts.

    When attempts run out, lock-level failures surface as ConcurrencyError
    so callers see a transient "try again" condition.
    """
    if attempts is None:
        attempts = current_app.config.get("TX_RETRY_ATTEMPTS", 3)
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                if isinstance(exc, ConcurrencyError):
                    raise
                raise ConcurrencyError(details={"cause": type(exc).__name__}) from exc
            current_app.logger.warning(
                "Retrying transaction after %s (attempt %d of %d)",
                type(exc).__name__, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise


def commit_with_retry(*, attempts: int | None = None, backoff_base: float = 0.05):
    """Commit current session with retry handling."""
    def _op():
        db.session.commit()
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
