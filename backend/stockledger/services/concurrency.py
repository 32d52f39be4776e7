# Overview: Transaction helpers shared by the ledger coordinators (locking, retry).

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError
from ..extensions import db


RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the version_id check on StockBalance catches the race instead.
    """
    return query.with_for_update()


def begin_write():
    """
    Take the database write lock up front on SQLite.

    pysqlite opens transactions lazily at the first DML statement, so two
    writers can both read a balance before either holds the lock. BEGIN
    IMMEDIATE makes the read-check-write sequence serial; a busy writer
    surfaces as OperationalError ("database is locked") and is retried.
    No-op on other dialects, where FOR UPDATE does the work.
    """
    if db.engine.dialect.name != "sqlite":
        return
    driver_conn = db.session.connection().connection.driver_connection
    if not driver_conn.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(
    func,
    *,
    attempts: int | None = None,
    backoff_base: float | None = None,
    retry_on_integrity: bool = False,
    operation: str = "ledger operation",
):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Each attempt is one transaction: `func` does its reads, writes and the
    final commit. Any exception rolls the session back before it propagates,
    so a failed attempt never leaves partial rows behind.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts); with retry_on_integrity also on
    IntegrityError (two writers inserting the same unique key). Business
    errors are raised immediately. When the budget is exhausted a retryable
    ConflictError is raised.
    """
    if attempts is None:
        attempts = current_app.config.get("LEDGER_RETRY_ATTEMPTS", 5)
    if backoff_base is None:
        backoff_base = current_app.config.get("LEDGER_RETRY_BACKOFF", 0.05)

    retryable = RETRYABLE_ERRORS + ((IntegrityError,) if retry_on_integrity else ())

    for attempt in range(attempts):
        try:
            return func()
        except retryable as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.error(
                    "%s failed after %d attempts: %s", operation, attempts, exc.__class__.__name__
                )
                raise ConflictError(
                    f"{operation} could not complete due to concurrent updates; retry later",
                    reason="CONTENTION",
                    retryable=True,
                    details={"attempts": attempts},
                ) from exc
            current_app.logger.warning(
                "%s conflict on attempt %d/%d (%s); retrying",
                operation, attempt + 1, attempts, exc.__class__.__name__,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
