# Overview: Row-locking and lock-contention retry helpers for engine services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import TransactionFailure
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def release_read_transaction() -> None:
    """
    Start the next unit of work from a clean session.

    Pending (unflushed) changes are refused, never committed on the
    caller's behalf. A transaction left open by earlier reads is rolled back.
    """
    session = db.session()
    if session.new or session.dirty or session.deleted:
        raise TransactionFailure(
            "Session has pending changes; commit or roll back before starting a write",
            details={
                "new": len(session.new),
                "dirty": len(session.dirty),
                "deleted": len(session.deleted),
            },
        )
    if session.in_transaction():
        session.rollback()


def begin_write_transaction() -> None:
    """
    Open the write transaction, taking the database write lock up front on SQLite.

    SQLite has no row locks; BEGIN IMMEDIATE serializes writers so a
    conditional UPDATE and the ledger row that follows it are never
    interleaved with another writer. Other dialects rely on row locks.
    """
    release_read_transaction()
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). The last failure is re-raised.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.debug("Retrying after lock contention (attempt %s): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
