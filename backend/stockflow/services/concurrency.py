# Overview: Transaction scoping, row locking and read retries shared by the workflows.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; writers there are serialized
    by BEGIN IMMEDIATE in write_transaction() instead.
    """
    return query.with_for_update()


def _begin_immediate() -> None:
    """Take SQLite's RESERVED lock up front so the check-then-write below cannot interleave."""
    conn = db.session.connection()
    driver_conn = conn.connection.driver_connection
    if not driver_conn.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


@contextmanager
def write_transaction():
    """
    Run a block as one atomic DB transaction.

    Commits when the block finishes, rolls back and re-raises on any error.
    Write workflows are NOT retried: a receive or checkout that failed after
    its commit started must be re-requested by the caller.
    """
    try:
        if db.engine.dialect.name == "sqlite":
            _begin_immediate()
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute an idempotent read with retry on concurrency-related failures.

    Retries on OperationalError (locks, dropped connections) and StaleDataError.
    Never wrap a write workflow in this.
    """
    if attempts is None:
        attempts = current_app.config.get("READ_RETRY_ATTEMPTS", 3)
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
