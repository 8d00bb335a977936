# Overview: Transaction helpers for concurrent writers (locking, retry, storage errors).

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import InternalError
from ..extensions import db


def begin_write() -> None:
    """
    Open the write transaction for a multi-row mutation.

    SQLite takes the database write lock up front (BEGIN IMMEDIATE) so two
    writers cannot both read a stale snapshot and then collide on commit.
    Other backends rely on row locks taken by lock_for_update.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write covers it there.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, lock timeouts) and StaleDataError
    (optimistic version conflicts). The session is rolled back before each
    retry so no partial state carries over.
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
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_transaction(func, *, action: str, attempts: int = 3):
    """
    Run ``func`` as one atomic unit and translate storage failures.

    Domain errors raised by ``func`` roll back and propagate unchanged.
    Any SQLAlchemy failure (after retries) rolls back and becomes an opaque
    InternalError, logged with full context.
    """
    try:
        return run_with_retry(func, attempts=attempts)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Storage failure during %s", action)
        raise InternalError(details={"action": action}) from exc
    except Exception:
        db.session.rollback()
        raise
