# Overview: Service-layer operations for concurrency; encapsulates transaction, locking and retry handling.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ServiceError
from ..extensions import db

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


class PersistenceError(ServiceError):
    """A database write failed and was rolled back."""
    status_code = 500


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    SQLite writers serialize through begin_write_transaction() instead.
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    Take the SQLite write lock up front (BEGIN IMMEDIATE).

    Must be the first statement of a write workflow so two checkouts cannot
    both read stock before either writes. No-op on other engines, and when
    the connection is already inside a transaction.
    """
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.driver_connection
    if getattr(raw, "in_transaction", False):
        return
    db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(
    func,
    *,
    attempts: int = 3,
    backoff_base: float = 0.1,
    retry_on: tuple = RETRYABLE_ERRORS,
):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts), plus any extra classes in retry_on.
    Any failure rolls the session back so no partial writes survive.
    Database errors that outlive the retries surface as PersistenceError;
    business errors are re-raised unchanged.
    """
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise PersistenceError(
                    "Database write failed after retries",
                    {"attempts": attempts, "error": exc.__class__.__name__},
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError(
                "Database write failed",
                {"error": exc.__class__.__name__},
            ) from exc
        except Exception:
            db.session.rollback()
            raise
