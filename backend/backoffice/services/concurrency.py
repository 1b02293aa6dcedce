# Overview: Locking, retry and atomic counter helpers shared by service modules.

from __future__ import annotations

import time

from sqlalchemy import text, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Take the database write lock up front on SQLite.

    SQLite otherwise upgrades SHARED to RESERVED mid-transaction, which lets two
    writers deadlock. Other databases rely on row locks and need nothing here.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Service errors propagate immediately.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            # Business errors are not retried; drop whatever they left pending
            db.session.rollback()
            raise


def commit_with_retry(*, attempts: int = 3, backoff_base: float = 0.1):
    """Commit current session with retry handling."""
    def _op():
        db.session.commit()
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)


def apply_counter_delta(
    model,
    row_id: int,
    column: str,
    delta: int,
    *,
    ceiling_column: str | None = None,
    extra_values: dict | None = None,
) -> bool:
    """
    Atomically add delta to an integer counter column.

    Emits a single conditional UPDATE:
        SET column = column + :delta
        WHERE id = :row_id AND column + :delta >= 0
          [AND column + :delta <= ceiling_column]

    Returns True when the row was changed. The caller decides what a miss
    means. The session's identity map is not synchronized; refresh the
    instance afterwards if it is still used.
    """
    col = getattr(model, column)
    stmt = (
        update(model)
        .where(model.id == row_id)
        .where(col + delta >= 0)
        .values({column: col + delta, **(extra_values or {})})
        .execution_options(synchronize_session=False)
    )
    if ceiling_column is not None:
        stmt = stmt.where(col + delta <= getattr(model, ceiling_column))
    result = db.session.execute(stmt)
    return result.rowcount == 1
