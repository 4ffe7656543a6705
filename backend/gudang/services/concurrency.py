# Overview: Row-level guards shared by the approval and stock services.

from __future__ import annotations

import time

from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def conditional_update(model, *criteria, **values) -> int:
    """
    UPDATE model SET values WHERE criteria, returning the matched row count.

    This is the "first writer wins" primitive: callers put the expected
    current state in criteria (e.g. status == 'pending') and treat a zero
    row count as having lost the race. The session is flushed, not committed.
    """
    stmt = update(model).where(*criteria).values(**values)
    result = db.session.execute(stmt)
    return result.rowcount or 0


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Only wrap operations that are safe to
    repeat, i.e. updates gated on the current status.
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
