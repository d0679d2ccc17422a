# Overview: Locking and retry helpers shared by the service layer.

from __future__ import annotations

import time
from functools import wraps

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for read-then-write sequences.

    NOTE: SQLite ignores SELECT ... FOR UPDATE (its writer lock serializes
    instead), but PostgreSQL and MySQL honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 2, backoff_base: float = 0.05):
    """
    Execute a whole service operation, retrying on storage conflicts.

    Only OperationalError (deadlocks, lock timeouts) and StaleDataError
    (optimistic version conflicts) are retried. Business errors propagate
    on the first attempt. Intended for the caller layer; services never
    retry themselves.
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


def atomic(func):
    """
    Roll back the session if a service operation raises before committing.

    Keeps business errors raised mid-transaction (after rows were locked or
    flushed) from leaking half-applied state into the next operation.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception:
            db.session.rollback()
            raise
    return wrapper
