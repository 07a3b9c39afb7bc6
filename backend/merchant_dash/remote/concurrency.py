# Overview: Retry helpers for database work done on behalf of the remote store.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError

from ..extensions import db


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on lock/connection failures.

    Retries on OperationalError (deadlocks, "database is locked", dropped
    connections). Optimistic locking conflicts are not retried; they are
    the caller's signal that the row moved on.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
