# Overview: Retry helper for transient database failures.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError

from ..extensions import db


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on transient failures.

    Retries on OperationalError (locked database, dropped connection) after
    rolling the session back. The last failure is re-raised unchanged.

    NOTE: the sale commit does not use this; a failed checkout is retried by
    the cashier as a whole, never replayed here.
    """
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
