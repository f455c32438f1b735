# Overview: Service-layer operations for concurrency; bounded retry around optimistic writes.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

DB_RETRYABLE = (OperationalError, StaleDataError)


def run_with_retry(
    func,
    *,
    attempts: int = 3,
    backoff_base: float = 0.1,
    retry_on: tuple[type[BaseException], ...] = DB_RETRYABLE,
    on_retry=None,
):
    """
    Execute an operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError by
    default; callers widen retry_on for domain-level races such as
    StaleReservation. on_retry(exc, attempt) runs before each new attempt.
    The last failure is re-raised once attempts are exhausted.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            if on_retry is not None:
                on_retry(exc, attempt)
            if backoff_base:
                time.sleep(backoff_base * (2 ** attempt))
