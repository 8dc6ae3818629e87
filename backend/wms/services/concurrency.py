# Overview: Transaction boundaries, row locking and retry for the warehouse engines.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def _retry_settings() -> tuple[int, float]:
    return (
        current_app.config.get("TRANSACTION_RETRY_ATTEMPTS", 3),
        current_app.config.get("TRANSACTION_RETRY_BACKOFF", 0.1),
    )


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Defaults come from the app config.
    """
    default_attempts, default_backoff = _retry_settings()
    if attempts is None:
        attempts = default_attempts
    if backoff_base is None:
        backoff_base = default_backoff

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Transaction conflict (attempt %d/%d): %s", attempt + 1, attempts, exc
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_in_transaction(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Run `func` as one unit of work: commit when it returns, roll back when it raises.

    Every ledger-mutating engine operation goes through here, so a failure
    on any line leaves no trace of the earlier ones. Conflicts retry the
    whole body, which therefore must re-read everything it depends on.
    """
    def _op():
        try:
            result = func()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return result

    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
