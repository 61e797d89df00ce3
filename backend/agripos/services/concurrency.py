# Overview: Unit-of-work helpers; every ledger write runs through run_unit.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConsistencyError, LedgerError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
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


def run_unit(func, *, operation: str, context: dict | None = None, attempts: int | None = None):
    """
    Run `func` as one all-or-nothing unit of work and commit it.

    - LedgerError subclasses raised by `func` roll back and propagate as-is.
    - Lock/stale-version conflicts are retried with backoff.
    - Any other storage failure rolls back and is re-raised as
      ConsistencyError, logged with `context` (account id, attempted delta,
      originating event id) for manual reconciliation. `func` may add keys
      to `context` as ids become known.
    """
    context = context if context is not None else {}
    if attempts is None:
        attempts = current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3)

    def _op():
        try:
            result = func()
            db.session.commit()
        except BaseException:
            db.session.rollback()
            raise
        return result

    try:
        return run_with_retry(_op, attempts=attempts)
    except LedgerError:
        raise
    except SQLAlchemyError as exc:
        current_app.logger.error(
            "Rolled back %s after storage failure; context=%s", operation, context, exc_info=True
        )
        raise ConsistencyError(
            f"{operation} failed and was rolled back; no changes were saved",
            details={"operation": operation, **context},
        ) from exc
