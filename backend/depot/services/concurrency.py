# Overview: Locking and retry helpers shared by every service that writes stock or money.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import ConcurrencyConflictError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the version_id columns and conditional UPDATEs carry the guarantee.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation as one unit of work, retrying on concurrency failures.

    The session is rolled back before every retry, so func() always starts
    from a clean transaction and nothing is applied twice. Business errors
    (DepotError) are never retried: they roll back and propagate.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). A StaleDataError that survives every
    attempt is reported as ConcurrencyConflictError.
    """
    if attempts is None:
        attempts = current_app.config.get("RETRY_ATTEMPTS", 3)

    for attempt in range(attempts):
        try:
            return func()
        except StaleDataError as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise ConcurrencyConflictError(
                    "Record was modified by another request; reload and resubmit",
                    details={"reason": str(exc)},
                ) from exc
        except OperationalError:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
        except Exception:
            db.session.rollback()
            raise
        current_app.logger.warning("Concurrency conflict, retrying (attempt %d of %d)", attempt + 1, attempts)
        time.sleep(backoff_base * (2 ** attempt))
