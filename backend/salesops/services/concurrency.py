# Overview: Service-layer operations for concurrency; row locking and bounded retry.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import LedgerContention, SalesOpsError
from ..extensions import db


logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Models that need protection on SQLite also carry a version_id column.
    """
    return query.with_for_update()


def _retry_policy(attempts: int | None, backoff_base: float | None) -> tuple[int, float]:
    config = current_app.config
    if attempts is None:
        attempts = int(config.get("LEDGER_RETRY_ATTEMPTS", 3))
    if backoff_base is None:
        backoff_base = float(config.get("LEDGER_RETRY_BACKOFF", 0.05))
    return max(1, attempts), max(0.0, backoff_base)


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a unit of work with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts), rolling the session back between
    attempts. Once the attempt limit is reached the conflict surfaces as
    LedgerContention.

    Business rule failures (SalesOpsError) are not retried; the session is
    rolled back so nothing the unit of work flushed survives, then the
    error propagates unchanged.
    """
    attempts, backoff_base = _retry_policy(attempts, backoff_base)
    for attempt in range(attempts):
        try:
            return func()
        except SalesOpsError:
            db.session.rollback()
            raise
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise LedgerContention(
                    "Concurrent update conflict; retries exhausted",
                    details={"attempts": attempts},
                ) from exc
            logger.warning(
                "Concurrency conflict, retrying (attempt %s of %s): %s",
                attempt + 1, attempts, exc.__class__.__name__,
            )
            time.sleep(backoff_base * (2 ** attempt))
