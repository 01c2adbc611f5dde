from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from backend.app.core import config

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected
TRANSIENT_SQLSTATES = {"40001", "40P01"}


def is_transient_conflict(exc: BaseException) -> bool:
    if not isinstance(exc, DBAPIError):
        return False
    orig = exc.orig
    # psycopg 3 exposes .sqlstate, psycopg2 .pgcode
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code in TRANSIENT_SQLSTATES:
        return True
    return "database is locked" in str(orig).lower()


def run_in_transaction(
    db: Session,
    fn: Callable[[Session], T],
    *,
    attempts: int | None = None,
    backoff: float | None = None,
) -> T:
    """
    Run `fn(db)` and commit, retrying on transient write conflicts.

    The session is rolled back between attempts so `fn` must reload what it
    needs. Non-transient errors roll back and propagate immediately; after the
    last attempt the conflict itself propagates.
    """
    attempts = config.DB_RETRY_ATTEMPTS if attempts is None else attempts
    backoff = config.DB_RETRY_BACKOFF_SECONDS if backoff is None else backoff
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    for attempt in range(1, attempts + 1):
        try:
            result = fn(db)
            db.commit()
            return result
        except DBAPIError as exc:
            db.rollback()
            if not is_transient_conflict(exc) or attempt == attempts:
                raise
            logger.warning(
                "transient write conflict (attempt %s/%s), retrying in %.2fs: %s",
                attempt,
                attempts,
                backoff,
                exc.orig,
            )
            time.sleep(backoff)
        except Exception:
            db.rollback()
            raise

    raise RuntimeError("unreachable")  # pragma: no cover
