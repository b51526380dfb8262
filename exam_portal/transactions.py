"""Transaction boundary helpers for the submission pipeline."""

import logging
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlmodel import Session

from exam_portal.config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLSTATEs PostgreSQL reports for serialization failures and deadlocks
TRANSIENT_PGCODES = {"40001", "40P01"}
TRANSIENT_MESSAGES = ("database is locked", "database is busy", "deadlock detected")


def is_transient_error(error: BaseException) -> bool:
    """Return True for storage errors that are safe to retry."""
    if not isinstance(error, DBAPIError):
        return False
    if error.connection_invalidated:
        return True
    pgcode = getattr(error.orig, "pgcode", None) or getattr(error.orig, "sqlstate", None)
    if pgcode in TRANSIENT_PGCODES:
        return True
    if isinstance(error, OperationalError):
        message = str(error.orig).lower()
        return any(fragment in message for fragment in TRANSIENT_MESSAGES)
    return False


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after the given failed attempt (1-based)."""
    return min(0.1 * 2 ** (attempt - 1), 1.0)


def with_transaction(session: Session, callback: Callable[[Session], T]) -> T:
    """Run callback inside the session's transaction, committing or rolling back."""
    try:
        result = callback(session)
        session.commit()
        return result
    except BaseException:
        session.rollback()
        raise


def retry_transaction(
    session: Session,
    callback: Callable[[Session], T],
    max_retries: Optional[int] = None,
) -> T:
    """Run with_transaction, retrying only transient storage errors with backoff."""
    if max_retries is None:
        max_retries = get_settings().TRANSACTION_MAX_RETRIES

    for attempt in range(1, max_retries + 1):
        try:
            return with_transaction(session, callback)
        except DBAPIError as exc:
            if not is_transient_error(exc) or attempt == max_retries:
                raise
            delay = backoff_delay(attempt)
            logger.warning(
                "Transient storage error on attempt %s/%s, retrying in %.2fs: %s",
                attempt,
                max_retries,
                delay,
                exc.orig,
            )
            time.sleep(delay)
    raise RuntimeError("retry_transaction called with max_retries < 1")
