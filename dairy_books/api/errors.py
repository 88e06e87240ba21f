"""
HTTP translation of engine errors, and the commit/retry wrapper.

Endpoints call run_in_transaction() with the service call to make,
so that every write endpoint commits, rolls back and retries the
same way.
"""

import logging
import time

from fastapi import HTTPException
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from dairy_books.config import get_settings
from dairy_books.exceptions import (
    ConflictError,
    LedgerError,
    LedgerMissingError,
)

logger = logging.getLogger(__name__)

# Seconds to wait before retry n is n times this
RETRY_BACKOFF = 0.02

STATUS_BY_KIND = {
    "validation": 400,
    "reference": 400,
    "conflict": 409,
    "integrity": 409,
    "not_found": 404,
}


def status_for(exc: LedgerError) -> int:
    # Stored data no longer matches the books; not the client's fault
    if isinstance(exc, LedgerMissingError):
        return 500
    return STATUS_BY_KIND.get(exc.kind, 400)


def to_http_error(exc: LedgerError) -> HTTPException:
    return HTTPException(
        status_code=status_for(exc),
        detail={"kind": exc.kind, "message": str(exc)},
    )


def run_in_transaction(db: Session, operation, max_retries: int | None = None):
    """
    Run operation() and commit its work.

    A ConflictError, or a commit that loses a lock race, is rolled
    back and retried up to max_retries times before it is reported.
    Any other LedgerError is rolled back and raised as an
    HTTPException straight away.
    """
    if max_retries is None:
        max_retries = get_settings().POSTING_MAX_RETRIES

    attempt = 0
    while True:
        attempt += 1
        try:
            result = operation()
            db.commit()
            return result
        except ConflictError as e:
            db.rollback()
            if attempt > max_retries:
                logger.warning("Giving up after %d attempts: %s", attempt, e)
                raise to_http_error(e)
            logger.info("Retrying after conflict (attempt %d): %s", attempt, e)
            time.sleep(RETRY_BACKOFF * attempt)
        except OperationalError as e:
            db.rollback()
            if attempt > max_retries:
                logger.error("Commit failed after %d attempts: %s", attempt, e.orig)
                raise HTTPException(
                    status_code=409,
                    detail={"kind": "conflict", "message": "Database is busy, try again"},
                )
            logger.info("Retrying after failed commit (attempt %d): %s", attempt, e.orig)
            time.sleep(RETRY_BACKOFF * attempt)
        except LedgerError as e:
            db.rollback()
            raise to_http_error(e)
