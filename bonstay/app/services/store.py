"""Record-store call boundary.

``translate_store_errors`` turns SQLAlchemy failures into the domain error
taxonomy; ``run_with_retry`` commits a unit of work and retries it a bounded
number of times (tenacity, exponential backoff) when the store fails
transiently. Business outcomes and ``InconsistencyError`` are never retried.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from bonstay.app.core.config import settings
from bonstay.app.core.errors import ConcurrentUpdateError, TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT = (
    sa_exc.OperationalError,
    sa_exc.TimeoutError,
    sa_exc.DisconnectionError,
    TimeoutError,
    ConnectionError,
)


@contextmanager
def translate_store_errors(operation: str) -> Iterator[None]:
    """Re-raise store failures inside the block as domain errors."""
    try:
        yield
    except StaleDataError as exc:
        logger.warning("Concurrent update detected during %s", operation)
        raise ConcurrentUpdateError(f"Concurrent update during {operation}") from exc
    except sa_exc.DBAPIError as exc:
        if exc.connection_invalidated or isinstance(exc, sa_exc.OperationalError):
            logger.warning("Record store unavailable during %s: %s", operation, exc)
            raise TransientStoreError(f"Record store unavailable during {operation}") from exc
        raise
    except _TRANSIENT as exc:
        logger.warning("Record store unavailable during %s: %s", operation, exc)
        raise TransientStoreError(f"Record store unavailable during {operation}") from exc


def transient_retrying(max_attempts: int | None = None, min_wait: float | None = None) -> Retrying:
    wait = settings.STORE_RETRY_WAIT_SECONDS if min_wait is None else min_wait
    return Retrying(
        stop=stop_after_attempt(max_attempts or settings.STORE_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=wait, min=wait, max=wait * 8),
        retry=retry_if_exception_type(TransientStoreError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def run_with_retry(
    db: Session,
    unit_of_work: Callable[[], T],
    *,
    operation: str = "unit of work",
    max_attempts: int | None = None,
    min_wait: float | None = None,
) -> T:
    """Run *unit_of_work*, commit, and retry transient failures.

    The session is rolled back after every failed attempt so the next one
    starts from freshly read rows. Whatever the last attempt raised is
    re-raised unchanged.
    """

    def _attempt() -> T:
        try:
            result = unit_of_work()
            with translate_store_errors(f"commit of {operation}"):
                db.commit()
            return result
        except Exception:
            db.rollback()
            raise

    return transient_retrying(max_attempts, min_wait)(_attempt)
