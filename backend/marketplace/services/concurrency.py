# Overview: Row locking and retry helpers for multi-row accounting writes.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking to the orders touched by a payment.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id check
    on orders is what catches a concurrent writer.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run a unit of work that commits at the end, retrying on lock errors
    (OperationalError) and optimistic-lock conflicts (StaleDataError).

    The session is rolled back before each retry, so func must reload
    whatever it reads. After the last attempt a StaleDataError surfaces
    as ConflictError (409).
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            logger.warning("Concurrent write conflict (attempt %s/%s): %s", attempt + 1, attempts, exc)
            if attempt >= attempts - 1:
                if isinstance(exc, StaleDataError):
                    raise ConflictError("The record was changed by another request; please retry") from exc
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
