# Overview: Row locking, guarded increments and retry helpers for ledger writes.

from __future__ import annotations

import logging
import time

from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.util import identity_key
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)

# Ledger writes retried on lock contention or a version_id conflict
RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """SELECT ... FOR UPDATE. A no-op on SQLite, which locks the whole file."""
    return query.with_for_update()


def atomic_increment(column, row_id: int, delta, *, allow_negative: bool = True) -> bool:
    """
    UPDATE <table> SET <column> = <column> + :delta WHERE id = :row_id

    The read-modify-write happens inside the database, so two concurrent
    requests cannot lose each other's update. With allow_negative=False the
    statement also requires <column> >= -delta, i.e. the result stays >= 0.

    Returns False when no row matched (missing row or guard refused).
    Instances already loaded in the session have the column expired so the
    next attribute access reads the stored value.
    """
    model = column.class_
    stmt = update(model).where(model.id == row_id)
    if not allow_negative and delta < 0:
        stmt = stmt.where(column >= -delta)
    stmt = stmt.values({column.key: column + delta}).execution_options(synchronize_session=False)

    result = db.session.execute(stmt)

    loaded = db.session.identity_map.get(identity_key(model, row_id))
    if loaded is not None:
        db.session.expire(loaded, [column.key])
    return result.rowcount == 1


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Call func(), rolling back and retrying with exponential backoff on
    RETRYABLE_ERRORS. The last failure propagates.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt == attempts:
                raise
            logger.warning("Retrying after %s (attempt %d/%d)", type(exc).__name__, attempt, attempts)
            time.sleep(backoff_base * (2 ** (attempt - 1)))
