# Overview: Retry and locking helpers for writes that race on shared rows.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError

from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Row lock for draft edits and deletes (SELECT ... FOR UPDATE).

    SQLite ignores FOR UPDATE, so two concurrent edits of the same draft are
    last-writer-wins there. Lifecycle writes do not use this: they rely on
    the version_id / consumed_at conditional updates.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a whole DB operation with retry on lock/deadlock failures.

    func must be restartable from scratch: on failure the session is rolled
    back before the next attempt. Optimistic-concurrency conflicts are not
    retried here; they surface to the caller as ConflictError.
    """
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning("Retrying after database lock (attempt %d/%d)", attempt + 1, attempts)
            time.sleep(backoff_base * (2 ** attempt))
