# Overview: Unit-of-work helpers shared by services that write several rows.

from __future__ import annotations

import logging

from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_in_transaction(func, *, description: str = "operation"):
    """
    Run a multi-row write as one unit of work.

    Commits when func returns; on any exception every row written inside
    func is rolled back and the exception propagates. Nothing is retried:
    the caller reports the single failure.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except Exception:
        db.session.rollback()
        logger.error("Rolled back %s", description)
        raise
