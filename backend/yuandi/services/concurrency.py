# Overview: Transaction helpers shared by the workflow services.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_immediate() covers it there.
    """
    return query.with_for_update()


def begin_immediate() -> None:
    """Take the SQLite write lock up front so check-then-write runs serialized."""
    if db.engine.dialect.name == "sqlite" and not db.session().in_transaction():
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run one unit of work as a single transaction.

    Any exception rolls the session back before propagating, so a failure at
    step N never leaves steps 1..N-1 committed. OperationalError (locks,
    deadlocks) and StaleDataError (version_id conflicts) are retried with
    exponential backoff; everything else surfaces immediately.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
