# Overview: Service-layer helpers for locking and retrying database work under contention.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def begin_write_transaction() -> None:
    """
    Take the database write lock up front.

    SQLite only locks on the first write, so two sales could both pass the
    stock check before either writes. BEGIN IMMEDIATE serializes them.
    Other databases rely on lock_for_update instead.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def lock_for_update(query):
    """
    Lock the product rows a sale reads before it checks and decrements stock.

    SQLite ignores SELECT ... FOR UPDATE; there begin_write_transaction
    already holds the database write lock.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run a sale or product write, retrying when it lost a race.

    OperationalError covers "database is locked" and deadlocks. StaleDataError
    means a product's version_id moved (stock changed by another sale)
    between the read and the flush. The session is rolled back before each
    retry; other errors propagate unchanged.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
