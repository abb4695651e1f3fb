# Overview: Row locking, SQLite write serialization and retry of whole transactions.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; writers there are
    serialized by begin_write_transaction instead.
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    Take the SQLite write lock up front with BEGIN IMMEDIATE.

    No-op on other databases, and when the DBAPI connection already has
    an open transaction.
    """
    if db.engine.dialect.name != "sqlite":
        return
    connection = db.session.connection()
    dbapi_connection = connection.connection.dbapi_connection
    if not dbapi_connection.in_transaction:
        connection.exec_driver_sql("BEGIN IMMEDIATE")


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Call func until it succeeds or attempts run out.

    Only lock contention (OperationalError) and version conflicts
    (StaleDataError) are retried; func must redo all of its reads.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt == attempts:
                raise
            delay = backoff_base * (2 ** (attempt - 1))
            current_app.logger.warning(
                "Write conflict (%s), retry %s of %s in %.2fs",
                type(exc).__name__, attempt, attempts - 1, delay,
            )
            time.sleep(delay)


def run_in_transaction(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run func as one write transaction: commit on success, roll back on any error.

    Business errors propagate after the rollback and are never retried.
    """
    def _op():
        begin_write_transaction()
        try:
            result = func()
            db.session.commit()
        except (OperationalError, StaleDataError):
            raise
        except Exception:
            db.session.rollback()
            raise
        return result

    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
