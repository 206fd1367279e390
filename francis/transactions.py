"""Run a function inside a database transaction."""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from francis.sqladapter import DatabaseAdapter, TransactionAdapter

R = TypeVar("R")


class TransactionError(RuntimeError):
    """Raised when a transaction cannot be started or committed."""


def execute_in_transaction(
    conn: DatabaseAdapter,
    fn: Callable[[TransactionAdapter], R],
    logger: logging.Logger | None = None,
) -> R:
    """Call ``fn`` with an open transaction and commit what it did.

    If ``fn`` raises or the commit fails, the transaction is rolled back;
    a failed rollback is only logged.
    """
    log = logger or logging.getLogger(__name__)
    try:
        tx = conn.begin()
    except Exception as err:
        raise TransactionError(f"failed to begin transaction: {err}") from err

    success = False
    try:
        result = fn(tx)
        try:
            tx.commit()
        except Exception as err:
            raise TransactionError(f"failed to commit transaction: {err}") from err
        success = True
        return result
    finally:
        if not success:
            try:
                tx.rollback()
            except Exception as rollback_err:
                log.error(
                    "Error while attempting to roll back transaction: %s", rollback_err
                )