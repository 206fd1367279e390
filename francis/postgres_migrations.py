"""Schema migrations for PostgreSQL and compatible databases."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Sequence

from francis.migrations import MigrationError, MigrationFn, MigrationOptions, migrate
from francis.sqladapter import DatabaseAdapter

_LOCK_KEY = "lock"
_UNIQUE_VIOLATION = "23505"
_CREATE_ATTEMPTS = 3
_RETRY_DELAY = 0.1


def _is_unique_violation(err: BaseException) -> bool:
    code = getattr(err, "sqlstate", None) or getattr(err, "pgcode", None)
    return code == _UNIQUE_VIOLATION


@dataclass
class PostgresMigrations:
    """Runs migrations while holding a row lock in the metadata table.

    Advisory locks are not available in every Postgres-compatible database,
    so a transaction on ``lock_conn`` locks one row with ``FOR UPDATE`` for
    the duration of the run. Migrations and version updates go through
    ``db``, which must be a different connection in autocommit mode.
    ``placeholder`` is the parameter marker of the driver in use.
    """

    db: Any
    lock_conn: Any
    metadata_table_name: str
    metadata_key: str
    placeholder: str = "%s"

    def perform(
        self, migration_fns: Sequence[MigrationFn], logger: logging.Logger | None = None
    ) -> None:
        """Apply the migrations not yet recorded in the metadata table."""
        log = logger or logging.getLogger(__name__)
        table = self.metadata_table_name
        p = self.placeholder
        db = DatabaseAdapter(self.db)

        try:
            self.ensure_metadata_table(log)
        except Exception as err:
            raise MigrationError(f"failed to ensure metadata table exists: {err}") from err

        # Written outside a transaction, which would take a table-level lock
        log.debug("Ensuring lock row exists in metadata table (lockKey=%s)", _LOCK_KEY)
        try:
            db.exec(
                f"INSERT INTO {table} (key, value) VALUES ({p}, 'lock') "
                "ON CONFLICT (key) DO NOTHING",
                _LOCK_KEY,
            )
        except Exception as err:
            raise MigrationError(
                f"failed to ensure lock row '{_LOCK_KEY}' exists: {err}"
            ) from err

        log.debug("Starting transaction pre-migration")
        try:
            tx = DatabaseAdapter(self.lock_conn).begin()
        except Exception as err:
            raise MigrationError(f"failed to begin transaction: {err}") from err

        try:
            log.debug("Acquiring migration lock")
            try:
                tx.query_row(
                    f"SELECT value FROM {table} WHERE key = {p} FOR UPDATE", _LOCK_KEY
                )
            except Exception as err:
                raise MigrationError(
                    f"failed to acquire migration lock (row-level lock on key "
                    f"'{_LOCK_KEY}'): {err}"
                ) from err
            log.debug("Migration lock acquired")

            migrate(
                db,
                MigrationOptions(
                    get_version_query=(
                        f"SELECT value FROM {table} WHERE key = '{self.metadata_key}'"
                    ),
                    update_version_query=lambda version: (
                        f"INSERT INTO {table} (key, value) "
                        f"VALUES ('{self.metadata_key}', {p}) "
                        "ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value",
                        version,
                    ),
                    migrations=list(migration_fns),
                ),
                log,
            )
        finally:
            log.debug("Releasing migration lock")
            try:
                tx.rollback()
            except Exception as err:
                # Ending the process closes the session and releases the lock.
                log.error("Failed to rollback transaction: %s", err)
                raise SystemExit(1) from err

    def ensure_metadata_table(self, logger: logging.Logger | None = None) -> None:
        """Create the metadata table if missing, retrying on concurrent creation."""
        log = logger or logging.getLogger(__name__)
        log.info("Creating metadata table %s", self.metadata_table_name)
        db = DatabaseAdapter(self.db)
        query = (
            f"CREATE TABLE IF NOT EXISTS {self.metadata_table_name} ("
            "key text NOT NULL PRIMARY KEY, "
            "value text NOT NULL)"
        )

        last_err: Exception | None = None
        for _ in range(_CREATE_ATTEMPTS):
            try:
                db.exec(query)
                return
            except Exception as err:
                # Parallel creation can fail with a unique violation; retry that only
                if not _is_unique_violation(err):
                    raise MigrationError(f"failed to create metadata table: {err}") from err
                last_err = err
                time.sleep(_RETRY_DELAY)
        raise MigrationError(f"failed to create metadata table: {last_err}") from last_err