"""Schema migrations for SQLite, run inside one exclusive transaction."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Sequence

from francis.migrations import MigrationError, MigrationFn, MigrationOptions, migrate
from francis.sqladapter import DatabaseAdapter


@dataclass
class SQLiteMigrations:
    """Runs migrations on a SQLite connection, tracking the level in a metadata table.

    The connection must be in autocommit mode (``isolation_level=None``).
    The whole run happens in one exclusive transaction, so it is all or
    nothing.
    """

    conn: Any
    metadata_table_name: str
    metadata_key: str

    def perform(
        self, migration_fns: Sequence[MigrationFn], logger: logging.Logger | None = None
    ) -> None:
        """Apply the migrations not yet recorded in the metadata table."""
        log = logger or logging.getLogger(__name__)

        try:
            self._run("BEGIN EXCLUSIVE TRANSACTION")
        except Exception as err:
            raise MigrationError(f"failed to begin transaction: {err}") from err

        success = False
        try:
            migrate(
                DatabaseAdapter(self.conn),
                MigrationOptions(
                    get_version_query=(
                        f"SELECT value FROM {self.metadata_table_name} "
                        f"WHERE key = '{self.metadata_key}'"
                    ),
                    update_version_query=lambda version: (
                        f"REPLACE INTO {self.metadata_table_name} (key, value) "
                        f"VALUES ('{self.metadata_key}', ?)",
                        version,
                    ),
                    migrations=list(migration_fns),
                    ensure_metadata_table=lambda: self._ensure_metadata_table(log),
                ),
                log,
            )
            try:
                self._run("COMMIT TRANSACTION")
            except Exception as err:
                raise MigrationError(f"failed to commit transaction: {err}") from err
            success = True
        finally:
            if not success:
                self._rollback(log)

    def _run(self, query: str, *args: Any) -> list[tuple]:
        cursor = self.conn.cursor()
        try:
            cursor.execute(query, args)
            return cursor.fetchall()
        finally:
            cursor.close()

    def _rollback(self, log: logging.Logger) -> None:
        if not getattr(self.conn, "in_transaction", True):
            return
        try:
            self._run("ROLLBACK TRANSACTION")
        except Exception as err:
            # Leaving a transaction open is worse than stopping the process.
            log.error("Failed to rollback transaction: %s", err)
            raise SystemExit(1) from err

    def _ensure_metadata_table(self, log: logging.Logger) -> None:
        try:
            exists = self._table_exists()
        except Exception as err:
            raise MigrationError(
                f"failed to check if the metadata table exists: {err}"
            ) from err
        if not exists:
            try:
                self._create_metadata_table(log)
            except Exception as err:
                raise MigrationError(f"failed to create metadata table: {err}") from err

    def _table_exists(self) -> bool:
        rows = self._run(
            "SELECT EXISTS (SELECT name FROM sqlite_master WHERE type='table' AND name = ?)",
            self.metadata_table_name,
        )
        return bool(rows) and str(rows[0][0]) == "1"

    def _create_metadata_table(self, log: logging.Logger) -> None:
        log.info("Creating metadata table %s", self.metadata_table_name)
        self._run(
            f"CREATE TABLE IF NOT EXISTS {self.metadata_table_name} ("
            "key text NOT NULL PRIMARY KEY, "
            "value text NOT NULL)"
        )