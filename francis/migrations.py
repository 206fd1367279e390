"""Apply numbered schema migrations, recording the level reached."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable

from francis.sqladapter import DatabaseAdapter

MigrationFn = Callable[[], None]

_LEVEL = re.compile(r"[+-]?[0-9]+")


class MigrationError(RuntimeError):
    """Raised when migrations cannot be applied."""


@dataclass
class MigrationOptions:
    """What to migrate and how the migration level is stored.

    ``update_version_query`` receives the new level as a string and returns
    the query together with its single argument.
    """

    get_version_query: str
    update_version_query: Callable[[str], tuple[str, Any]]
    migrations: list[MigrationFn] = field(default_factory=list)
    ensure_metadata_table: Callable[[], None] | None = None


def _parse_level(value: Any) -> int:
    text = str(value)
    if not _LEVEL.fullmatch(text) or int(text) < 0:
        raise MigrationError(f"invalid migration level found in metadata table: {text}")
    return int(text)


def migrate(
    db: DatabaseAdapter,
    opts: MigrationOptions,
    logger: logging.Logger | None = None,
) -> None:
    """Run every migration above the stored level, recording each one as it completes."""
    log = logging.LoggerAdapter(
        logger or logging.getLogger(__name__), {"component": "migrations"}
    )
    log.debug("Begin migrations")

    if opts.ensure_metadata_table is not None:
        log.debug("Ensuring metadata table exists")
        try:
            opts.ensure_metadata_table()
        except Exception as err:
            raise MigrationError(f"failed to ensure metadata table exists: {err}") from err

    log.debug("Loading current migration level")
    try:
        row = db.query_row(opts.get_version_query)
    except Exception as err:
        if not db.is_no_rows_error(err):
            raise MigrationError(f"failed to read migration level: {err}") from err
        level = 0
    else:
        level = _parse_level(row[0])
    log.debug("Loaded current migration level: %d", level)

    for index, migration in enumerate(opts.migrations[level:], start=level):
        log.info("Performing migration %d", index)
        try:
            migration()
        except Exception as err:
            raise MigrationError(f"failed to perform migration {index}: {err}") from err

        query, arg = opts.update_version_query(str(index + 1))
        try:
            db.exec(query, arg)
        except Exception as err:
            raise MigrationError(
                f"failed to update migration level in metadata table: {err}"
            ) from err