from __future__ import annotations

from collections.abc import Callable

import structlog
from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from tm_core.db.engine import WRITE_TRANSACTION_OPTION

logger = structlog.get_logger(__name__)

Migration = Callable[[Connection], None]


def _table_exists(connection: Connection, table_name: str) -> bool:
    row = connection.execute(
        text(
            "SELECT 1 FROM sqlite_master "
            "WHERE type='table' AND name=:table_name LIMIT 1"
        ),
        {"table_name": table_name},
    ).first()
    return row is not None


def get_schema_version(connection: Connection) -> int:
    if not _table_exists(connection, "schema_meta"):
        return 0

    value = connection.execute(
        text("SELECT value FROM schema_meta WHERE key='schema_version' LIMIT 1")
    ).scalar_one_or_none()

    if value is None:
        return 0

    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _set_schema_version(connection: Connection, version: int) -> None:
    connection.execute(
        text(
            "INSERT INTO schema_meta(key, value) VALUES('schema_version', :version) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value"
        ),
        {"version": str(version)},
    )


def _migration_v1(connection: Connection) -> None:
    statements = (
        """
        CREATE TABLE IF NOT EXISTS schema_meta (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS tm_entries (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            organization_id TEXT,
            source_language TEXT NOT NULL,
            target_language TEXT NOT NULL,
            source_text TEXT NOT NULL,
            translated_text TEXT NOT NULL,
            source_hash TEXT NOT NULL,
            context TEXT,
            use_count INTEGER NOT NULL DEFAULT 1 CHECK (use_count >= 1),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """,
        # NULL organization ids compare distinct in plain unique indexes,
        # so personal entries are keyed on the empty string instead.
        """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_tm_entries_dedup
        ON tm_entries(
            owner_id,
            IFNULL(organization_id, ''),
            source_language,
            target_language,
            source_hash
        )
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_tm_entries_owner_pair
        ON tm_entries(owner_id, source_language, target_language)
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_tm_entries_org_pair
        ON tm_entries(organization_id, source_language, target_language)
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_tm_entries_hash
        ON tm_entries(source_language, target_language, source_hash)
        """,
    )

    for statement in statements:
        connection.exec_driver_sql(statement)


MIGRATIONS: dict[int, Migration] = {
    1: _migration_v1,
}


def migrate_to_latest(engine: Engine) -> int:
    current_version = 0

    with engine.connect() as connection:
        # Concurrent openers must not both read an old version and then migrate.
        connection.execution_options(**{WRITE_TRANSACTION_OPTION: True})
        with connection.begin():
            current_version = get_schema_version(connection)

            for target_version in sorted(MIGRATIONS):
                if target_version <= current_version:
                    continue
                MIGRATIONS[target_version](connection)
                _set_schema_version(connection, target_version)
                logger.info("schema migrated", schema_version=target_version)
                current_version = target_version

    return current_version
