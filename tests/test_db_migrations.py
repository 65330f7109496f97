from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from tm_core.constants import CURRENT_SCHEMA_VERSION
from tm_core.db.models import TMEntryRecord
from tm_core.db.schema import initialize_database, open_connection


def _initialize(db_path: Path) -> None:
    engine = initialize_database(db_path)
    engine.dispose()


def test_initialize_creates_schema_and_version(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "tm.db"
    _initialize(db_path)

    conn = sqlite3.connect(db_path)
    try:
        version = conn.execute("SELECT value FROM schema_meta WHERE key='schema_version'").fetchone()
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        indexes = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='index'")}
        journal_mode = conn.execute("PRAGMA journal_mode").fetchone()
    finally:
        conn.close()

    assert version is not None
    assert version[0] == str(CURRENT_SCHEMA_VERSION)
    assert {"schema_meta", "tm_entries"} <= tables
    assert "idx_tm_entries_dedup" in indexes
    assert journal_mode is not None
    assert journal_mode[0] == "wal"


def test_initialize_is_repeatable(tmp_path: Path) -> None:
    db_path = tmp_path / "tm.db"
    _initialize(db_path)
    _initialize(db_path)

    conn = sqlite3.connect(db_path)
    try:
        rows = conn.execute("SELECT COUNT(*) FROM schema_meta").fetchone()
    finally:
        conn.close()
    assert rows is not None
    assert rows[0] == 1


def test_dedup_index_covers_personal_entries(tmp_path: Path) -> None:
    db_path = tmp_path / "tm.db"
    _initialize(db_path)
    insert = (
        "INSERT INTO tm_entries(id, owner_id, organization_id, source_language, target_language, "
        "source_text, translated_text, source_hash, use_count, created_at, updated_at) "
        "VALUES (?, 'alice', NULL, 'en', 'fr', 'Hello', 'Bonjour', 'hash', 1, 'now', 'now')"
    )

    conn = sqlite3.connect(db_path)
    try:
        conn.execute(insert, ("first",))
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(insert, ("second",))
    finally:
        conn.close()


def test_orm_mirror_matches_migrated_columns(tmp_path: Path) -> None:
    db_path = tmp_path / "tm.db"
    _initialize(db_path)

    conn = sqlite3.connect(db_path)
    try:
        columns = [row[1] for row in conn.execute("PRAGMA table_info(tm_entries)")]
    finally:
        conn.close()

    assert columns == [column.name for column in TMEntryRecord.__table__.columns]


def test_write_transaction_holds_lock_before_first_statement(tmp_path: Path) -> None:
    db_path = tmp_path / "tm.db"
    engine = initialize_database(db_path)
    try:
        with open_connection(engine=engine, write=True):
            other = sqlite3.connect(db_path, timeout=0, isolation_level=None)
            try:
                with pytest.raises(sqlite3.OperationalError, match="locked"):
                    other.execute("BEGIN IMMEDIATE")
            finally:
                other.close()

        with open_connection(engine=engine):
            other = sqlite3.connect(db_path, timeout=0, isolation_level=None)
            try:
                other.execute("BEGIN IMMEDIATE")
                other.execute("ROLLBACK")
            finally:
                other.close()
    finally:
        engine.dispose()
