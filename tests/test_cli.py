from __future__ import annotations

import re
import sqlite3
from pathlib import Path

import yaml
from typer.testing import CliRunner

from tm_cli.main import app

runner = CliRunner()

_ENTRY_ID_PATTERN = re.compile(r"Stored: ([0-9a-f-]{36})")


def _invoke(db_path: Path, *args: str):
    return runner.invoke(app, [*args, "--db", str(db_path)])


def _store(db_path: Path, source_text: str, translated_text: str, *extra: str) -> str:
    result = _invoke(
        db_path,
        "store",
        source_text,
        translated_text,
        "--source",
        "en",
        "--target",
        "fr",
        "--owner",
        "alice",
        *extra,
    )
    assert result.exit_code == 0, result.output
    match = _ENTRY_ID_PATTERN.search(result.output)
    assert match is not None, result.output
    return match.group(1)


def test_init_writes_config_and_database(tmp_path: Path) -> None:
    result = runner.invoke(app, ["init", str(tmp_path / "memory")])

    assert result.exit_code == 0, result.output
    config_path = tmp_path / "memory" / "tm.yml"
    assert config_path.is_file()
    assert (tmp_path / "memory" / "tm.db").is_file()
    with config_path.open("r", encoding="utf-8") as handle:
        config = yaml.safe_load(handle)
    assert config["db_path"] == "tm.db"
    assert config["min_match_percent"] == 70

    second = runner.invoke(app, ["init", str(tmp_path / "memory")])
    assert second.exit_code == 1
    assert "Config already exists" in second.output


def test_store_then_lookup_via_config(tmp_path: Path) -> None:
    init_result = runner.invoke(app, ["init", str(tmp_path)])
    assert init_result.exit_code == 0, init_result.output
    config_path = tmp_path / "tm.yml"

    store_result = runner.invoke(
        app,
        [
            "store",
            "Hello world",
            "Bonjour le monde",
            "--source",
            "en",
            "--target",
            "fr",
            "--owner",
            "alice",
            "--config",
            str(config_path),
        ],
    )
    assert store_result.exit_code == 0, store_result.output

    lookup_result = runner.invoke(
        app,
        [
            "lookup",
            "hello   world",
            "--source",
            "en",
            "--target",
            "fr",
            "--owner",
            "alice",
            "--config",
            str(config_path),
        ],
    )
    assert lookup_result.exit_code == 0, lookup_result.output
    assert "100%" in lookup_result.output
    assert "Bonjour le monde" in lookup_result.output


def test_lookup_without_matches(tmp_path: Path) -> None:
    result = _invoke(
        tmp_path / "tm.db",
        "lookup",
        "Nothing here",
        "--source",
        "en",
        "--target",
        "fr",
        "--owner",
        "alice",
    )

    assert result.exit_code == 0, result.output
    assert "No matches." in result.output


def test_lookup_rejects_invalid_threshold(tmp_path: Path) -> None:
    result = _invoke(
        tmp_path / "tm.db",
        "lookup",
        "Hello",
        "--source",
        "en",
        "--target",
        "fr",
        "--owner",
        "alice",
        "--min-match",
        "150",
    )

    assert result.exit_code == 1
    assert "min_match_percent" in result.output


def test_store_rejects_blank_source(tmp_path: Path) -> None:
    result = _invoke(
        tmp_path / "tm.db",
        "store",
        "   ",
        "Bonjour",
        "--source",
        "en",
        "--target",
        "fr",
        "--owner",
        "alice",
    )

    assert result.exit_code == 1
    assert "source_text" in result.output


def test_accept_show_and_stats(tmp_path: Path) -> None:
    db_path = tmp_path / "tm.db"
    entry_id = _store(db_path, "Save", "Enregistrer", "--context", "menu.save")
    _store(db_path, "Open", "Ouvrir")

    accept_result = _invoke(db_path, "accept", entry_id)
    missing_result = _invoke(db_path, "accept", "not-an-entry")
    show_result = _invoke(db_path, "show", entry_id, "--owner", "alice")
    stats_result = _invoke(db_path, "stats", "--owner", "alice")

    assert accept_result.exit_code == 0, accept_result.output
    assert missing_result.exit_code == 0, missing_result.output
    assert "Use count: 2" in show_result.output
    assert "Context: menu.save" in show_result.output
    assert "Entries: 2" in stats_result.output
    assert "Uses: 3" in stats_result.output
    assert "en -> fr: 2 entries, 3 uses" in stats_result.output


def test_show_hides_entries_of_other_owners(tmp_path: Path) -> None:
    db_path = tmp_path / "tm.db"
    entry_id = _store(db_path, "Private", "Privé")

    result = _invoke(db_path, "show", entry_id, "--owner", "bob")

    assert result.exit_code == 1
    assert "not found" in result.output


def test_store_batch_reports_skipped_entries(tmp_path: Path) -> None:
    db_path = tmp_path / "tm.db"
    batch_file = tmp_path / "batch.yml"
    batch_file.write_text(
        yaml.safe_dump(
            [
                {"source_text": "One", "translated_text": "Un"},
                {"source_text": "", "translated_text": "Vide"},
                {"source_text": "Two", "translated_text": "Deux", "context": "numbers"},
            ]
        ),
        encoding="utf-8",
    )

    result = _invoke(
        db_path,
        "store-batch",
        str(batch_file),
        "--source",
        "en",
        "--target",
        "fr",
        "--owner",
        "alice",
    )

    assert result.exit_code == 0, result.output
    assert "Stored: 2" in result.output
    assert "Skipped: 1" in result.output

    conn = sqlite3.connect(db_path)
    try:
        count = conn.execute("SELECT COUNT(*) FROM tm_entries").fetchone()
    finally:
        conn.close()
    assert count is not None
    assert count[0] == 2


def test_delete_owned_and_not_owned(tmp_path: Path) -> None:
    db_path = tmp_path / "tm.db"
    entry_id = _store(db_path, "Remove", "Retirer")

    refused = _invoke(db_path, "delete", entry_id, "--owner", "bob")
    deleted = _invoke(db_path, "delete", entry_id, "--owner", "alice")
    again = _invoke(db_path, "delete", entry_id, "--owner", "alice")

    assert refused.exit_code == 1
    assert "not found" in refused.output
    assert deleted.exit_code == 0, deleted.output
    assert again.exit_code == 1


def test_clear_by_language_pair(tmp_path: Path) -> None:
    db_path = tmp_path / "tm.db"
    _store(db_path, "One", "Un")
    _store(db_path, "Two", "Deux")
    german = _invoke(
        db_path,
        "store",
        "One",
        "Eins",
        "--source",
        "en",
        "--target",
        "de",
        "--owner",
        "alice",
    )
    assert german.exit_code == 0, german.output

    result = _invoke(
        db_path,
        "clear",
        "--source",
        "en",
        "--target",
        "fr",
        "--owner",
        "alice",
        "--yes",
    )
    stats_result = _invoke(db_path, "stats", "--owner", "alice")

    assert result.exit_code == 0, result.output
    assert "Cleared 2 entries" in result.output
    assert "Entries: 1" in stats_result.output


def test_clear_asks_for_confirmation(tmp_path: Path) -> None:
    db_path = tmp_path / "tm.db"
    _store(db_path, "Keep", "Garder")

    result = runner.invoke(app, ["clear", "--owner", "alice", "--db", str(db_path)], input="n\n")

    assert result.exit_code == 1
    stats_result = _invoke(db_path, "stats", "--owner", "alice")
    assert "Entries: 1" in stats_result.output
