from __future__ import annotations

from pathlib import Path
from typing import Any

import typer
import yaml
from pydantic import ValidationError as ConfigValidationError

from tm_core.config import EngineConfig, load_config, write_config
from tm_core.constants import DEFAULT_CONFIG_FILENAME, DEFAULT_DB_FILENAME
from tm_core.db.schema import database_engine
from tm_core.errors import NotFoundError, TMError
from tm_core.logging_config import setup_logging_from_config
from tm_core.tm.scope import Scope
from tm_core.tm.tm_search import lookup
from tm_core.tm.tm_stats import get_stats
from tm_core.tm.tm_store import clear_scoped, delete_owned, get_visible_entry, store_batch, upsert_tm_entry
from tm_core.tm.tm_usage import accept_match

app = typer.Typer(help="Translation memory command line interface")

_OWNER_OPTION = typer.Option(..., "--owner", help="Owner id of the caller.")
_ORG_OPTION = typer.Option(None, "--org", help="Organization id to include in the scope.")
_DB_OPTION = typer.Option(None, "--db", help="SQLite database path. Overrides the config file.", dir_okay=False)
_CONFIG_OPTION = typer.Option(
    None,
    "--config",
    help="YAML config file.",
    dir_okay=False,
    exists=True,
)


def _fail(message: str) -> typer.Exit:
    typer.secho(message, fg=typer.colors.RED, err=True)
    return typer.Exit(code=1)


def _load(config_path: Path | None, db: Path | None) -> tuple[EngineConfig, Path]:
    try:
        config = load_config(config_path)
    except (OSError, yaml.YAMLError, ConfigValidationError) as exc:
        raise _fail(f"Invalid config: {exc}") from exc

    setup_logging_from_config(config, service="tm-cli")
    db_path = db if db is not None else config.resolved_db_path(config_path)
    return config, db_path


def _scope(owner: str, org: str | None) -> Scope:
    try:
        return Scope(owner_id=owner, organization_id=org)
    except TMError as exc:
        raise _fail(str(exc)) from exc


@app.command("init")
def init_command(
    directory: Path = typer.Argument(Path("."), help="Directory for the config file and database.", file_okay=False),
    db_name: str = typer.Option(DEFAULT_DB_FILENAME, "--db-name", help="Database file name."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing config file."),
) -> None:
    """Create a config file and an empty translation memory database."""

    config_path = directory / DEFAULT_CONFIG_FILENAME
    if config_path.exists() and not force:
        raise _fail(f"Config already exists: {config_path}")

    config = EngineConfig(db_path=Path(db_name))
    write_config(config_path, config)
    db_path = config.resolved_db_path(config_path)
    try:
        with database_engine(db_path):
            pass
    except TMError as exc:
        raise _fail(str(exc)) from exc

    typer.echo(f"Config: {config_path}")
    typer.echo(f"Database: {db_path}")


@app.command("lookup")
def lookup_command(
    source_text: str = typer.Argument(..., help="Text to find matches for."),
    source: str = typer.Option(..., "--source", help="Source language code."),
    target: str = typer.Option(..., "--target", help="Target language code."),
    min_match: int | None = typer.Option(None, "--min-match", help="Minimum match percent (0-100)."),
    max_results: int | None = typer.Option(None, "--max-results", help="Maximum number of matches."),
    owner: str = _OWNER_OPTION,
    org: str | None = _ORG_OPTION,
    db: Path | None = _DB_OPTION,
    config_path: Path | None = _CONFIG_OPTION,
) -> None:
    """Show stored translations similar to SOURCE_TEXT."""

    config, db_path = _load(config_path, db)
    try:
        matches = lookup(
            db_path=db_path,
            scope=_scope(owner, org),
            source_language=source,
            target_language=target,
            source_text=source_text,
            min_match_percent=config.min_match_percent if min_match is None else min_match,
            max_results=config.max_results if max_results is None else max_results,
            candidate_limit=config.candidate_limit,
        )
    except TMError as exc:
        raise _fail(str(exc)) from exc

    if not matches:
        typer.echo("No matches.")
        return

    for match in matches:
        typer.echo(
            f"{match.match_percent:>3}%  {match.entry_id}  "
            f"{match.source_text} -> {match.translated_text}  (used {match.use_count}x)"
        )


@app.command("store")
def store_command(
    source_text: str = typer.Argument(..., help="Source text."),
    translated_text: str = typer.Argument(..., help="Confirmed translation."),
    source: str = typer.Option(..., "--source", help="Source language code."),
    target: str = typer.Option(..., "--target", help="Target language code."),
    context: str | None = typer.Option(None, "--context", help="Optional context, e.g. a resource key."),
    owner: str = _OWNER_OPTION,
    org: str | None = _ORG_OPTION,
    db: Path | None = _DB_OPTION,
    config_path: Path | None = _CONFIG_OPTION,
) -> None:
    """Remember a source/translation pair."""

    _, db_path = _load(config_path, db)
    try:
        entry = upsert_tm_entry(
            db_path=db_path,
            scope=_scope(owner, org),
            source_language=source,
            target_language=target,
            source_text=source_text,
            translated_text=translated_text,
            context=context,
        )
    except TMError as exc:
        raise _fail(str(exc)) from exc

    typer.echo(f"Stored: {entry.id} (used {entry.use_count}x)")


def _read_batch_file(path: Path) -> list[Any]:
    with path.open("r", encoding="utf-8") as handle:
        content = yaml.safe_load(handle) or []
    if isinstance(content, dict):
        content = content.get("entries", [])
    if not isinstance(content, list):
        raise ValueError("Batch file must contain a list of entries")
    return content


@app.command("store-batch")
def store_batch_command(
    batch_file: Path = typer.Argument(..., help="YAML list of entries.", exists=True, dir_okay=False),
    source: str | None = typer.Option(None, "--source", help="Default source language for entries."),
    target: str | None = typer.Option(None, "--target", help="Default target language for entries."),
    owner: str = _OWNER_OPTION,
    org: str | None = _ORG_OPTION,
    db: Path | None = _DB_OPTION,
    config_path: Path | None = _CONFIG_OPTION,
) -> None:
    """Store every entry of BATCH_FILE; invalid entries are reported and skipped."""

    _, db_path = _load(config_path, db)
    try:
        raw_items = _read_batch_file(batch_file)
    except (OSError, yaml.YAMLError, ValueError) as exc:
        raise _fail(f"Invalid batch file: {exc}") from exc

    defaults = {"source_language": source, "target_language": target}
    items = [
        {**{k: v for k, v in defaults.items() if v is not None}, **item} if isinstance(item, dict) else {}
        for item in raw_items
    ]

    try:
        result = store_batch(db_path=db_path, scope=_scope(owner, org), items=items)
    except TMError as exc:
        raise _fail(str(exc)) from exc

    typer.echo(f"Stored: {result.stored_count}")
    for failure in result.failures:
        typer.secho(
            f"Skipped entry {failure.index}: {failure.field}: {failure.message}",
            fg=typer.colors.YELLOW,
            err=True,
        )
    if result.failures:
        typer.echo(f"Skipped: {result.failed_count}")


@app.command("accept")
def accept_command(
    entry_id: str = typer.Argument(..., help="Entry id of the accepted suggestion."),
    db: Path | None = _DB_OPTION,
    config_path: Path | None = _CONFIG_OPTION,
) -> None:
    """Record that a suggestion was reused."""

    _, db_path = _load(config_path, db)
    try:
        accept_match(db_path=db_path, entry_id=entry_id)
    except TMError as exc:
        raise _fail(str(exc)) from exc
    typer.echo("Accepted.")


@app.command("show")
def show_command(
    entry_id: str = typer.Argument(..., help="Entry id."),
    owner: str = _OWNER_OPTION,
    org: str | None = _ORG_OPTION,
    db: Path | None = _DB_OPTION,
    config_path: Path | None = _CONFIG_OPTION,
) -> None:
    """Show a single entry visible to the scope."""

    _, db_path = _load(config_path, db)
    try:
        entry = get_visible_entry(db_path=db_path, scope=_scope(owner, org), entry_id=entry_id)
    except TMError as exc:
        raise _fail(str(exc)) from exc

    typer.echo(f"Id: {entry.id}")
    typer.echo(f"Languages: {entry.source_language} -> {entry.target_language}")
    typer.echo(f"Source: {entry.source_text}")
    typer.echo(f"Translation: {entry.translated_text}")
    if entry.context:
        typer.echo(f"Context: {entry.context}")
    typer.echo(f"Owner: {entry.owner_id}")
    if entry.organization_id:
        typer.echo(f"Organization: {entry.organization_id}")
    typer.echo(f"Use count: {entry.use_count}")
    typer.echo(f"Updated: {entry.updated_at}")


@app.command("stats")
def stats_command(
    owner: str = _OWNER_OPTION,
    org: str | None = _ORG_OPTION,
    db: Path | None = _DB_OPTION,
    config_path: Path | None = _CONFIG_OPTION,
) -> None:
    """Summarize entries and reuse per language pair."""

    _, db_path = _load(config_path, db)
    try:
        stats = get_stats(db_path=db_path, scope=_scope(owner, org))
    except TMError as exc:
        raise _fail(str(exc)) from exc

    typer.echo(f"Entries: {stats.total_entries}")
    typer.echo(f"Uses: {stats.total_use_count}")
    for pair in stats.language_pairs:
        typer.echo(
            f"  {pair.source_language} -> {pair.target_language}: "
            f"{pair.entry_count} entries, {pair.use_count} uses"
        )


@app.command("clear")
def clear_command(
    source: str | None = typer.Option(None, "--source", help="Only clear this source language."),
    target: str | None = typer.Option(None, "--target", help="Only clear this target language."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
    owner: str = _OWNER_OPTION,
    org: str | None = _ORG_OPTION,
    db: Path | None = _DB_OPTION,
    config_path: Path | None = _CONFIG_OPTION,
) -> None:
    """Delete the scope's entries, optionally for one language pair."""

    _, db_path = _load(config_path, db)
    scope = _scope(owner, org)
    if not yes:
        typer.confirm("Delete translation memory entries?", abort=True)

    try:
        count = clear_scoped(
            db_path=db_path,
            scope=scope,
            source_language=source,
            target_language=target,
        )
    except TMError as exc:
        raise _fail(str(exc)) from exc
    typer.echo(f"Cleared {count} entries")


@app.command("delete")
def delete_command(
    entry_id: str = typer.Argument(..., help="Entry id."),
    owner: str = _OWNER_OPTION,
    org: str | None = _ORG_OPTION,
    db: Path | None = _DB_OPTION,
    config_path: Path | None = _CONFIG_OPTION,
) -> None:
    """Delete one entry owned by the scope."""

    _, db_path = _load(config_path, db)
    try:
        deleted = delete_owned(db_path=db_path, scope=_scope(owner, org), entry_id=entry_id)
        if not deleted:
            raise NotFoundError(entry_id)
    except TMError as exc:
        raise _fail(str(exc)) from exc
    typer.echo(f"Deleted: {entry_id}")


if __name__ == "__main__":
    app()
