from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

import structlog
from sqlalchemy import func, or_, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from tm_core.db.models import TMEntryRecord
from tm_core.db.schema import database_engine, open_connection
from tm_core.errors import NotFoundError, StorageError, ValidationError
from tm_core.tm.normalize import source_fingerprint
from tm_core.tm.scope import OWNED_BY_SCOPE_SQL, VISIBLE_TO_SCOPE_SQL, Scope
from tm_core.tm.validation import (
    require_entry_id,
    require_language_pair,
    require_positive,
    require_scope,
    require_text,
)

logger = structlog.get_logger(__name__)

_ENTRY_COLUMNS = """
    id,
    owner_id,
    organization_id,
    source_language,
    target_language,
    source_text,
    translated_text,
    source_hash,
    context,
    use_count,
    created_at,
    updated_at
"""


@dataclass(slots=True, frozen=True)
class TMEntry:
    id: str
    owner_id: str
    organization_id: str | None
    source_language: str
    target_language: str
    source_text: str
    translated_text: str
    source_hash: str
    context: str | None
    use_count: int
    created_at: str
    updated_at: str

    @property
    def scope(self) -> Scope:
        return Scope(owner_id=self.owner_id, organization_id=self.organization_id)


@dataclass(slots=True, frozen=True)
class TMStoreItem:
    source_language: str
    target_language: str
    source_text: str
    translated_text: str
    context: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> TMStoreItem:
        allowed = {"source_language", "target_language", "source_text", "translated_text", "context"}
        unknown = sorted(set(data) - allowed)
        if unknown:
            raise ValidationError("item", f"unknown fields: {', '.join(unknown)}")
        return cls(
            source_language=data.get("source_language"),  # type: ignore[arg-type]
            target_language=data.get("target_language"),  # type: ignore[arg-type]
            source_text=data.get("source_text"),  # type: ignore[arg-type]
            translated_text=data.get("translated_text"),  # type: ignore[arg-type]
            context=data.get("context"),
        )


@dataclass(slots=True)
class BatchStoreFailure:
    index: int
    field: str
    message: str


@dataclass(slots=True)
class BatchStoreResult:
    stored: list[TMEntry] = field(default_factory=list)
    failures: list[BatchStoreFailure] = field(default_factory=list)

    @property
    def stored_count(self) -> int:
        return len(self.stored)

    @property
    def failed_count(self) -> int:
        return len(self.failures)


@dataclass(slots=True, frozen=True)
class LanguagePairStats:
    source_language: str
    target_language: str
    entry_count: int
    use_count: int


@dataclass(slots=True, frozen=True)
class TMStats:
    total_entries: int
    total_use_count: int
    language_pairs: list[LanguagePairStats]


def _utc_now_iso() -> str:
    # Microseconds keep updated_at ordering meaningful for back-to-back writes.
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="microseconds")
        .replace("+00:00", "Z")
    )


def _row_to_entry(row: Any) -> TMEntry:
    return TMEntry(
        id=str(row[0]),
        owner_id=str(row[1]),
        organization_id=row[2],
        source_language=str(row[3]),
        target_language=str(row[4]),
        source_text=str(row[5]),
        translated_text=str(row[6]),
        source_hash=str(row[7]),
        context=row[8],
        use_count=int(row[9]),
        created_at=str(row[10]),
        updated_at=str(row[11]),
    )


def _clean_context(context: str | None) -> str | None:
    if context is None or not context.strip():
        return None
    return context


def _select_entry_by_id(connection: Connection, entry_id: str) -> TMEntry | None:
    row = connection.execute(
        text(f"SELECT {_ENTRY_COLUMNS} FROM tm_entries WHERE id = :id"),
        {"id": entry_id},
    ).first()
    return _row_to_entry(row) if row is not None else None


def _select_key(connection: Connection, key: dict[str, Any]) -> str | None:
    row = connection.execute(
        text(
            """
            SELECT id
            FROM tm_entries
            WHERE owner_id = :owner_id
              AND organization_id IS :organization_id
              AND source_language = :source_language
              AND target_language = :target_language
              AND source_hash = :source_hash
            LIMIT 1
            """
        ),
        key,
    ).first()
    return str(row[0]) if row is not None else None


def find_candidates(
    *,
    db_path: Path | None = None,
    connection: Connection | None = None,
    scope: Scope,
    source_language: str,
    target_language: str,
    limit: int | None = None,
) -> list[TMEntry]:
    """Return entries visible to ``scope`` for the exact language pair.

    Most used and most recently updated entries come first, so a ``limit``
    keeps the entries a lookup is most likely to want.
    """

    require_scope(scope)
    require_language_pair(source_language, target_language)
    if limit is not None:
        require_positive("limit", limit)

    with open_connection(db_path=db_path, connection=connection) as conn:
        rows = conn.execute(
            text(
                f"""
                SELECT {_ENTRY_COLUMNS}
                FROM tm_entries
                WHERE {VISIBLE_TO_SCOPE_SQL}
                  AND source_language = :source_language
                  AND target_language = :target_language
                ORDER BY use_count DESC, updated_at DESC, id
                LIMIT :limit
                """
            ),
            {
                **scope.as_params(),
                "source_language": source_language,
                "target_language": target_language,
                "limit": -1 if limit is None else limit,
            },
        ).all()

    return [_row_to_entry(row) for row in rows]


def find_exact(
    *,
    db_path: Path | None = None,
    connection: Connection | None = None,
    scope: Scope,
    source_language: str,
    target_language: str,
    source_text: str,
) -> list[TMEntry]:
    """Return visible entries whose source normalizes to the same fingerprint."""

    require_scope(scope)
    require_language_pair(source_language, target_language)

    with open_connection(db_path=db_path, connection=connection) as conn:
        rows = conn.execute(
            text(
                f"""
                SELECT {_ENTRY_COLUMNS}
                FROM tm_entries
                WHERE {VISIBLE_TO_SCOPE_SQL}
                  AND source_language = :source_language
                  AND target_language = :target_language
                  AND source_hash = :source_hash
                ORDER BY use_count DESC, updated_at DESC, id
                """
            ),
            {
                **scope.as_params(),
                "source_language": source_language,
                "target_language": target_language,
                "source_hash": source_fingerprint(source_text),
            },
        ).all()

    return [_row_to_entry(row) for row in rows]


def get_entry(
    *,
    db_path: Path | None = None,
    connection: Connection | None = None,
    entry_id: str,
) -> TMEntry | None:
    require_entry_id(entry_id)
    with open_connection(db_path=db_path, connection=connection) as conn:
        return _select_entry_by_id(conn, entry_id)


def get_visible_entry(
    *,
    db_path: Path | None = None,
    connection: Connection | None = None,
    scope: Scope,
    entry_id: str,
) -> TMEntry:
    """Return an entry the scope may read, or raise :class:`NotFoundError`."""

    require_scope(scope)
    require_entry_id(entry_id)
    with open_connection(db_path=db_path, connection=connection) as conn:
        row = conn.execute(
            text(
                f"""
                SELECT {_ENTRY_COLUMNS}
                FROM tm_entries
                WHERE id = :id AND {VISIBLE_TO_SCOPE_SQL}
                """
            ),
            {"id": entry_id, **scope.as_params()},
        ).first()

    if row is None:
        raise NotFoundError(entry_id)
    return _row_to_entry(row)


def _bump_existing(
    connection: Connection,
    *,
    entry_id: str,
    translated_text: str,
    context: str | None,
) -> None:
    connection.execute(
        text(
            """
            UPDATE tm_entries
            SET
                translated_text = :translated_text,
                context = COALESCE(:context, context),
                use_count = use_count + 1,
                updated_at = :updated_at
            WHERE id = :id
            """
        ),
        {
            "id": entry_id,
            "translated_text": translated_text,
            "context": context,
            "updated_at": _utc_now_iso(),
        },
    )


def _upsert_tm_entry_on_connection(
    connection: Connection,
    *,
    scope: Scope,
    source_language: str,
    target_language: str,
    source_text: str,
    translated_text: str,
    context: str | None,
) -> TMEntry:
    context = _clean_context(context)
    key = {
        **scope.as_params(),
        "source_language": source_language,
        "target_language": target_language,
        "source_hash": source_fingerprint(source_text),
    }

    existing_id = _select_key(connection, key)
    if existing_id is None:
        entry_id = str(uuid4())
        now = _utc_now_iso()
        try:
            with connection.begin_nested():
                connection.execute(
                    text(
                        f"""
                        INSERT INTO tm_entries({_ENTRY_COLUMNS})
                        VALUES (
                            :id,
                            :owner_id,
                            :organization_id,
                            :source_language,
                            :target_language,
                            :source_text,
                            :translated_text,
                            :source_hash,
                            :context,
                            1,
                            :created_at,
                            :updated_at
                        )
                        """
                    ),
                    {
                        **key,
                        "id": entry_id,
                        "source_text": source_text,
                        "translated_text": translated_text,
                        "context": context,
                        "created_at": now,
                        "updated_at": now,
                    },
                )
        except IntegrityError:
            # Another writer inserted the same key between select and insert.
            existing_id = _select_key(connection, key)
            if existing_id is None:
                raise
            logger.debug("tm insert lost race, updating", entry_id=existing_id)
        else:
            logger.debug(
                "tm entry created",
                entry_id=entry_id,
                source_language=source_language,
                target_language=target_language,
            )
            return TMEntry(
                id=entry_id,
                owner_id=scope.owner_id,
                organization_id=scope.organization_id,
                source_language=source_language,
                target_language=target_language,
                source_text=source_text,
                translated_text=translated_text,
                source_hash=key["source_hash"],
                context=context,
                use_count=1,
                created_at=now,
                updated_at=now,
            )

    _bump_existing(
        connection,
        entry_id=existing_id,
        translated_text=translated_text,
        context=context,
    )
    logger.debug(
        "tm entry updated",
        entry_id=existing_id,
        source_language=source_language,
        target_language=target_language,
    )
    updated = _select_entry_by_id(connection, existing_id)
    if updated is None:
        raise StorageError(f"TM entry disappeared during update: {existing_id}")
    return updated


def _validate_store_input(
    *,
    source_language: str,
    target_language: str,
    source_text: str,
    translated_text: str,
    context: str | None,
) -> None:
    require_language_pair(source_language, target_language)
    require_text("source_text", source_text)
    require_text("translated_text", translated_text)
    if context is not None and not isinstance(context, str):
        raise ValidationError("context", "must be a string or None")


def upsert_tm_entry(
    *,
    db_path: Path | None = None,
    connection: Connection | None = None,
    scope: Scope,
    source_language: str,
    target_language: str,
    source_text: str,
    translated_text: str,
    context: str | None = None,
) -> TMEntry:
    """Store a source/translation pair, or refresh the equivalent entry.

    Sources that differ only in whitespace or casing share one entry per
    scope and language pair. Re-storing replaces the translation, bumps
    ``use_count`` by one and keeps the source text of the first store.
    """

    require_scope(scope)
    _validate_store_input(
        source_language=source_language,
        target_language=target_language,
        source_text=source_text,
        translated_text=translated_text,
        context=context,
    )

    with open_connection(db_path=db_path, connection=connection, write=True) as conn:
        return _upsert_tm_entry_on_connection(
            conn,
            scope=scope,
            source_language=source_language,
            target_language=target_language,
            source_text=source_text,
            translated_text=translated_text,
            context=context,
        )


def store_batch(
    *,
    db_path: Path | None = None,
    connection: Connection | None = None,
    scope: Scope,
    items: Iterable[TMStoreItem | Mapping[str, Any]],
) -> BatchStoreResult:
    """Upsert each item independently.

    Invalid items are reported in the result and skipped. With ``db_path``
    every item commits on its own; with ``connection`` the caller's
    transaction decides, which gives all-or-nothing semantics when wanted.
    Storage failures propagate.
    """

    require_scope(scope)
    result = BatchStoreResult()

    def _store_all(store_one: Callable[[TMStoreItem], TMEntry]) -> None:
        for index, raw_item in enumerate(items):
            try:
                item = raw_item if isinstance(raw_item, TMStoreItem) else TMStoreItem.from_mapping(raw_item)
                _validate_store_input(
                    source_language=item.source_language,
                    target_language=item.target_language,
                    source_text=item.source_text,
                    translated_text=item.translated_text,
                    context=item.context,
                )
            except ValidationError as exc:
                logger.warning("tm batch item rejected", index=index, field=exc.field, reason=exc.message)
                result.failures.append(BatchStoreFailure(index=index, field=exc.field, message=exc.message))
                continue
            result.stored.append(store_one(item))

    def _item_kwargs(item: TMStoreItem) -> dict[str, Any]:
        return {
            "scope": scope,
            "source_language": item.source_language,
            "target_language": item.target_language,
            "source_text": item.source_text,
            "translated_text": item.translated_text,
            "context": item.context,
        }

    if connection is not None:
        with open_connection(connection=connection) as conn:
            _store_all(lambda item: _upsert_tm_entry_on_connection(conn, **_item_kwargs(item)))
    else:
        if db_path is None:
            raise ValueError("db_path is required when connection is not provided")
        with database_engine(Path(db_path)) as engine:

            def _store_in_own_transaction(item: TMStoreItem) -> TMEntry:
                with open_connection(engine=engine, write=True) as conn:
                    return _upsert_tm_entry_on_connection(conn, **_item_kwargs(item))

            _store_all(_store_in_own_transaction)

    logger.info(
        "tm batch stored",
        owner_id=scope.owner_id,
        organization_id=scope.organization_id,
        stored=result.stored_count,
        failed=result.failed_count,
    )
    return result


def record_tm_use(
    *,
    db_path: Path | None = None,
    connection: Connection | None = None,
    entry_id: str,
) -> bool:
    """Atomically bump ``use_count``; returns False when the entry is gone."""

    require_entry_id(entry_id)
    with open_connection(db_path=db_path, connection=connection, write=True) as conn:
        result = conn.execute(
            text(
                """
                UPDATE tm_entries
                SET
                    use_count = use_count + 1,
                    updated_at = :updated_at
                WHERE id = :id
                """
            ),
            {"id": entry_id, "updated_at": _utc_now_iso()},
        )
    return result.rowcount > 0


def delete_owned(
    *,
    db_path: Path | None = None,
    connection: Connection | None = None,
    scope: Scope,
    entry_id: str,
) -> bool:
    """Delete an entry of the scope's own partition.

    Missing entries and entries owned elsewhere both return False.
    """

    require_scope(scope)
    require_entry_id(entry_id)
    with open_connection(db_path=db_path, connection=connection, write=True) as conn:
        result = conn.execute(
            text(f"DELETE FROM tm_entries WHERE id = :id AND {OWNED_BY_SCOPE_SQL}"),
            {"id": entry_id, **scope.as_params()},
        )
    deleted = result.rowcount > 0
    logger.debug("tm entry delete", entry_id=entry_id, deleted=deleted)
    return deleted


def clear_scoped(
    *,
    db_path: Path | None = None,
    connection: Connection | None = None,
    scope: Scope,
    source_language: str | None = None,
    target_language: str | None = None,
) -> int:
    """Delete the scope's own entries, optionally for one source and/or target language."""

    require_scope(scope)
    clauses = [OWNED_BY_SCOPE_SQL]
    params: dict[str, Any] = scope.as_params()
    if source_language:
        clauses.append("source_language = :source_language")
        params["source_language"] = source_language
    if target_language:
        clauses.append("target_language = :target_language")
        params["target_language"] = target_language

    with open_connection(db_path=db_path, connection=connection, write=True) as conn:
        result = conn.execute(
            text(f"DELETE FROM tm_entries WHERE {' AND '.join(clauses)}"),
            params,
        )

    count = int(result.rowcount)
    logger.info(
        "tm entries cleared",
        owner_id=scope.owner_id,
        organization_id=scope.organization_id,
        source_language=source_language,
        target_language=target_language,
        count=count,
    )
    return count


def aggregate(
    *,
    db_path: Path | None = None,
    connection: Connection | None = None,
    scope: Scope,
) -> TMStats:
    require_scope(scope)

    visible = TMEntryRecord.owner_id == scope.owner_id
    if scope.organization_id is not None:
        visible = or_(visible, TMEntryRecord.organization_id == scope.organization_id)

    statement = (
        select(
            TMEntryRecord.source_language,
            TMEntryRecord.target_language,
            func.count(TMEntryRecord.id),
            func.coalesce(func.sum(TMEntryRecord.use_count), 0),
        )
        .where(visible)
        .group_by(TMEntryRecord.source_language, TMEntryRecord.target_language)
    )

    with open_connection(db_path=db_path, connection=connection) as conn:
        with Session(bind=conn) as session:
            rows = session.exec(statement).all()

    pairs = [
        LanguagePairStats(
            source_language=str(row[0]),
            target_language=str(row[1]),
            entry_count=int(row[2]),
            use_count=int(row[3]),
        )
        for row in rows
    ]
    pairs.sort(key=lambda pair: (-pair.entry_count, pair.source_language, pair.target_language))
    return TMStats(
        total_entries=sum(pair.entry_count for pair in pairs),
        total_use_count=sum(pair.use_count for pair in pairs),
        language_pairs=pairs,
    )

