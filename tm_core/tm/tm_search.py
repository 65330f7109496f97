from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import structlog
from sqlalchemy.engine import Connection

from tm_core.constants import (
    DEFAULT_CANDIDATE_LIMIT,
    DEFAULT_MAX_RESULTS,
    DEFAULT_MIN_MATCH_PERCENT,
)
from tm_core.db.schema import open_connection
from tm_core.tm.normalize import normalize_for_hash
from tm_core.tm.scope import Scope
from tm_core.tm.similarity import max_possible_percent, similarity_percent
from tm_core.tm.tm_store import TMEntry, find_candidates, find_exact
from tm_core.tm.validation import (
    require_language_pair,
    require_match_percent,
    require_positive,
    require_scope,
    require_text,
)

logger = structlog.get_logger(__name__)


@dataclass(slots=True, frozen=True)
class TMMatch:
    entry_id: str
    source_text: str
    translated_text: str
    source_language: str
    target_language: str
    match_percent: int
    use_count: int
    context: str | None
    updated_at: str

    @property
    def is_exact(self) -> bool:
        return self.match_percent == 100

    @classmethod
    def from_entry(cls, entry: TMEntry, match_percent: int) -> TMMatch:
        return cls(
            entry_id=entry.id,
            source_text=entry.source_text,
            translated_text=entry.translated_text,
            source_language=entry.source_language,
            target_language=entry.target_language,
            match_percent=match_percent,
            use_count=entry.use_count,
            context=entry.context,
            updated_at=entry.updated_at,
        )


def _merge_pool(*groups: Iterable[TMEntry]) -> list[TMEntry]:
    seen: set[str] = set()
    merged: list[TMEntry] = []
    for group in groups:
        for entry in group:
            if entry.id in seen:
                continue
            seen.add(entry.id)
            merged.append(entry)
    return merged


def rank_candidates(
    query_text: str,
    candidates: Iterable[TMEntry],
    *,
    min_match_percent: int = DEFAULT_MIN_MATCH_PERCENT,
    max_results: int = DEFAULT_MAX_RESULTS,
) -> list[TMMatch]:
    """Score, filter and order candidates against ``query_text``.

    Order: match percent, then use count, then most recent update, all
    descending; entry id breaks any remaining tie.
    """

    require_match_percent(min_match_percent)
    require_positive("max_results", max_results)

    query_length = len(normalize_for_hash(query_text))
    matches: list[TMMatch] = []
    for entry in candidates:
        candidate_length = len(normalize_for_hash(entry.source_text))
        if max_possible_percent(query_length, candidate_length) < min_match_percent:
            continue
        percent = similarity_percent(query_text, entry.source_text)
        if percent < min_match_percent:
            continue
        matches.append(TMMatch.from_entry(entry, percent))

    matches.sort(key=lambda match: match.entry_id)
    matches.sort(key=lambda match: match.updated_at, reverse=True)
    matches.sort(key=lambda match: (match.match_percent, match.use_count), reverse=True)
    return matches[:max_results]


def lookup(
    *,
    db_path: Path | None = None,
    connection: Connection | None = None,
    scope: Scope,
    source_language: str,
    target_language: str,
    source_text: str,
    min_match_percent: int = DEFAULT_MIN_MATCH_PERCENT,
    max_results: int = DEFAULT_MAX_RESULTS,
    candidate_limit: int | None = DEFAULT_CANDIDATE_LIMIT,
) -> list[TMMatch]:
    """Find stored translations whose source resembles ``source_text``.

    The candidate pool is capped at ``candidate_limit`` entries (most used
    first); exact matches are always added to the pool regardless of the cap.
    An empty result means nothing qualified. Lookups never modify entries.
    """

    require_scope(scope)
    require_language_pair(source_language, target_language)
    require_text("source_text", source_text)
    require_match_percent(min_match_percent)
    require_positive("max_results", max_results)
    if candidate_limit is not None:
        require_positive("candidate_limit", candidate_limit)

    with open_connection(db_path=db_path, connection=connection) as conn:
        exact = find_exact(
            connection=conn,
            scope=scope,
            source_language=source_language,
            target_language=target_language,
            source_text=source_text,
        )
        pool = find_candidates(
            connection=conn,
            scope=scope,
            source_language=source_language,
            target_language=target_language,
            limit=candidate_limit,
        )

    matches = rank_candidates(
        source_text,
        _merge_pool(exact, pool),
        min_match_percent=min_match_percent,
        max_results=max_results,
    )
    logger.debug(
        "tm lookup",
        source_language=source_language,
        target_language=target_language,
        pool_size=len(pool),
        exact_hits=len(exact),
        returned=len(matches),
    )
    return matches
