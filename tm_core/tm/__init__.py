"""Translation memory storage and retrieval helpers."""

from tm_core.tm.normalize import normalize_for_hash, normalize_text, source_fingerprint
from tm_core.tm.scope import Scope
from tm_core.tm.similarity import edit_distance, similarity_percent
from tm_core.tm.tm_search import TMMatch, lookup, rank_candidates
from tm_core.tm.tm_stats import get_stats
from tm_core.tm.tm_store import (
    BatchStoreFailure,
    BatchStoreResult,
    LanguagePairStats,
    TMEntry,
    TMStats,
    TMStoreItem,
    clear_scoped,
    delete_owned,
    find_candidates,
    find_exact,
    get_entry,
    get_visible_entry,
    record_tm_use,
    store_batch,
    upsert_tm_entry,
)
from tm_core.tm.tm_usage import accept_match

__all__ = [
    "BatchStoreFailure",
    "BatchStoreResult",
    "LanguagePairStats",
    "Scope",
    "TMEntry",
    "TMMatch",
    "TMStats",
    "TMStoreItem",
    "accept_match",
    "clear_scoped",
    "delete_owned",
    "edit_distance",
    "find_candidates",
    "find_exact",
    "get_entry",
    "get_stats",
    "get_visible_entry",
    "lookup",
    "normalize_for_hash",
    "normalize_text",
    "rank_candidates",
    "record_tm_use",
    "similarity_percent",
    "source_fingerprint",
    "store_batch",
    "upsert_tm_entry",
]
