from __future__ import annotations

from hashlib import sha256
import re

_WHITESPACE_PATTERN = re.compile(r"\s+")


def normalize_text(text: str | None) -> str:
    """Collapse whitespace runs to a single space and trim; casing is kept."""
    if not text:
        return ""
    return _WHITESPACE_PATTERN.sub(" ", text).strip()


def normalize_for_hash(text: str | None) -> str:
    return normalize_text(text).lower()


def source_fingerprint(text: str | None) -> str:
    normalized = normalize_for_hash(text)
    return sha256(normalized.encode("utf-8")).hexdigest()
