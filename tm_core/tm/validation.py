from __future__ import annotations

from tm_core.errors import ValidationError
from tm_core.tm.normalize import normalize_text
from tm_core.tm.scope import Scope


def require_language(field: str, value: str | None) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, "language code must not be empty")
    return value


def require_language_pair(source_language: str | None, target_language: str | None) -> tuple[str, str]:
    return (
        require_language("source_language", source_language),
        require_language("target_language", target_language),
    )


def require_text(field: str, value: str | None) -> str:
    """Reject text that is empty once whitespace is normalized; returns it untouched."""
    if not isinstance(value, str) or not normalize_text(value):
        raise ValidationError(field, "text must not be empty")
    return value


def require_entry_id(entry_id: str | None) -> str:
    if not isinstance(entry_id, str) or not entry_id.strip():
        raise ValidationError("entry_id", "must not be empty")
    return entry_id


def require_match_percent(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("min_match_percent", "must be an integer")
    if value < 0 or value > 100:
        raise ValidationError("min_match_percent", f"must be between 0 and 100, got {value}")
    return value


def require_positive(field: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(field, "must be an integer")
    if value < 1:
        raise ValidationError(field, f"must be at least 1, got {value}")
    return value


def require_scope(scope: Scope) -> Scope:
    if not isinstance(scope, Scope):
        raise ValidationError("scope", "must be a Scope")
    return scope
