from __future__ import annotations


class TMError(Exception):
    """Base class for translation memory errors."""


class ValidationError(TMError, ValueError):
    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class NotFoundError(TMError, LookupError):
    """Entry is missing or not owned by the caller.

    Both cases raise the same error so callers cannot probe for entries
    belonging to other scopes.
    """

    def __init__(self, entry_id: str) -> None:
        super().__init__(f"TM entry not found: {entry_id}")
        self.entry_id = entry_id


class StorageError(TMError, RuntimeError):
    """Failure reported by the persistence layer; the original is chained."""
