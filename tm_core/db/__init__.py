"""SQLite persistence for translation memory entries."""

from tm_core.db.migrations import migrate_to_latest
from tm_core.db.schema import initialize_database, open_connection

__all__ = ["initialize_database", "migrate_to_latest", "open_connection"]
