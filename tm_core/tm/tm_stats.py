from __future__ import annotations

from pathlib import Path

from sqlalchemy.engine import Connection

from tm_core.tm.scope import Scope
from tm_core.tm.tm_store import TMStats, aggregate


def get_stats(
    *,
    db_path: Path | None = None,
    connection: Connection | None = None,
    scope: Scope,
) -> TMStats:
    return aggregate(db_path=db_path, connection=connection, scope=scope)
