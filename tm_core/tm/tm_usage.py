from __future__ import annotations

from pathlib import Path

import structlog
from sqlalchemy.engine import Connection

from tm_core.tm.tm_store import record_tm_use

logger = structlog.get_logger(__name__)


def accept_match(
    *,
    db_path: Path | None = None,
    connection: Connection | None = None,
    entry_id: str,
) -> None:
    """Record that a suggested entry was reused.

    Unknown entries are ignored so a stale suggestion never breaks the
    caller's translation flow.
    """

    if not record_tm_use(db_path=db_path, connection=connection, entry_id=entry_id):
        logger.debug("tm accept ignored, entry missing", entry_id=entry_id)
