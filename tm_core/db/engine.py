from __future__ import annotations

from pathlib import Path

import structlog
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine

logger = structlog.get_logger(__name__)

# Milliseconds a writer waits on a locked database before SQLite gives up.
SQLITE_BUSY_TIMEOUT_MS = 5000

# Connection execution option: start the next transaction with BEGIN IMMEDIATE.
WRITE_TRANSACTION_OPTION = "tm_write_transaction"


def create_sqlite_engine(db_path: Path) -> Engine:
    db_path = Path(db_path).expanduser().resolve()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    db_url = f"sqlite+pysqlite:///{db_path.as_posix()}"
    engine = create_engine(db_url, future=True)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, _connection_record):  # type: ignore[no-untyped-def]
        # pysqlite's implicit BEGIN breaks SAVEPOINT; transactions are
        # emitted explicitly from the "begin" hook below instead.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS};")
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _emit_begin(connection):  # type: ignore[no-untyped-def]
        # A deferred transaction that reads before writing cannot wait for a
        # concurrent writer in WAL mode; write transactions take the lock first.
        if connection.get_execution_options().get(WRITE_TRANSACTION_OPTION):
            connection.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            connection.exec_driver_sql("BEGIN")

    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))

    logger.debug("sqlite engine ready", db_path=str(db_path))
    return engine
