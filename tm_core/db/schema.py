from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from tm_core.db.engine import WRITE_TRANSACTION_OPTION, create_sqlite_engine
from tm_core.db.migrations import migrate_to_latest
from tm_core.errors import StorageError


def initialize_database(db_path: Path) -> Engine:
    engine = create_sqlite_engine(db_path)
    migrate_to_latest(engine)
    return engine


@contextmanager
def database_engine(db_path: Path) -> Iterator[Engine]:
    """Yield a migrated engine for ``db_path`` and dispose it afterwards."""

    try:
        engine = initialize_database(Path(db_path))
        try:
            yield engine
        finally:
            engine.dispose()
    except SQLAlchemyError as exc:
        raise StorageError(str(exc)) from exc


@contextmanager
def open_connection(
    *,
    db_path: Path | None = None,
    connection: Connection | None = None,
    engine: Engine | None = None,
    write: bool = False,
) -> Iterator[Connection]:
    """Yield ``connection`` as-is, or a transactional connection.

    A caller-supplied connection is never committed here; the caller owns its
    transaction. Otherwise a transaction is opened on ``engine``, or on a
    short-lived engine for ``db_path``, and committed on success.
    ``write=True`` takes the database write lock when the transaction starts,
    so concurrent writers queue on the busy timeout instead of failing.
    Persistence failures surface as :class:`StorageError`.
    """

    if connection is None and engine is None and db_path is None:
        raise ValueError("db_path is required when connection is not provided")

    if connection is None and engine is None:
        with database_engine(Path(db_path)) as local_engine:
            with open_connection(engine=local_engine, write=write) as local_connection:
                yield local_connection
        return

    try:
        if connection is not None:
            yield connection
            return

        with engine.connect() as local_connection:
            if write:
                local_connection.execution_options(**{WRITE_TRANSACTION_OPTION: True})
            with local_connection.begin():
                yield local_connection
    except SQLAlchemyError as exc:
        raise StorageError(str(exc)) from exc
