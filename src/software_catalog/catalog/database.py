"""
SQLite engine and transaction handling for the catalog.

Every transaction is opened with BEGIN IMMEDIATE so that the write
lock is taken up front; two processes can never interleave a
read-increment-write of the version counter.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from software_catalog.catalog.models import Base
from software_catalog.catalog.versioning import CatalogVersionService
from software_catalog.logger import get_logger

MEMORY_DATABASE = ":memory:"


def create_catalog_engine(database_path: str | Path, *, echo: bool = False) -> Engine:
    """
    Create a SQLite engine configured for serialized catalog writes.

    Args:
        database_path: File path, or ":memory:" for a private in-memory catalog
        echo: Echo emitted SQL

    Returns:
        Engine: Configured SQLAlchemy engine
    """
    path = str(database_path)
    if path == MEMORY_DATABASE:
        engine = create_engine(
            "sqlite://",
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            f"sqlite:///{path}",
            echo=echo,
            connect_args={"timeout": 30, "check_same_thread": False},
        )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, _record: Any) -> None:
        # Hand transaction control to SQLAlchemy's "begin" event below
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(connection: Any) -> None:
        connection.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


class CatalogDatabase:
    """
    Owns the engine and session factory for one catalog file.

    Example:
        >>> db = CatalogDatabase("master_catalog.db")
        >>> db.init_schema()
        >>> with db.transaction() as session:
        ...     session.add(row)
    """

    def __init__(self, database_path: str | Path, *, echo: bool = False) -> None:
        self.database_path = str(database_path)
        self.engine = create_catalog_engine(database_path, echo=echo)
        self._session_factory = sessionmaker(self.engine, expire_on_commit=False)
        self._logger = get_logger(__name__, component="catalog_database")

    def init_schema(self) -> None:
        """Create missing tables and seed the version counter row."""
        Base.metadata.create_all(self.engine)
        with self.transaction() as session:
            counter = CatalogVersionService().ensure_initialized(session)
        self._logger.info(
            "Catalog ready",
            database=self.database_path,
            version=counter.current_version,
        )

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Session scoped to one transaction: commit on success, rollback on error."""
        session = self._session_factory()
        try:
            with session.begin():
                yield session
        finally:
            session.close()

    def dispose(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()
