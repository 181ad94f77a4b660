"""
Global catalog version counter.

The counter lives in a single row (id 1) of catalog_version. Every
committed mutation of the catalog takes exactly one value from it; the
same value is stamped on the entry and on its audit row. Callers must
hold an open write transaction, see CatalogDatabase.transaction().
"""

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from software_catalog.catalog.models import (
    COUNTER_ROW_ID,
    INITIAL_CATALOG_VERSION,
    CatalogVersion,
    SoftwareReference,
    utc_now,
)


class CatalogVersionService:
    """Reads and advances the catalog version counter inside a caller's transaction."""

    def ensure_initialized(self, session: Session) -> CatalogVersion:
        """Return the counter row, creating it at the initial version if missing."""
        row = session.get(CatalogVersion, COUNTER_ROW_ID)
        if row is None:
            row = CatalogVersion(
                id=COUNTER_ROW_ID,
                current_version=INITIAL_CATALOG_VERSION,
                last_updated=utc_now(),
                total_software=0,
                total_games=0,
                description="Initial catalog",
            )
            session.add(row)
            session.flush()
        return row

    def next_version(self, session: Session) -> int:
        """
        Increment the counter and return the new value.

        The increment is flushed immediately so that the UPDATE happens
        under the transaction's write lock, before any row is stamped.
        """
        row = self.ensure_initialized(session)
        row.current_version += 1
        row.last_updated = utc_now()
        session.flush()
        return row.current_version

    def current(self, session: Session) -> int:
        """Current counter value without incrementing."""
        return self.ensure_initialized(session).current_version

    def refresh_totals(self, session: Session, description: str | None = None) -> CatalogVersion:
        """Recount entries and games; does not consume a version."""
        row = self.ensure_initialized(session)
        row.total_software = session.scalar(select(func.count(SoftwareReference.id))) or 0
        row.total_games = (
            session.scalar(
                select(func.count(SoftwareReference.id)).where(SoftwareReference.type == "Game")
            )
            or 0
        )
        row.last_updated = utc_now()
        if description is not None:
            row.description = description
        session.flush()
        return row
