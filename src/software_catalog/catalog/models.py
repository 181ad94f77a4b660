"""
SQLAlchemy ORM models for the reference catalog.

Tables:
    software_ref        one row per (source, external_id)
    catalog_version     single-row global version counter (id = 1)
    change_log          append-only audit trail, one row per mutation
    installed_software  machine-local install data, FK to software_ref

All datetimes are stored as naive UTC; SQLite has no timezone type.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

COUNTER_ROW_ID = 1
INITIAL_CATALOG_VERSION = 1


def utc_now() -> datetime:
    """Current time as naive UTC, the storage representation."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_storage_datetime(value: datetime | None) -> datetime | None:
    """Convert an aware datetime to naive UTC; naive values are taken as UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Declarative base for catalog tables."""


class SoftwareReference(Base):
    """Canonical catalog row for one piece of software or game on one source platform."""

    __tablename__ = "software_ref"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    external_id: Mapped[str] = mapped_column(String(200), nullable=False)
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    publisher: Mapped[str | None] = mapped_column(String(500))
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="Other")
    type: Mapped[str] = mapped_column(String(50), nullable=False, default="Unknown")

    # Enriched metadata
    description: Mapped[str | None] = mapped_column(Text)
    genres: Mapped[str | None] = mapped_column(String(1000))
    developers: Mapped[str | None] = mapped_column(String(1000))
    release_date: Mapped[datetime | None] = mapped_column(DateTime)
    cover_image_url: Mapped[str | None] = mapped_column(String(500))
    metadata_json: Mapped[str | None] = mapped_column(Text)

    # Enrichment tracking
    last_enriched_date: Mapped[datetime | None] = mapped_column(DateTime)
    metadata_source: Mapped[str | None] = mapped_column(String(100))
    last_enrichment_attempt: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    installations: Mapped[list["InstalledSoftware"]] = relationship(
        back_populates="reference",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("source", "external_id", name="IX_SoftwareRef_Source_ExternalId"),
        Index("IX_SoftwareRef_Name", "name"),
        Index("IX_SoftwareRef_Category", "category"),
        Index("IX_SoftwareRef_LastEnrichedDate", "last_enriched_date"),
    )

    def __repr__(self) -> str:
        return f"<SoftwareReference {self.id} {self.source}:{self.external_id} v{self.version}>"


class CatalogVersion(Base):
    """Global catalog version counter. Exactly one row, id fixed to 1."""

    __tablename__ = "catalog_version"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    current_version: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    total_software: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_games: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[str | None] = mapped_column(String(1000))


class ChangeLog(Base):
    """Append-only audit record for one committed catalog mutation."""

    __tablename__ = "change_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(200), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    changed_by: Mapped[str | None] = mapped_column(String(200))
    changes: Mapped[str | None] = mapped_column(Text)
    catalog_version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("IX_ChangeLog_ChangedAt", "changed_at"),
        Index("IX_ChangeLog_Entity", "entity_type", "entity_id"),
    )


class InstalledSoftware(Base):
    """Machine-local installation data for a catalog entry."""

    __tablename__ = "installed_software"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    software_ref_id: Mapped[int] = mapped_column(
        ForeignKey("software_ref.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    install_location: Mapped[str | None] = mapped_column(String(1000))
    executable_path: Mapped[str | None] = mapped_column(String(1000))
    icon_path: Mapped[str | None] = mapped_column(String(1000))
    version: Mapped[str | None] = mapped_column(String(100))
    install_date: Mapped[datetime | None] = mapped_column(DateTime)
    size_bytes: Mapped[int | None] = mapped_column(BigInteger)
    last_detected: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    reference: Mapped[SoftwareReference] = relationship(back_populates="installations")
