"""
Typed views of catalog rows.

ORM rows never leave the catalog package; callers receive these
Pydantic snapshots instead. The opaque metadata blob is parsed here,
once, into EntryMetadata.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from software_catalog.catalog.models import ChangeLog, InstalledSoftware, SoftwareReference


class SoftwareType(str, Enum):
    """High-level classification of a catalog entry."""

    GAME = "Game"
    APPLICATION = "Application"
    TOOL = "Tool"
    UTILITY = "Utility"
    UNKNOWN = "Unknown"


class ChangeAction(str, Enum):
    """Audit actions recorded in the change log."""

    CREATED = "Created"
    UPDATED = "Updated"
    DELETED = "Deleted"


class EntryMetadata(BaseModel):
    """Structured extras stored in the metadata_json column."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    rating: float | None = None
    background_image: str | None = Field(default=None, alias="backgroundImage")
    website_url: str | None = Field(default=None, alias="websiteUrl")
    latest_version: str | None = None
    package_id: str | None = None
    extras: dict[str, str] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        """True when no field carries a value."""
        return not self.model_dump(exclude_none=True, exclude_defaults=True)

    def to_json(self) -> str | None:
        """Canonical JSON text (sorted keys), or None when empty."""
        if self.is_empty():
            return None
        data = self.model_dump(mode="json", exclude_none=True, exclude_defaults=True)
        return json.dumps(data, sort_keys=True)

    @classmethod
    def from_json(cls, text: str | None) -> "EntryMetadata | None":
        """Parse stored JSON; malformed blobs read as absent."""
        if not text:
            return None
        try:
            return cls.model_validate_json(text)
        except PydanticValidationError:
            return None


class ReferenceEntry(BaseModel):
    """Snapshot of one catalog entry."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    external_id: str
    source: str
    publisher: str | None = None
    category: str = "Other"
    type: SoftwareType = SoftwareType.UNKNOWN
    description: str | None = None
    genres: str | None = None
    developers: str | None = None
    release_date: datetime | None = None
    cover_image_url: str | None = None
    metadata: EntryMetadata | None = None
    last_enriched_date: datetime | None = None
    metadata_source: str | None = None
    last_enrichment_attempt: datetime | None = None
    created_at: datetime
    updated_at: datetime
    version: int

    @property
    def is_enriched(self) -> bool:
        """Whether a provider has ever filled this entry."""
        return self.last_enriched_date is not None

    @classmethod
    def from_row(cls, row: SoftwareReference) -> "ReferenceEntry":
        """Build a snapshot from an ORM row."""
        try:
            entry_type = SoftwareType(row.type)
        except ValueError:
            entry_type = SoftwareType.UNKNOWN

        return cls(
            id=row.id,
            name=row.name,
            external_id=row.external_id,
            source=row.source,
            publisher=row.publisher,
            category=row.category,
            type=entry_type,
            description=row.description,
            genres=row.genres,
            developers=row.developers,
            release_date=row.release_date,
            cover_image_url=row.cover_image_url,
            metadata=EntryMetadata.from_json(row.metadata_json),
            last_enriched_date=row.last_enriched_date,
            metadata_source=row.metadata_source,
            last_enrichment_attempt=row.last_enrichment_attempt,
            created_at=row.created_at,
            updated_at=row.updated_at,
            version=row.version,
        )


class ChangeLogRecord(BaseModel):
    """Snapshot of one audit row."""

    id: int
    entity_type: str
    entity_id: str
    action: ChangeAction
    changed_at: datetime
    changed_by: str | None = None
    changes: dict[str, Any] = Field(default_factory=dict)
    catalog_version: int

    @classmethod
    def from_row(cls, row: ChangeLog) -> "ChangeLogRecord":
        return cls(
            id=row.id,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            action=ChangeAction(row.action),
            changed_at=row.changed_at,
            changed_by=row.changed_by,
            changes=json.loads(row.changes) if row.changes else {},
            catalog_version=row.catalog_version,
        )


class InstalledRecord(BaseModel):
    """Snapshot of a machine-local installation row."""

    id: int
    software_ref_id: int
    install_location: str | None = None
    executable_path: str | None = None
    icon_path: str | None = None
    version: str | None = None
    install_date: datetime | None = None
    size_bytes: int | None = None
    last_detected: datetime

    @classmethod
    def from_row(cls, row: InstalledSoftware) -> "InstalledRecord":
        return cls(
            id=row.id,
            software_ref_id=row.software_ref_id,
            install_location=row.install_location,
            executable_path=row.executable_path,
            icon_path=row.icon_path,
            version=row.version,
            install_date=row.install_date,
            size_bytes=row.size_bytes,
            last_detected=row.last_detected,
        )


@dataclass(frozen=True)
class UpsertResult:
    """
    Outcome of CatalogStore.upsert.

    entry is None only when the write failed; error then holds the cause.
    changed is False for no-op writes (nothing committed).
    """

    entry: ReferenceEntry | None
    created: bool = False
    changed: bool = False
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.entry is not None

    def __iter__(self):  # type: ignore[no-untyped-def]
        # Allows `entry, created = store.upsert(...)`
        yield self.entry
        yield self.created
