"""
Reference catalog storage.

Deduplicated, versioned catalog of software and games backed by SQLite,
with a global version counter and an append-only change log.
"""

from software_catalog.catalog.contracts import (
    ChangeAction,
    ChangeLogRecord,
    EntryMetadata,
    InstalledRecord,
    ReferenceEntry,
    SoftwareType,
    UpsertResult,
)
from software_catalog.catalog.database import CatalogDatabase
from software_catalog.catalog.manager import CatalogManager, EnrichmentState
from software_catalog.catalog.store import (
    CatalogStore,
    InvalidEntryError,
    StorageConflict,
    StorageError,
    StorageFailure,
)
from software_catalog.catalog.versioning import CatalogVersionService

__all__ = [
    # Storage
    "CatalogDatabase",
    "CatalogStore",
    "CatalogVersionService",
    # Contracts
    "ChangeAction",
    "ChangeLogRecord",
    "EntryMetadata",
    "InstalledRecord",
    "ReferenceEntry",
    "SoftwareType",
    "UpsertResult",
    # Scheduling
    "CatalogManager",
    "EnrichmentState",
    # Errors
    "InvalidEntryError",
    "StorageConflict",
    "StorageError",
    "StorageFailure",
]
