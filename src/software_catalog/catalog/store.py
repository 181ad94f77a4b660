"""
Catalog Store: the only writer of reference entries.

Every committed mutation takes one value from the global version
counter, stamps it on the entry and appends a paired change_log row,
all inside one write transaction. Writes are serialized by a process
lock plus SQLite's BEGIN IMMEDIATE.
"""

import json
import threading
from collections.abc import Mapping
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

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
from software_catalog.catalog.models import (
    ChangeLog,
    InstalledSoftware,
    SoftwareReference,
    to_storage_datetime,
    utc_now,
)
from software_catalog.catalog.versioning import CatalogVersionService
from software_catalog.logger import get_logger

ENTITY_TYPE = "SoftwareReference"
MAX_CONFLICT_RETRIES = 3

# Fields a caller may set through upsert; "metadata" maps to metadata_json
ENTRY_FIELDS = frozenset(
    {
        "name",
        "publisher",
        "category",
        "type",
        "description",
        "genres",
        "developers",
        "release_date",
        "cover_image_url",
        "metadata",
        "last_enriched_date",
        "metadata_source",
        "last_enrichment_attempt",
    }
)
# None for these means "leave unchanged"
NON_NULLABLE_FIELDS = frozenset({"name", "category", "type"})

INSTALLED_FIELDS = frozenset(
    {
        "install_location",
        "executable_path",
        "icon_path",
        "version",
        "install_date",
        "size_bytes",
        "last_detected",
    }
)


class StorageError(Exception):
    """Base exception for catalog persistence errors."""

    def __init__(
        self,
        message: str,
        source: str | None = None,
        external_id: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.source = source
        self.external_id = external_id
        self.original_error = original_error
        self.timestamp = utc_now()

    def __str__(self) -> str:
        parts = [self.message]
        if self.source or self.external_id:
            parts.append(f"key={self.source}:{self.external_id}")
        if self.original_error:
            parts.append(f"cause={type(self.original_error).__name__}")
        return " | ".join(parts)


class StorageConflict(StorageError):
    """Duplicate-key race on (source, external_id)."""


class StorageFailure(StorageError):
    """Unrecoverable persistence error; the transaction was rolled back."""


class InvalidEntryError(StorageError):
    """The entry key or fields were rejected before anything was written."""


def _normalize_value(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return to_storage_datetime(value)
    return value


def _normalize_metadata(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        parsed = EntryMetadata.from_json(value)
        return parsed.to_json() if parsed else None
    if not isinstance(value, EntryMetadata):
        value = EntryMetadata.model_validate(value)
    return value.to_json()


def normalize_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    """
    Normalize caller-supplied entry fields to their stored representation.

    Strings are stripped and blank strings become None, enums collapse to
    their value, datetimes become naive UTC and metadata becomes canonical
    JSON. None on a non-nullable field drops it from the candidate.

    Raises:
        ValueError: On field names that are not settable entry fields
    """
    unknown = set(fields) - ENTRY_FIELDS
    if unknown:
        raise ValueError(f"Unknown entry fields: {', '.join(sorted(unknown))}")

    candidate: dict[str, Any] = {}
    for field, raw in fields.items():
        if field == "metadata":
            candidate["metadata_json"] = _normalize_metadata(raw)
            continue
        value = _normalize_value(raw)
        if value is None and field in NON_NULLABLE_FIELDS:
            continue
        if field == "type":
            value = SoftwareType(value).value
        candidate[field] = value
    return candidate


def _json_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _diff(row: SoftwareReference, candidate: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    changes: dict[str, dict[str, Any]] = {}
    for field, new in candidate.items():
        old = getattr(row, field)
        if old != new:
            changes[field] = {"old": _json_value(old), "new": _json_value(new)}
    return changes


def _is_unique_violation(error: IntegrityError) -> bool:
    return "UNIQUE" in str(error.orig).upper()


class CatalogStore:
    """
    Deduplicated, versioned reference catalog.

    Example:
        >>> store = CatalogStore.open("master_catalog.db")
        >>> result = store.upsert("Steam", "440", {"name": "Team Fortress 2"})
        >>> entry, created = result
    """

    def __init__(self, database: CatalogDatabase) -> None:
        self._db = database
        self._versions = CatalogVersionService()
        self._write_lock = threading.RLock()
        self._logger = get_logger(__name__, component="catalog_store")

    @classmethod
    def open(cls, database_path: str | Path, *, echo: bool = False) -> "CatalogStore":
        """Open (creating if needed) the catalog at database_path."""
        database = CatalogDatabase(database_path, echo=echo)
        database.init_schema()
        return cls(database)

    @property
    def database(self) -> CatalogDatabase:
        return self._db

    def close(self) -> None:
        self._db.dispose()

    # =========================================================================
    # Writes
    # =========================================================================

    def upsert(
        self,
        source: str,
        external_id: str,
        fields: Mapping[str, Any],
        *,
        changed_by: str | None = None,
    ) -> UpsertResult:
        """
        Create or update the entry identified by (source, external_id).

        Only the provided fields are compared and written. A write whose
        fields all equal the stored values commits nothing and returns
        changed=False.

        Nothing escapes: blank keys, unknown fields and invalid values come
        back as InvalidEntryError, storage errors as StorageFailure or
        StorageConflict, each in UpsertResult.error with nothing written.
        """
        source = (source or "").strip()
        external_id = (external_id or "").strip()
        if not source or not external_id:
            return self._rejected(
                InvalidEntryError(
                    "source and external_id are required", source=source, external_id=external_id
                )
            )
        try:
            candidate = normalize_fields(fields)
        except ValueError as e:
            return self._rejected(
                InvalidEntryError(
                    "Invalid entry fields", source=source, external_id=external_id, original_error=e
                )
            )

        for attempt in range(1, MAX_CONFLICT_RETRIES + 1):
            try:
                with self._write_lock, self._db.transaction() as session:
                    result = self._upsert_in_session(
                        session, source, external_id, candidate, changed_by
                    )
                if result.changed:
                    self._logger.debug(
                        "Entry written",
                        source=source,
                        external_id=external_id,
                        created=result.created,
                        version=result.entry.version if result.entry else None,
                    )
                return result
            except InvalidEntryError as e:
                return self._rejected(e)
            except IntegrityError as e:
                if not _is_unique_violation(e):
                    return self._failure(source, external_id, e)
                # Another writer created the key first; the retry takes the update path
                self._logger.warning(
                    "Duplicate key on create, retrying as update",
                    source=source,
                    external_id=external_id,
                    attempt=attempt,
                )
            except SQLAlchemyError as e:
                return self._failure(source, external_id, e)

        conflict = StorageConflict(
            f"Conflict not resolved after {MAX_CONFLICT_RETRIES} attempts",
            source=source,
            external_id=external_id,
        )
        self._logger.error("Upsert conflict unresolved", error=str(conflict))
        return UpsertResult(entry=None, error=conflict)

    def _rejected(self, error: InvalidEntryError) -> UpsertResult:
        self._logger.warning("Entry rejected", error=str(error))
        return UpsertResult(entry=None, error=error)

    def _failure(self, source: str, external_id: str, error: Exception) -> UpsertResult:
        failure = StorageFailure(
            "Catalog write failed",
            source=source,
            external_id=external_id,
            original_error=error,
        )
        self._logger.error("Upsert failed", error=str(failure), detail=str(error))
        return UpsertResult(entry=None, error=failure)

    def _upsert_in_session(
        self,
        session: Session,
        source: str,
        external_id: str,
        candidate: dict[str, Any],
        changed_by: str | None,
    ) -> UpsertResult:
        row = session.scalar(
            select(SoftwareReference).where(
                SoftwareReference.source == source,
                SoftwareReference.external_id == external_id,
            )
        )
        now = utc_now()

        if row is None:
            if not candidate.get("name"):
                raise InvalidEntryError(
                    "A new entry requires a name", source=source, external_id=external_id
                )
            version = self._versions.next_version(session)
            values = {"category": "Other", "type": SoftwareType.UNKNOWN.value, **candidate}
            row = SoftwareReference(
                source=source,
                external_id=external_id,
                created_at=now,
                updated_at=now,
                version=version,
                **values,
            )
            session.add(row)
            session.flush()

            diff = {
                field: {"old": None, "new": _json_value(value)}
                for field, value in values.items()
                if value is not None
            }
            self.record_change(
                session, ENTITY_TYPE, str(row.id), ChangeAction.CREATED, diff, version, changed_by
            )
            return UpsertResult(entry=ReferenceEntry.from_row(row), created=True, changed=True)

        diff = _diff(row, candidate)
        if not diff:
            return UpsertResult(entry=ReferenceEntry.from_row(row))

        version = self._versions.next_version(session)
        for field in diff:
            setattr(row, field, candidate[field])
        row.updated_at = now
        row.version = version
        self.record_change(
            session, ENTITY_TYPE, str(row.id), ChangeAction.UPDATED, diff, version, changed_by
        )
        session.flush()
        return UpsertResult(entry=ReferenceEntry.from_row(row), changed=True)

    def next_version(self, session: Session) -> int:
        """Consume the next counter value inside the caller's transaction."""
        return self._versions.next_version(session)

    def record_change(
        self,
        session: Session,
        entity_type: str,
        entity_id: str,
        action: ChangeAction,
        diff: Mapping[str, Any],
        version: int,
        changed_by: str | None = None,
    ) -> ChangeLog:
        """Append an audit row inside the caller's transaction."""
        row = ChangeLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=ChangeAction(action).value,
            changed_at=utc_now(),
            changed_by=changed_by,
            changes=json.dumps(diff, sort_keys=True, default=str),
            catalog_version=version,
        )
        session.add(row)
        return row

    def delete(self, source: str, external_id: str, *, changed_by: str | None = None) -> bool:
        """
        Remove an entry (and its installed record).

        Returns:
            bool: False when no such entry exists

        Raises:
            StorageFailure: If the transaction could not be committed
        """
        try:
            with self._write_lock, self._db.transaction() as session:
                row = session.scalar(
                    select(SoftwareReference).where(
                        SoftwareReference.source == source,
                        SoftwareReference.external_id == external_id,
                    )
                )
                if row is None:
                    return False
                version = self._versions.next_version(session)
                self.record_change(
                    session,
                    ENTITY_TYPE,
                    str(row.id),
                    ChangeAction.DELETED,
                    {"name": {"old": row.name, "new": None}},
                    version,
                    changed_by,
                )
                session.delete(row)
        except SQLAlchemyError as e:
            raise StorageFailure(
                "Catalog delete failed", source=source, external_id=external_id, original_error=e
            ) from e

        self._logger.info("Entry deleted", source=source, external_id=external_id)
        return True

    def upsert_installed(self, entry_id: int, record_fields: Mapping[str, Any]) -> InstalledRecord:
        """
        Create or update the machine-local installed record of an entry.

        Installed data is not versioned and writes no audit rows.

        Raises:
            ValueError: On unknown field names
            StorageFailure: If the entry does not exist or the write fails
        """
        unknown = set(record_fields) - INSTALLED_FIELDS
        if unknown:
            raise ValueError(f"Unknown installed fields: {', '.join(sorted(unknown))}")
        values = {k: _normalize_value(v) for k, v in record_fields.items()}
        now = utc_now()
        values.setdefault("last_detected", now)
        if values["last_detected"] is None:
            values["last_detected"] = now

        try:
            with self._write_lock, self._db.transaction() as session:
                if session.get(SoftwareReference, entry_id) is None:
                    raise StorageFailure(f"No catalog entry with id {entry_id}")
                row = session.scalar(
                    select(InstalledSoftware).where(InstalledSoftware.software_ref_id == entry_id)
                )
                if row is None:
                    row = InstalledSoftware(
                        software_ref_id=entry_id, created_at=now, updated_at=now, **values
                    )
                    session.add(row)
                else:
                    for field, value in values.items():
                        setattr(row, field, value)
                    row.updated_at = now
                session.flush()
                return InstalledRecord.from_row(row)
        except SQLAlchemyError as e:
            raise StorageFailure("Installed record write failed", original_error=e) from e

    def refresh_totals(self, description: str | None = None) -> tuple[int, int]:
        """Recount totals on the counter row. Returns (total_software, total_games)."""
        with self._write_lock, self._db.transaction() as session:
            row = self._versions.refresh_totals(session, description)
            return row.total_software, row.total_games

    # =========================================================================
    # Reads
    # =========================================================================

    def current_version(self) -> int:
        with self._db.transaction() as session:
            return self._versions.current(session)

    def get_by_id(self, entry_id: int) -> ReferenceEntry | None:
        with self._db.transaction() as session:
            row = session.get(SoftwareReference, entry_id)
            return ReferenceEntry.from_row(row) if row else None

    def find_by_external_id(self, source: str, external_id: str) -> ReferenceEntry | None:
        with self._db.transaction() as session:
            row = session.scalar(
                select(SoftwareReference).where(
                    SoftwareReference.source == source,
                    SoftwareReference.external_id == external_id,
                )
            )
            return ReferenceEntry.from_row(row) if row else None

    def find_by_name(self, name: str, limit: int = 50) -> list[ReferenceEntry]:
        """Case-insensitive substring search on entry names."""
        needle = name.strip()
        if not needle:
            return []
        with self._db.transaction() as session:
            rows = session.scalars(
                select(SoftwareReference)
                .where(SoftwareReference.name.ilike(f"%{needle}%"))
                .order_by(SoftwareReference.name)
                .limit(limit)
            )
            return [ReferenceEntry.from_row(r) for r in rows]

    def get_all_entries(self) -> list[ReferenceEntry]:
        with self._db.transaction() as session:
            rows = session.scalars(
                select(SoftwareReference).order_by(SoftwareReference.name, SoftwareReference.id)
            )
            return [ReferenceEntry.from_row(r) for r in rows]

    def get_by_type(self, entry_type: SoftwareType | str) -> list[ReferenceEntry]:
        value = SoftwareType(entry_type).value
        with self._db.transaction() as session:
            rows = session.scalars(
                select(SoftwareReference)
                .where(SoftwareReference.type == value)
                .order_by(SoftwareReference.name)
            )
            return [ReferenceEntry.from_row(r) for r in rows]

    def get_unenriched_entries(
        self, max_age_days: int = 30, max_results: int = 100
    ) -> list[ReferenceEntry]:
        """
        Entries due for enrichment.

        Selects entries never enriched or enriched more than max_age_days
        ago, excluding those already attempted today. Never-enriched
        entries come first, then the stalest.
        """
        now = utc_now()
        cutoff = now - timedelta(days=max_age_days)
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)

        with self._db.transaction() as session:
            rows = session.scalars(
                select(SoftwareReference)
                .where(
                    or_(
                        SoftwareReference.last_enriched_date.is_(None),
                        SoftwareReference.last_enriched_date < cutoff,
                    ),
                    or_(
                        SoftwareReference.last_enrichment_attempt.is_(None),
                        SoftwareReference.last_enrichment_attempt < start_of_day,
                    ),
                )
                .order_by(
                    SoftwareReference.last_enriched_date.asc().nulls_first(),
                    SoftwareReference.id,
                )
                .limit(max_results)
            )
            return [ReferenceEntry.from_row(r) for r in rows]

    def get_change_log(self, entity_id: str | int | None = None) -> list[ChangeLogRecord]:
        """Audit rows in commit order, optionally for one entry id."""
        query = select(ChangeLog).order_by(ChangeLog.catalog_version, ChangeLog.id)
        if entity_id is not None:
            query = query.where(
                ChangeLog.entity_type == ENTITY_TYPE, ChangeLog.entity_id == str(entity_id)
            )
        with self._db.transaction() as session:
            return [ChangeLogRecord.from_row(r) for r in session.scalars(query)]

    def get_installed(self, entry_id: int) -> InstalledRecord | None:
        with self._db.transaction() as session:
            row = session.scalar(
                select(InstalledSoftware).where(InstalledSoftware.software_ref_id == entry_id)
            )
            return InstalledRecord.from_row(row) if row else None
