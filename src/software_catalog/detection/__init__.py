"""
Installed-game detection boundary.

Validates detector records and syncs them into the catalog.
"""

from software_catalog.detection.contracts import (
    GameStoreDetector,
    InstalledGameRecord,
    invalid_reason,
    is_placeholder_name,
    is_valid_record,
)
from software_catalog.detection.sync import DetectionSync, SyncResult

__all__ = [
    "DetectionSync",
    "GameStoreDetector",
    "InstalledGameRecord",
    "SyncResult",
    "invalid_reason",
    "is_placeholder_name",
    "is_valid_record",
]
