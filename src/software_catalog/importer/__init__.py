"""
CSV batch import into the reference catalog.
"""

from software_catalog.importer.csv_import import (
    CatalogImporter,
    ImportResult,
    determine_category,
    generate_id,
)

__all__ = [
    "CatalogImporter",
    "ImportResult",
    "determine_category",
    "generate_id",
]
