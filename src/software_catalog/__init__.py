"""
Software Catalog.

Deduplicated, versioned reference catalog of software and games,
enriched from external metadata providers in priority order.
"""

from software_catalog.config import Settings, get_settings
from software_catalog.logger import get_logger, setup_logging

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
    "__version__",
]
