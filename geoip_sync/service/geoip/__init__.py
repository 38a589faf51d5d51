"""GeoIP database lifecycle services."""

from __future__ import annotations

from .checker import VersionChecker, load_installation_id
from .cleanup import sweep
from .installer import DatabaseInstaller
from .lookup import GeoIPDatabase, GeoIPLookup, GeoIPLookupResult, validate_database
from .manager import DatabaseManager, DatabaseObserver
from .metadata import METADATA_FILENAME, MetadataStore
from .policy import EXPIRY_DAYS, WARNING_DAYS, classify

__all__ = [
    "EXPIRY_DAYS",
    "METADATA_FILENAME",
    "WARNING_DAYS",
    "DatabaseInstaller",
    "DatabaseManager",
    "DatabaseObserver",
    "GeoIPDatabase",
    "GeoIPLookup",
    "GeoIPLookupResult",
    "MetadataStore",
    "VersionChecker",
    "classify",
    "load_installation_id",
    "sweep",
    "validate_database",
]
