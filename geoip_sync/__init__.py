"""Keeps GeoLite2 databases in sync with a remote source under an aging policy."""

from __future__ import annotations

from .service.geoip import DatabaseManager, DatabaseObserver, GeoIPDatabase, GeoIPLookup

__all__ = [
    "DatabaseManager",
    "DatabaseObserver",
    "GeoIPDatabase",
    "GeoIPLookup",
]
