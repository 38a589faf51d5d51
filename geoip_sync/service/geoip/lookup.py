"""MaxMind lookups on top of databases kept fresh by `DatabaseManager`.

Classes:
    GeoIPDatabase: Holds the reader of one database type and follows the
        manager's notifications.
    GeoIPLookup: Combines City, Country and ASN databases into one lookup result.
    GeoIPLookupResult: TypedDict for lookup results.
"""

from pathlib import Path
import threading
from typing import Any, Required, TypedDict

from geoip_sync.log import log
from geoip_sync.models.geoip import DatabaseType

import maxminddb

logger = log("GeoIP/Lookup")


class GeoIPLookupResult(TypedDict, total=False):
    """TypedDict for GeoIP lookup results.

    Attributes:
        ip: The queried IP address.
        country_iso: ISO country code (e.g., 'US', 'JP').
        country_name: Full country name in English.
        city_name: City name in English.
        latitude: Latitude coordinate as string.
        longitude: Longitude coordinate as string.
        time_zone: Timezone identifier (e.g., 'America/New_York').
        postal_code: Postal/ZIP code.
        asn: Autonomous System Number.
        organization: ASN organization name.
        database_expired: Set when a database went too long without an
            update check and its lookups were skipped.
    """

    ip: Required[str]
    country_iso: str
    country_name: str
    city_name: str
    latitude: str
    longitude: str
    time_zone: str
    postal_code: str
    asn: int | None
    organization: str
    database_expired: bool


def validate_database(path: Path, database_type: DatabaseType) -> bool:
    """Check that a file opens as a MaxMind database of the given type."""
    try:
        with maxminddb.open_database(str(path)) as reader:
            kind = reader.metadata().database_type
    except (OSError, ValueError, maxminddb.InvalidDatabaseError) as e:
        logger.warning(f"{path} is not a valid MaxMind database: {e}")
        return False
    if database_type.value not in kind:
        logger.warning(f"{path} holds a {kind} database, expected {database_type}")
        return False
    return True


def _as_mapping(value: Any) -> dict[str, Any]:
    """Convert a value to a dict, returning empty dict if not a dict."""
    return value if isinstance(value, dict) else {}


def _as_str(value: Any, default: str = "") -> str:
    """Convert a value to string with a default fallback."""
    if isinstance(value, str):
        return value
    if value is None:
        return default
    return str(value)


def _as_int(value: Any) -> int | None:
    return value if isinstance(value, int) else None


class GeoIPDatabase:
    """Reader for one database type, driven by a `DatabaseManager`.

    `on_artifact_ready` swaps the reader with a single assignment. The
    replaced reader is kept open until the next swap so lookups that
    already grabbed it can finish.
    """

    def __init__(self, database_type: DatabaseType):
        self.database_type = database_type
        self.path: Path | None = None
        self.expired = False
        self._reader: maxminddb.Reader | None = None
        self._retired: maxminddb.Reader | None = None
        self._swap_lock = threading.Lock()

    def on_artifact_ready(self, path: Path) -> None:
        reader = maxminddb.open_database(str(path))
        with self._swap_lock:
            stale, self._retired = self._retired, self._reader
            self._reader = reader
            self.path = path
            self.expired = False
        if stale is not None:
            stale.close()
        logger.info(f"Using {self.database_type} database {path}")

    def on_expired(self) -> None:
        self.expired = True
        logger.error(f"{self.database_type} database expired, lookups are disabled")

    @property
    def available(self) -> bool:
        return self._reader is not None and not self.expired

    def get(self, ip: str) -> dict[str, Any] | None:
        """Raw record for an IP, or None if unknown or unavailable."""
        reader = self._reader
        if reader is None or self.expired:
            return None
        data = reader.get(ip)
        return data if isinstance(data, dict) else None

    def close(self) -> None:
        """Close all readers and release resources."""
        with self._swap_lock:
            readers = [self._reader, self._retired]
            self._reader = self._retired = None
        for reader in readers:
            if reader is not None:
                reader.close()


class GeoIPLookup:
    """City, Country and ASN lookups merged into one result.

    Country fields come from the City database, or from the Country
    database when no City database is loaded.
    """

    def __init__(self, databases: dict[DatabaseType, GeoIPDatabase] | None = None):
        self.databases = {database_type: GeoIPDatabase(database_type) for database_type in DatabaseType}
        self.databases.update(databases or {})

    def database_for(self, database_type: DatabaseType) -> GeoIPDatabase:
        return self.databases[database_type]

    @property
    def expired(self) -> bool:
        return any(database.expired for database in self.databases.values())

    def lookup(self, ip: str) -> GeoIPLookupResult:
        """Look up geolocation and ASN information for an IP address.

        Args:
            ip: The IP address to look up.

        Returns:
            GeoIPLookupResult containing location and ASN information.
        """
        res: GeoIPLookupResult = {"ip": ip}
        if self.expired:
            res["database_expired"] = True

        city_db = self.databases[DatabaseType.CITY]
        data = city_db.get(ip) if city_db.available else self.databases[DatabaseType.COUNTRY].get(ip)
        if data is not None:
            country = _as_mapping(data.get("country"))
            res["country_iso"] = _as_str(country.get("iso_code"))
            country_names = _as_mapping(country.get("names"))
            res["country_name"] = _as_str(country_names.get("en"))

        if data is not None and "city" in data:
            city = _as_mapping(data.get("city"))
            city_names = _as_mapping(city.get("names"))
            res["city_name"] = _as_str(city_names.get("en"))

            location = _as_mapping(data.get("location"))
            latitude = location.get("latitude")
            longitude = location.get("longitude")
            res["latitude"] = str(latitude) if latitude is not None else ""
            res["longitude"] = str(longitude) if longitude is not None else ""
            res["time_zone"] = _as_str(location.get("time_zone"))

            postal = _as_mapping(data.get("postal"))
            postal_code = postal.get("code")
            if postal_code is not None:
                res["postal_code"] = _as_str(postal_code)

        data = self.databases[DatabaseType.ASN].get(ip)
        if data is not None:
            res["asn"] = _as_int(data.get("autonomous_system_number"))
            res["organization"] = _as_str(data.get("autonomous_system_organization"), default="")
        return res

    def close(self) -> None:
        for database in self.databases.values():
            database.close()
