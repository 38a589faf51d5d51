"""Exceptions raised by the GeoIP database lifecycle services.

Only `DatabaseNotFoundError` escapes the manager at start-up and
`MetadataWriteError` escapes a single cycle; everything else is caught at
the cycle boundary and folded into the aging policy.
"""


class GeoIPSyncError(Exception):
    """Base class for all errors in this package."""


class CheckFailedError(GeoIPSyncError):
    """The update endpoint could not be reached or answered with garbage."""


class DownloadFailedError(CheckFailedError):
    """Downloading a database kept failing after all retries."""


class DatabaseIntegrityError(GeoIPSyncError):
    """The downloaded file does not match the announced md5."""


class DatabaseValidationError(GeoIPSyncError):
    """The decompressed file is not a usable database."""


class MetadataWriteError(GeoIPSyncError, OSError):
    """The metadata file could not be written."""


class DatabaseExpiredError(GeoIPSyncError):
    """The database went too long without a successful update check."""

    def __init__(self, days: int):
        self.days = days
        super().__init__(
            f"The GeoIP database has been used for {days} days without an update. "
            "Lookups are disabled until a successful update check. Please check the network "
            "settings and allow access to the update endpoint, or configure a static database path."
        )


class DatabaseNotFoundError(GeoIPSyncError):
    """No usable database file exists for static mode."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"You must configure a GeoIP database path (looked for '{path}')")
