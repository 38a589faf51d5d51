"""Data types shared by the GeoIP database lifecycle services."""

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Final

from pydantic import BaseModel, ConfigDict, Field


class DatabaseType(StrEnum):
    CITY = "City"
    ASN = "ASN"
    COUNTRY = "Country"


@dataclass(frozen=True)
class DatabaseTypeConfig:
    """Per-type settings.

    Attributes:
        default_filename: File shipped with the application and never removed by cleanup.
        name_match: Substring identifying the type in remote names and on-disk filenames.
    """

    default_filename: str
    name_match: str

    def matches(self, name: str) -> bool:
        return self.name_match in name


DATABASE_TYPES: Final[dict[DatabaseType, DatabaseTypeConfig]] = {
    DatabaseType.CITY: DatabaseTypeConfig("GeoLite2-City.mmdb", "City"),
    DatabaseType.ASN: DatabaseTypeConfig("GeoLite2-ASN.mmdb", "ASN"),
    DatabaseType.COUNTRY: DatabaseTypeConfig("GeoLite2-Country.mmdb", "Country"),
}

DEFAULT_DATABASE_FILENAMES: Final[frozenset[str]] = frozenset(
    config.default_filename for config in DATABASE_TYPES.values()
)


class ManagerMode(StrEnum):
    STATIC = "static"
    MANAGED = "managed"


class AgeStatus(StrEnum):
    HEALTHY = "healthy"
    WARNING = "warning"
    EXPIRED = "expired"


class DatabaseMetadata(BaseModel):
    """One row of the metadata file.

    Columns are written in this order:
    `database_type, updated_at, remote_md5, installed_md5, filename`.

    `remote_md5` is the hash announced by the endpoint for the compressed
    download, `installed_md5` the hash of the decompressed database file.
    """

    model_config = ConfigDict(frozen=True)

    database_type: DatabaseType
    updated_at: int
    remote_md5: str = ""
    installed_md5: str = ""
    filename: str

    def to_row(self) -> list[str]:
        return [
            self.database_type.value,
            str(self.updated_at),
            self.remote_md5,
            self.installed_md5,
            self.filename,
        ]

    @classmethod
    def from_row(cls, row: list[str]) -> "DatabaseMetadata":
        """Parse a CSV row.

        Raises:
            ValueError: If the row does not have five columns or a column
                does not parse (pydantic's ValidationError is a ValueError).
        """
        if len(row) != 5:
            raise ValueError(f"expected 5 columns, got {len(row)}")
        database_type, updated_at, remote_md5, installed_md5, filename = row
        if not filename:
            raise ValueError("empty filename")
        return cls(
            database_type=DatabaseType(database_type),
            updated_at=int(updated_at),
            remote_md5=remote_md5,
            installed_md5=installed_md5,
            filename=filename,
        )


class RemoteDatabaseInfo(BaseModel):
    """A database descriptor as returned by the update endpoint."""

    name: str
    md5_hash: str
    provider: str = ""
    updated: int = 0
    url: str


class SyncStatus(BaseModel):
    """Point-in-time view of a manager, for diagnostics."""

    database_type: DatabaseType
    mode: ManagerMode
    database_path: Path | None = None
    last_success_at: int | None = None
    age_status: AgeStatus | None = None
    expired: bool = False
    scheduled: bool = Field(default=False, description="Whether the periodic check job is registered")
