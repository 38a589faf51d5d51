"""Removal of database files nobody refers to any more."""

from collections.abc import Iterable
from pathlib import Path

from geoip_sync.log import log
from geoip_sync.models.geoip import DATABASE_TYPES, DEFAULT_DATABASE_FILENAMES, DatabaseMetadata, DatabaseType

from .metadata import MetadataStore

logger = log("GeoIP/Cleanup")

DATABASE_PATTERNS = ("*.mmdb", "*.gz", "*.tgz", "*.mmdb.part")


def compressed_names(filename: str) -> set[str]:
    """Names the compressed original of a database may have on disk."""
    stem = filename.removesuffix(".mmdb")
    return {f"{filename}.gz", f"{stem}.gz", f"{stem}.tar.gz", f"{stem}.tgz"}


def protected_filenames(records: Iterable[DatabaseMetadata]) -> set[str]:
    """Files referenced by any metadata row of any type, plus the bundled defaults."""
    protected = set(DEFAULT_DATABASE_FILENAMES)
    for record in records:
        protected.add(record.filename)
        protected.update(compressed_names(record.filename))
    return protected


def sweep(store: MetadataStore, dest_dir: str | Path, database_type: DatabaseType) -> list[Path]:
    """Delete databases and archives of one type that no metadata row mentions.

    Does nothing unless the metadata file exists and has content: without a
    history there is no evidence of what is safe to delete. Only files whose
    name carries the type's marker are considered, so a sweep never touches
    another type's downloads.

    Returns:
        The deleted paths.
    """
    if not store.exists():
        return []

    records = store.all_records()
    if not records:
        return []

    directory = Path(dest_dir)
    if not directory.is_dir():
        return []

    config = DATABASE_TYPES[database_type]
    protected = protected_filenames(records)

    deleted: list[Path] = []
    for pattern in DATABASE_PATTERNS:
        for path in directory.glob(pattern):
            if not path.is_file() or path.name in protected or not config.matches(path.name):
                continue
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            deleted.append(path)
            logger.info(f"Removed unused {database_type} database file {path.name}")
    return deleted
