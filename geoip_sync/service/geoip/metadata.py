"""Metadata file for installed GeoIP databases.

The file is plain CSV, one row per record, columns in the order
`database_type, updated_at, remote_md5, installed_md5, filename`.
Rows are appended one whole line at a time. The only full rewrite happens
in `MetadataStore.rewrite`, which goes through a temporary file and
`os.replace`, so readers always see either the old or the new content.
"""

import csv
from io import StringIO
import os
from pathlib import Path
import tempfile
import threading

from geoip_sync.log import log
from geoip_sync.models.error import MetadataWriteError
from geoip_sync.models.geoip import DatabaseMetadata, DatabaseType

logger = log("GeoIP/Metadata")

METADATA_FILENAME = "metadata.csv"


def _format_row(record: DatabaseMetadata) -> str:
    buffer = StringIO()
    csv.writer(buffer, lineterminator="\n").writerow(record.to_row())
    return buffer.getvalue()


class MetadataStore:
    """Append-only history of installed databases, shared by all types.

    One store instance should be shared by every manager pointing at the
    same file; its lock serialises appends and rewrites between them.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def exists(self) -> bool:
        """Whether the file exists and holds at least one byte."""
        try:
            return self.path.stat().st_size > 0
        except FileNotFoundError:
            return False

    def all_records(self) -> list[DatabaseMetadata]:
        """Every well-formed row in file order. Malformed rows are skipped."""
        try:
            text = self.path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return []

        records: list[DatabaseMetadata] = []
        for lineno, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                row = next(csv.reader([line]))
                records.append(DatabaseMetadata.from_row(row))
            except (csv.Error, ValueError) as e:
                logger.warning(f"Skipping malformed metadata row {lineno} in {self.path}: {e}")
        return records

    def all_records_for(self, database_type: DatabaseType) -> list[DatabaseMetadata]:
        return [record for record in self.all_records() if record.database_type == database_type]

    def all_records_except(self, database_type: DatabaseType) -> list[DatabaseMetadata]:
        return [record for record in self.all_records() if record.database_type != database_type]

    def last_record_for(self, database_type: DatabaseType) -> DatabaseMetadata | None:
        """The authoritative record for a type.

        That is the row with the greatest `updated_at`; among equal
        timestamps the one written last wins.
        """
        records = self.all_records_for(database_type)
        if not records:
            return None
        _, record = max(enumerate(records), key=lambda item: (item[1].updated_at, item[0]))
        return record

    def append(self, record: DatabaseMetadata) -> None:
        """Durably add one row.

        Raises:
            MetadataWriteError: If the file cannot be written.
        """
        line = _format_row(record)
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd = os.open(self.path, os.O_RDWR | os.O_APPEND | os.O_CREAT, 0o644)
                try:
                    # a crash may have left a partial last line behind
                    if os.fstat(fd).st_size > 0:
                        os.lseek(fd, -1, os.SEEK_END)
                        if os.read(fd, 1) != b"\n":
                            line = "\n" + line
                    os.write(fd, line.encode("utf-8"))
                    os.fsync(fd)
                finally:
                    os.close(fd)
            except OSError as e:
                raise MetadataWriteError(f"Failed to append to metadata file {self.path}: {e}") from e

    def rewrite(self, database_type: DatabaseType, records: list[DatabaseMetadata]) -> None:
        """Replace the rows of one type, keeping every other type untouched.

        Raises:
            MetadataWriteError: If the file cannot be written.
        """
        if any(record.database_type != database_type for record in records):
            raise ValueError(f"rewrite for {database_type} got records of another type")

        with self._lock:
            merged = self.all_records_except(database_type) + records
            tmp_name: str | None = None
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with tempfile.NamedTemporaryFile(
                    "w",
                    encoding="utf-8",
                    dir=self.path.parent,
                    prefix=f".{self.path.name}.",
                    delete=False,
                ) as tmp:
                    tmp_name = tmp.name
                    for record in merged:
                        tmp.write(_format_row(record))
                    tmp.flush()
                    os.fsync(tmp.fileno())
                os.replace(tmp_name, self.path)
                tmp_name = None
            except OSError as e:
                raise MetadataWriteError(f"Failed to rewrite metadata file {self.path}: {e}") from e
            finally:
                if tmp_name is not None:
                    Path(tmp_name).unlink(missing_ok=True)

    def prune(self, database_type: DatabaseType, keep: int) -> int:
        """Drop the oldest rows of a type so at most `keep` remain.

        Returns:
            Number of rows removed.
        """
        records = self.all_records_for(database_type)
        excess = len(records) - keep
        if excess <= 0:
            return 0
        ordered = sorted(enumerate(records), key=lambda item: (item[1].updated_at, item[0]))
        self.rewrite(database_type, [record for _, record in ordered[excess:]])
        return excess
