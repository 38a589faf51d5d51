"""File helpers for database archives.

Everything here is blocking; async callers go through `asyncio.to_thread`.
"""

import gzip
import hashlib
import os
from pathlib import Path
import shutil
import tarfile
import tempfile

CHUNK_SIZE = 1024 * 1024


def md5_file(path: Path) -> str:
    """Hex md5 of a file, or an empty string if the file does not exist."""
    if not path.is_file():
        return ""
    digest = hashlib.md5()  # noqa: S324
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def safe_extract(tar: tarfile.TarFile, path: Path) -> None:
    """Safely extract a tarball to prevent path traversal attacks.

    Raises:
        ValueError: If an unsafe path is detected in the archive.
    """
    base = path.resolve()
    for member in tar.getmembers():
        target = (base / member.name).resolve()
        if not target.is_relative_to(base):
            raise ValueError(f"Unsafe path in tar file: {member.name}")
    tar.extractall(path=base, filter="data")


def find_mmdb(root: Path) -> Path | None:
    """Find the first .mmdb file in a directory tree."""
    for candidate in root.rglob("*.mmdb"):
        return candidate
    return None


def is_tarball(path: Path) -> bool:
    return path.name.endswith((".tar.gz", ".tgz")) or tarfile.is_tarfile(path)


def strip_archive_suffix(filename: str) -> str:
    """Turn an archive filename into the database filename it unpacks to.

    `GeoLite2-City_1700000000.mmdb.gz` -> `GeoLite2-City_1700000000.mmdb`,
    `GeoLite2-City_1700000000.tar.gz` -> `GeoLite2-City_1700000000.mmdb`.
    """
    for suffix in (".tar.gz", ".tgz", ".gz"):
        if filename.endswith(suffix):
            filename = filename.removesuffix(suffix)
            break
    if not filename.endswith(".mmdb"):
        filename = f"{filename}.mmdb"
    return filename


def _replace_from(src: Path, dest: Path) -> None:
    """Copy src into a `.part` file beside dest, then rename it into place."""
    partial = dest.with_name(f"{dest.name}.part")
    try:
        with src.open("rb") as reader, partial.open("wb") as writer:
            shutil.copyfileobj(reader, writer, CHUNK_SIZE)
        os.replace(partial, dest)
    finally:
        partial.unlink(missing_ok=True)


def gunzip(src: Path, dest: Path) -> Path:
    partial = dest.with_name(f"{dest.name}.part")
    try:
        with gzip.open(src, "rb") as reader, partial.open("wb") as writer:
            shutil.copyfileobj(reader, writer, CHUNK_SIZE)
        os.replace(partial, dest)
    finally:
        partial.unlink(missing_ok=True)
    return dest


def extract_mmdb_from_tarball(src: Path, dest: Path) -> Path:
    """Extract the first .mmdb member of a gzipped tarball to dest.

    Raises:
        FileNotFoundError: If the archive holds no .mmdb file.
        ValueError: If an archive member escapes the extraction directory.
    """
    with tempfile.TemporaryDirectory(dir=dest.parent) as tmp:
        tmp_dir = Path(tmp)
        with tarfile.open(src, "r:gz") as tar:
            safe_extract(tar, tmp_dir)
        mmdb_path = find_mmdb(tmp_dir)
        if mmdb_path is None:
            raise FileNotFoundError(".mmdb file not found in the archive")
        _replace_from(mmdb_path, dest)
    return dest


def decompress(src: Path, dest: Path) -> Path:
    """Decompress a downloaded archive into dest, tarball or plain gzip."""
    if is_tarball(src):
        return extract_mmdb_from_tarball(src, dest)
    return gunzip(src, dest)
