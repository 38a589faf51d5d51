"""Download, verify, decompress and validate a new GeoIP database.

The installer never touches the active database. It leaves a fresh file
next to it and returns the path; swapping is up to the manager.
"""

import asyncio
from collections.abc import Callable
from pathlib import Path
import tarfile
import time
import zlib

from geoip_sync.helpers import Exhausted, decompress, md5_file, retry_async, strip_archive_suffix
from geoip_sync.log import log
from geoip_sync.models.error import DatabaseIntegrityError, DatabaseValidationError, DownloadFailedError
from geoip_sync.models.geoip import DATABASE_TYPES, DatabaseType, RemoteDatabaseInfo

import aiofiles
import httpx

logger = log("GeoIP/Installer")

type DatabaseValidator = Callable[[Path, DatabaseType], bool]


def is_transient_http_error(exc: BaseException) -> bool:
    """Connection problems, timeouts and 5xx answers are worth another try."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


class DatabaseInstaller:
    """Installs databases described by the update endpoint into `dest_dir`.

    Attributes:
        dest_dir: Managed directory holding databases and metadata.
        validator: Engine capability telling whether a file is a usable database.
        retries: Download attempts for transient network errors.
        timeout: HTTP request timeout in seconds.
    """

    def __init__(
        self,
        dest_dir: str | Path,
        validator: DatabaseValidator,
        retries: int = 3,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.dest_dir = Path(dest_dir).expanduser()
        self.validator = validator
        self.retries = retries
        self.timeout = timeout
        self._client = client
        self._clock = clock

    def staging_path(self, database_type: DatabaseType, info: RemoteDatabaseInfo) -> Path:
        """Unique download location, e.g. `GeoLite2-City_1700000000.mmdb.gz`."""
        name_match = DATABASE_TYPES[database_type].name_match
        # never trust directories in a remote name
        name = Path(info.name).name
        stamp = int(self._clock())
        if name_match in name:
            name = name.replace(name_match, f"{name_match}_{stamp}", 1)
        else:
            name = f"{database_type.value}_{stamp}_{name}"
        return self.dest_dir / name

    async def _download_once(self, url: str, dest: Path) -> None:
        async with aiofiles.open(dest, "wb") as download_file:
            if self._client is not None:
                await self._stream(self._client, url, download_file)
            else:
                async with httpx.AsyncClient(follow_redirects=True, timeout=self.timeout) as client:
                    await self._stream(client, url, download_file)

    @staticmethod
    async def _stream(client: httpx.AsyncClient, url: str, download_file) -> None:
        async with client.stream("GET", url) as resp:
            resp.raise_for_status()
            async for chunk in resp.aiter_bytes():
                if chunk:
                    await download_file.write(chunk)

    async def download(
        self, database_type: DatabaseType, info: RemoteDatabaseInfo, staging: Path | None = None
    ) -> Path:
        """Download the archive to its staging path, retrying transient errors.

        Raises:
            DownloadFailedError: If every attempt failed or the server refused.
        """
        await asyncio.to_thread(self.dest_dir.mkdir, parents=True, exist_ok=True)
        staging = staging or self.staging_path(database_type, info)

        try:
            result = await retry_async(
                lambda: self._download_once(info.url, staging),
                self.retries,
                retry_if=is_transient_http_error,
            )
        except httpx.HTTPError as e:
            await asyncio.to_thread(staging.unlink, missing_ok=True)
            raise DownloadFailedError(f"Failed to download {info.name}: {e!r}") from e

        if isinstance(result, Exhausted):
            await asyncio.to_thread(staging.unlink, missing_ok=True)
            raise DownloadFailedError(
                f"Failed to download {info.name} after {result.attempts} attempts: {result.error!r}"
            ) from result.error
        return staging

    async def verify(self, staging: Path, info: RemoteDatabaseInfo) -> None:
        """Compare the md5 of the staged archive with the announced one.

        Raises:
            DatabaseIntegrityError: On mismatch. The staged file is removed.
        """
        actual = await asyncio.to_thread(md5_file, staging)
        if actual != info.md5_hash:
            await asyncio.to_thread(staging.unlink, missing_ok=True)
            raise DatabaseIntegrityError(
                f"The new download has wrong checksum: expected {info.md5_hash}, got {actual or 'nothing'}"
            )

    async def unpack(self, staging: Path) -> Path:
        """Decompress the staged archive next to it.

        Raises:
            DatabaseValidationError: If the archive is corrupt or holds no database.
        """
        database_path = staging.with_name(strip_archive_suffix(staging.name))
        try:
            return await asyncio.to_thread(decompress, staging, database_path)
        except (OSError, EOFError, tarfile.TarError, ValueError, zlib.error) as e:
            await asyncio.to_thread(database_path.unlink, missing_ok=True)
            await asyncio.to_thread(staging.unlink, missing_ok=True)
            raise DatabaseValidationError(f"Failed to decompress {staging.name}: {e}") from e

    async def validate(self, database_type: DatabaseType, database_path: Path, staging: Path) -> None:
        """Ask the lookup engine whether the file is a usable database.

        Raises:
            DatabaseValidationError: If it is not. Both files are removed.
        """
        valid = await asyncio.to_thread(self.validator, database_path, database_type)
        if not valid:
            await asyncio.to_thread(database_path.unlink, missing_ok=True)
            await asyncio.to_thread(staging.unlink, missing_ok=True)
            raise DatabaseValidationError(f"Failed to load database {database_path}")

    async def install(self, database_type: DatabaseType, info: RemoteDatabaseInfo) -> Path:
        """Run the whole pipeline and return the path of the new database.

        The compressed download is kept beside the database so cleanup can
        tell it belongs to a recorded version. Whatever the error, nothing of a
        failed attempt is left in `dest_dir`.

        Raises:
            DownloadFailedError: Network failure after retries.
            DatabaseIntegrityError: md5 mismatch.
            DatabaseValidationError: Corrupt archive or unusable database.
        """
        logger.info(f"Downloading {database_type} database {info.name}...")
        staging = self.staging_path(database_type, info)
        database_path = staging.with_name(strip_archive_suffix(staging.name))
        written = [staging]
        try:
            await self.download(database_type, info, staging)
            await self.verify(staging, info)
            written.append(database_path)
            await self.unpack(staging)
            await self.validate(database_type, database_path, staging)
        except Exception:
            await asyncio.to_thread(self._discard, *written)
            raise
        logger.info(f"{database_type} database installed at {database_path}")
        return database_path

    @staticmethod
    def _discard(*paths: Path) -> None:
        for path in paths:
            path.unlink(missing_ok=True)
