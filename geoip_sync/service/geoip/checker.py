"""Remote version check against the GeoIP update endpoint."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
import uuid

from geoip_sync.log import log
from geoip_sync.models.error import CheckFailedError
from geoip_sync.models.geoip import DATABASE_TYPES, DatabaseType, RemoteDatabaseInfo

from .metadata import MetadataStore

import httpx
from pydantic import ValidationError

logger = log("GeoIP/Checker")

UUID_FILENAME = "uuid"


def load_installation_id(data_dir: str | Path) -> str:
    """Read the installation id from `<data_dir>/uuid`, creating it on first use."""
    path = Path(data_dir) / UUID_FILENAME
    try:
        value = path.read_text(encoding="utf-8").strip()
        if value:
            return value
    except FileNotFoundError:
        pass

    value = str(uuid.uuid4())
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(value, encoding="utf-8")
    logger.info(f"Generated new installation id at {path}")
    return value


class VersionChecker:
    """Asks the endpoint for the latest databases and compares md5s with the metadata.

    Attributes:
        endpoint: URL answering with a JSON array of database descriptors.
        installation_id: Opaque key sent as the `key` query parameter.
        store: Metadata store holding the last installed versions.
        timeout: HTTP request timeout in seconds.
    """

    def __init__(
        self,
        endpoint: str,
        installation_id: str,
        store: MetadataStore,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.endpoint = endpoint
        self.installation_id = installation_id
        self.store = store
        self.timeout = timeout
        self._client = client

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(follow_redirects=True, timeout=self.timeout) as client:
            yield client

    async def fetch_database_list(self) -> list:
        """GET the endpoint and return the decoded JSON array.

        Raises:
            CheckFailedError: On network errors, non-2xx statuses or a body
                that is not a JSON array.
        """
        try:
            async with self._http() as client:
                resp = await client.get(self.endpoint, params={"key": self.installation_id})
                resp.raise_for_status()
                body = resp.json()
        except httpx.HTTPStatusError as e:
            raise CheckFailedError(f"Update endpoint answered {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise CheckFailedError(f"Failed to reach update endpoint: {e!r}") from e
        except ValueError as e:
            raise CheckFailedError(f"Update endpoint returned invalid JSON: {e}") from e

        if not isinstance(body, list):
            raise CheckFailedError(f"Update endpoint returned {type(body).__name__}, expected a list")
        return body

    async def check_for_update(self, database_type: DatabaseType) -> tuple[bool, RemoteDatabaseInfo]:
        """Check whether the endpoint has a newer database for a type.

        Without any stored record for the type, an update is always reported.

        Returns:
            `(has_update, remote_info)`.

        Raises:
            CheckFailedError: If the endpoint fails or lists no matching database.
        """
        config = DATABASE_TYPES[database_type]
        entries = await self.fetch_database_list()

        raw = next(
            (
                entry
                for entry in entries
                if isinstance(entry, dict) and isinstance(entry.get("name"), str) and config.matches(entry["name"])
            ),
            None,
        )
        if raw is None:
            raise CheckFailedError(f"Update endpoint lists no {database_type} database")
        try:
            info = RemoteDatabaseInfo.model_validate(raw)
        except ValidationError as e:
            raise CheckFailedError(f"Malformed {database_type} database descriptor: {e}") from e

        last = await asyncio.to_thread(self.store.last_record_for, database_type)
        if last is None:
            return True, info
        return last.remote_md5 != info.md5_hash, info
