"""Shared test fixtures for the GeoIP database lifecycle."""

from __future__ import annotations

from dataclasses import dataclass, field
import gzip
import hashlib
from pathlib import Path

from geoip_sync.models.geoip import DatabaseType
from geoip_sync.service.geoip import DatabaseInstaller, DatabaseManager, MetadataStore, VersionChecker

import httpx
import pytest


ENDPOINT = "https://updates.test/v1/geoip/database/"
DAY = 24 * 60 * 60
START = 1_700_000_000


def md5_bytes(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def fake_validator(path: Path, database_type: DatabaseType) -> bool:
    return path.read_bytes().startswith(b"MMDB")


class Clock:
    def __init__(self, now: float = START):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, days: float = 0, seconds: float = 0) -> None:
        self.now += days * DAY + seconds


class RecordingObserver:
    def __init__(self):
        self.ready: list[Path] = []
        self.expired = 0

    def on_artifact_ready(self, path: Path) -> None:
        self.ready.append(path)

    def on_expired(self) -> None:
        self.expired += 1


@dataclass
class FakeRemote:
    """In-memory update endpoint plus download server."""

    content: dict[DatabaseType, bytes] = field(
        default_factory=lambda: {
            DatabaseType.CITY: b"MMDB city v1",
            DatabaseType.ASN: b"MMDB asn v1",
        }
    )
    check_calls: int = 0
    download_calls: int = 0
    check_status: int = 200
    check_error: Exception | None = None
    download_statuses: list[int] = field(default_factory=list)
    corrupt_download: bool = False
    keys: list[str] = field(default_factory=list)

    def archive(self, database_type: DatabaseType) -> bytes:
        return gzip.compress(self.content[database_type], mtime=0)

    def publish(self, database_type: DatabaseType, content: bytes) -> None:
        self.content[database_type] = content

    def descriptors(self) -> list[dict]:
        return [
            {
                "name": f"GeoLite2-{database_type.value}.mmdb.gz",
                "md5_hash": md5_bytes(self.archive(database_type)),
                "provider": "maxmind",
                "updated": START,
                "url": f"https://storage.test/GeoLite2-{database_type.value}.mmdb.gz",
            }
            for database_type in self.content
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "updates.test":
            self.check_calls += 1
            self.keys.append(request.url.params.get("key", ""))
            if self.check_error is not None:
                raise self.check_error
            if self.check_status != 200:
                return httpx.Response(self.check_status)
            return httpx.Response(200, json=self.descriptors())

        self.download_calls += 1
        if self.download_statuses:
            status = self.download_statuses.pop(0)
            if status != 200:
                return httpx.Response(status)
        name = request.url.path.rsplit("/", 1)[-1]
        database_type = next(t for t in self.content if f"-{t.value}." in name)
        body = self.archive(database_type)
        if self.corrupt_download:
            body = body[:-1] + b"X"
        return httpx.Response(200, content=body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def dest_dir(tmp_path: Path) -> Path:
    path = tmp_path / "geoip"
    path.mkdir()
    return path


@pytest.fixture
def store(dest_dir: Path) -> MetadataStore:
    return MetadataStore(dest_dir / "metadata.csv")


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
async def http_client(remote: FakeRemote):
    client = remote.client()
    yield client
    await client.aclose()


@pytest.fixture
def checker(store: MetadataStore, http_client: httpx.AsyncClient) -> VersionChecker:
    return VersionChecker(ENDPOINT, "test-installation", store, client=http_client)


@pytest.fixture
def installer(dest_dir: Path, http_client: httpx.AsyncClient, clock: Clock) -> DatabaseInstaller:
    return DatabaseInstaller(dest_dir, fake_validator, retries=3, client=http_client, clock=clock)


@pytest.fixture
def make_manager(dest_dir, store, checker, installer, observer, clock):
    managers: list[DatabaseManager] = []

    def _make(database_type: DatabaseType = DatabaseType.CITY, **kwargs) -> DatabaseManager:
        kwargs.setdefault("store", store)
        kwargs.setdefault("checker", checker)
        kwargs.setdefault("installer", installer)
        manager = DatabaseManager(database_type, observer, dest_dir=dest_dir, clock=clock, **kwargs)
        managers.append(manager)
        return manager

    yield _make
    for manager in managers:
        manager.close()
