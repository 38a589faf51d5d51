"""Tests for VersionChecker against a fake update endpoint."""

from __future__ import annotations

from pathlib import Path

from geoip_sync.models.error import CheckFailedError
from geoip_sync.models.geoip import DatabaseMetadata, DatabaseType
from geoip_sync.service.geoip import MetadataStore, VersionChecker, load_installation_id
from tests.conftest import ENDPOINT, FakeRemote, md5_bytes

import httpx
import pytest


def remember(store: MetadataStore, remote_md5: str) -> None:
    store.append(
        DatabaseMetadata(
            database_type=DatabaseType.CITY,
            updated_at=1610366455,
            remote_md5=remote_md5,
            installed_md5="82945494bdf513f039b3026865d07f04",
            filename="GeoLite2-City.mmdb",
        )
    )


class TestCheckForUpdate:
    async def test_update_without_history(self, checker: VersionChecker, remote: FakeRemote):
        has_update, info = await checker.check_for_update(DatabaseType.CITY)
        assert has_update is True
        assert "City" in info.name
        assert info.md5_hash == md5_bytes(remote.archive(DatabaseType.CITY))
        assert info.provider == "maxmind"
        assert info.url.endswith("GeoLite2-City.mmdb.gz")
        assert remote.keys == ["test-installation"]

    async def test_no_update_when_md5_is_the_same(
        self, checker: VersionChecker, store: MetadataStore, remote: FakeRemote
    ):
        remember(store, md5_bytes(remote.archive(DatabaseType.CITY)))
        has_update, _ = await checker.check_for_update(DatabaseType.CITY)
        assert has_update is False
        assert remote.download_calls == 0

    async def test_update_when_md5_differs(self, checker: VersionChecker, store: MetadataStore):
        remember(store, "bca2a8bad7e5e4013dc17343af52a841")
        has_update, _ = await checker.check_for_update(DatabaseType.CITY)
        assert has_update is True

    async def test_selects_matching_type(self, checker: VersionChecker):
        _, info = await checker.check_for_update(DatabaseType.ASN)
        assert "ASN" in info.name


class TestCheckFailures:
    async def test_non_2xx(self, checker: VersionChecker, remote: FakeRemote):
        remote.check_status = 404
        with pytest.raises(CheckFailedError, match="404"):
            await checker.check_for_update(DatabaseType.CITY)

    async def test_network_error(self, checker: VersionChecker, remote: FakeRemote):
        remote.check_error = httpx.ConnectError("unreachable")
        with pytest.raises(CheckFailedError):
            await checker.check_for_update(DatabaseType.CITY)

    async def test_type_not_listed(self, checker: VersionChecker):
        with pytest.raises(CheckFailedError, match="Country"):
            await checker.check_for_update(DatabaseType.COUNTRY)

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, content=b"<html>"),
            httpx.Response(200, json={"name": "GeoLite2-City"}),
            httpx.Response(200, json=[{"name": "GeoLite2-City.mmdb.gz", "url": "https://x"}]),
        ],
    )
    async def test_malformed_response(self, store: MetadataStore, response: httpx.Response):
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda _: response)) as client:
            checker = VersionChecker(ENDPOINT, "id", store, client=client)
            with pytest.raises(CheckFailedError):
                await checker.check_for_update(DatabaseType.CITY)


def test_installation_id_is_created_once(tmp_path: Path):
    first = load_installation_id(tmp_path / "data")
    assert first
    assert (tmp_path / "data" / "uuid").read_text() == first
    assert load_installation_id(tmp_path / "data") == first
