"""Tests for the lookup holders that consume manager notifications."""

from __future__ import annotations

from pathlib import Path

from geoip_sync.models.geoip import DatabaseType
from geoip_sync.service.geoip import GeoIPDatabase, GeoIPLookup, validate_database
from geoip_sync.service.geoip import lookup as lookup_module

import pytest


CITY_RECORD = {
    "country": {"iso_code": "US", "names": {"en": "United States"}},
    "city": {"names": {"en": "Mountain View"}},
    "location": {"latitude": 37.386, "longitude": -122.0838, "time_zone": "America/Los_Angeles"},
    "postal": {"code": "94035"},
}
ASN_RECORD = {"autonomous_system_number": 15169, "autonomous_system_organization": "GOOGLE"}


class FakeReader:
    def __init__(self, path: str, records: dict[str, dict]):
        self.path = path
        self.records = records
        self.closed = False

    def get(self, ip: str):
        return self.records.get(ip)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def readers(monkeypatch: pytest.MonkeyPatch) -> list[FakeReader]:
    opened: list[FakeReader] = []

    def open_database(path: str) -> FakeReader:
        records = {"8.8.8.8": ASN_RECORD} if "ASN" in path else {"8.8.8.8": CITY_RECORD}
        reader = FakeReader(path, records)
        opened.append(reader)
        return reader

    monkeypatch.setattr(lookup_module.maxminddb, "open_database", open_database)
    return opened


def test_swap_keeps_previous_reader_open_until_next_swap(readers: list[FakeReader]):
    database = GeoIPDatabase(DatabaseType.CITY)
    database.on_artifact_ready(Path("GeoLite2-City_1.mmdb"))
    database.on_artifact_ready(Path("GeoLite2-City_2.mmdb"))

    assert database.path == Path("GeoLite2-City_2.mmdb")
    assert readers[0].closed is False

    database.on_artifact_ready(Path("GeoLite2-City_3.mmdb"))
    assert readers[0].closed is True
    assert readers[1].closed is False

    database.close()
    assert all(reader.closed for reader in readers)


def test_combined_lookup(readers: list[FakeReader]):
    geoip = GeoIPLookup()
    geoip.database_for(DatabaseType.CITY).on_artifact_ready(Path("GeoLite2-City.mmdb"))
    geoip.database_for(DatabaseType.ASN).on_artifact_ready(Path("GeoLite2-ASN.mmdb"))

    res = geoip.lookup("8.8.8.8")

    assert res == {
        "ip": "8.8.8.8",
        "country_iso": "US",
        "country_name": "United States",
        "city_name": "Mountain View",
        "latitude": "37.386",
        "longitude": "-122.0838",
        "time_zone": "America/Los_Angeles",
        "postal_code": "94035",
        "asn": 15169,
        "organization": "GOOGLE",
    }
    assert geoip.lookup("1.1.1.1") == {"ip": "1.1.1.1"}


def test_expired_database_degrades_every_lookup(readers: list[FakeReader]):
    geoip = GeoIPLookup()
    city = geoip.database_for(DatabaseType.CITY)
    city.on_artifact_ready(Path("GeoLite2-City.mmdb"))
    geoip.database_for(DatabaseType.ASN).on_artifact_ready(Path("GeoLite2-ASN.mmdb"))

    city.on_expired()

    for _ in range(3):
        res = geoip.lookup("8.8.8.8")
        assert res["database_expired"] is True
        assert "city_name" not in res
        assert res["asn"] == 15169

    city.on_artifact_ready(Path("GeoLite2-City_2.mmdb"))
    res = geoip.lookup("8.8.8.8")
    assert "database_expired" not in res
    assert res["city_name"] == "Mountain View"


def test_country_database_fills_in_without_city(readers: list[FakeReader]):
    geoip = GeoIPLookup()
    geoip.database_for(DatabaseType.COUNTRY).on_artifact_ready(Path("GeoLite2-Country.mmdb"))

    res = geoip.lookup("8.8.8.8")

    assert res["country_iso"] == "US"


def test_validate_database_rejects_garbage(tmp_path: Path):
    garbage = tmp_path / "garbage.mmdb"
    garbage.write_bytes(b"this is not a maxmind database")
    assert validate_database(garbage, DatabaseType.CITY) is False
    assert validate_database(tmp_path / "missing.mmdb", DatabaseType.CITY) is False
