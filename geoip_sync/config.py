from typing import Annotated

from geoip_sync.models.geoip import DatabaseType

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_GEOIP_ENDPOINT = "https://paisano.elastic.dev/v1/geoip/database/"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",
    )

    # logging
    log_level: Annotated[str, Field(default="INFO"), "logging"]

    # geoip
    geoip_dest_dir: Annotated[str, Field(default="./geoip"), "geoip"]
    geoip_database_paths: Annotated[dict[DatabaseType, str], Field(default_factory=dict), "geoip"]
    geoip_database_types: Annotated[
        list[DatabaseType],
        Field(default=[DatabaseType.CITY, DatabaseType.ASN]),
        "geoip",
        NoDecode,
    ]
    geoip_endpoint: Annotated[str, Field(default=DEFAULT_GEOIP_ENDPOINT), "geoip"]
    geoip_installation_id: Annotated[str | None, Field(default=None), "geoip"]
    geoip_data_dir: Annotated[str, Field(default="./data"), "geoip"]
    geoip_check_interval_hours: Annotated[float, Field(default=24, gt=0), "geoip"]
    geoip_download_retries: Annotated[int, Field(default=3, ge=1), "geoip"]
    geoip_timeout: Annotated[float, Field(default=60.0, gt=0), "geoip"]
    geoip_metadata_history: Annotated[int, Field(default=10, ge=1), "geoip"]

    @field_validator("geoip_database_types", mode="before")
    @classmethod
    def validate_geoip_database_types(cls, v):
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("geoip_database_paths", mode="before")
    @classmethod
    def validate_geoip_database_paths(cls, v):
        if not isinstance(v, dict):
            return v
        known = {t.value.lower(): t for t in DatabaseType}
        paths = {}
        for key, path in v.items():
            database_type = known.get(str(key).strip().lower())
            if database_type is None:
                raise ValueError(f"unknown database type {key!r} in geoip_database_paths")
            paths[database_type] = path
        return paths

    @field_validator("geoip_installation_id", mode="before")
    @classmethod
    def empty_string_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


settings = Settings()
