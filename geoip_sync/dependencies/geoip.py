from datetime import timedelta
from functools import lru_cache
from pathlib import Path

from geoip_sync.config import settings
from geoip_sync.models.geoip import DatabaseType
from geoip_sync.service.geoip import (
    METADATA_FILENAME,
    DatabaseInstaller,
    DatabaseManager,
    GeoIPLookup,
    MetadataStore,
    VersionChecker,
    load_installation_id,
    validate_database,
)


@lru_cache
def get_geoip_lookup() -> GeoIPLookup:
    """
    Get the lookup holder shared by all database managers
    """
    return GeoIPLookup()


@lru_cache
def get_metadata_store() -> MetadataStore:
    """
    One store per metadata file, so managers of different types share its lock
    """
    return MetadataStore(Path(settings.geoip_dest_dir).expanduser() / METADATA_FILENAME)


@lru_cache
def get_installation_id() -> str:
    return settings.geoip_installation_id or load_installation_id(settings.geoip_data_dir)


@lru_cache
def get_database_manager(database_type: DatabaseType) -> DatabaseManager:
    """
    Build the manager for a database type from settings
    """
    observer = get_geoip_lookup().database_for(database_type)
    static_path = settings.geoip_database_paths.get(database_type)
    if static_path:
        return DatabaseManager(
            database_type,
            observer,
            dest_dir=settings.geoip_dest_dir,
            database_path=static_path,
        )

    store = get_metadata_store()
    return DatabaseManager(
        database_type,
        observer,
        dest_dir=settings.geoip_dest_dir,
        store=store,
        checker=VersionChecker(
            endpoint=settings.geoip_endpoint,
            installation_id=get_installation_id(),
            store=store,
            timeout=settings.geoip_timeout,
        ),
        installer=DatabaseInstaller(
            dest_dir=settings.geoip_dest_dir,
            validator=validate_database,
            retries=settings.geoip_download_retries,
            timeout=settings.geoip_timeout,
        ),
        check_interval=timedelta(hours=settings.geoip_check_interval_hours),
        metadata_history=settings.geoip_metadata_history,
    )
