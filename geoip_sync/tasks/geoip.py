"""GeoIP database startup and shutdown.

Starts one `DatabaseManager` per configured database type. Each manager
runs its own periodic update check once started.
"""

from geoip_sync.config import settings
from geoip_sync.dependencies.geoip import get_database_manager, get_geoip_lookup
from geoip_sync.log import logger
from geoip_sync.models.error import DatabaseNotFoundError
from geoip_sync.models.geoip import DatabaseType


async def init_geoip(database_types: list[DatabaseType] | None = None) -> None:
    """Initialize the GeoIP databases during application startup.

    Failures of managed databases are logged but do not block application
    startup; a static database that cannot be found is fatal.

    Raises:
        DatabaseNotFoundError: If a static database path resolves to nothing.
    """
    for database_type in database_types or settings.geoip_database_types:
        manager = get_database_manager(database_type)
        try:
            logger.info(f"Initializing GeoIP {database_type} database ({manager.mode} mode)...")
            await manager.start()
            logger.info(f"GeoIP {database_type} database initialization completed")
        except DatabaseNotFoundError:
            raise
        except Exception as exc:
            logger.error(f"GeoIP {database_type} database initialization failed: {exc}")


def shutdown_geoip(database_types: list[DatabaseType] | None = None) -> None:
    """Stop update checks and close the database readers."""
    for database_type in database_types or settings.geoip_database_types:
        get_database_manager(database_type).close()
    get_geoip_lookup().close()
    logger.info("GeoIP databases closed")
