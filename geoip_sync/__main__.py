import asyncio
from contextlib import asynccontextmanager
import json
import signal

from geoip_sync.config import settings
from geoip_sync.dependencies.geoip import get_database_manager, get_geoip_lookup, get_metadata_store
from geoip_sync.log import setup_logging, system_logger
from geoip_sync.models.error import DatabaseNotFoundError
from geoip_sync.models.geoip import DatabaseType, ManagerMode
from geoip_sync.service.geoip import sweep
from geoip_sync.tasks import init_geoip, shutdown_geoip

import click


def _database_types(values: tuple[str, ...]) -> list[DatabaseType]:
    return [DatabaseType(value) for value in values] or list(settings.geoip_database_types)


@asynccontextmanager
async def lifespan(database_types: list[DatabaseType]):
    # === on startup ===
    await init_geoip(database_types)
    try:
        yield
    finally:
        # === on shutdown ===
        shutdown_geoip(database_types)


type_option = click.option(
    "--type",
    "-t",
    "types",
    multiple=True,
    type=click.Choice([t.value for t in DatabaseType]),
    help="Database type to manage. Repeatable; defaults to GEOIP_DATABASE_TYPES.",
)


@click.group()
@click.option("--log-level", default=None, help="Overrides LOG_LEVEL.")
def cli(log_level: str | None) -> None:
    """Keep GeoLite2 databases up to date."""
    setup_logging(log_level or settings.log_level)


@cli.command()
@type_option
def run(types: tuple[str, ...]) -> None:
    """Start the managers and keep checking until interrupted."""
    database_types = _database_types(types)

    async def _run() -> None:
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)
        async with lifespan(database_types):
            system_logger("Runner").info("GeoIP sync running, press Ctrl+C to stop")
            await stop.wait()

    try:
        asyncio.run(_run())
    except DatabaseNotFoundError as e:
        raise click.ClickException(str(e)) from e


@cli.command()
@type_option
def check(types: tuple[str, ...]) -> None:
    """Run a single update check without scheduling further ones."""
    database_types = _database_types(types)

    async def _check() -> None:
        for database_type in database_types:
            manager = get_database_manager(database_type)
            if manager.mode is ManagerMode.STATIC:
                click.echo(f"{database_type}: static mode, nothing to check")
                continue
            installed = await manager.run_cycle()
            click.echo(f"{database_type}: {'updated' if installed else 'no update'}")
        get_geoip_lookup().close()

    asyncio.run(_check())


@cli.command()
@type_option
def status(types: tuple[str, ...]) -> None:
    """Print the sync status of each database type as JSON."""
    database_types = _database_types(types)

    async def _status() -> list[dict]:
        return [
            (await get_database_manager(database_type).status()).model_dump(mode="json")
            for database_type in database_types
        ]

    click.echo(json.dumps(asyncio.run(_status()), indent=2))


@cli.command(name="sweep")
@type_option
def sweep_command(types: tuple[str, ...]) -> None:
    """Delete database files no metadata row refers to."""
    store = get_metadata_store()
    for database_type in _database_types(types):
        for path in sweep(store, settings.geoip_dest_dir, database_type):
            click.echo(f"removed {path}")


@cli.command()
@click.argument("ip")
@type_option
def lookup(ip: str, types: tuple[str, ...]) -> None:
    """Look up an IP address after bringing the databases up to date."""
    database_types = _database_types(types)

    async def _lookup() -> dict:
        async with lifespan(database_types):
            return dict(get_geoip_lookup().lookup(ip))

    try:
        click.echo(json.dumps(asyncio.run(_lookup()), indent=2, ensure_ascii=False))
    except DatabaseNotFoundError as e:
        raise click.ClickException(str(e)) from e


if __name__ == "__main__":
    cli()
