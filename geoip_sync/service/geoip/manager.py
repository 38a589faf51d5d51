"""Lifecycle manager for one GeoIP database type.

The manager makes sure the lookup side runs on an up-to-date database and
stays compliant with the GeoLite2 EULA. It checks the update endpoint once
at start and then periodically, installs new releases, and records each
successful check in the metadata file. When checks keep failing, the time
since the last recorded success decides between a warning in the log and
disabling lookups.

There are two modes:

- `managed`: no explicit database path is configured; the manager owns
  synchronisation of files in `dest_dir`.
- `static`: a user-supplied database is used as-is; no network, no
  metadata and no scheduler.
"""

import asyncio
from datetime import timedelta
from pathlib import Path
import time
from typing import Protocol

from geoip_sync.helpers import md5_file
from geoip_sync.log import log
from geoip_sync.models.error import (
    CheckFailedError,
    DatabaseExpiredError,
    DatabaseIntegrityError,
    DatabaseNotFoundError,
    DatabaseValidationError,
    MetadataWriteError,
)
from geoip_sync.models.geoip import (
    DATABASE_TYPES,
    AgeStatus,
    DatabaseMetadata,
    DatabaseType,
    ManagerMode,
    SyncStatus,
)

from .checker import VersionChecker
from .cleanup import sweep
from .installer import DatabaseInstaller
from .metadata import MetadataStore
from .policy import EXPIRY_DAYS, classify, days_since, ensure_not_expired

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = log("GeoIP")


class DatabaseObserver(Protocol):
    """The holder of the lookup engine.

    `on_artifact_ready` hands over a path that stays valid until the next
    call. After `on_expired` the holder must refuse lookups until it is
    handed a path again.
    """

    def on_artifact_ready(self, path: Path) -> None: ...

    def on_expired(self) -> None: ...


class DatabaseManager:
    """Keeps one database type up to date for an observer.

    Attributes:
        database_type: The database type managed by this instance.
        mode: `static` when `database_path` was given, `managed` otherwise.
        dest_dir: Directory holding the databases and the metadata file.
    """

    def __init__(
        self,
        database_type: DatabaseType,
        observer: DatabaseObserver,
        *,
        dest_dir: str | Path,
        store: MetadataStore | None = None,
        checker: VersionChecker | None = None,
        installer: DatabaseInstaller | None = None,
        database_path: str | Path | None = None,
        check_interval: timedelta = timedelta(hours=24),
        metadata_history: int = 10,
        clock=time.time,
    ):
        self.database_type = database_type
        self.observer = observer
        self.dest_dir = Path(dest_dir).expanduser()
        self.mode = ManagerMode.STATIC if database_path else ManagerMode.MANAGED
        self.check_interval = check_interval
        self.metadata_history = metadata_history

        if self.mode is ManagerMode.MANAGED and (store is None or checker is None or installer is None):
            raise ValueError("managed mode needs a metadata store, a version checker and an installer")

        self.store = store
        self.checker = checker
        self.installer = installer
        self._static_path = Path(database_path).expanduser() if database_path else None
        self._clock = clock

        self._database_path: Path | None = None
        self._expired = False
        self._force_update = False
        self._closed = False
        self._cycle_lock = asyncio.Lock()
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def database_path(self) -> Path | None:
        """The database currently handed to the observer."""
        return self._database_path

    @property
    def default_path(self) -> Path:
        return self.dest_dir / DATABASE_TYPES[self.database_type].default_filename

    def _resolve_static_path(self) -> Path:
        """The configured path, or the bundled default if it does not exist.

        Raises:
            DatabaseNotFoundError: If neither file exists.
        """
        if self._static_path is not None and self._static_path.is_file():
            return self._static_path
        if self.default_path.is_file():
            return self.default_path
        raise DatabaseNotFoundError(str(self._static_path or self.default_path))

    def _setup_metadata(self) -> Path | None:
        """Pick the database to start with, from metadata or the bundled default.

        A recorded database is only adopted if its md5 still matches. When the
        type has no history yet, the bundled database gets a bootstrap record
        so the aging clock starts now.
        """
        assert self.store is not None
        last = self.store.last_record_for(self.database_type)
        default = self.default_path if self.default_path.is_file() else None

        if last is not None:
            path = self.dest_dir / last.filename
            if path.is_file() and md5_file(path) == last.installed_md5:
                return path
            logger.warning(
                f"Recorded {self.database_type} database {last.filename} is missing or modified, "
                "a fresh copy will be downloaded"
            )
            self._force_update = True
            return default

        if default is not None:
            record = DatabaseMetadata(
                database_type=self.database_type,
                updated_at=int(self._clock()),
                remote_md5="",
                installed_md5=md5_file(default),
                filename=default.name,
            )
            self.store.rewrite(self.database_type, [record])
        return default

    def _compact_metadata(self) -> None:
        """Trim this type's history to `metadata_history` rows, once per start."""
        assert self.store is not None
        try:
            dropped = self.store.prune(self.database_type, self.metadata_history)
        except MetadataWriteError as e:
            logger.warning(f"Could not compact {self.database_type} metadata history: {e}")
            return
        if dropped:
            logger.debug(f"Dropped {dropped} old {self.database_type} metadata rows")

    def _notify_ready(self, path: Path) -> None:
        try:
            self.observer.on_artifact_ready(path)
        except Exception:
            logger.exception(f"Observer failed to load {self.database_type} database {path}")

    def _notify_expired(self) -> None:
        try:
            self.observer.on_expired()
        except Exception:
            logger.exception(f"Observer failed to handle {self.database_type} database expiry")

    async def start(self) -> None:
        """Resolve the starting database, run the first cycle and schedule the rest.

        Raises:
            DatabaseNotFoundError: In static mode, if no database file exists.
        """
        if self.mode is ManagerMode.STATIC:
            self._database_path = self._resolve_static_path()
            logger.info(
                f"Running {self.database_type} database in static mode ({self._database_path}), "
                "no update checks will be made"
            )
            self._notify_ready(self._database_path)
            return

        assert self.store is not None
        await asyncio.to_thread(self._compact_metadata)
        await asyncio.to_thread(sweep, self.store, self.dest_dir, self.database_type)
        self._database_path = await asyncio.to_thread(self._setup_metadata)
        if self._database_path is not None:
            self._notify_ready(self._database_path)
        else:
            logger.info(f"No local {self.database_type} database yet, waiting for the first download")

        await self._scheduled_cycle()

        if self._closed:
            return
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self._scheduled_cycle,
            IntervalTrigger(seconds=self.check_interval.total_seconds()),
            id=f"geoip:{self.database_type.value.lower()}:check",
            name=f"GeoIP {self.database_type} database update check",
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()

    async def _scheduled_cycle(self) -> None:
        try:
            logger.info(f"Checking for {self.database_type} database update...")
            await self.run_cycle()
        except MetadataWriteError as e:
            logger.error(f"{self.database_type} database check aborted, metadata not written: {e}")
        except Exception as e:
            logger.exception(f"{self.database_type} database check crashed: {e}")

    async def run_cycle(self) -> bool:
        """Check for a new release and install it.

        Cycles never overlap. A successful check, with or without a new
        release, appends one metadata record; failures are folded into the
        aging policy instead of being raised.

        Returns:
            Whether a new database was installed.

        Raises:
            MetadataWriteError: If the metadata record could not be written.
        """
        if self._closed:
            return False
        assert self.store is not None and self.checker is not None and self.installer is not None

        async with self._cycle_lock:
            try:
                has_update, info = await self.checker.check_for_update(self.database_type)
                new_path = None
                if has_update or self._force_update:
                    new_path = await self.installer.install(self.database_type, info)
            except MetadataWriteError:
                raise
            except (CheckFailedError, DatabaseIntegrityError, DatabaseValidationError) as e:
                logger.error(f"{self.database_type} database update failed: {e}")
                await self._check_age()
                return False
            except Exception as e:
                logger.exception(f"{self.database_type} database update crashed: {e}")
                await self._check_age()
                return False

            now = int(self._clock())
            if new_path is not None:
                record = DatabaseMetadata(
                    database_type=self.database_type,
                    updated_at=now,
                    remote_md5=info.md5_hash,
                    installed_md5=await asyncio.to_thread(md5_file, new_path),
                    filename=new_path.name,
                )
            else:
                last = await asyncio.to_thread(self.store.last_record_for, self.database_type)
                assert last is not None
                record = last.model_copy(update={"updated_at": now})

            await asyncio.to_thread(self.store.append, record)

            was_expired = self._expired
            self._expired = False
            self._force_update = False
            if new_path is not None:
                self._database_path = new_path
                self._notify_ready(new_path)
                logger.info(f"{self.database_type} database updated to {new_path.name}")
            else:
                logger.info(f"{self.database_type} database is up to date")
                if was_expired and self._database_path is not None:
                    self._notify_ready(self._database_path)
            return new_path is not None

    async def _check_age(self) -> AgeStatus:
        """Classify the time since the last success and act on it."""
        assert self.store is not None
        last = await asyncio.to_thread(self.store.last_record_for, self.database_type)
        last_success_at = last.updated_at if last else None
        now = self._clock()
        try:
            status = ensure_not_expired(last_success_at, now)
        except DatabaseExpiredError as e:
            if not self._expired:
                self._expired = True
                logger.error(str(e))
                self._notify_expired()
            return AgeStatus.EXPIRED

        if status is AgeStatus.WARNING:
            days = days_since(last_success_at, now)
            logger.warning(
                f"The {self.database_type} database has been used for {days} days without update. "
                f"Lookups will stop in {EXPIRY_DAYS - days} days. Please check the network settings "
                "and allow access to the update endpoint."
            )
        return status

    async def status(self) -> SyncStatus:
        last_success_at = None
        age_status = None
        if self.mode is ManagerMode.MANAGED:
            assert self.store is not None
            last = await asyncio.to_thread(self.store.last_record_for, self.database_type)
            last_success_at = last.updated_at if last else None
            age_status = classify(last_success_at, self._clock())
        return SyncStatus(
            database_type=self.database_type,
            mode=self.mode,
            database_path=self._database_path,
            last_success_at=last_success_at,
            age_status=age_status,
            expired=self._expired,
            scheduled=self._scheduler is not None and self._scheduler.running,
        )

    def close(self) -> None:
        """Stop scheduling checks. A cycle already running is left to finish."""
        self._closed = True
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
