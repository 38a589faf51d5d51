"""Aging policy for databases that cannot be refreshed.

The GeoLite2 EULA requires that a database is not used for more than 30
days without checking for a newer release. After 25 days a warning is
logged; after 30 days lookups must stop.
"""

from typing import Final

from geoip_sync.models.error import DatabaseExpiredError
from geoip_sync.models.geoip import AgeStatus

SECONDS_PER_DAY: Final[int] = 24 * 60 * 60
WARNING_DAYS: Final[int] = 25
EXPIRY_DAYS: Final[int] = 30


def days_since(last_success_at: int | None, now: float) -> int:
    """Whole days elapsed since the last successful check.

    Without any successful check the epoch is used, which is always expired.
    """
    baseline = last_success_at or 0
    return int(max(now - baseline, 0) // SECONDS_PER_DAY)


def classify(last_success_at: int | None, now: float) -> AgeStatus:
    days = days_since(last_success_at, now)
    if days >= EXPIRY_DAYS:
        return AgeStatus.EXPIRED
    if days >= WARNING_DAYS:
        return AgeStatus.WARNING
    return AgeStatus.HEALTHY


def ensure_not_expired(last_success_at: int | None, now: float) -> AgeStatus:
    """Like `classify`, but raise for an expired database.

    Raises:
        DatabaseExpiredError: If 30 days or more have elapsed.
    """
    status = classify(last_success_at, now)
    if status is AgeStatus.EXPIRED:
        raise DatabaseExpiredError(days_since(last_success_at, now))
    return status
