"""Tests for the aging policy thresholds."""

from __future__ import annotations

from geoip_sync.models.error import DatabaseExpiredError
from geoip_sync.models.geoip import AgeStatus
from geoip_sync.service.geoip.policy import EXPIRY_DAYS, WARNING_DAYS, classify, days_since, ensure_not_expired
from tests.conftest import DAY, START

import pytest


@pytest.mark.parametrize(
    ("elapsed", "expected"),
    [
        (0, AgeStatus.HEALTHY),
        (WARNING_DAYS * DAY - 1, AgeStatus.HEALTHY),
        (WARNING_DAYS * DAY, AgeStatus.WARNING),
        (EXPIRY_DAYS * DAY - 1, AgeStatus.WARNING),
        (EXPIRY_DAYS * DAY, AgeStatus.EXPIRED),
        (365 * DAY, AgeStatus.EXPIRED),
    ],
)
def test_thresholds(elapsed: int, expected: AgeStatus):
    assert classify(START, START + elapsed) is expected


@pytest.mark.parametrize("baseline", [0, 1, START, START * 2])
def test_monotonic_for_any_baseline(baseline: int):
    order = [AgeStatus.HEALTHY, AgeStatus.WARNING, AgeStatus.EXPIRED]
    statuses = [classify(baseline, baseline + hours * 3600) for hours in range(0, 40 * 24, 7)]
    ranks = [order.index(status) for status in statuses]
    assert ranks == sorted(ranks)


def test_no_success_is_expired():
    assert classify(None, START) is AgeStatus.EXPIRED


def test_clock_going_backwards_counts_as_fresh():
    assert days_since(START, START - DAY) == 0
    assert classify(START, START - DAY) is AgeStatus.HEALTHY


def test_ensure_not_expired():
    assert ensure_not_expired(START, START + 26 * DAY) is AgeStatus.WARNING
    with pytest.raises(DatabaseExpiredError) as exc_info:
        ensure_not_expired(START, START + 31 * DAY)
    assert exc_info.value.days == 31
