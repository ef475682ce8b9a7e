"""
tests.test_timing

Renewal jitter and retry backoff.
"""

from __future__ import annotations

import random
from datetime import timedelta

import pytest

from credbroker.sidecar.timing import backoff_duration, sleep_duration


EPSILON = timedelta(microseconds=1)


class FixedRandom(random.Random):
    def __init__(self, value: float) -> None:
        super().__init__()
        self.value = value

    def random(self) -> float:
        return self.value


def test_sleep_duration_bounds_for_an_hour_lease() -> None:
    lease = timedelta(minutes=60)
    assert sleep_duration(lease, FixedRandom(0.0)) == timedelta(minutes=30)
    assert sleep_duration(lease, FixedRandom(0.5)) == timedelta(minutes=40)

    upper = sleep_duration(lease, FixedRandom(0.999999))
    assert timedelta(minutes=49) < upper < timedelta(minutes=50)


def test_sleep_duration_is_positive_and_shorter_than_lease() -> None:
    rng = random.Random(1234)
    for seconds in (1, 59, 900, 3600, 43200):
        lease = timedelta(seconds=seconds)
        for _ in range(200):
            d = sleep_duration(lease, rng)
            assert timedelta(0) < d < lease
            # timedelta arithmetic rounds to whole microseconds.
            assert lease / 2 - EPSILON <= d <= lease * 5 / 6 + EPSILON


@pytest.mark.parametrize("lease", [timedelta(0), timedelta(seconds=-1)])
def test_sleep_duration_rejects_non_positive_leases(lease: timedelta) -> None:
    with pytest.raises(ValueError):
        sleep_duration(lease, random.Random())


def test_backoff_doubles_and_caps() -> None:
    delays = [backoff_duration(n, base=1.0, maximum=30.0) for n in range(1, 8)]
    assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]


def test_backoff_survives_long_outages() -> None:
    assert backoff_duration(100_000, base=1.0, maximum=300.0) == 300.0


def test_backoff_rejects_attempt_zero() -> None:
    with pytest.raises(ValueError):
        backoff_duration(0, base=1.0, maximum=10.0)
