"""
credbroker.sidecar.timing

Renewal and retry delays for the lease manager.

Responsibilities:
- Compute when to renew a lease: two thirds of its duration, jittered.
- Compute retry backoff after a failed attempt.

Both are pure; the random source is passed in so tests can pin it.
"""

from __future__ import annotations

import random
from datetime import timedelta


def sleep_duration(lease: timedelta, rng: random.Random) -> timedelta:
    """
    Delay before renewing a lease of length `lease`:
    `lease * 2/3 * (U + 1.5) / 2` with U uniform in [0, 1).

    The result lies in [0.5 * lease, 0.8333 * lease): always positive and
    shorter than the lease.

    Raises:
        ValueError: `lease` is zero or negative.
    """

    if lease <= timedelta(0):
        raise ValueError(f"lease duration must be positive, got {lease}")
    return lease * 2 / 3 * (rng.random() + 1.5) / 2


def backoff_duration(attempt: int, *, base: float, maximum: float) -> float:
    """
    Seconds to wait after the `attempt`-th consecutive failure (1-based):
    `base` doubling each attempt, capped at `maximum`.
    """

    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    # base * 2**n overflows a float for n in the low thousands.
    exponent = min(attempt - 1, 64)
    return min(maximum, base * 2**exponent)
