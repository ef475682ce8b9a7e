"""
credbroker.sidecar.lease

The credential currently being served, and its holder.

Responsibilities:
- Represent one issued credential as an immutable `LeaseState`.
- Hand it from the renewal task to request handlers without locks: the holder
  swaps a reference and never mutates a state in place.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any


@dataclass(frozen=True, slots=True)
class LeaseState:
    payload: Mapping[str, Any]
    issued_at: datetime
    lease_duration: timedelta
    renewable: bool = False

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + self.lease_duration

    def remaining(self, *, now: datetime | None = None) -> timedelta:
        now = now or datetime.now(tz=UTC)
        return max(timedelta(0), self.expires_at - now)

    def expired(self, *, now: datetime | None = None) -> bool:
        now = now or datetime.now(tz=UTC)
        return now >= self.expires_at


class LeaseHolder:
    def __init__(self) -> None:
        self._state: LeaseState | None = None

    @property
    def current(self) -> LeaseState | None:
        return self._state

    def swap(self, state: LeaseState) -> LeaseState | None:
        previous, self._state = self._state, state
        return previous

    def ready(self, *, now: datetime | None = None) -> bool:
        state = self._state
        return state is not None and not state.expired(now=now)


# --- Module Notes -----------------------------------------------------------
# An expired state stays in the holder until the next successful renewal; the
# credentials endpoint keeps serving it while readiness reports not-ready.
