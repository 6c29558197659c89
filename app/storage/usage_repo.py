"""Storage interface for the append-only AI usage ledger."""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class QuotaReservation:
  """A slot held against the daily quota while a provider call is in flight."""

  reservation_id: str
  user_id: str
  provider: str


class UsageRepository(Protocol):
  """Ledger entries are only ever appended; reservations are short-lived."""

  async def count_since(self, *, provider: str, since: datetime.datetime | None, user_id: str | None = None) -> int:
    """Count ledger entries for a provider, optionally per user and since a timestamp."""

  async def count_reservations(self, *, user_id: str, provider: str, since: datetime.datetime) -> int:
    """Count a user's reservations created at or after `since`."""

  async def try_reserve(self, *, user_id: str, provider: str, since: datetime.datetime, reservations_since: datetime.datetime, limit: int) -> QuotaReservation | None:
    """Atomically reserve one call when entries since `since` plus reservations since `reservations_since` are under `limit`."""

  async def append(self, *, user_id: str, provider: str, operation: str, reservation_id: str | None = None) -> None:
    """Append a ledger entry, consuming the reservation in the same transaction."""

  async def release(self, reservation_id: str) -> None:
    """Drop a reservation whose call did not succeed."""

  async def purge_reservations(self, *, cutoff: datetime.datetime) -> int:
    """Delete reservations created before `cutoff`."""
