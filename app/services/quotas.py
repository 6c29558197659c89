"""Daily quota enforcement and usage accounting for AI calls."""

from __future__ import annotations

import datetime
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from app.ai.errors import QuotaExceededError
from app.ai.providers.base import FALLBACK_PROVIDER, AiProvider
from app.storage.usage_repo import QuotaReservation, UsageRepository

logger = logging.getLogger(__name__)

UsageOperation = Literal["generation", "parsing"]

# Reservations older than this belong to calls that never finished; they stop counting against the limit.
RESERVATION_TTL = datetime.timedelta(hours=1)


@dataclass(frozen=True)
class QuotaStatus:
  """Outcome of a quota check.

  `limit` is None for unmetered providers, in which case `allowed` is always True.
  `reserved` counts calls in flight; they hold a slot until recorded or released.
  """

  allowed: bool
  used: int
  limit: int | None
  resets_at: datetime.datetime | None = None
  reserved: int = 0

  @property
  def remaining(self) -> int | None:
    if self.limit is None:
      return None
    return max(self.limit - self.used - self.reserved, 0)


@dataclass(frozen=True)
class UsageStats:
  today_count: int
  total_count: int


def _local_now() -> datetime.datetime:
  return datetime.datetime.now().astimezone()


def day_start(now: datetime.datetime | None = None) -> datetime.datetime:
  """Return local midnight for the day containing `now`, timezone-aware."""
  current = (now or _local_now()).astimezone()
  return current.replace(hour=0, minute=0, second=0, microsecond=0)


def quota_exceeded_message(limit: int, resets_at: datetime.datetime) -> str:
  return f"You have reached the daily limit of {limit} free generations. The quota resets at {resets_at:%H:%M} on {resets_at:%Y-%m-%d}. Try again then, or configure a personal Anthropic API key."


class UsageLedger:
  """Meter the shared fallback provider per user per local day.

  A call first reserves a slot, then either records a ledger entry (consuming
  the slot) or releases it. Reservations count against the limit, so two
  concurrent calls cannot both take the last slot.
  """

  def __init__(self, repo: UsageRepository, *, daily_limit: int, clock: Callable[[], datetime.datetime] | None = None) -> None:
    self._repo = repo
    self._daily_limit = daily_limit
    self._clock = clock or _local_now

  @staticmethod
  def is_metered(provider: AiProvider) -> bool:
    return provider is FALLBACK_PROVIDER

  def _window(self) -> tuple[datetime.datetime, datetime.datetime]:
    start = day_start(self._clock())
    return start, start + datetime.timedelta(days=1)

  def _live_reservations_since(self, start: datetime.datetime) -> datetime.datetime:
    return max(start, self._clock() - RESERVATION_TTL)

  async def check_quota(self, user_id: str, provider: AiProvider) -> QuotaStatus:
    """Report today's usage without reserving anything."""
    if not self.is_metered(provider):
      return QuotaStatus(allowed=True, used=0, limit=None)
    start, resets_at = self._window()
    used = await self._repo.count_since(provider=provider.value, since=start, user_id=user_id)
    reserved = await self._repo.count_reservations(user_id=user_id, provider=provider.value, since=self._live_reservations_since(start))
    return QuotaStatus(allowed=used + reserved < self._daily_limit, used=used, limit=self._daily_limit, resets_at=resets_at, reserved=reserved)

  async def reserve(self, user_id: str, provider: AiProvider) -> QuotaReservation | None:
    """Hold one slot for an upcoming call; None for unmetered providers."""
    if not self.is_metered(provider):
      return None
    start, resets_at = self._window()
    reservation = await self._repo.try_reserve(user_id=user_id, provider=provider.value, since=start, reservations_since=self._live_reservations_since(start), limit=self._daily_limit)
    if reservation is None:
      logger.info("Daily quota exhausted user_id=%s provider=%s limit=%s", user_id, provider.value, self._daily_limit)
      raise QuotaExceededError(quota_exceeded_message(self._daily_limit, resets_at))
    return reservation

  async def record(self, user_id: str, provider: AiProvider, operation: UsageOperation, *, reservation: QuotaReservation | None = None) -> None:
    """Append a ledger entry for a successful call."""
    await self._repo.append(user_id=user_id, provider=provider.value, operation=operation, reservation_id=reservation.reservation_id if reservation else None)
    logger.debug("Recorded AI usage user_id=%s provider=%s operation=%s", user_id, provider.value, operation)

  async def release(self, reservation: QuotaReservation) -> None:
    await self._repo.release(reservation.reservation_id)

  async def usage_stats(self, provider: AiProvider = FALLBACK_PROVIDER) -> UsageStats:
    """Platform-wide counts for the admin dashboard."""
    start, _ = self._window()
    today = await self._repo.count_since(provider=provider.value, since=start)
    total = await self._repo.count_since(provider=provider.value, since=None)
    return UsageStats(today_count=today, total_count=total)

  async def purge_abandoned_reservations(self, *, cutoff: datetime.datetime | None = None) -> int:
    """Drop reservations created before `cutoff` (default: older than the TTL)."""
    purged = await self._repo.purge_reservations(cutoff=cutoff or self._clock() - RESERVATION_TTL)
    if purged:
      logger.warning("Purged %s abandoned quota reservations", purged)
    return purged
