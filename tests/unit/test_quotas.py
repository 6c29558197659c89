from __future__ import annotations

import datetime

import pytest

from app.ai.errors import QuotaExceededError
from app.ai.providers.base import AiProvider
from app.services.quotas import RESERVATION_TTL, UsageLedger, day_start, quota_exceeded_message
from tests.fakes import FakeUsageRepository

_TZ = datetime.timezone(datetime.timedelta(hours=2))


def test_day_start_is_local_midnight() -> None:
  now = datetime.datetime(2026, 3, 14, 23, 59, 30, tzinfo=_TZ)

  start = day_start(now)

  assert start.hour == 0 and start.minute == 0 and start.second == 0
  assert start <= now < start + datetime.timedelta(days=1)


def test_exceeded_message_names_limit_and_reset_time() -> None:
  message = quota_exceeded_message(10, datetime.datetime(2026, 3, 15, 0, 0, tzinfo=_TZ))

  assert "daily limit of 10 free generations" in message
  assert "00:00 on 2026-03-15" in message
  assert "personal Anthropic API key" in message


@pytest.mark.anyio
async def test_personal_provider_is_never_metered() -> None:
  repo = FakeUsageRepository()
  ledger = UsageLedger(repo, daily_limit=0)

  assert await ledger.reserve("teacher-1", AiProvider.CLAUDE) is None
  status = await ledger.check_quota("teacher-1", AiProvider.CLAUDE)
  assert status.allowed and status.limit is None
  assert repo.reservations == {}


@pytest.mark.anyio
async def test_reservations_count_against_the_limit() -> None:
  repo = FakeUsageRepository()
  ledger = UsageLedger(repo, daily_limit=2)

  first = await ledger.reserve("teacher-1", AiProvider.GEMINI)
  second = await ledger.reserve("teacher-1", AiProvider.GEMINI)
  assert first is not None and second is not None

  with pytest.raises(QuotaExceededError):
    await ledger.reserve("teacher-1", AiProvider.GEMINI)

  # Other users have their own allowance.
  assert await ledger.reserve("teacher-2", AiProvider.GEMINI) is not None


@pytest.mark.anyio
async def test_release_frees_the_slot_and_record_consumes_it() -> None:
  repo = FakeUsageRepository()
  ledger = UsageLedger(repo, daily_limit=1)

  reservation = await ledger.reserve("teacher-1", AiProvider.GEMINI)
  await ledger.release(reservation)
  reservation = await ledger.reserve("teacher-1", AiProvider.GEMINI)
  await ledger.record("teacher-1", AiProvider.GEMINI, "parsing", reservation=reservation)

  assert repo.reservations == {}
  assert [(entry.user_id, entry.operation) for entry in repo.entries] == [("teacher-1", "parsing")]
  status = await ledger.check_quota("teacher-1", AiProvider.GEMINI)
  assert status.used == 1
  assert not status.allowed
  assert status.resets_at is not None
  with pytest.raises(QuotaExceededError):
    await ledger.reserve("teacher-1", AiProvider.GEMINI)


@pytest.mark.anyio
async def test_zero_limit_blocks_every_fallback_call() -> None:
  ledger = UsageLedger(FakeUsageRepository(), daily_limit=0)

  with pytest.raises(QuotaExceededError):
    await ledger.reserve("teacher-1", AiProvider.GEMINI)


@pytest.mark.anyio
async def test_usage_stats_split_today_and_total() -> None:
  repo = FakeUsageRepository()
  ledger = UsageLedger(repo, daily_limit=10)
  await ledger.record("teacher-1", AiProvider.GEMINI, "generation")
  await ledger.record("teacher-2", AiProvider.GEMINI, "generation")
  await ledger.record("teacher-1", AiProvider.CLAUDE, "generation")
  repo.entries[0].created_at -= datetime.timedelta(days=3)

  stats = await ledger.usage_stats()

  assert stats.today_count == 1
  assert stats.total_count == 2


@pytest.mark.anyio
async def test_abandoned_reservations_are_purged() -> None:
  repo = FakeUsageRepository()
  ledger = UsageLedger(repo, daily_limit=5)
  old = await ledger.reserve("teacher-1", AiProvider.GEMINI)
  fresh = await ledger.reserve("teacher-1", AiProvider.GEMINI)
  user_id, provider, created_at = repo.reservations[old.reservation_id]
  repo.reservations[old.reservation_id] = (user_id, provider, created_at - datetime.timedelta(hours=2))

  assert await ledger.purge_abandoned_reservations() == 1
  assert set(repo.reservations) == {fresh.reservation_id}


@pytest.mark.anyio
async def test_check_quota_counts_calls_in_flight() -> None:
  repo = FakeUsageRepository()
  ledger = UsageLedger(repo, daily_limit=2)
  await ledger.record("teacher-1", AiProvider.GEMINI, "generation")
  await ledger.reserve("teacher-1", AiProvider.GEMINI)

  status = await ledger.check_quota("teacher-1", AiProvider.GEMINI)

  assert status.used == 1
  assert status.reserved == 1
  assert status.remaining == 0
  assert not status.allowed


@pytest.mark.anyio
async def test_reservations_past_the_ttl_stop_counting() -> None:
  repo = FakeUsageRepository()
  ledger = UsageLedger(repo, daily_limit=1)
  abandoned = await ledger.reserve("teacher-1", AiProvider.GEMINI)
  user_id, provider, created_at = repo.reservations[abandoned.reservation_id]
  repo.reservations[abandoned.reservation_id] = (user_id, provider, created_at - RESERVATION_TTL - datetime.timedelta(minutes=1))

  assert (await ledger.check_quota("teacher-1", AiProvider.GEMINI)).allowed
  assert await ledger.reserve("teacher-1", AiProvider.GEMINI) is not None
