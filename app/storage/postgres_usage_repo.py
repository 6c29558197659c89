"""Postgres-backed AI usage ledger with row-locked quota reservations."""

from __future__ import annotations

import datetime
import logging

from sqlalchemy import delete, func, select

from app.core.database import require_session_factory
from app.schema.sql import User
from app.schema.usage import AiQuotaReservation, AiUsageLog
from app.storage.usage_repo import QuotaReservation, UsageRepository
from app.utils.ids import generate_id

logger = logging.getLogger(__name__)


class PostgresUsageRepository(UsageRepository):
  """Ledger counts are derived by counting rows; nothing is decremented."""

  def __init__(self) -> None:
    self._session_factory = require_session_factory()

  async def count_since(self, *, provider: str, since: datetime.datetime | None, user_id: str | None = None) -> int:
    async with self._session_factory() as session:
      stmt = select(func.count()).select_from(AiUsageLog).where(AiUsageLog.provider == provider)
      if user_id is not None:
        stmt = stmt.where(AiUsageLog.user_id == user_id)
      if since is not None:
        stmt = stmt.where(AiUsageLog.created_at >= since)
      return int((await session.execute(stmt)).scalar_one())

  def _reservations_stmt(self, *, user_id: str, provider: str, since: datetime.datetime):
    return select(func.count()).select_from(AiQuotaReservation).where(AiQuotaReservation.user_id == user_id, AiQuotaReservation.provider == provider, AiQuotaReservation.created_at >= since)

  async def count_reservations(self, *, user_id: str, provider: str, since: datetime.datetime) -> int:
    async with self._session_factory() as session:
      return int((await session.execute(self._reservations_stmt(user_id=user_id, provider=provider, since=since))).scalar_one())

  async def try_reserve(self, *, user_id: str, provider: str, since: datetime.datetime, reservations_since: datetime.datetime, limit: int) -> QuotaReservation | None:
    async with self._session_factory() as session:
      async with session.begin():
        # Lock the user row so concurrent reservations for this user serialize here.
        await session.execute(select(User.id).where(User.id == user_id).with_for_update())
        used_stmt = select(func.count()).select_from(AiUsageLog).where(AiUsageLog.user_id == user_id, AiUsageLog.provider == provider, AiUsageLog.created_at >= since)
        reserved_stmt = self._reservations_stmt(user_id=user_id, provider=provider, since=reservations_since)
        used = int((await session.execute(used_stmt)).scalar_one())
        reserved = int((await session.execute(reserved_stmt)).scalar_one())
        if used + reserved >= limit:
          logger.info("Quota reservation refused user_id=%s provider=%s used=%s reserved=%s limit=%s", user_id, provider, used, reserved, limit)
          return None
        reservation = AiQuotaReservation(id=generate_id(), user_id=user_id, provider=provider)
        session.add(reservation)
      return QuotaReservation(reservation_id=reservation.id, user_id=user_id, provider=provider)

  async def append(self, *, user_id: str, provider: str, operation: str, reservation_id: str | None = None) -> None:
    async with self._session_factory() as session:
      async with session.begin():
        if reservation_id is not None:
          await session.execute(delete(AiQuotaReservation).where(AiQuotaReservation.id == reservation_id))
        session.add(AiUsageLog(user_id=user_id, provider=provider, operation=operation))

  async def release(self, reservation_id: str) -> None:
    async with self._session_factory() as session:
      async with session.begin():
        await session.execute(delete(AiQuotaReservation).where(AiQuotaReservation.id == reservation_id))

  async def purge_reservations(self, *, cutoff: datetime.datetime) -> int:
    async with self._session_factory() as session:
      async with session.begin():
        result = await session.execute(delete(AiQuotaReservation).where(AiQuotaReservation.created_at < cutoff))
      return int(result.rowcount or 0)
