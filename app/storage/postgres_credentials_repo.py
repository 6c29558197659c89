"""Postgres-backed repository for encrypted provider credentials."""

from __future__ import annotations

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert

from app.core.database import require_session_factory
from app.schema.sql import SYSTEM_GEMINI_KEY, SystemConfig, User
from app.storage.credentials_repo import CredentialsRepository


class PostgresCredentialsRepository(CredentialsRepository):
  """Read and write ciphertext on users and system_config; every call hits the database."""

  def __init__(self) -> None:
    self._session_factory = require_session_factory()

  async def get_personal_key(self, user_id: str) -> str | None:
    async with self._session_factory() as session:
      result = await session.execute(select(User.anthropic_api_key, User.api_key_configured).where(User.id == user_id))
      row = result.one_or_none()
      if row is None or not row.api_key_configured:
        return None
      return row.anthropic_api_key

  async def set_personal_key(self, user_id: str, ciphertext: str | None) -> None:
    async with self._session_factory() as session:
      await session.execute(update(User).where(User.id == user_id).values(anthropic_api_key=ciphertext, api_key_configured=ciphertext is not None))
      await session.commit()

  async def get_system_key(self) -> str | None:
    async with self._session_factory() as session:
      result = await session.execute(select(SystemConfig.value).where(SystemConfig.key == SYSTEM_GEMINI_KEY))
      return result.scalar_one_or_none()

  async def set_system_key(self, ciphertext: str | None) -> None:
    async with self._session_factory() as session:
      if ciphertext is None:
        await session.execute(delete(SystemConfig).where(SystemConfig.key == SYSTEM_GEMINI_KEY))
      else:
        stmt = insert(SystemConfig).values(key=SYSTEM_GEMINI_KEY, value=ciphertext)
        await session.execute(stmt.on_conflict_do_update(index_elements=[SystemConfig.key], set_={"value": stmt.excluded.value}))
      await session.commit()
