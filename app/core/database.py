"""Async engine and session factory shared by the Postgres repositories."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import get_database_settings

_ASYNC_SCHEME = "postgresql+asyncpg://"


class Base(DeclarativeBase):
  pass


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def async_database_url(dsn: str | None) -> str | None:
  """Rewrite plain Postgres DSNs to the asyncpg driver; other URLs pass through."""
  if not dsn:
    return None
  for prefix in ("postgres://", "postgresql://"):
    if dsn.startswith(prefix):
      return _ASYNC_SCHEME + dsn[len(prefix) :]
  return dsn


def get_db_engine() -> AsyncEngine | None:
  global _engine
  if _engine is None:
    settings = get_database_settings()
    database_url = async_database_url(settings.pg_dsn)
    if database_url:
      _engine = create_async_engine(database_url, echo=settings.debug, pool_pre_ping=True, connect_args={"timeout": settings.pg_connect_timeout})
  return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession] | None:
  global _session_factory
  if _session_factory is None:
    db_engine = get_db_engine()
    if db_engine is not None:
      _session_factory = async_sessionmaker(bind=db_engine, expire_on_commit=False, class_=AsyncSession)
  return _session_factory


def require_session_factory() -> async_sessionmaker[AsyncSession]:
  """Return the session factory or fail loudly when no DSN is configured."""
  session_factory = get_session_factory()
  if session_factory is None:
    raise RuntimeError("Database connection is not configured (AULA_PG_DSN is missing).")
  return session_factory


async def dispose_engine() -> None:
  """Close pooled connections; the next repository call builds a fresh engine."""
  global _engine, _session_factory
  if _engine is not None:
    await _engine.dispose()
  _engine = None
  _session_factory = None


async def get_db() -> AsyncGenerator[AsyncSession]:
  """Dependency yielding one session per request."""
  async with require_session_factory()() as session:
    yield session
