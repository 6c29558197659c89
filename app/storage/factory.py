from app.config import Settings
from app.storage.credentials_repo import CredentialsRepository
from app.storage.curriculum_repo import CurriculumRepository
from app.storage.lessons_repo import LessonsRepository
from app.storage.postgres_credentials_repo import PostgresCredentialsRepository
from app.storage.postgres_curriculum_repo import PostgresCurriculumRepository
from app.storage.postgres_lessons_repo import PostgresLessonsRepository
from app.storage.postgres_usage_repo import PostgresUsageRepository
from app.storage.usage_repo import UsageRepository


def _require_dsn(settings: Settings) -> None:
  if not settings.pg_dsn:
    raise ValueError("AULA_PG_DSN must be set to enable Postgres persistence.")


def _get_lessons_repo(settings: Settings) -> LessonsRepository:
  """Return the active generation-record repository."""
  _require_dsn(settings)
  return PostgresLessonsRepository()


def _get_curriculum_repo(settings: Settings) -> CurriculumRepository:
  """Return the active curriculum repository."""
  _require_dsn(settings)
  return PostgresCurriculumRepository()


def _get_credentials_repo(settings: Settings) -> CredentialsRepository:
  """Return the active credentials repository."""
  _require_dsn(settings)
  return PostgresCredentialsRepository()


def _get_usage_repo(settings: Settings) -> UsageRepository:
  """Return the active usage ledger repository."""
  _require_dsn(settings)
  return PostgresUsageRepository()
