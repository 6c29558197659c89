"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from app.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Aula generation service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  encryption_key: str | None
  firebase_project_id: str | None
  firebase_service_account_json_path: str | None
  claude_model: str
  gemini_model: str
  generation_max_tokens: int
  generation_max_continuations: int
  parsing_max_tokens: int
  document_context_chars: int
  fallback_daily_limit: int
  status_window_seconds: int
  provider_timeout_seconds: float


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("AULA_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("AULA_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("AULA_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("AULA_ENV", "development").lower()

  # Toggle verbose error output and SQL echo in non-production environments.
  debug = _parse_bool(os.getenv("AULA_DEBUG"))

  log_max_bytes = _positive_int("AULA_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("AULA_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("AULA_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Allow opt-in logging of 4xx HTTPExceptions for diagnostics.
  log_http_4xx = _parse_bool(os.getenv("AULA_LOG_HTTP_4XX"))

  encryption_key = _optional_str(os.getenv("AULA_ENCRYPTION_KEY") or os.getenv("ENCRYPTION_KEY"))
  if encryption_key is not None and len(encryption_key) != 64:
    raise ValueError("AULA_ENCRYPTION_KEY must be 32 bytes encoded as 64 hex characters.")

  # Continuations may be disabled entirely, so zero is allowed here.
  generation_max_continuations = int(os.getenv("AULA_GENERATION_MAX_CONTINUATIONS", "2"))
  if generation_max_continuations < 0:
    raise ValueError("AULA_GENERATION_MAX_CONTINUATIONS must be zero or a positive integer.")

  fallback_daily_limit = int(os.getenv("AULA_FALLBACK_DAILY_LIMIT", "10"))
  if fallback_daily_limit < 0:
    raise ValueError("AULA_FALLBACK_DAILY_LIMIT must be zero or a positive integer.")

  provider_timeout_seconds = float(os.getenv("AULA_PROVIDER_TIMEOUT_SECONDS", "120"))
  if provider_timeout_seconds <= 0:
    raise ValueError("AULA_PROVIDER_TIMEOUT_SECONDS must be positive.")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("AULA_ALLOWED_ORIGINS")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=log_http_4xx,
    pg_dsn=os.getenv("AULA_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("AULA_PG_CONNECT_TIMEOUT", "5"),
    encryption_key=encryption_key,
    firebase_project_id=_optional_str(os.getenv("AULA_FIREBASE_PROJECT_ID") or os.getenv("FIREBASE_PROJECT_ID")),
    firebase_service_account_json_path=_optional_str(os.getenv("AULA_FIREBASE_SERVICE_ACCOUNT_JSON_PATH")),
    claude_model=(os.getenv("AULA_CLAUDE_MODEL") or "claude-sonnet-4-20250514").strip(),
    gemini_model=(os.getenv("AULA_GEMINI_MODEL") or "gemini-2.0-flash").strip(),
    generation_max_tokens=_positive_int("AULA_GENERATION_MAX_TOKENS", "16384"),
    generation_max_continuations=generation_max_continuations,
    parsing_max_tokens=_positive_int("AULA_PARSING_MAX_TOKENS", "4096"),
    document_context_chars=_positive_int("AULA_DOCUMENT_CONTEXT_CHARS", "8000"),
    fallback_daily_limit=fallback_daily_limit,
    status_window_seconds=_positive_int("AULA_STATUS_WINDOW_SECONDS", "60"),
    provider_timeout_seconds=provider_timeout_seconds,
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  # Keep database configuration isolated so offline scripts don't require unrelated env vars.
  debug = _parse_bool(os.getenv("AULA_DEBUG"))
  pg_connect_timeout = _positive_int("AULA_PG_CONNECT_TIMEOUT", "5")
  pg_dsn = os.getenv("AULA_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
