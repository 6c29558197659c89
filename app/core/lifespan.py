import datetime
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.core.database import dispose_engine
from app.core.firebase import initialize_firebase
from app.core.logging import _initialize_logging
from app.services.maintenance import sweep_interrupted_work
from app.services.quotas import UsageLedger
from app.services.tasks.factory import get_task_runner
from app.storage.factory import _get_curriculum_repo, _get_lessons_repo, _get_usage_repo

# In-flight generations get this long to finish before shutdown proceeds.
_SHUTDOWN_GRACE_SECONDS = 10.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and auth, sweep interrupted work, and drain background tasks on shutdown."""
  from app.config import get_settings

  started_at = datetime.datetime.now(datetime.UTC)
  settings = get_settings()
  logger = logging.getLogger("app.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
    initialize_firebase()
  except Exception:  # noqa: BLE001
    # Log initialization failures but allow the app to continue starting.
    logger.warning("Initial setup failed; continuing startup.", exc_info=True)

  if settings.pg_dsn:
    try:
      ledger = UsageLedger(_get_usage_repo(settings), daily_limit=settings.fallback_daily_limit)
      await sweep_interrupted_work(lessons=_get_lessons_repo(settings), curriculum=_get_curriculum_repo(settings), ledger=ledger, started_at=started_at)
    except Exception:  # noqa: BLE001
      logger.error("Sweeping interrupted work failed; orphaned records stay in flight until the next start.", exc_info=True)
  else:
    logger.warning("AULA_PG_DSN is not set; skipping the interrupted-work sweep.")

  yield

  runner = get_task_runner()
  if runner.in_flight:
    logger.warning("Shutting down with %s background tasks in flight; waiting up to %ss", runner.in_flight, _SHUTDOWN_GRACE_SECONDS)
    pending = await runner.drain(timeout=_SHUTDOWN_GRACE_SECONDS)
    if pending:
      logger.warning("%s background tasks did not finish; their records will be failed on next startup", pending)

  await dispose_engine()
