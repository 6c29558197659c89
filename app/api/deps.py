"""Shared FastAPI dependencies that assemble services per request."""

from __future__ import annotations

from functools import partial

from fastapi import Depends

from app.ai.orchestrator import GenerationLimits, GenerationOrchestrator, ModelFactory
from app.ai.providers import build_model
from app.config import Settings, get_settings
from app.services.credentials import CredentialStore
from app.services.program_parsing import ProgramParser
from app.services.quotas import UsageLedger
from app.services.tasks.factory import get_task_runner
from app.services.tasks.interface import TaskRunner
from app.storage.credentials_repo import CredentialsRepository
from app.storage.curriculum_repo import CurriculumRepository
from app.storage.factory import _get_credentials_repo, _get_curriculum_repo, _get_lessons_repo, _get_usage_repo
from app.storage.lessons_repo import LessonsRepository
from app.storage.usage_repo import UsageRepository


def get_lessons_repo(settings: Settings = Depends(get_settings)) -> LessonsRepository:  # noqa: B008
  return _get_lessons_repo(settings)


def get_curriculum_repo(settings: Settings = Depends(get_settings)) -> CurriculumRepository:  # noqa: B008
  return _get_curriculum_repo(settings)


def get_credentials_repo(settings: Settings = Depends(get_settings)) -> CredentialsRepository:  # noqa: B008
  return _get_credentials_repo(settings)


def get_usage_repo(settings: Settings = Depends(get_settings)) -> UsageRepository:  # noqa: B008
  return _get_usage_repo(settings)


def get_credential_store(repo: CredentialsRepository = Depends(get_credentials_repo), settings: Settings = Depends(get_settings)) -> CredentialStore:  # noqa: B008
  return CredentialStore.from_settings(repo, settings)


def get_usage_ledger(repo: UsageRepository = Depends(get_usage_repo), settings: Settings = Depends(get_settings)) -> UsageLedger:  # noqa: B008
  return UsageLedger(repo, daily_limit=settings.fallback_daily_limit)


def get_model_factory(settings: Settings = Depends(get_settings)) -> ModelFactory:  # noqa: B008
  """Bind configured model names and timeouts to the provider clients."""
  return partial(build_model, settings=settings)


def get_runner() -> TaskRunner:
  return get_task_runner()


def get_orchestrator(
  settings: Settings = Depends(get_settings),  # noqa: B008
  lessons: LessonsRepository = Depends(get_lessons_repo),  # noqa: B008
  curriculum: CurriculumRepository = Depends(get_curriculum_repo),  # noqa: B008
  credentials: CredentialStore = Depends(get_credential_store),  # noqa: B008
  ledger: UsageLedger = Depends(get_usage_ledger),  # noqa: B008
  model_factory: ModelFactory = Depends(get_model_factory),  # noqa: B008
  task_runner: TaskRunner = Depends(get_runner),  # noqa: B008
) -> GenerationOrchestrator:
  return GenerationOrchestrator(
    lessons=lessons,
    curriculum=curriculum,
    credentials=credentials,
    ledger=ledger,
    model_factory=model_factory,
    task_runner=task_runner,
    limits=GenerationLimits.from_settings(settings),
  )


def get_program_parser(
  settings: Settings = Depends(get_settings),  # noqa: B008
  curriculum: CurriculumRepository = Depends(get_curriculum_repo),  # noqa: B008
  credentials: CredentialStore = Depends(get_credential_store),  # noqa: B008
  ledger: UsageLedger = Depends(get_usage_ledger),  # noqa: B008
  model_factory: ModelFactory = Depends(get_model_factory),  # noqa: B008
  task_runner: TaskRunner = Depends(get_runner),  # noqa: B008
) -> ProgramParser:
  return ProgramParser(curriculum=curriculum, credentials=credentials, ledger=ledger, model_factory=model_factory, task_runner=task_runner, max_output_tokens=settings.parsing_max_tokens)
