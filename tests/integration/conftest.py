from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_credential_store, get_curriculum_repo, get_lessons_repo, get_orchestrator, get_program_parser, get_usage_ledger
from app.core.security import get_current_active_user
from app.main import app
from app.schema.sql import User, UserRole, UserStatus
from app.services.program_parsing import ProgramParser
from tests.fakes import TEACHER_ID, Harness, RecordingTaskRunner, make_harness


@dataclass
class ApiContext:
  client: TestClient
  harness: Harness
  runner: RecordingTaskRunner

  def login(self, *, role: UserRole = UserRole.TEACHER, user_id: str = TEACHER_ID) -> None:
    app.dependency_overrides[get_current_active_user] = lambda: User(id=user_id, firebase_uid=f"uid-{user_id}", email=f"{user_id}@scuola.example", role=role, status=UserStatus.APPROVED)


@pytest.fixture
def api() -> Iterator[ApiContext]:
  runner = RecordingTaskRunner()
  harness = make_harness(runner=runner)
  parser = ProgramParser(curriculum=harness.curriculum, credentials=harness.credentials, ledger=harness.ledger, model_factory=harness.model_factory, task_runner=runner)
  app.dependency_overrides[get_lessons_repo] = lambda: harness.lessons
  app.dependency_overrides[get_curriculum_repo] = lambda: harness.curriculum
  app.dependency_overrides[get_credential_store] = lambda: harness.credentials
  app.dependency_overrides[get_usage_ledger] = lambda: harness.ledger
  app.dependency_overrides[get_orchestrator] = lambda: harness.orchestrator
  app.dependency_overrides[get_program_parser] = lambda: parser
  context = ApiContext(client=TestClient(app), harness=harness, runner=runner)
  context.login()
  try:
    yield context
  finally:
    app.dependency_overrides.clear()
