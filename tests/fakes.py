"""In-memory repositories and scripted models shared by the test suite."""

from __future__ import annotations

import dataclasses
import datetime
import json
from collections.abc import Coroutine, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any
from unittest.mock import AsyncMock

from app.ai.contracts import GenerationRequest
from app.ai.orchestrator import GenerationLimits, GenerationOrchestrator, ModelFactory
from app.ai.providers.base import AIModel, AiProvider, ChatMessage, Completion
from app.core.crypto import CredentialCipher
from app.schema.curriculum import ProgramStatus, TopicStatus
from app.schema.lessons import ContentType, LessonStatus
from app.services.credentials import CredentialStore
from app.services.quotas import UsageLedger
from app.services.tasks.interface import TaskRunner
from app.services.tasks.local import LocalTaskRunner
from app.storage.curriculum_repo import DocumentRecord, ParsedModule, ProgramRecord, TopicContext
from app.storage.lessons_repo import LessonRecord, StatusRow
from app.storage.usage_repo import QuotaReservation
from app.utils.ids import generate_id

TEACHER_ID = "teacher-1"
OTHER_TEACHER_ID = "teacher-2"
DISCIPLINE_ID = "disc-math"
TEST_KEY = bytes(range(32))


def utcnow() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


def lesson_json(section_count: int = 2, **extra: Any) -> str:
  """A valid model response with `section_count` sections."""
  payload: dict[str, Any] = {
    "sections": [{"id": f"section-{index}", "type": "explanation", "title": f"Sezione {index}", "content": "Testo", "order": index} for index in range(section_count)],
    "objectives": ["Capire"],
    "prerequisites": [],
    "estimatedDuration": 60,
    "targetGrade": "3a superiore",
    "keywords": ["algebra"],
  }
  payload.update(extra)
  return json.dumps(payload)


def completion(text: str, *, truncated: bool = False, model_id: str = "claude/claude-test") -> Completion:
  return Completion(text=text, stop_reason="max_tokens" if truncated else "end_turn", model_id=model_id, truncated=truncated)


class ScriptedModel(AIModel):
  """Returns queued completions (or raises queued exceptions) and records every call."""

  def __init__(self, responses: Sequence[Completion | Exception] = (), *, provider: AiProvider = AiProvider.CLAUDE, name: str = "test-model") -> None:
    self.provider = provider
    self.name = name
    self.responses = list(responses)
    self.calls: list[list[ChatMessage]] = []

  async def complete(self, messages: Sequence[ChatMessage], *, max_output_tokens: int) -> Completion:
    self.calls.append(list(messages))
    if not self.responses:
      raise AssertionError("ScriptedModel called more times than scripted")
    item = self.responses.pop(0)
    if isinstance(item, Exception):
      raise item
    return item


@dataclass
class FakeStore:
  """State shared by the fake lessons and curriculum repositories."""

  lessons: dict[str, LessonRecord] = field(default_factory=dict)
  topics: dict[str, TopicContext] = field(default_factory=dict)
  programs: dict[str, ProgramRecord] = field(default_factory=dict)
  disciplines: dict[str, str] = field(default_factory=dict)
  documents: dict[str, DocumentRecord] = field(default_factory=dict)
  parsed: dict[str, list[ParsedModule]] = field(default_factory=dict)

  def add_topic(self, topic_id: str = "topic-1", *, status: TopicStatus = TopicStatus.PENDING, teacher_id: str = TEACHER_ID, **overrides: Any) -> TopicContext:
    values: dict[str, Any] = {
      "topic_id": topic_id,
      "title": "Le equazioni",
      "description": "Primo e secondo grado",
      "content_type": ContentType.LEZIONE,
      "status": status,
      "lesson_id": None,
      "module_name": "Algebra",
      "program_title": "Matematica 3A",
      "sibling_titles": ("Le equazioni", "Le disequazioni"),
      "teacher_id": teacher_id,
      "discipline_id": DISCIPLINE_ID,
    }
    values.update(overrides)
    topic = TopicContext(**values)
    self.topics[topic_id] = topic
    return topic

  def add_lesson(self, *, status: LessonStatus, teacher_id: str = TEACHER_ID, topic_id: str | None = None, updated_at: datetime.datetime | None = None, **overrides: Any) -> LessonRecord:
    values: dict[str, Any] = {
      "lesson_id": generate_id(),
      "teacher_id": teacher_id,
      "title": "Le frazioni",
      "content_type": ContentType.LEZIONE,
      "discipline_id": DISCIPLINE_ID,
      "status": status,
      "content": {},
      "topic_id": topic_id,
      "updated_at": updated_at or utcnow(),
    }
    values.update(overrides)
    record = LessonRecord(**values)
    self.lessons[record.lesson_id] = record
    if topic_id is not None and topic_id in self.topics:
      self.topics[topic_id] = dataclasses.replace(self.topics[topic_id], lesson_id=record.lesson_id)
    return record


class FakeLessonsRepository:
  def __init__(self, store: FakeStore) -> None:
    self.store = store

  def _mirror_topic(self, linked_lesson_id: str, **changes: Any) -> None:
    for topic_id, topic in list(self.store.topics.items()):
      if topic.lesson_id == linked_lesson_id:
        self.store.topics[topic_id] = dataclasses.replace(topic, **changes)

  async def create_pending(self, request: GenerationRequest, *, content: dict[str, Any]) -> str | None:
    topic = None
    if request.topic_id:
      topic = self.store.topics.get(request.topic_id)
      if topic is None or topic.status not in (TopicStatus.PENDING, TopicStatus.FAILED):
        return None
    lesson_id = generate_id()
    self.store.lessons[lesson_id] = LessonRecord(
      lesson_id=lesson_id,
      teacher_id=request.user_id,
      title=request.title,
      content_type=request.content_type,
      discipline_id=request.discipline_id,
      status=LessonStatus.GENERATING,
      content=content,
      description=request.description,
      document_id=request.document_id,
      class_name=request.class_name,
      topic_id=request.topic_id,
      updated_at=utcnow(),
    )
    if topic is not None:
      self.store.topics[topic.topic_id] = dataclasses.replace(topic, status=TopicStatus.GENERATING, lesson_id=lesson_id)
    return lesson_id

  async def get_lesson(self, lesson_id: str) -> LessonRecord | None:
    return self.store.lessons.get(lesson_id)

  def _transition(self, lesson_id: str, *, expected: LessonStatus, topic_status: TopicStatus, **changes: Any) -> bool:
    record = self.store.lessons.get(lesson_id)
    if record is None or record.status != expected:
      return False
    self.store.lessons[lesson_id] = dataclasses.replace(record, updated_at=utcnow(), **changes)
    self._mirror_topic(lesson_id, status=topic_status)
    return True

  async def complete(self, lesson_id: str, *, content: dict[str, Any], ai_model_used: str) -> bool:
    return self._transition(lesson_id, expected=LessonStatus.GENERATING, topic_status=TopicStatus.GENERATED, status=LessonStatus.DRAFT, content=content, ai_model_used=ai_model_used, failure_reason=None)

  async def fail(self, lesson_id: str, *, reason: str) -> bool:
    return self._transition(lesson_id, expected=LessonStatus.GENERATING, topic_status=TopicStatus.FAILED, status=LessonStatus.FAILED, failure_reason=reason)

  async def restart(self, lesson_id: str) -> bool:
    return self._transition(lesson_id, expected=LessonStatus.FAILED, topic_status=TopicStatus.GENERATING, status=LessonStatus.GENERATING, failure_reason=None)

  async def delete_lesson(self, lesson_id: str) -> bool:
    self._mirror_topic(lesson_id, status=TopicStatus.PENDING, lesson_id=None)
    return self.store.lessons.pop(lesson_id, None) is not None

  async def list_status_rows(self, teacher_id: str, *, since: datetime.datetime) -> list[StatusRow]:
    rows = []
    for record in self.store.lessons.values():
      if record.teacher_id != teacher_id or record.updated_at is None:
        continue
      recent_terminal = record.status in (LessonStatus.DRAFT, LessonStatus.FAILED) and record.updated_at >= since
      if record.status == LessonStatus.GENERATING or recent_terminal:
        rows.append(StatusRow(lesson_id=record.lesson_id, title=record.title, status=record.status, failure_reason=record.failure_reason, updated_at=record.updated_at))
    return rows

  async def fail_stale(self, *, cutoff: datetime.datetime, reason: str) -> list[str]:
    stale = [record.lesson_id for record in self.store.lessons.values() if record.status == LessonStatus.GENERATING and record.updated_at is not None and record.updated_at < cutoff]
    for lesson_id in stale:
      self._transition(lesson_id, expected=LessonStatus.GENERATING, topic_status=TopicStatus.FAILED, status=LessonStatus.FAILED, failure_reason=reason)
    return stale


class FakeCurriculumRepository:
  def __init__(self, store: FakeStore) -> None:
    self.store = store

  async def get_discipline_name(self, discipline_id: str) -> str | None:
    return self.store.disciplines.get(discipline_id)

  async def get_document(self, document_id: str) -> DocumentRecord | None:
    return self.store.documents.get(document_id)

  async def get_topic_context(self, topic_id: str) -> TopicContext | None:
    return self.store.topics.get(topic_id)

  async def get_program(self, program_id: str) -> ProgramRecord | None:
    return self.store.programs.get(program_id)

  async def create_program(self, *, teacher_id: str, discipline_id: str, title: str, school_year: str, class_name: str, raw_content: str | None, document_id: str | None = None) -> ProgramRecord:
    program = ProgramRecord(
      program_id=generate_id(),
      title=title,
      teacher_id=teacher_id,
      discipline_id=discipline_id,
      status=ProgramStatus.UPLOADED,
      raw_content=raw_content,
      school_year=school_year,
      class_name=class_name,
      document_id=document_id,
      updated_at=utcnow(),
    )
    self.store.programs[program.program_id] = program
    return program

  async def update_topic(self, topic_id: str, values: Mapping[str, Any]) -> bool:
    topic = self.store.topics.get(topic_id)
    if topic is None or topic.status == TopicStatus.GENERATING:
      return False
    self.store.topics[topic_id] = dataclasses.replace(topic, **values)
    return True

  async def count_topics_in_use(self, program_id: str) -> int:
    return sum(1 for topic in self.store.topics.values() if topic.program_id == program_id and topic.status in (TopicStatus.GENERATING, TopicStatus.GENERATED))

  async def start_parsing(self, program_id: str) -> bool:
    program = self.store.programs.get(program_id)
    if program is None or program.status == ProgramStatus.PARSING:
      return False
    self.store.programs[program_id] = dataclasses.replace(program, status=ProgramStatus.PARSING, failure_reason=None, updated_at=utcnow())
    return True

  async def fail_parsing(self, program_id: str, *, reason: str) -> None:
    self.store.programs[program_id] = dataclasses.replace(self.store.programs[program_id], status=ProgramStatus.FAILED, failure_reason=reason, updated_at=utcnow())

  async def save_parsed_program(self, program_id: str, modules: list[ParsedModule]) -> bool:
    if await self.count_topics_in_use(program_id):
      return False
    self.store.parsed[program_id] = list(modules)
    self.store.programs[program_id] = dataclasses.replace(self.store.programs[program_id], status=ProgramStatus.PARSED, failure_reason=None, updated_at=utcnow())
    return True

  async def fail_interrupted_parsing(self, *, cutoff: datetime.datetime, reason: str) -> list[str]:
    interrupted = [program.program_id for program in self.store.programs.values() if program.status == ProgramStatus.PARSING and (program.updated_at is None or program.updated_at < cutoff)]
    for program_id in interrupted:
      await self.fail_parsing(program_id, reason=reason)
    return interrupted


class FakeCredentialsRepository:
  def __init__(self) -> None:
    self.personal: dict[str, str] = {}
    self.system: str | None = None

  async def get_personal_key(self, user_id: str) -> str | None:
    return self.personal.get(user_id)

  async def set_personal_key(self, user_id: str, ciphertext: str | None) -> None:
    if ciphertext is None:
      self.personal.pop(user_id, None)
    else:
      self.personal[user_id] = ciphertext

  async def get_system_key(self) -> str | None:
    return self.system

  async def set_system_key(self, ciphertext: str | None) -> None:
    self.system = ciphertext


@dataclass
class UsageEntry:
  user_id: str
  provider: str
  operation: str
  created_at: datetime.datetime


class FakeUsageRepository:
  def __init__(self) -> None:
    self.entries: list[UsageEntry] = []
    self.reservations: dict[str, tuple[str, str, datetime.datetime]] = {}

  async def count_since(self, *, provider: str, since: datetime.datetime | None, user_id: str | None = None) -> int:
    return sum(1 for entry in self.entries if entry.provider == provider and (user_id is None or entry.user_id == user_id) and (since is None or entry.created_at >= since))

  async def count_reservations(self, *, user_id: str, provider: str, since: datetime.datetime) -> int:
    return sum(1 for owner, held_provider, created_at in self.reservations.values() if owner == user_id and held_provider == provider and created_at >= since)

  async def try_reserve(self, *, user_id: str, provider: str, since: datetime.datetime, reservations_since: datetime.datetime, limit: int) -> QuotaReservation | None:
    used = await self.count_since(provider=provider, since=since, user_id=user_id)
    reserved = await self.count_reservations(user_id=user_id, provider=provider, since=reservations_since)
    if used + reserved >= limit:
      return None
    reservation_id = generate_id()
    self.reservations[reservation_id] = (user_id, provider, utcnow())
    return QuotaReservation(reservation_id=reservation_id, user_id=user_id, provider=provider)

  async def append(self, *, user_id: str, provider: str, operation: str, reservation_id: str | None = None) -> None:
    if reservation_id is not None:
      self.reservations.pop(reservation_id, None)
    self.entries.append(UsageEntry(user_id=user_id, provider=provider, operation=operation, created_at=utcnow()))

  async def release(self, reservation_id: str) -> None:
    self.reservations.pop(reservation_id, None)

  async def purge_reservations(self, *, cutoff: datetime.datetime) -> int:
    stale = [reservation_id for reservation_id, (_, _, created_at) in self.reservations.items() if created_at < cutoff]
    for reservation_id in stale:
      del self.reservations[reservation_id]
    return len(stale)


@dataclass
class Harness:
  """A fully wired orchestrator over in-memory state."""

  store: FakeStore
  lessons: FakeLessonsRepository
  curriculum: FakeCurriculumRepository
  credentials_repo: FakeCredentialsRepository
  usage_repo: FakeUsageRepository
  credentials: CredentialStore
  ledger: UsageLedger
  runner: TaskRunner
  cipher: CredentialCipher
  models: dict[AiProvider, ScriptedModel]
  orchestrator: GenerationOrchestrator
  model_factory: ModelFactory
  factory_calls: list[tuple[AiProvider, str]] = field(default_factory=list)

  def set_personal_key(self, api_key: str = "sk-ant-personal-key-123", user_id: str = TEACHER_ID) -> None:
    self.credentials_repo.personal[user_id] = self.cipher.encrypt(api_key)

  def set_system_key(self, api_key: str = "AIza-shared-gemini-key") -> None:
    self.credentials_repo.system = self.cipher.encrypt(api_key)

  def script(self, provider: AiProvider, *responses: Completion | Exception) -> ScriptedModel:
    self.models[provider].responses.extend(responses)
    return self.models[provider]

  def request(self, **overrides: Any) -> GenerationRequest:
    values: dict[str, Any] = {"user_id": TEACHER_ID, "title": "Le frazioni", "content_type": ContentType.LEZIONE, "discipline_id": DISCIPLINE_ID}
    values.update(overrides)
    return GenerationRequest(**values)


def make_harness(*, limits: GenerationLimits | None = None, daily_limit: int = 10, runner: TaskRunner | None = None) -> Harness:
  store = FakeStore(disciplines={DISCIPLINE_ID: "Matematica"})
  lessons = FakeLessonsRepository(store)
  curriculum = FakeCurriculumRepository(store)
  credentials_repo = FakeCredentialsRepository()
  usage_repo = FakeUsageRepository()
  cipher = CredentialCipher(TEST_KEY)
  credentials = CredentialStore(credentials_repo, personal_validator=AsyncMock(return_value=True), system_validator=AsyncMock(return_value=True), cipher_factory=lambda: cipher)
  ledger = UsageLedger(usage_repo, daily_limit=daily_limit)
  runner = runner or LocalTaskRunner()
  models = {AiProvider.CLAUDE: ScriptedModel(provider=AiProvider.CLAUDE), AiProvider.GEMINI: ScriptedModel(provider=AiProvider.GEMINI, name="gemini-test")}
  factory_calls: list[tuple[AiProvider, str]] = []

  def model_factory(provider: AiProvider, api_key: str) -> AIModel:
    factory_calls.append((provider, api_key))
    return models[provider]

  orchestrator = GenerationOrchestrator(lessons=lessons, curriculum=curriculum, credentials=credentials, ledger=ledger, model_factory=model_factory, task_runner=runner, limits=limits)
  return Harness(
    store=store,
    lessons=lessons,
    curriculum=curriculum,
    credentials_repo=credentials_repo,
    usage_repo=usage_repo,
    credentials=credentials,
    ledger=ledger,
    runner=runner,
    cipher=cipher,
    models=models,
    orchestrator=orchestrator,
    model_factory=model_factory,
    factory_calls=factory_calls,
  )


class RecordingTaskRunner:
  """Records launched job names and closes the coroutine instead of running it."""

  def __init__(self) -> None:
    self.launched: list[str] = []

  def launch(self, name: str, job: Coroutine[Any, Any, None]) -> None:
    self.launched.append(name)
    job.close()

  @property
  def in_flight(self) -> int:
    return 0

  async def drain(self, timeout: float | None = None) -> int:
    return 0
