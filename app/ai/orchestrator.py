"""Generation orchestrator: placeholder record, provider call, parse, persist.

A generation runs in two phases. `create_pending` writes a GENERATING record
synchronously so the caller gets an id at once; `run_generation` then does
the slow work in the background and always leaves the record in DRAFT or
FAILED. Status writes are conditional, so a record deleted or already
finished in the meantime is never resurrected.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from dataclasses import dataclass

from app.ai.contracts import GenerationRequest
from app.ai.errors import DisciplineNotFoundError, GenerationError, ProviderNotConfiguredError, ResponseTooLongError
from app.ai.prompts import CONTINUATION_PROMPT, DEFAULT_DOCUMENT_CHARS, build_prompt, format_module_context
from app.ai.providers.base import AIModel, AiProvider, ChatMessage, Completion
from app.ai.resolver import resolve_provider
from app.config import Settings
from app.schema.lesson_content import content_to_builtins, empty_content, parse_lesson_content
from app.schema.lessons import LessonStatus
from app.services.credentials import CredentialStore
from app.services.errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from app.services.quotas import UsageLedger
from app.services.tasks.interface import TaskRunner
from app.storage.curriculum_repo import CurriculumRepository
from app.storage.lessons_repo import LessonRecord, LessonsRepository
from app.storage.usage_repo import QuotaReservation

logger = logging.getLogger(__name__)

ModelFactory = Callable[[AiProvider, str], AIModel]


@dataclass(frozen=True)
class GenerationLimits:
  max_output_tokens: int = 16384
  max_continuations: int = 2
  document_chars: int = DEFAULT_DOCUMENT_CHARS

  @classmethod
  def from_settings(cls, settings: Settings) -> GenerationLimits:
    return cls(max_output_tokens=settings.generation_max_tokens, max_continuations=settings.generation_max_continuations, document_chars=settings.document_context_chars)


def _failure_reason(exc: BaseException) -> str:
  return str(exc) or type(exc).__name__


async def complete_with_continuations(model: AIModel, prompt: str, *, max_output_tokens: int, max_continuations: int) -> tuple[str, Completion]:
  """Call the model and keep asking it to continue while the output is cut off.

  Returns the concatenated text of every part and the last completion. More
  than `max_continuations` truncated continuations raise ResponseTooLongError
  and nothing is parsed.
  """
  completion = await model.complete([ChatMessage("user", prompt)], max_output_tokens=max_output_tokens)
  parts = [completion.text]
  continuations = 0
  while completion.truncated:
    if continuations >= max_continuations:
      logger.warning("Response still truncated after %s continuations", continuations)
      raise ResponseTooLongError()
    continuations += 1
    assembled = "".join(parts)
    logger.info("Response truncated (%s chars); requesting continuation %s/%s", len(assembled), continuations, max_continuations)
    history = [ChatMessage("user", prompt), ChatMessage("assistant", assembled), ChatMessage("user", CONTINUATION_PROMPT)]
    completion = await model.complete(history, max_output_tokens=max_output_tokens)
    parts.append(completion.text)
  return "".join(parts), completion


class GenerationOrchestrator:
  """Drive generation records through GENERATING -> DRAFT | FAILED."""

  def __init__(
    self,
    *,
    lessons: LessonsRepository,
    curriculum: CurriculumRepository,
    credentials: CredentialStore,
    ledger: UsageLedger,
    model_factory: ModelFactory,
    task_runner: TaskRunner,
    limits: GenerationLimits | None = None,
  ) -> None:
    self._lessons = lessons
    self._curriculum = curriculum
    self._credentials = credentials
    self._ledger = ledger
    self._model_factory = model_factory
    self._task_runner = task_runner
    self._limits = limits or GenerationLimits()

  async def create_pending(self, request: GenerationRequest) -> str:
    """Persist the GENERATING placeholder and, for topic requests, claim the topic."""
    lesson_id = await self._lessons.create_pending(request, content=empty_content())
    if lesson_id is None:
      raise ConflictError("This topic is already being generated or already has a lesson.")
    logger.info("Created pending lesson lesson_id=%s type=%s topic_id=%s", lesson_id, request.content_type.value, request.topic_id)
    return lesson_id

  async def create_and_launch_generation(self, request: GenerationRequest) -> str:
    """Validate, create the placeholder and start the background run; returns the record id."""
    request = await self._validate(request)
    lesson_id = await self.create_pending(request)
    self._launch(lesson_id, request)
    return lesson_id

  async def _validate(self, request: GenerationRequest) -> GenerationRequest:
    title = request.title.strip()
    if not title:
      raise InvalidInputError("Title is required.")
    if not request.discipline_id:
      raise InvalidInputError("Discipline is required.")
    if await self._curriculum.get_discipline_name(request.discipline_id) is None:
      raise NotFoundError("Discipline not found.")
    if request.document_id:
      document = await self._curriculum.get_document(request.document_id)
      if document is None or document.teacher_id != request.user_id:
        raise NotFoundError("Document not found.")
    description = (request.description or "").strip() or None
    return dataclasses.replace(request, title=title, description=description)

  def _launch(self, lesson_id: str, request: GenerationRequest) -> None:
    self._task_runner.launch(f"generation:{lesson_id}", self.run_generation(lesson_id, request))

  async def run_generation(self, lesson_id: str, request: GenerationRequest) -> None:
    """Run one generation to a terminal state. Never raises."""
    logger.info("Starting generation lesson_id=%s title=%r type=%s", lesson_id, request.title, request.content_type.value)
    try:
      content, model_id = await self._generate(request)
    except GenerationError as exc:
      logger.warning("Generation failed lesson_id=%s code=%s: %s", lesson_id, exc.code, exc)
      await self._mark_failed(lesson_id, _failure_reason(exc))
      return
    except Exception as exc:  # noqa: BLE001
      logger.error("Unexpected generation failure lesson_id=%s: %s", lesson_id, exc, exc_info=True)
      await self._mark_failed(lesson_id, _failure_reason(exc))
      return

    try:
      stored = await self._lessons.complete(lesson_id, content=content, ai_model_used=model_id)
    except Exception as exc:  # noqa: BLE001
      logger.error("Saving generated content failed lesson_id=%s: %s", lesson_id, exc, exc_info=True)
      await self._mark_failed(lesson_id, _failure_reason(exc))
      return

    if stored:
      logger.info("Generation completed lesson_id=%s model=%s sections=%s", lesson_id, model_id, len(content.get("sections", [])))
    else:
      logger.warning("Lesson %s is no longer GENERATING; discarding generated content", lesson_id)

  async def _mark_failed(self, lesson_id: str, reason: str) -> None:
    try:
      if not await self._lessons.fail(lesson_id, reason=reason):
        logger.warning("Lesson %s is no longer GENERATING; failure not recorded", lesson_id)
    except Exception as exc:  # noqa: BLE001
      logger.error("Recording failure for lesson_id=%s failed: %s", lesson_id, exc, exc_info=True)

  async def _generate(self, request: GenerationRequest) -> tuple[dict, str]:
    discipline_name = await self._curriculum.get_discipline_name(request.discipline_id)
    if discipline_name is None:
      raise DisciplineNotFoundError()

    module_context = None
    if request.topic_id:
      topic = await self._curriculum.get_topic_context(request.topic_id)
      if topic is not None:
        module_context = format_module_context(topic.program_title, topic.module_name, topic.sibling_titles)

    document_text = None
    if request.document_id:
      document = await self._curriculum.get_document(request.document_id)
      if document is not None:
        document_text = document.extracted_text

    provider = await resolve_provider(request.user_id, self._credentials)
    logger.info("Resolved provider=%s user_id=%s", provider.value, request.user_id)
    reservation = await self._ledger.reserve(request.user_id, provider)
    try:
      prompt = build_prompt(
        request.content_type,
        request.title,
        discipline_name,
        description=request.description,
        module_context=module_context,
        document_text=document_text,
        document_chars=self._limits.document_chars,
      )
      model = await self._model_for(provider, request.user_id)
      assembled, completion = await complete_with_continuations(model, prompt, max_output_tokens=self._limits.max_output_tokens, max_continuations=self._limits.max_continuations)
      content = parse_lesson_content(assembled)
    except Exception:
      if reservation is not None:
        await self._release_quietly(reservation)
      raise

    await self._ledger.record(request.user_id, provider, "generation", reservation=reservation)
    return content_to_builtins(content), completion.model_id

  async def _model_for(self, provider: AiProvider, user_id: str) -> AIModel:
    api_key = await self._credentials.key_for(provider, user_id)
    if not api_key:
      raise ProviderNotConfiguredError(f"The {provider.value} API key was removed before the generation started.")
    return self._model_factory(provider, api_key)

  async def _release_quietly(self, reservation: QuotaReservation) -> None:
    try:
      await self._ledger.release(reservation)
    except Exception as exc:  # noqa: BLE001
      logger.error("Releasing quota reservation %s failed: %s", reservation.reservation_id, exc, exc_info=True)

  async def retry_generation(self, lesson_id: str, user_id: str) -> None:
    """Restart a FAILED record in place, re-reading inputs from its topic when linked."""
    record = await self._lessons.get_lesson(lesson_id)
    if record is None:
      raise NotFoundError("Lesson not found.")
    if record.teacher_id != user_id:
      raise ForbiddenError("You can only retry your own lessons.")
    if record.status != LessonStatus.FAILED:
      raise ConflictError("Only failed generations can be retried.")

    request = await self._retry_request(record)
    if not await self._lessons.restart(lesson_id):
      raise ConflictError("Only failed generations can be retried.")
    logger.info("Retrying generation lesson_id=%s", lesson_id)
    self._launch(lesson_id, request)

  async def _retry_request(self, record: LessonRecord) -> GenerationRequest:
    title, description, content_type = record.title, record.description, record.content_type
    if record.topic_id:
      topic = await self._curriculum.get_topic_context(record.topic_id)
      if topic is not None:
        # The topic may have been edited since the failed attempt.
        title, description, content_type = topic.title, topic.description, topic.content_type
    return GenerationRequest(
      user_id=record.teacher_id,
      title=title,
      content_type=content_type,
      discipline_id=record.discipline_id,
      description=description,
      topic_id=record.topic_id,
      document_id=record.document_id,
      class_name=record.class_name,
    )
