"""AI extraction of modules and topics from an uploaded program text."""

from __future__ import annotations

import logging

import msgspec

from app.ai.errors import ContentParseError, GenerationError, ProviderNotConfiguredError, ResponseTooLongError
from app.ai.orchestrator import ModelFactory
from app.ai.prompts import build_parsing_prompt
from app.ai.providers.base import ChatMessage
from app.ai.resolver import resolve_provider
from app.schema.curriculum import ProgramStatus
from app.schema.lesson_content import strip_json_fences
from app.services.credentials import CredentialStore
from app.services.errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from app.services.quotas import UsageLedger
from app.services.tasks.interface import TaskRunner
from app.storage.curriculum_repo import CurriculumRepository, ParsedModule, ParsedTopic

logger = logging.getLogger(__name__)

REPARSE_REFUSED_REASON = "Some topics of this program are being generated or already have a lesson. Delete those lessons before analysing the program again."


class _TopicPayload(msgspec.Struct):
  title: str
  description: str | None = None


class _ModulePayload(msgspec.Struct):
  name: str
  topics: list[_TopicPayload] = []
  description: str | None = None


class _ProgramPayload(msgspec.Struct):
  modules: list[_ModulePayload]


def parse_program_structure(raw: str) -> list[ParsedModule]:
  """Decode the model output; modules without topics are dropped."""
  try:
    payload = msgspec.json.decode(strip_json_fences(raw), type=_ProgramPayload)
  except (msgspec.ValidationError, msgspec.DecodeError) as exc:
    raise ContentParseError(f"AI response is not a valid program structure: {exc}") from exc

  modules = [
    ParsedModule(
      name=module.name.strip(),
      description=(module.description or "").strip() or None,
      topics=tuple(ParsedTopic(title=topic.title.strip(), description=(topic.description or "").strip() or None) for topic in module.topics if topic.title.strip()),
    )
    for module in payload.modules
  ]
  modules = [module for module in modules if module.name and module.topics]
  if not modules:
    raise ContentParseError("No modules were extracted from the program.")
  return modules


class ProgramParser:
  """Move a program UPLOADED/PARSED/FAILED -> PARSING -> PARSED | FAILED."""

  def __init__(
    self,
    *,
    curriculum: CurriculumRepository,
    credentials: CredentialStore,
    ledger: UsageLedger,
    model_factory: ModelFactory,
    task_runner: TaskRunner,
    max_output_tokens: int = 4096,
  ) -> None:
    self._curriculum = curriculum
    self._credentials = credentials
    self._ledger = ledger
    self._model_factory = model_factory
    self._task_runner = task_runner
    self._max_output_tokens = max_output_tokens

  async def start_parsing(self, program_id: str, user_id: str) -> None:
    """Validate ownership and content, flip to PARSING and analyse in the background."""
    program = await self._curriculum.get_program(program_id)
    if program is None:
      raise NotFoundError("Program not found.")
    if program.teacher_id != user_id:
      raise ForbiddenError("You can only analyse your own programs.")
    if program.status == ProgramStatus.PARSING:
      raise ConflictError("The program is already being analysed.")
    if await self._curriculum.count_topics_in_use(program_id):
      raise ConflictError(REPARSE_REFUSED_REASON)
    raw_content = (program.raw_content or "").strip()
    if not raw_content:
      raise InvalidInputError("The program has no content to analyse.")
    discipline_name = await self._curriculum.get_discipline_name(program.discipline_id)
    if discipline_name is None:
      raise NotFoundError("Discipline not found.")

    if not await self._curriculum.start_parsing(program_id):
      raise ConflictError("The program is already being analysed.")
    logger.info("Program parsing started program_id=%s chars=%s", program_id, len(raw_content))
    self._task_runner.launch(f"parsing:{program_id}", self.run_parsing(program_id, user_id, discipline_name=discipline_name, raw_content=raw_content))

  async def run_parsing(self, program_id: str, user_id: str, *, discipline_name: str, raw_content: str) -> None:
    """Analyse and save the tree, or mark the program FAILED. Never raises."""
    try:
      modules = await self._extract(user_id, discipline_name, raw_content)
      saved = await self._curriculum.save_parsed_program(program_id, modules)
    except Exception as exc:  # noqa: BLE001
      if isinstance(exc, GenerationError):
        logger.warning("Program parsing failed program_id=%s code=%s: %s", program_id, exc.code, exc)
      else:
        logger.error("Unexpected program parsing failure program_id=%s: %s", program_id, exc, exc_info=True)
      await self._fail_quietly(program_id, str(exc) or type(exc).__name__)
      return
    if not saved:
      # A topic was sent to generation while the analysis ran; its tree stays.
      logger.warning("Program parsing result discarded program_id=%s: topics in use", program_id)
      await self._fail_quietly(program_id, REPARSE_REFUSED_REASON)
      return
    topic_count = sum(len(module.topics) for module in modules)
    logger.info("Program parsed program_id=%s modules=%s topics=%s", program_id, len(modules), topic_count)

  async def _fail_quietly(self, program_id: str, reason: str) -> None:
    try:
      await self._curriculum.fail_parsing(program_id, reason=reason)
    except Exception as persist_exc:  # noqa: BLE001
      logger.error("Recording parsing failure for program_id=%s failed: %s", program_id, persist_exc, exc_info=True)

  async def _extract(self, user_id: str, discipline_name: str, raw_content: str) -> list[ParsedModule]:
    provider = await resolve_provider(user_id, self._credentials)
    reservation = await self._ledger.reserve(user_id, provider)
    try:
      api_key = await self._credentials.key_for(provider, user_id)
      if not api_key:
        raise ProviderNotConfiguredError(f"The {provider.value} API key was removed before the analysis started.")
      model = self._model_factory(provider, api_key)
      completion = await model.complete([ChatMessage("user", build_parsing_prompt(discipline_name, raw_content))], max_output_tokens=self._max_output_tokens)
      if completion.truncated:
        raise ResponseTooLongError("The program is too long to analyse in one pass. Split it into smaller parts and try again.")
      modules = parse_program_structure(completion.text)
    except Exception:
      if reservation is not None:
        await self._ledger.release(reservation)
      raise
    await self._ledger.record(user_id, provider, "parsing", reservation=reservation)
    return modules
