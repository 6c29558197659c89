"""Postgres-backed repository for disciplines, documents and the curriculum tree."""

from __future__ import annotations

import datetime
import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import delete, func, select, update

from app.core.database import require_session_factory
from app.schema.curriculum import Module, Program, ProgramStatus, Topic, TopicStatus
from app.schema.lessons import ContentType, Document
from app.schema.sql import Discipline
from app.storage.curriculum_repo import CurriculumRepository, DocumentRecord, ParsedModule, ProgramRecord, TopicContext

logger = logging.getLogger(__name__)


class PostgresCurriculumRepository(CurriculumRepository):
  """Read generation context and persist parsed programs."""

  def __init__(self) -> None:
    self._session_factory = require_session_factory()

  async def get_discipline_name(self, discipline_id: str) -> str | None:
    async with self._session_factory() as session:
      result = await session.execute(select(Discipline.name).where(Discipline.id == discipline_id))
      return result.scalar_one_or_none()

  async def get_document(self, document_id: str) -> DocumentRecord | None:
    async with self._session_factory() as session:
      document = await session.get(Document, document_id)
      if document is None:
        return None
      return DocumentRecord(document_id=document.id, teacher_id=document.teacher_id, extracted_text=document.extracted_text)

  async def get_topic_context(self, topic_id: str) -> TopicContext | None:
    async with self._session_factory() as session:
      stmt = select(Topic, Module, Program).join(Module, Topic.module_id == Module.id).join(Program, Module.program_id == Program.id).where(Topic.id == topic_id)
      row = (await session.execute(stmt)).one_or_none()
      if row is None:
        return None
      topic, module, program = row
      siblings = await session.execute(select(Topic.title).where(Topic.module_id == module.id).order_by(Topic.order))
      return TopicContext(
        topic_id=topic.id,
        title=topic.title,
        description=topic.description,
        content_type=topic.content_type,
        status=topic.status,
        lesson_id=topic.lesson_id,
        module_name=module.name,
        program_title=program.title,
        sibling_titles=tuple(siblings.scalars()),
        teacher_id=program.teacher_id,
        discipline_id=program.discipline_id,
        document_id=program.document_id,
        class_name=program.class_name,
        program_id=program.id,
      )

  async def get_program(self, program_id: str) -> ProgramRecord | None:
    async with self._session_factory() as session:
      program = await session.get(Program, program_id)
      if program is None:
        return None
      return _program_record(program)

  async def create_program(
    self,
    *,
    teacher_id: str,
    discipline_id: str,
    title: str,
    school_year: str,
    class_name: str,
    raw_content: str | None,
    document_id: str | None = None,
  ) -> ProgramRecord:
    async with self._session_factory() as session:
      program = Program(
        title=title,
        school_year=school_year,
        class_name=class_name,
        raw_content=raw_content,
        status=ProgramStatus.UPLOADED,
        teacher_id=teacher_id,
        discipline_id=discipline_id,
        document_id=document_id,
      )
      session.add(program)
      await session.commit()
      await session.refresh(program)
      return _program_record(program)

  async def update_topic(self, topic_id: str, values: Mapping[str, Any]) -> bool:
    async with self._session_factory() as session:
      stmt = update(Topic).where(Topic.id == topic_id, Topic.status != TopicStatus.GENERATING).values(**values)
      result = await session.execute(stmt)
      await session.commit()
      return result.rowcount == 1

  async def count_topics_in_use(self, program_id: str) -> int:
    async with self._session_factory() as session:
      return int((await session.execute(_topics_in_use(program_id))).scalar_one())

  async def start_parsing(self, program_id: str) -> bool:
    async with self._session_factory() as session:
      stmt = update(Program).where(Program.id == program_id, Program.status != ProgramStatus.PARSING).values(status=ProgramStatus.PARSING, failure_reason=None)
      result = await session.execute(stmt)
      await session.commit()
      return result.rowcount == 1

  async def fail_parsing(self, program_id: str, *, reason: str) -> None:
    async with self._session_factory() as session:
      await session.execute(update(Program).where(Program.id == program_id).values(status=ProgramStatus.FAILED, failure_reason=reason))
      await session.commit()

  async def save_parsed_program(self, program_id: str, modules: list[ParsedModule]) -> bool:
    async with self._session_factory() as session:
      async with session.begin():
        # Lock the program row so concurrent saves of the same program serialize here.
        await session.execute(select(Program.id).where(Program.id == program_id).with_for_update())
        in_use = int((await session.execute(_topics_in_use(program_id))).scalar_one())
        if in_use:
          logger.info("Refusing to replace program %s tree: %s topics have lessons", program_id, in_use)
          return False
        # Only PENDING and FAILED topics remain, so the previous tree can be replaced.
        await session.execute(delete(Module).where(Module.program_id == program_id))
        for module_index, parsed_module in enumerate(modules):
          module = Module(program_id=program_id, name=parsed_module.name, description=parsed_module.description, order=module_index)
          session.add(module)
          await session.flush()
          for topic_index, parsed_topic in enumerate(parsed_module.topics):
            session.add(Topic(module_id=module.id, title=parsed_topic.title, description=parsed_topic.description, order=topic_index, status=TopicStatus.PENDING, content_type=ContentType.LEZIONE))
        await session.execute(update(Program).where(Program.id == program_id).values(status=ProgramStatus.PARSED, failure_reason=None))
    logger.info("Saved parsed program %s with %s modules", program_id, len(modules))
    return True

  async def fail_interrupted_parsing(self, *, cutoff: datetime.datetime, reason: str) -> list[str]:
    async with self._session_factory() as session:
      stmt = update(Program).where(Program.status == ProgramStatus.PARSING, Program.updated_at < cutoff).values(status=ProgramStatus.FAILED, failure_reason=reason).returning(Program.id)
      program_ids = list((await session.execute(stmt)).scalars())
      await session.commit()
      return program_ids


def _topics_in_use(program_id: str):
  return (
    select(func.count())
    .select_from(Topic)
    .join(Module, Topic.module_id == Module.id)
    .where(Module.program_id == program_id, Topic.status.in_((TopicStatus.GENERATING, TopicStatus.GENERATED)))
  )


def _program_record(program: Program) -> ProgramRecord:
  return ProgramRecord(
    program_id=program.id,
    title=program.title,
    teacher_id=program.teacher_id,
    discipline_id=program.discipline_id,
    status=program.status,
    raw_content=program.raw_content,
    failure_reason=program.failure_reason,
    school_year=program.school_year,
    class_name=program.class_name,
    document_id=program.document_id,
    updated_at=program.updated_at,
  )
