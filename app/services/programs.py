"""Program intake: register a teacher's program text before it is analysed."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from app.services.errors import ForbiddenError, InvalidInputError, NotFoundError
from app.storage.curriculum_repo import CurriculumRepository, ProgramRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewProgram:
  title: str
  school_year: str
  class_name: str
  discipline_id: str
  document_id: str | None = None
  raw_content: str | None = None


async def create_program(user_id: str, new_program: NewProgram, *, curriculum: CurriculumRepository) -> ProgramRecord:
  """Store an UPLOADED program.

  The text comes from the linked document's extraction when there is one,
  otherwise from `raw_content`. A program without any text is refused.
  """
  title = new_program.title.strip()
  school_year = new_program.school_year.strip()
  class_name = new_program.class_name.strip()
  if not title or not school_year or not class_name:
    raise InvalidInputError("Title, school year and class are required.")
  if await curriculum.get_discipline_name(new_program.discipline_id) is None:
    raise NotFoundError("Discipline not found.")

  raw_content = (new_program.raw_content or "").strip() or None
  if new_program.document_id is not None:
    document = await curriculum.get_document(new_program.document_id)
    if document is None:
      raise NotFoundError("Document not found.")
    if document.teacher_id != user_id:
      raise ForbiddenError("You can only use your own documents.")
    raw_content = (document.extracted_text or "").strip() or raw_content
  if raw_content is None:
    raise InvalidInputError("Provide the program text or a document with extracted text.")

  program = await curriculum.create_program(
    teacher_id=user_id,
    discipline_id=new_program.discipline_id,
    title=title,
    school_year=school_year,
    class_name=class_name,
    raw_content=raw_content,
    document_id=new_program.document_id,
  )
  logger.info("Program created program_id=%s chars=%s", program.program_id, len(raw_content))
  return program
