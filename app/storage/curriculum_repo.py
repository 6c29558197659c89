"""Storage interfaces for the curriculum tree and generation context lookups."""

from __future__ import annotations

import datetime
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from app.schema.curriculum import ProgramStatus, TopicStatus
from app.schema.lessons import ContentType


@dataclass(frozen=True)
class TopicContext:
  """A topic with the program data needed to generate for it."""

  topic_id: str
  title: str
  description: str | None
  content_type: ContentType
  status: TopicStatus
  lesson_id: str | None
  module_name: str
  program_title: str
  sibling_titles: tuple[str, ...]
  teacher_id: str
  discipline_id: str
  document_id: str | None = None
  class_name: str | None = None
  program_id: str | None = None


@dataclass(frozen=True)
class DocumentRecord:
  document_id: str
  teacher_id: str
  extracted_text: str | None


@dataclass(frozen=True)
class ProgramRecord:
  program_id: str
  title: str
  teacher_id: str
  discipline_id: str
  status: ProgramStatus
  raw_content: str | None = None
  failure_reason: str | None = None
  school_year: str | None = None
  class_name: str | None = None
  document_id: str | None = None
  updated_at: datetime.datetime | None = None


@dataclass(frozen=True)
class ParsedTopic:
  title: str
  description: str | None = None


@dataclass(frozen=True)
class ParsedModule:
  name: str
  topics: tuple[ParsedTopic, ...]
  description: str | None = None


class CurriculumRepository(Protocol):
  """Repository contract for disciplines, documents, topics and programs."""

  async def get_discipline_name(self, discipline_id: str) -> str | None:
    """Return the discipline display name."""

  async def get_document(self, document_id: str) -> DocumentRecord | None:
    """Return a document with its previously extracted text."""

  async def get_topic_context(self, topic_id: str) -> TopicContext | None:
    """Return a topic with module, program and sibling titles."""

  async def get_program(self, program_id: str) -> ProgramRecord | None:
    """Return a program."""

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
    """Insert an UPLOADED program."""

  async def update_topic(self, topic_id: str, values: Mapping[str, Any]) -> bool:
    """Apply column changes unless the topic is GENERATING; False when refused or missing."""

  async def count_topics_in_use(self, program_id: str) -> int:
    """Count the program's GENERATING or GENERATED topics."""

  async def start_parsing(self, program_id: str) -> bool:
    """Move a program to PARSING unless it is already parsing."""

  async def fail_parsing(self, program_id: str, *, reason: str) -> None:
    """Mark a program FAILED with a reason."""

  async def save_parsed_program(self, program_id: str, modules: list[ParsedModule]) -> bool:
    """Replace the program's modules and topics and mark it PARSED.

    Refused (False, nothing written) while any topic is GENERATING or GENERATED.
    """

  async def fail_interrupted_parsing(self, *, cutoff: datetime.datetime, reason: str) -> list[str]:
    """Fail programs left PARSING since before `cutoff`; return their ids."""
