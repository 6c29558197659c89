"""Storage interfaces and records for generation records (lessons)."""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Any, Protocol

from app.ai.contracts import GenerationRequest
from app.schema.lessons import ContentType, LessonStatus


@dataclass(frozen=True)
class LessonRecord:
  """Generation record as stored in the lessons table."""

  lesson_id: str
  teacher_id: str
  title: str
  content_type: ContentType
  discipline_id: str
  status: LessonStatus
  content: dict[str, Any]
  description: str | None = None
  failure_reason: str | None = None
  ai_model_used: str | None = None
  document_id: str | None = None
  class_name: str | None = None
  topic_id: str | None = None
  updated_at: datetime.datetime | None = None


@dataclass(frozen=True)
class StatusRow:
  """Minimal projection used by the status poller."""

  lesson_id: str
  title: str
  status: LessonStatus
  failure_reason: str | None
  updated_at: datetime.datetime


class LessonsRepository(Protocol):
  """Repository contract for generation records and their topic links.

  Every status change is a conditional write: it applies only when the record
  is currently in the expected state and returns False otherwise.
  """

  async def create_pending(self, request: GenerationRequest, *, content: dict[str, Any]) -> str | None:
    """Insert a GENERATING record and link its topic; None when the topic is not startable."""

  async def get_lesson(self, lesson_id: str) -> LessonRecord | None:
    """Fetch a record with its linked topic id."""

  async def complete(self, lesson_id: str, *, content: dict[str, Any], ai_model_used: str) -> bool:
    """GENERATING -> DRAFT; linked topic -> GENERATED."""

  async def fail(self, lesson_id: str, *, reason: str) -> bool:
    """GENERATING -> FAILED; linked topic -> FAILED. Content is left untouched."""

  async def restart(self, lesson_id: str) -> bool:
    """FAILED -> GENERATING with the failure reason cleared; linked topic -> GENERATING."""

  async def delete_lesson(self, lesson_id: str) -> bool:
    """Delete a record and reset its linked topic to PENDING."""

  async def list_status_rows(self, teacher_id: str, *, since: datetime.datetime) -> list[StatusRow]:
    """Return GENERATING records plus DRAFT/FAILED records updated at or after `since`."""

  async def fail_stale(self, *, cutoff: datetime.datetime, reason: str) -> list[str]:
    """Fail GENERATING records last touched before `cutoff`; return their ids."""
