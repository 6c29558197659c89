"""Postgres-backed repository for generation records using SQLAlchemy."""

from __future__ import annotations

import datetime
import logging
from typing import Any

from sqlalchemy import and_, delete, func, or_, select, update

from app.ai.contracts import GenerationRequest
from app.core.database import require_session_factory
from app.schema.curriculum import Topic, TopicStatus
from app.schema.lessons import ApprovalStatus, Lesson, LessonStatus, Visibility
from app.storage.lessons_repo import LessonRecord, LessonsRepository, StatusRow
from app.utils.ids import generate_id

logger = logging.getLogger(__name__)

_STARTABLE_TOPIC_STATUSES = (TopicStatus.PENDING, TopicStatus.FAILED)


def _to_record(lesson: Lesson, topic_id: str | None) -> LessonRecord:
  return LessonRecord(
    lesson_id=lesson.id,
    teacher_id=lesson.teacher_id,
    title=lesson.title,
    content_type=lesson.content_type,
    discipline_id=lesson.discipline_id,
    status=lesson.status,
    content=lesson.content,
    description=lesson.description,
    failure_reason=lesson.failure_reason,
    ai_model_used=lesson.ai_model_used,
    document_id=lesson.document_id,
    class_name=lesson.class_name,
    topic_id=topic_id,
    updated_at=lesson.updated_at,
  )


class PostgresLessonsRepository(LessonsRepository):
  """Persist generation records to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = require_session_factory()

  async def create_pending(self, request: GenerationRequest, *, content: dict[str, Any]) -> str | None:
    """Insert the placeholder and claim the topic in one transaction."""
    async with self._session_factory() as session:
      lesson = Lesson(
        id=generate_id(),
        title=request.title,
        description=request.description or None,
        class_name=request.class_name or None,
        content_type=request.content_type,
        content=content,
        status=LessonStatus.GENERATING,
        visibility=Visibility.PRIVATE,
        approval_status=ApprovalStatus.NONE,
        teacher_id=request.user_id,
        discipline_id=request.discipline_id,
        document_id=request.document_id or None,
      )
      session.add(lesson)
      await session.flush()

      if request.topic_id:
        stmt = update(Topic).where(Topic.id == request.topic_id, Topic.status.in_(_STARTABLE_TOPIC_STATUSES)).values(status=TopicStatus.GENERATING, lesson_id=lesson.id)
        result = await session.execute(stmt)
        if result.rowcount != 1:
          # Topic already generating/generated (or gone): do not keep the placeholder.
          await session.rollback()
          return None

      await session.commit()
      return lesson.id

  async def get_lesson(self, lesson_id: str) -> LessonRecord | None:
    async with self._session_factory() as session:
      stmt = select(Lesson, Topic.id).outerjoin(Topic, Topic.lesson_id == Lesson.id).where(Lesson.id == lesson_id)
      row = (await session.execute(stmt)).one_or_none()
      if row is None:
        return None
      lesson, topic_id = row
      return _to_record(lesson, topic_id)

  async def _transition(self, lesson_id: str, *, expected: LessonStatus, values: dict[str, Any], topic_status: TopicStatus) -> bool:
    """Apply a guarded status change and mirror it on the linked topic."""
    async with self._session_factory() as session:
      stmt = update(Lesson).where(Lesson.id == lesson_id, Lesson.status == expected).values(**values, updated_at=func.now())
      result = await session.execute(stmt)
      if result.rowcount != 1:
        await session.rollback()
        return False
      await session.execute(update(Topic).where(Topic.lesson_id == lesson_id).values(status=topic_status))
      await session.commit()
      return True

  async def complete(self, lesson_id: str, *, content: dict[str, Any], ai_model_used: str) -> bool:
    values = {"status": LessonStatus.DRAFT, "content": content, "ai_model_used": ai_model_used, "failure_reason": None}
    return await self._transition(lesson_id, expected=LessonStatus.GENERATING, values=values, topic_status=TopicStatus.GENERATED)

  async def fail(self, lesson_id: str, *, reason: str) -> bool:
    values = {"status": LessonStatus.FAILED, "failure_reason": reason}
    return await self._transition(lesson_id, expected=LessonStatus.GENERATING, values=values, topic_status=TopicStatus.FAILED)

  async def restart(self, lesson_id: str) -> bool:
    values = {"status": LessonStatus.GENERATING, "failure_reason": None}
    return await self._transition(lesson_id, expected=LessonStatus.FAILED, values=values, topic_status=TopicStatus.GENERATING)

  async def delete_lesson(self, lesson_id: str) -> bool:
    async with self._session_factory() as session:
      await session.execute(update(Topic).where(Topic.lesson_id == lesson_id).values(status=TopicStatus.PENDING, lesson_id=None))
      result = await session.execute(delete(Lesson).where(Lesson.id == lesson_id))
      await session.commit()
      return result.rowcount > 0

  async def list_status_rows(self, teacher_id: str, *, since: datetime.datetime) -> list[StatusRow]:
    async with self._session_factory() as session:
      recent_terminal = and_(Lesson.status.in_((LessonStatus.DRAFT, LessonStatus.FAILED)), Lesson.updated_at >= since)
      stmt = (
        select(Lesson.id, Lesson.title, Lesson.status, Lesson.failure_reason, Lesson.updated_at)
        .where(Lesson.teacher_id == teacher_id, or_(Lesson.status == LessonStatus.GENERATING, recent_terminal))
        .order_by(Lesson.updated_at.desc())
      )
      rows = (await session.execute(stmt)).all()
      return [StatusRow(lesson_id=row.id, title=row.title, status=row.status, failure_reason=row.failure_reason, updated_at=row.updated_at) for row in rows]

  async def fail_stale(self, *, cutoff: datetime.datetime, reason: str) -> list[str]:
    async with self._session_factory() as session:
      stmt = update(Lesson).where(Lesson.status == LessonStatus.GENERATING, Lesson.updated_at < cutoff).values(status=LessonStatus.FAILED, failure_reason=reason, updated_at=func.now()).returning(Lesson.id)
      stale_ids = list((await session.execute(stmt)).scalars())
      if stale_ids:
        await session.execute(update(Topic).where(Topic.lesson_id.in_(stale_ids)).values(status=TopicStatus.FAILED))
      await session.commit()
      if stale_ids:
        logger.warning("Failed %s stale generations last updated before %s", len(stale_ids), cutoff.isoformat())
      return stale_ids
