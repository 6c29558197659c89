"""Curriculum topic actions: edit a topic, generate its lesson and remove it again."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from app.ai.contracts import GenerationRequest
from app.ai.orchestrator import GenerationOrchestrator
from app.schema.curriculum import TopicStatus
from app.schema.lessons import ContentType
from app.services.errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from app.storage.curriculum_repo import CurriculumRepository, TopicContext
from app.storage.lessons_repo import LessonRecord, LessonsRepository

logger = logging.getLogger(__name__)

_GENERATABLE = (TopicStatus.PENDING, TopicStatus.FAILED)


async def _owned_topic(curriculum: CurriculumRepository, topic_id: str, user_id: str) -> TopicContext:
  topic = await curriculum.get_topic_context(topic_id)
  if topic is None:
    raise NotFoundError("Topic not found.")
  if topic.teacher_id != user_id:
    raise ForbiddenError("You can only manage topics of your own programs.")
  return topic


async def generate_topic_lesson(topic_id: str, user_id: str, *, curriculum: CurriculumRepository, orchestrator: GenerationOrchestrator) -> str:
  """Start generation for a PENDING or FAILED topic and return the new record id."""
  topic = await _owned_topic(curriculum, topic_id, user_id)
  if topic.status not in _GENERATABLE:
    raise ConflictError("This topic is already being generated or already has a lesson.")

  request = GenerationRequest(
    user_id=user_id,
    title=topic.title,
    content_type=topic.content_type,
    discipline_id=topic.discipline_id,
    description=topic.description,
    topic_id=topic.topic_id,
    document_id=topic.document_id,
    class_name=topic.class_name,
  )
  return await orchestrator.create_and_launch_generation(request)


@dataclass(frozen=True)
class TopicUpdate:
  """Fields a teacher may edit; None leaves a field unchanged and "" clears the description."""

  title: str | None = None
  content_type: ContentType | None = None
  description: str | None = None


async def update_topic(topic_id: str, user_id: str, changes: TopicUpdate, *, curriculum: CurriculumRepository) -> TopicContext:
  """Edit a topic that is not being generated and return it refreshed."""
  topic = await _owned_topic(curriculum, topic_id, user_id)
  if topic.status == TopicStatus.GENERATING:
    raise ConflictError("A topic cannot be edited while its lesson is being generated.")

  values: dict[str, Any] = {}
  if changes.title is not None:
    title = changes.title.strip()
    if not title:
      raise InvalidInputError("The topic title cannot be empty.")
    values["title"] = title
  if changes.content_type is not None:
    values["content_type"] = changes.content_type
  if changes.description is not None:
    values["description"] = changes.description.strip() or None
  if not values:
    return topic

  if not await curriculum.update_topic(topic_id, values):
    raise ConflictError("A topic cannot be edited while its lesson is being generated.")
  updated = await curriculum.get_topic_context(topic_id)
  if updated is None:
    raise NotFoundError("Topic not found.")
  logger.info("Updated topic %s fields=%s", topic_id, sorted(values))
  return updated


async def delete_topic_lesson(topic_id: str, user_id: str, *, curriculum: CurriculumRepository, lessons: LessonsRepository) -> None:
  """Delete a GENERATED topic's lesson so the topic can be generated again."""
  topic = await _owned_topic(curriculum, topic_id, user_id)
  if topic.status != TopicStatus.GENERATED or topic.lesson_id is None:
    raise ConflictError("This topic has no generated lesson to delete.")
  await lessons.delete_lesson(topic.lesson_id)
  logger.info("Deleted lesson %s of topic %s", topic.lesson_id, topic_id)


async def delete_lesson(lesson_id: str, user_id: str, *, lessons: LessonsRepository) -> None:
  """Delete one of the user's records; a linked topic goes back to PENDING."""
  await get_lesson(lesson_id, user_id, lessons=lessons)
  await lessons.delete_lesson(lesson_id)
  logger.info("Deleted lesson %s", lesson_id)


async def get_lesson(lesson_id: str, user_id: str, *, lessons: LessonsRepository) -> LessonRecord:
  """Fetch one of the user's records."""
  record = await lessons.get_lesson(lesson_id)
  if record is None:
    raise NotFoundError("Lesson not found.")
  if record.teacher_id != user_id:
    raise ForbiddenError("You can only access your own lessons.")
  return record
