from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from app.ai.orchestrator import GenerationOrchestrator
from app.api.deps import get_curriculum_repo, get_lessons_repo, get_orchestrator
from app.api.models import GenerationAccepted, TopicResponse, TopicUpdateRequest
from app.core.security import get_current_active_user
from app.schema.sql import User
from app.services import topics as topic_actions
from app.storage.curriculum_repo import CurriculumRepository
from app.storage.lessons_repo import LessonsRepository

router = APIRouter()


@router.patch("/{topic_id}", response_model=TopicResponse)
async def update_topic(
  topic_id: str,
  request: TopicUpdateRequest,
  current_user: User = Depends(get_current_active_user),  # noqa: B008
  curriculum: CurriculumRepository = Depends(get_curriculum_repo),  # noqa: B008
) -> TopicResponse:
  """Edit a topic's title, content type or description."""
  description = request.description
  if "description" in request.model_fields_set and description is None:
    description = ""
  changes = topic_actions.TopicUpdate(title=request.title, content_type=request.content_type, description=description)
  topic = await topic_actions.update_topic(topic_id, current_user.id, changes, curriculum=curriculum)
  return TopicResponse.from_context(topic)


@router.post("/{topic_id}/generate", response_model=GenerationAccepted, status_code=status.HTTP_202_ACCEPTED)
async def generate_topic_lesson(
  topic_id: str,
  current_user: User = Depends(get_current_active_user),  # noqa: B008
  curriculum: CurriculumRepository = Depends(get_curriculum_repo),  # noqa: B008
  orchestrator: GenerationOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> GenerationAccepted:
  """Generate the lesson for a PENDING or FAILED topic using its program as context."""
  lesson_id = await topic_actions.generate_topic_lesson(topic_id, current_user.id, curriculum=curriculum, orchestrator=orchestrator)
  return GenerationAccepted(lesson_id=lesson_id)


@router.delete("/{topic_id}/lesson", status_code=status.HTTP_204_NO_CONTENT)
async def delete_topic_lesson(
  topic_id: str,
  current_user: User = Depends(get_current_active_user),  # noqa: B008
  curriculum: CurriculumRepository = Depends(get_curriculum_repo),  # noqa: B008
  lessons: LessonsRepository = Depends(get_lessons_repo),  # noqa: B008
) -> Response:
  await topic_actions.delete_topic_lesson(topic_id, current_user.id, curriculum=curriculum, lessons=lessons)
  return Response(status_code=status.HTTP_204_NO_CONTENT)
