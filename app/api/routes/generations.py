from __future__ import annotations

import datetime
import logging

from fastapi import APIRouter, Depends, Response, status

from app.ai.contracts import GenerationRequest
from app.ai.orchestrator import GenerationOrchestrator
from app.api.deps import get_lessons_repo, get_orchestrator
from app.api.models import GenerateRequest, GenerationAccepted, GenerationStatusResponse, LessonResponse
from app.config import Settings, get_settings
from app.core.security import get_current_active_user
from app.schema.sql import User
from app.services import topics as topic_actions
from app.services.generation_status import poll_status
from app.storage.lessons_repo import LessonsRepository

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=GenerationAccepted, status_code=status.HTTP_202_ACCEPTED)
async def create_generation(
  payload: GenerateRequest,
  current_user: User = Depends(get_current_active_user),  # noqa: B008
  orchestrator: GenerationOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> GenerationAccepted:
  """Create a GENERATING record and start generation in the background."""
  request = GenerationRequest(
    user_id=current_user.id,
    title=payload.title,
    content_type=payload.content_type,
    discipline_id=payload.discipline_id,
    description=payload.description,
    document_id=payload.document_id,
    class_name=payload.class_name,
  )
  lesson_id = await orchestrator.create_and_launch_generation(request)
  return GenerationAccepted(lesson_id=lesson_id)


@router.get("/status", response_model=GenerationStatusResponse)
async def get_generation_status(
  current_user: User = Depends(get_current_active_user),  # noqa: B008
  lessons: LessonsRepository = Depends(get_lessons_repo),  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> GenerationStatusResponse:
  """Report in-flight generations and those that finished in the recent window."""
  snapshot = await poll_status(lessons, current_user.id, window=datetime.timedelta(seconds=settings.status_window_seconds))
  return GenerationStatusResponse.from_snapshot(snapshot)


@router.get("/{lesson_id}", response_model=LessonResponse)
async def get_generation(
  lesson_id: str,
  current_user: User = Depends(get_current_active_user),  # noqa: B008
  lessons: LessonsRepository = Depends(get_lessons_repo),  # noqa: B008
) -> LessonResponse:
  record = await topic_actions.get_lesson(lesson_id, current_user.id, lessons=lessons)
  return LessonResponse.from_record(record)


@router.post("/{lesson_id}/retry", response_model=GenerationAccepted, status_code=status.HTTP_202_ACCEPTED)
async def retry_generation(
  lesson_id: str,
  current_user: User = Depends(get_current_active_user),  # noqa: B008
  orchestrator: GenerationOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> GenerationAccepted:
  """Restart a FAILED generation in place; the record keeps its id."""
  await orchestrator.retry_generation(lesson_id, current_user.id)
  return GenerationAccepted(lesson_id=lesson_id)


@router.delete("/{lesson_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_generation(
  lesson_id: str,
  current_user: User = Depends(get_current_active_user),  # noqa: B008
  lessons: LessonsRepository = Depends(get_lessons_repo),  # noqa: B008
) -> Response:
  await topic_actions.delete_lesson(lesson_id, current_user.id, lessons=lessons)
  return Response(status_code=status.HTTP_204_NO_CONTENT)
