from __future__ import annotations

import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr

from app.schema.curriculum import ProgramStatus, TopicStatus
from app.schema.lessons import ContentType, LessonStatus
from app.services.credentials import ApiKeyStatus
from app.services.generation_status import GenerationStatusSnapshot, StatusItem
from app.storage.curriculum_repo import ProgramRecord, TopicContext
from app.storage.lessons_repo import LessonRecord


class GenerateRequest(BaseModel):
  """Request payload for a direct (non-topic) generation."""

  title: StrictStr = Field(min_length=1, max_length=300, description="Topic title the content is about.", examples=["Le equazioni di secondo grado"])
  content_type: ContentType = Field(alias="contentType", description="Kind of didactic content to produce.")
  discipline_id: StrictStr = Field(alias="disciplineId", min_length=1)
  description: StrictStr | None = Field(default=None, max_length=2000, description="Optional extra instructions for the model.")
  document_id: StrictStr | None = Field(default=None, alias="documentId", description="Optional uploaded document used as source material.")
  class_name: StrictStr | None = Field(default=None, alias="className", max_length=100, examples=["3A"])
  model_config = ConfigDict(extra="forbid", populate_by_name=True)


class GenerationAccepted(BaseModel):
  """Returned as soon as the GENERATING record exists."""

  lesson_id: str = Field(serialization_alias="lessonId")
  status: LessonStatus = LessonStatus.GENERATING


class StatusItemResponse(BaseModel):
  id: str
  title: str
  failure_reason: str | None = Field(default=None, serialization_alias="failureReason")

  @classmethod
  def from_item(cls, item: StatusItem) -> StatusItemResponse:
    return cls(id=item.lesson_id, title=item.title, failure_reason=item.failure_reason)


class GenerationStatusResponse(BaseModel):
  generating: list[StatusItemResponse]
  just_completed: list[StatusItemResponse] = Field(serialization_alias="justCompleted")
  just_failed: list[StatusItemResponse] = Field(serialization_alias="justFailed")

  @classmethod
  def from_snapshot(cls, snapshot: GenerationStatusSnapshot) -> GenerationStatusResponse:
    return cls(
      generating=[StatusItemResponse.from_item(item) for item in snapshot.generating],
      just_completed=[StatusItemResponse.from_item(item) for item in snapshot.just_completed],
      just_failed=[StatusItemResponse.from_item(item) for item in snapshot.just_failed],
    )


class LessonResponse(BaseModel):
  id: str
  title: str
  content_type: ContentType = Field(serialization_alias="contentType")
  status: LessonStatus
  discipline_id: str = Field(serialization_alias="disciplineId")
  description: str | None = None
  class_name: str | None = Field(default=None, serialization_alias="className")
  content: dict[str, Any]
  failure_reason: str | None = Field(default=None, serialization_alias="failureReason")
  ai_model_used: str | None = Field(default=None, serialization_alias="aiModelUsed")
  topic_id: str | None = Field(default=None, serialization_alias="topicId")
  document_id: str | None = Field(default=None, serialization_alias="documentId")
  updated_at: datetime.datetime | None = Field(default=None, serialization_alias="updatedAt")

  @classmethod
  def from_record(cls, record: LessonRecord) -> LessonResponse:
    return cls(
      id=record.lesson_id,
      title=record.title,
      content_type=record.content_type,
      status=record.status,
      discipline_id=record.discipline_id,
      description=record.description,
      class_name=record.class_name,
      content=record.content,
      failure_reason=record.failure_reason,
      ai_model_used=record.ai_model_used,
      topic_id=record.topic_id,
      document_id=record.document_id,
      updated_at=record.updated_at,
    )


class ApiKeyUpdateRequest(BaseModel):
  api_key: StrictStr = Field(alias="apiKey", min_length=1, max_length=512)
  model_config = ConfigDict(extra="forbid", populate_by_name=True)


class ApiKeyStatusResponse(BaseModel):
  configured: bool
  masked_key: str | None = Field(default=None, serialization_alias="maskedKey")

  @classmethod
  def from_status(cls, key_status: ApiKeyStatus) -> ApiKeyStatusResponse:
    return cls(configured=key_status.configured, masked_key=key_status.masked_key)


class UsageStatsResponse(BaseModel):
  today_count: int = Field(serialization_alias="todayCount")
  total_count: int = Field(serialization_alias="totalCount")
  daily_limit: int = Field(serialization_alias="dailyLimit")


class QuotaResponse(BaseModel):
  """The caller's own fallback-provider quota for today."""

  provider: str
  used: int
  reserved: int = 0
  limit: int | None
  remaining: int | None
  resets_at: datetime.datetime | None = Field(default=None, serialization_alias="resetsAt")


class ParseAccepted(BaseModel):
  program_id: str = Field(serialization_alias="programId")
  status: str = "PARSING"


class ProgramCreateRequest(BaseModel):
  """A program either pasted as text or taken from an uploaded document."""

  title: StrictStr = Field(min_length=1, max_length=300, examples=["Matematica 3A"])
  school_year: StrictStr = Field(alias="schoolYear", min_length=1, max_length=20, examples=["2025/2026"])
  class_name: StrictStr = Field(alias="className", min_length=1, max_length=100, examples=["3A"])
  discipline_id: StrictStr = Field(alias="disciplineId", min_length=1)
  document_id: StrictStr | None = Field(default=None, alias="documentId")
  raw_content: StrictStr | None = Field(default=None, alias="rawContent", max_length=200_000)
  model_config = ConfigDict(extra="forbid", populate_by_name=True)


class ProgramResponse(BaseModel):
  id: str
  title: str
  status: ProgramStatus
  discipline_id: str = Field(serialization_alias="disciplineId")
  school_year: str | None = Field(default=None, serialization_alias="schoolYear")
  class_name: str | None = Field(default=None, serialization_alias="className")
  document_id: str | None = Field(default=None, serialization_alias="documentId")
  failure_reason: str | None = Field(default=None, serialization_alias="failureReason")

  @classmethod
  def from_record(cls, record: ProgramRecord) -> ProgramResponse:
    return cls(
      id=record.program_id,
      title=record.title,
      status=record.status,
      discipline_id=record.discipline_id,
      school_year=record.school_year,
      class_name=record.class_name,
      document_id=record.document_id,
      failure_reason=record.failure_reason,
    )


class TopicUpdateRequest(BaseModel):
  """Partial topic edit; omitted fields stay as they are and a null description clears it."""

  title: StrictStr | None = Field(default=None, min_length=1, max_length=300)
  content_type: ContentType | None = Field(default=None, alias="contentType")
  description: StrictStr | None = Field(default=None, max_length=2000)
  model_config = ConfigDict(extra="forbid", populate_by_name=True)


class TopicResponse(BaseModel):
  id: str
  title: str
  description: str | None = None
  content_type: ContentType = Field(serialization_alias="contentType")
  status: TopicStatus
  lesson_id: str | None = Field(default=None, serialization_alias="lessonId")
  module_name: str = Field(serialization_alias="moduleName")

  @classmethod
  def from_context(cls, topic: TopicContext) -> TopicResponse:
    return cls(
      id=topic.topic_id,
      title=topic.title,
      description=topic.description,
      content_type=topic.content_type,
      status=topic.status,
      lesson_id=topic.lesson_id,
      module_name=topic.module_name,
    )
