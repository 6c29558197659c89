"""Value objects passed between the HTTP layer, the orchestrator and storage."""

from __future__ import annotations

from dataclasses import dataclass

from app.schema.lessons import ContentType


@dataclass(frozen=True)
class GenerationRequest:
  """Inputs for one generation; re-read from storage on retry."""

  user_id: str
  title: str
  content_type: ContentType
  discipline_id: str
  description: str | None = None
  topic_id: str | None = None
  document_id: str | None = None
  class_name: str | None = None
