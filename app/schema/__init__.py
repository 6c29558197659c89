"""ORM models; importing the package registers every table on Base.metadata."""

from .curriculum import Module, Program, ProgramStatus, Topic, TopicStatus
from .lessons import CONTENT_TYPE_LABELS, ApprovalStatus, ContentType, Document, Lesson, LessonStatus, Visibility
from .sql import SYSTEM_GEMINI_KEY, Discipline, SystemConfig, User, UserRole, UserStatus
from .usage import AiQuotaReservation, AiUsageLog

__all__ = [
  "CONTENT_TYPE_LABELS",
  "SYSTEM_GEMINI_KEY",
  "AiQuotaReservation",
  "AiUsageLog",
  "ApprovalStatus",
  "ContentType",
  "Discipline",
  "Document",
  "Lesson",
  "LessonStatus",
  "Module",
  "Program",
  "ProgramStatus",
  "SystemConfig",
  "Topic",
  "TopicStatus",
  "User",
  "UserRole",
  "UserStatus",
  "Visibility",
]
