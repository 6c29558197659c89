from __future__ import annotations

import datetime
from enum import Enum as PyEnum

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.schema.lessons import ContentType
from app.utils.ids import generate_id


class ProgramStatus(str, PyEnum):
  UPLOADED = "UPLOADED"
  PARSING = "PARSING"
  PARSED = "PARSED"
  FAILED = "FAILED"


class TopicStatus(str, PyEnum):
  PENDING = "PENDING"
  GENERATING = "GENERATING"
  GENERATED = "GENERATED"
  FAILED = "FAILED"


class Program(Base):
  __tablename__ = "programs"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
  title: Mapped[str] = mapped_column(String, nullable=False)
  raw_content: Mapped[str | None] = mapped_column(Text, nullable=True)
  school_year: Mapped[str | None] = mapped_column(String(20), nullable=True)
  class_name: Mapped[str | None] = mapped_column(String, nullable=True)
  status: Mapped[ProgramStatus] = mapped_column(SAEnum(ProgramStatus, name="program_status"), nullable=False, default=ProgramStatus.UPLOADED)
  failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
  teacher_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
  discipline_id: Mapped[str] = mapped_column(ForeignKey("disciplines.id"), nullable=False)
  document_id: Mapped[str | None] = mapped_column(ForeignKey("documents.id", ondelete="SET NULL"), nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class Module(Base):
  __tablename__ = "modules"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
  program_id: Mapped[str] = mapped_column(ForeignKey("programs.id", ondelete="CASCADE"), index=True, nullable=False)
  name: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Topic(Base):
  __tablename__ = "topics"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
  module_id: Mapped[str] = mapped_column(ForeignKey("modules.id", ondelete="CASCADE"), index=True, nullable=False)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  content_type: Mapped[ContentType] = mapped_column(SAEnum(ContentType, name="content_type"), nullable=False, default=ContentType.LEZIONE)
  order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  status: Mapped[TopicStatus] = mapped_column(SAEnum(TopicStatus, name="topic_status"), nullable=False, default=TopicStatus.PENDING)
  # At most one linked generation record per topic.
  lesson_id: Mapped[str | None] = mapped_column(ForeignKey("lessons.id", ondelete="SET NULL"), unique=True, nullable=True)
