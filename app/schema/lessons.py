from __future__ import annotations

import datetime
from enum import Enum as PyEnum

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.utils.ids import generate_id


class ContentType(str, PyEnum):
  LEZIONE = "LEZIONE"
  VERIFICA_SCRITTA = "VERIFICA_SCRITTA"
  ESERCIZIO_RISPOSTA_MULTIPLA = "ESERCIZIO_RISPOSTA_MULTIPLA"
  ESERCIZIO_RISPOSTA_APERTA = "ESERCIZIO_RISPOSTA_APERTA"
  ESERCITAZIONE_LABORATORIO = "ESERCITAZIONE_LABORATORIO"
  COMPITO_IN_CLASSE = "COMPITO_IN_CLASSE"
  APPROFONDIMENTO = "APPROFONDIMENTO"
  ESERCIZIO_GUIDATO = "ESERCIZIO_GUIDATO"
  MAPPA_CONCETTUALE = "MAPPA_CONCETTUALE"


CONTENT_TYPE_LABELS: dict[ContentType, str] = {
  ContentType.LEZIONE: "Lezione",
  ContentType.VERIFICA_SCRITTA: "Verifica scritta",
  ContentType.ESERCIZIO_RISPOSTA_MULTIPLA: "Esercizio a risposta multipla",
  ContentType.ESERCIZIO_RISPOSTA_APERTA: "Esercizio a risposta aperta",
  ContentType.ESERCITAZIONE_LABORATORIO: "Esercitazione di laboratorio",
  ContentType.COMPITO_IN_CLASSE: "Compito in classe",
  ContentType.APPROFONDIMENTO: "Approfondimento",
  ContentType.ESERCIZIO_GUIDATO: "Esercizio guidato",
  ContentType.MAPPA_CONCETTUALE: "Mappa concettuale",
}


class LessonStatus(str, PyEnum):
  GENERATING = "GENERATING"
  DRAFT = "DRAFT"
  FAILED = "FAILED"


class Visibility(str, PyEnum):
  PRIVATE = "PRIVATE"
  PUBLIC = "PUBLIC"


class ApprovalStatus(str, PyEnum):
  NONE = "NONE"
  PENDING = "PENDING"
  APPROVED = "APPROVED"
  REJECTED = "REJECTED"


class Lesson(Base):
  __tablename__ = "lessons"
  __table_args__ = (Index("ix_lessons_teacher_status_updated", "teacher_id", "status", "updated_at"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  class_name: Mapped[str | None] = mapped_column(String, nullable=True)
  content_type: Mapped[ContentType] = mapped_column(SAEnum(ContentType, name="content_type"), nullable=False)
  content: Mapped[dict] = mapped_column(JSONB, nullable=False)
  status: Mapped[LessonStatus] = mapped_column(SAEnum(LessonStatus, name="lesson_status"), nullable=False, default=LessonStatus.GENERATING)
  failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
  ai_model_used: Mapped[str | None] = mapped_column(String, nullable=True)
  visibility: Mapped[Visibility] = mapped_column(SAEnum(Visibility, name="lesson_visibility"), nullable=False, default=Visibility.PRIVATE)
  approval_status: Mapped[ApprovalStatus] = mapped_column(SAEnum(ApprovalStatus, name="lesson_approval_status"), nullable=False, default=ApprovalStatus.NONE)
  teacher_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
  discipline_id: Mapped[str] = mapped_column(ForeignKey("disciplines.id"), nullable=False)
  document_id: Mapped[str | None] = mapped_column(ForeignKey("documents.id", ondelete="SET NULL"), nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class Document(Base):
  __tablename__ = "documents"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
  teacher_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
  filename: Mapped[str] = mapped_column(String, nullable=False)
  # Filled by the upload pipeline; None until extraction has run.
  extracted_text: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
