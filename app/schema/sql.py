from __future__ import annotations

import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, String, Text, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.schema.curriculum import Module, Program, Topic  # noqa: F401
from app.schema.lessons import Document, Lesson  # noqa: F401
from app.schema.usage import AiQuotaReservation, AiUsageLog  # noqa: F401
from app.utils.ids import generate_id

SYSTEM_GEMINI_KEY = "gemini_api_key"


class UserRole(str, Enum):
  ADMIN = "ADMIN"
  TEACHER = "TEACHER"


class UserStatus(str, Enum):
  PENDING = "PENDING"
  APPROVED = "APPROVED"
  DISABLED = "DISABLED"


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
  firebase_uid: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
  email: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
  full_name: Mapped[str | None] = mapped_column(String, nullable=True)
  role: Mapped[UserRole] = mapped_column(SAEnum(UserRole, name="user_role"), default=UserRole.TEACHER, nullable=False)
  status: Mapped[UserStatus] = mapped_column(SAEnum(UserStatus, name="user_status"), default=UserStatus.PENDING, nullable=False)
  # Personal Anthropic key as a JSON envelope {iv, encryptedData, authTag}.
  anthropic_api_key: Mapped[str | None] = mapped_column(Text, nullable=True)
  api_key_configured: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false", nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Discipline(Base):
  __tablename__ = "disciplines"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
  name: Mapped[str] = mapped_column(String, unique=True, nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class SystemConfig(Base):
  __tablename__ = "system_config"

  key: Mapped[str] = mapped_column(String, primary_key=True)
  value: Mapped[str] = mapped_column(Text, nullable=False)
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
