"""SQLAlchemy models for the AI usage ledger and in-flight quota reservations."""

from __future__ import annotations

import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.utils.ids import generate_id


class AiUsageLog(Base):
  __tablename__ = "ai_usage_logs"
  __table_args__ = (Index("ix_ai_usage_logs_user_provider_created", "user_id", "provider", "created_at"),)

  id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
  user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
  provider: Mapped[str] = mapped_column(String, nullable=False)
  operation: Mapped[str] = mapped_column(String, nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class AiQuotaReservation(Base):
  __tablename__ = "ai_quota_reservations"
  __table_args__ = (Index("ix_ai_quota_reservations_user_provider_created", "user_id", "provider", "created_at"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
  user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
  provider: Mapped[str] = mapped_column(String, nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
