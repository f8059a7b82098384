from __future__ import annotations
import enum
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Text, DateTime, ForeignKey, Enum, Uuid, func
from goodgrid.db import Base, JSONDoc, utcnow


class TaskCategory(str, enum.Enum):
    FREELANCE = "FREELANCE"
    COMMUNITY = "COMMUNITY"
    CORPORATE = "CORPORATE"

    @property
    def stats_key(self) -> str:
        # key used inside UserStats.category_stats
        return self.value.lower()


class TaskStatus(str, enum.Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    VERIFIED = "VERIFIED"
    CANCELLED = "CANCELLED"


class Task(Base):
    """
    Tasks are authored elsewhere; the pipeline only reads them and flips status to COMPLETED.
    rewards_json shape: {"xp": int, "trustScoreBonus": int, "rwisPoints": int, "payment": float | null}
    """
    __tablename__ = "tasks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text(), nullable=False, default="")
    category: Mapped[TaskCategory] = mapped_column(Enum(TaskCategory, native_enum=False, length=16), index=True, nullable=False)
    creator_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    status: Mapped[TaskStatus] = mapped_column(Enum(TaskStatus, native_enum=False, length=16), index=True, nullable=False, default=TaskStatus.OPEN)
    requirements_json: Mapped[dict] = mapped_column(JSONDoc, nullable=False, default=dict)
    rewards_json: Mapped[dict] = mapped_column(JSONDoc, nullable=False, default=dict)
    deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class WorkHistory(Base):
    """One row per approved submission; quality_score is on the 1-5 scale."""
    __tablename__ = "work_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True, nullable=False)
    task_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tasks.id", ondelete="CASCADE"), index=True, nullable=False)
    category: Mapped[TaskCategory] = mapped_column(Enum(TaskCategory, native_enum=False, length=16), nullable=False)
    completion_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    quality_score: Mapped[int] = mapped_column(Integer, nullable=False)
    client_feedback: Mapped[str | None] = mapped_column(Text(), nullable=True)
    xp_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    trust_score_change: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rwis_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
