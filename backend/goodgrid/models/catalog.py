from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, DateTime, ForeignKey, UniqueConstraint, Uuid, func
from goodgrid.db import Base, JSONDoc, utcnow


class Badge(Base):
    """
    unlock_criteria keys (all optional, AND semantics):
      trustScore, tasksCompleted, categoryTasks {category: n}, requiredBadges [badge name]
      (snake_case spellings are accepted too)
    """
    __tablename__ = "badges"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(Text(), nullable=False, default="")
    category: Mapped[str] = mapped_column(String(16), nullable=False, default="ACHIEVEMENT")  # SKILL|ACHIEVEMENT|CATEGORY|SPECIAL
    rarity: Mapped[str] = mapped_column(String(16), nullable=False, default="COMMON")
    icon_url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    unlock_criteria: Mapped[dict] = mapped_column(JSONDoc, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class UserBadge(Base):
    __tablename__ = "user_badges"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True, nullable=False)
    badge_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("badges.id", ondelete="CASCADE"), nullable=False)
    task_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="uq_user_badge_once"),
    )


class Zone(Base):
    """unlock_requirements keys (optional): trustScore, level."""
    __tablename__ = "zones"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    terrain_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    difficulty: Mapped[str | None] = mapped_column(String(16), nullable=True)
    unlock_requirements: Mapped[dict] = mapped_column(JSONDoc, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
