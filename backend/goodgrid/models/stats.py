from __future__ import annotations
import uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, CheckConstraint, Uuid
from goodgrid.db import Base, JSONDoc


def empty_category_stats() -> dict:
    return {
        key: {"tasksCompleted": 0, "totalXP": 0, "averageRating": 0.0}
        for key in ("freelance", "community", "corporate")
    }


class UserStats(Base):
    """
    Derived progression state; written only by services.rewards.
    current_level is always level_for(xp_points).
    """
    __tablename__ = "user_stats"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    trust_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rwis_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    xp_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unlocked_zones: Mapped[list] = mapped_column(JSONDoc, nullable=False, default=list)  # zone ids (str), append-only
    category_stats: Mapped[dict] = mapped_column(JSONDoc, nullable=False, default=empty_category_stats)

    __table_args__ = (
        CheckConstraint("trust_score >= 0", name="ck_user_stats_trust_nonneg"),
        CheckConstraint("rwis_score >= 0", name="ck_user_stats_rwis_nonneg"),
        CheckConstraint("xp_points >= 0", name="ck_user_stats_xp_nonneg"),
        CheckConstraint("current_level >= 1", name="ck_user_stats_level_min"),
    )
