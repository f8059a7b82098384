from __future__ import annotations
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID
from datetime import datetime
from goodgrid.models.ledger import PaymentStatus


class TaskRewards(BaseModel):
    """Shape of Task.rewards_json (camelCase, as authored by the task service)."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    xp: int = 0
    trust_score_bonus: int = Field(default=0, alias="trustScoreBonus")
    rwis_points: int = Field(default=0, alias="rwisPoints")
    payment: Decimal | None = None


class BadgeCriteria(BaseModel):
    """Badge.unlock_criteria; catalogs are authored in camelCase, snake_case also accepted."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    trust_score: int | None = Field(default=None, alias="trustScore")
    tasks_completed: int | None = Field(default=None, alias="tasksCompleted")
    category_tasks: dict[str, int] = Field(default_factory=dict, alias="categoryTasks")
    required_badges: list[str] = Field(default_factory=list, alias="requiredBadges")


class ZoneRequirements(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    trust_score: int | None = Field(default=None, alias="trustScore")
    level: int | None = None


class CategoryMetrics(BaseModel):
    tasksCompleted: int = 0
    totalXP: int = 0
    averageRating: float = 0.0


class UserStatsPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    trust_score: int
    rwis_score: int
    xp_points: int
    current_level: int
    unlocked_zones: list[str] = Field(default_factory=list)
    category_stats: dict[str, CategoryMetrics] = Field(default_factory=dict)


class RewardDistributionPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    submission_id: UUID
    user_id: UUID
    xp_awarded: int
    trust_score_change: int
    rwis_awarded: int
    quality_score: int
    badges_awarded: list[str] = Field(default_factory=list)
    payment_amount: Decimal | None = None
    payment_status: PaymentStatus | None = None
    distributed_at: datetime
