from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID
from datetime import datetime
from goodgrid.models.review import ReviewOutcome, FeedbackType


class QueueItemPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    submission_id: UUID
    priority: int
    assigned_reviewer_id: UUID | None = None
    created_at: datetime
    assigned_at: datetime | None = None
    completed_at: datetime | None = None
    outcome: ReviewOutcome | None = None
    notes: str | None = None


class ApprovePayload(BaseModel):
    feedback: str | None = None
    rating: int | None = Field(default=None, ge=1, le=5)


class RejectPayload(BaseModel):
    reason: str = Field(min_length=1)
    feedback: str | None = None


class RevisionPayload(BaseModel):
    feedback: str = Field(min_length=1)
    suggestions: list[str] = Field(default_factory=list)


class ReviewerStats(BaseModel):
    total_reviews: int = 0
    approved_reviews: int = 0
    rejected_reviews: int = 0
    revisions_requested: int = 0
    average_review_time_hours: float = 0.0
    pending_reviews: int = 0


class TaskFeedbackPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    submission_id: UUID
    from_user_id: UUID
    to_user_id: UUID
    rating: int
    feedback_text: str
    feedback_type: FeedbackType
    created_at: datetime


class ReviewerLoad(BaseModel):
    reviewer_id: UUID
    pending_reviews: int = 0
    total_reviews: int = 0
    average_rating: float = 0.0
