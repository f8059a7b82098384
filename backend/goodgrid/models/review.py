from __future__ import annotations
import enum
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, SmallInteger, Text, DateTime, ForeignKey, Index, CheckConstraint, Enum, Uuid, func, text
from goodgrid.db import Base, utcnow


class ReviewOutcome(str, enum.Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    NEEDS_REVISION = "NEEDS_REVISION"


class FeedbackType(str, enum.Enum):
    COMPLETION = "COMPLETION"
    QUALITY = "QUALITY"
    COMMUNICATION = "COMMUNICATION"
    TIMELINESS = "TIMELINESS"
    OVERALL = "OVERALL"


class VerificationQueueItem(Base):
    """
    Human-review unit. Open while completed_at IS NULL; completed items are never reopened.
    Backlog order: priority DESC, created_at ASC.
    """
    __tablename__ = "verification_queue"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    submission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("task_submissions.id", ondelete="CASCADE"), index=True, nullable=False
    )
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=1)  # HIGH=4 | MEDIUM=2 | LOW=1
    assigned_reviewer_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    outcome: Mapped[ReviewOutcome | None] = mapped_column(Enum(ReviewOutcome, native_enum=False, length=16), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text(), nullable=True)

    __table_args__ = (
        # at most one open item per submission; a revision cycle gets a fresh row
        Index(
            "uq_verification_queue_open_submission",
            "submission_id",
            unique=True,
            postgresql_where=text("completed_at IS NULL"),
            sqlite_where=text("completed_at IS NULL"),
        ),
        Index(
            "ix_verification_queue_backlog",
            "priority",
            "created_at",
            postgresql_where=text("completed_at IS NULL"),
        ),
    )


class TaskFeedback(Base):
    __tablename__ = "task_feedback"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    submission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("task_submissions.id", ondelete="CASCADE"), index=True, nullable=False
    )
    from_user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    to_user_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True, nullable=False)
    rating: Mapped[int] = mapped_column(SmallInteger, nullable=False)  # 1..5
    feedback_text: Mapped[str] = mapped_column(Text(), nullable=False)
    feedback_type: Mapped[FeedbackType] = mapped_column(
        Enum(FeedbackType, native_enum=False, length=16), nullable=False, default=FeedbackType.OVERALL
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_task_feedback_rating_range"),
    )
