from __future__ import annotations
import enum
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Boolean, Integer, Text, DateTime, ForeignKey, UniqueConstraint, Enum, Uuid, func
from goodgrid.db import Base, JSONDoc, NullableJSONDoc, utcnow


class SubmissionStatus(str, enum.Enum):
    PENDING = "PENDING"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    NEEDS_REVISION = "NEEDS_REVISION"


class TaskSubmission(Base):
    __tablename__ = "task_submissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    task_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tasks.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True, nullable=False)

    submission_text: Mapped[str | None] = mapped_column(Text(), nullable=True)
    file_attachments: Mapped[list] = mapped_column(JSONDoc, nullable=False, default=list)

    # Only ever written through services.submission_states
    status: Mapped[SubmissionStatus] = mapped_column(
        Enum(SubmissionStatus, native_enum=False, length=16), index=True, nullable=False, default=SubmissionStatus.PENDING
    )
    ai_verification_result: Mapped[dict | None] = mapped_column(NullableJSONDoc, nullable=True)
    manual_review_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    reviewer_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    feedback: Mapped[str | None] = mapped_column(Text(), nullable=True)
    revision_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True, nullable=False)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_submission_one_per_task_user"),
    )
