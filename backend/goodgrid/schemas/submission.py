from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID
from datetime import datetime
from goodgrid.models.submission import SubmissionStatus


class FileAttachment(BaseModel):
    filename: str
    url: str
    mime_type: str | None = None
    size_bytes: int | None = Field(default=None, ge=0)


class SubmissionCreate(BaseModel):
    task_id: UUID
    submission_text: str | None = Field(default=None, max_length=20000)
    file_attachments: list[FileAttachment] = Field(default_factory=list)


class SubmissionResubmit(BaseModel):
    submission_text: str | None = Field(default=None, max_length=20000)
    file_attachments: list[FileAttachment] = Field(default_factory=list)


class SubmissionPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    task_id: UUID
    user_id: UUID
    submission_text: str | None = None
    file_attachments: list[FileAttachment] = Field(default_factory=list)
    status: SubmissionStatus
    ai_verification_result: dict | None = None
    manual_review_required: bool
    reviewer_id: UUID | None = None
    feedback: str | None = None
    revision_count: int
    submitted_at: datetime
    reviewed_at: datetime | None = None
