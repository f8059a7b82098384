from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException, Query, Path
from uuid import UUID

from goodgrid.deps import get_actor_id, get_submission_service
from goodgrid.schemas.submission import SubmissionCreate, SubmissionPublic, SubmissionResubmit
from goodgrid.services.submissions import SubmissionService

router = APIRouter(prefix="/submissions", tags=["submissions"])


@router.post("", response_model=SubmissionPublic, status_code=201)
async def submit(
    payload: SubmissionCreate,
    actor_id: UUID = Depends(get_actor_id),
    service: SubmissionService = Depends(get_submission_service),
):
    s = await service.submit(payload.task_id, actor_id, payload.submission_text, payload.file_attachments)
    return SubmissionPublic.model_validate(s)


@router.get("/mine", response_model=list[SubmissionPublic])
async def my_submissions(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor_id: UUID = Depends(get_actor_id),
    service: SubmissionService = Depends(get_submission_service),
):
    rows = await service.list_user_submissions(actor_id, limit=limit, offset=offset)
    return [SubmissionPublic.model_validate(s) for s in rows]


@router.get("/{submission_id}", response_model=SubmissionPublic)
async def get_submission(
    submission_id: UUID = Path(...),
    actor_id: UUID = Depends(get_actor_id),
    service: SubmissionService = Depends(get_submission_service),
):
    s = await service.get_submission(submission_id)
    if not s:
        raise HTTPException(status_code=404, detail="Submission not found")
    return SubmissionPublic.model_validate(s)


@router.post("/{submission_id}/resubmit", response_model=SubmissionPublic)
async def resubmit(
    payload: SubmissionResubmit,
    submission_id: UUID = Path(...),
    actor_id: UUID = Depends(get_actor_id),
    service: SubmissionService = Depends(get_submission_service),
):
    s = await service.resubmit(submission_id, actor_id, payload.submission_text, payload.file_attachments)
    return SubmissionPublic.model_validate(s)
