from __future__ import annotations
from fastapi import APIRouter, Depends, Query, Path
from uuid import UUID

from goodgrid.deps import get_actor_id, get_review_service
from goodgrid.schemas.review import (
    ApprovePayload, QueueItemPublic, RejectPayload, ReviewerLoad, ReviewerStats, RevisionPayload, TaskFeedbackPublic,
)
from goodgrid.schemas.rewards import RewardDistributionPublic
from goodgrid.schemas.submission import SubmissionPublic
from goodgrid.services.review_queue import ReviewService

router = APIRouter(prefix="/reviews", tags=["reviews"])


@router.get("/queue", response_model=list[QueueItemPublic])
async def list_queue(
    mine: int = Query(0, ge=0, le=1),
    priority: int | None = Query(None, ge=1, le=4),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor_id: UUID = Depends(get_actor_id),
    service: ReviewService = Depends(get_review_service),
):
    items = await service.list_queue(
        reviewer_id=actor_id, priority=priority, limit=limit, offset=offset, claimed_only=bool(mine)
    )
    return [QueueItemPublic.model_validate(i) for i in items]


@router.post("/queue/{item_id}/assign", response_model=QueueItemPublic)
async def assign(
    item_id: UUID = Path(...),
    actor_id: UUID = Depends(get_actor_id),
    service: ReviewService = Depends(get_review_service),
):
    return QueueItemPublic.model_validate(await service.assign(item_id, actor_id))


@router.post("/queue/{item_id}/approve", response_model=RewardDistributionPublic)
async def approve(
    payload: ApprovePayload,
    item_id: UUID = Path(...),
    actor_id: UUID = Depends(get_actor_id),
    service: ReviewService = Depends(get_review_service),
):
    dist = await service.approve(item_id, actor_id, feedback=payload.feedback, rating=payload.rating)
    return RewardDistributionPublic.model_validate(dist)


@router.post("/queue/{item_id}/reject", response_model=SubmissionPublic)
async def reject(
    payload: RejectPayload,
    item_id: UUID = Path(...),
    actor_id: UUID = Depends(get_actor_id),
    service: ReviewService = Depends(get_review_service),
):
    s = await service.reject(item_id, actor_id, payload.reason, feedback=payload.feedback)
    return SubmissionPublic.model_validate(s)


@router.post("/queue/{item_id}/revisions", response_model=SubmissionPublic)
async def request_revisions(
    payload: RevisionPayload,
    item_id: UUID = Path(...),
    actor_id: UUID = Depends(get_actor_id),
    service: ReviewService = Depends(get_review_service),
):
    s = await service.request_revisions(item_id, actor_id, payload.feedback, payload.suggestions)
    return SubmissionPublic.model_validate(s)


@router.get("/stats", response_model=ReviewerStats)
async def my_stats(
    actor_id: UUID = Depends(get_actor_id),
    service: ReviewService = Depends(get_review_service),
):
    return await service.reviewer_stats(actor_id)


@router.get("/reviewers", response_model=list[ReviewerLoad])
async def available_reviewers(
    actor_id: UUID = Depends(get_actor_id),
    service: ReviewService = Depends(get_review_service),
):
    return await service.available_reviewers()


@router.get("/submissions/{submission_id}/feedback", response_model=list[TaskFeedbackPublic])
async def submission_feedback(
    submission_id: UUID = Path(...),
    actor_id: UUID = Depends(get_actor_id),
    service: ReviewService = Depends(get_review_service),
):
    rows = await service.submission_feedback(submission_id)
    return [TaskFeedbackPublic.model_validate(r) for r in rows]
