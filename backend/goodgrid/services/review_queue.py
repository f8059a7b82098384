from __future__ import annotations
from typing import TYPE_CHECKING
from uuid import UUID
import structlog
from sqlalchemy import case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from goodgrid.db import SessionLocal, transaction, utcnow
from goodgrid.errors import AlreadyAssigned, NotAssignedToReviewer, NotFound
from goodgrid.models.ledger import RewardDistribution
from goodgrid.models.review import FeedbackType, ReviewOutcome, TaskFeedback, VerificationQueueItem
from goodgrid.models.submission import TaskSubmission
from goodgrid.models.task import Task
from goodgrid.schemas.review import ReviewerLoad, ReviewerStats
from goodgrid.services.notifications import NotificationEvent, Notifier, notify_safely
from goodgrid.services.verification_policy import manual_approval_score

if TYPE_CHECKING:
    from goodgrid.services.submissions import SubmissionService

log = structlog.get_logger()

Q = VerificationQueueItem


async def enqueue_for_review(session: AsyncSession, submission_id: UUID, priority: int) -> VerificationQueueItem:
    """Open a queue item, or re-prioritize the one already open for this submission."""
    item = await session.scalar(
        select(Q).where(Q.submission_id == submission_id, Q.completed_at.is_(None)).with_for_update()
    )
    if item is not None:
        item.priority = priority
    else:
        item = Q(submission_id=submission_id, priority=priority, created_at=utcnow())
        session.add(item)
    await session.flush()
    return item


class ReviewService:
    def __init__(
        self,
        submissions: "SubmissionService",
        *,
        notifier: Notifier,
        session_factory: async_sessionmaker[AsyncSession] = SessionLocal,
    ):
        self.submissions = submissions
        self.notifier = notifier
        self.session_factory = session_factory

    async def list_queue(
        self,
        reviewer_id: UUID | None = None,
        priority: int | None = None,
        limit: int = 20,
        offset: int = 0,
        claimed_only: bool = False,
    ) -> list[VerificationQueueItem]:
        """
        Open items, most urgent first, oldest first within a priority.
        With a reviewer: the unclaimed backlog plus that reviewer's own claims
        (only the claims when claimed_only).
        """
        stmt = select(Q).where(Q.completed_at.is_(None))
        if reviewer_id is not None:
            if claimed_only:
                stmt = stmt.where(Q.assigned_reviewer_id == reviewer_id)
            else:
                stmt = stmt.where(or_(Q.assigned_reviewer_id == reviewer_id, Q.assigned_reviewer_id.is_(None)))
        if priority is not None:
            stmt = stmt.where(Q.priority == priority)
        stmt = stmt.order_by(Q.priority.desc(), Q.created_at.asc()).limit(limit).offset(offset)
        async with self.session_factory() as session:
            return (await session.execute(stmt)).scalars().all()

    async def assign(self, queue_item_id: UUID, reviewer_id: UUID) -> VerificationQueueItem:
        """
        Claim an open item. Exactly one reviewer wins; re-claiming your own item is a no-op.
        """
        async with transaction(self.session_factory) as session:
            result = await session.execute(
                update(Q)
                .where(
                    Q.id == queue_item_id,
                    Q.completed_at.is_(None),
                    or_(Q.assigned_reviewer_id.is_(None), Q.assigned_reviewer_id == reviewer_id),
                )
                .values(assigned_reviewer_id=reviewer_id, assigned_at=func.coalesce(Q.assigned_at, utcnow()))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                item = await session.get(Q, queue_item_id)
                if item is None or item.completed_at is not None:
                    raise NotFound(f"queue item {queue_item_id} not found or already completed")
                raise AlreadyAssigned(f"queue item {queue_item_id} is assigned to another reviewer")

            item = await session.get(Q, queue_item_id, populate_existing=True)
            await session.execute(
                update(TaskSubmission)
                .where(TaskSubmission.id == item.submission_id)
                .values(reviewer_id=reviewer_id)
                .execution_options(synchronize_session=False)
            )
            task_title = await session.scalar(
                select(Task.title)
                .join(TaskSubmission, TaskSubmission.task_id == Task.id)
                .where(TaskSubmission.id == item.submission_id)
            )

        log.info("review_assigned", queue_item_id=str(queue_item_id), reviewer_id=str(reviewer_id), priority=item.priority)
        await notify_safely(self.notifier, reviewer_id, NotificationEvent.REVIEW_ASSIGNED, {
            "queueItemId": str(item.id),
            "submissionId": str(item.submission_id),
            "taskTitle": task_title,
            "priority": item.priority,
        })
        return item

    async def approve(
        self,
        queue_item_id: UUID,
        reviewer_id: UUID,
        feedback: str | None = None,
        rating: int | None = None,
    ) -> RewardDistribution:
        async with transaction(self.session_factory) as session:
            item = await self._complete(session, queue_item_id, reviewer_id, ReviewOutcome.APPROVED, feedback or "Approved by manual review")
            submission = await session.get(TaskSubmission, item.submission_id)
            task = await session.get(Task, submission.task_id)
            ai_score = (submission.ai_verification_result or {}).get("score")
            score = manual_approval_score(ai_score, rating)

            submission, distribution = await self.submissions.approve_in_session(session, submission.id, task, score)
            if feedback and rating:
                session.add(TaskFeedback(
                    submission_id=submission.id,
                    from_user_id=reviewer_id,
                    to_user_id=submission.user_id,
                    rating=rating,
                    feedback_text=feedback,
                    feedback_type=FeedbackType.OVERALL,
                ))

        log.info("manual_review_approved", queue_item_id=str(queue_item_id), reviewer_id=str(reviewer_id), score=score)
        await self.submissions.after_approval(submission, task, distribution, score)
        return distribution

    async def reject(self, queue_item_id: UUID, reviewer_id: UUID, reason: str, feedback: str | None = None) -> TaskSubmission:
        async with transaction(self.session_factory) as session:
            item = await self._complete(session, queue_item_id, reviewer_id, ReviewOutcome.REJECTED, reason)
            await self.submissions.write_rejection(session, item.submission_id, feedback or reason)
            submission = await session.get(TaskSubmission, item.submission_id, populate_existing=True)

        log.info("manual_review_rejected", queue_item_id=str(queue_item_id), reviewer_id=str(reviewer_id))
        await notify_safely(self.notifier, submission.user_id, NotificationEvent.SUBMISSION_REJECTED, {
            "submissionId": str(submission.id),
            "reason": reason,
            "feedback": submission.feedback,
        })
        return submission

    async def request_revisions(
        self,
        queue_item_id: UUID,
        reviewer_id: UUID,
        feedback: str,
        suggestions: list[str] | None = None,
    ) -> TaskSubmission:
        suggestions = suggestions or []
        async with transaction(self.session_factory) as session:
            item = await self._complete(session, queue_item_id, reviewer_id, ReviewOutcome.NEEDS_REVISION, feedback)
            await self.submissions.write_revision(session, item.submission_id, feedback)
            submission = await session.get(TaskSubmission, item.submission_id, populate_existing=True)

        log.info("manual_review_revision_requested", queue_item_id=str(queue_item_id), reviewer_id=str(reviewer_id))
        await notify_safely(self.notifier, submission.user_id, NotificationEvent.REVISION_REQUESTED, {
            "submissionId": str(submission.id),
            "feedback": feedback,
            "strengths": [],
            "areasForImprovement": suggestions,
            "suggestions": suggestions,
        })
        return submission

    async def reviewer_stats(self, reviewer_id: UUID) -> ReviewerStats:
        async with self.session_factory() as session:
            completed = (await session.execute(
                select(Q.outcome, Q.assigned_at, Q.completed_at)
                .where(Q.assigned_reviewer_id == reviewer_id, Q.completed_at.is_not(None))
            )).all()
            pending = await session.scalar(
                select(func.count()).select_from(Q)
                .where(Q.assigned_reviewer_id == reviewer_id, Q.completed_at.is_(None))
            )

        hours = [
            (done - assigned).total_seconds() / 3600
            for (_, assigned, done) in completed
            if assigned is not None and done is not None
        ]
        return ReviewerStats(
            total_reviews=len(completed),
            approved_reviews=sum(1 for (o, _, _) in completed if o == ReviewOutcome.APPROVED),
            rejected_reviews=sum(1 for (o, _, _) in completed if o == ReviewOutcome.REJECTED),
            revisions_requested=sum(1 for (o, _, _) in completed if o == ReviewOutcome.NEEDS_REVISION),
            average_review_time_hours=round(sum(hours) / len(hours), 2) if hours else 0.0,
            pending_reviews=pending or 0,
        )

    async def available_reviewers(self) -> list[ReviewerLoad]:
        """
        Everyone who has ever claimed a queue item, least loaded first,
        most experienced first among equals.
        """
        pending = func.coalesce(func.sum(case((Q.completed_at.is_(None), 1), else_=0)), 0)
        total = func.coalesce(func.sum(case((Q.completed_at.is_not(None), 1), else_=0)), 0)
        async with self.session_factory() as session:
            loads = (await session.execute(
                select(Q.assigned_reviewer_id, pending, total)
                .where(Q.assigned_reviewer_id.is_not(None))
                .group_by(Q.assigned_reviewer_id)
            )).all()
            reviewer_ids = [r for (r, _, _) in loads]
            ratings = dict((await session.execute(
                select(TaskFeedback.from_user_id, func.avg(TaskFeedback.rating))
                .where(TaskFeedback.from_user_id.in_(reviewer_ids))
                .group_by(TaskFeedback.from_user_id)
            )).all()) if reviewer_ids else {}

        reviewers = [
            ReviewerLoad(
                reviewer_id=reviewer_id,
                pending_reviews=int(p),
                total_reviews=int(t),
                average_rating=round(float(ratings.get(reviewer_id) or 0), 2),
            )
            for (reviewer_id, p, t) in loads
        ]
        reviewers.sort(key=lambda r: (r.pending_reviews, -r.total_reviews))
        return reviewers

    async def submission_feedback(self, submission_id: UUID) -> list[TaskFeedback]:
        async with self.session_factory() as session:
            return (await session.execute(
                select(TaskFeedback)
                .where(TaskFeedback.submission_id == submission_id)
                .order_by(TaskFeedback.created_at.desc())
            )).scalars().all()

    async def _complete(
        self,
        session: AsyncSession,
        queue_item_id: UUID,
        reviewer_id: UUID,
        outcome: ReviewOutcome,
        notes: str | None,
    ) -> VerificationQueueItem:
        result = await session.execute(
            update(Q)
            .where(Q.id == queue_item_id, Q.assigned_reviewer_id == reviewer_id, Q.completed_at.is_(None))
            .values(completed_at=utcnow(), outcome=outcome, notes=notes)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            item = await session.get(Q, queue_item_id)
            if item is None or item.completed_at is not None:
                raise NotFound(f"queue item {queue_item_id} not found or already completed")
            raise NotAssignedToReviewer(f"queue item {queue_item_id} is not assigned to {reviewer_id}")
        return await session.get(Q, queue_item_id, populate_existing=True)
