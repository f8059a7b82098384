from __future__ import annotations
import asyncio
from datetime import timedelta
from typing import Any, Iterable
from uuid import UUID
import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from goodgrid.config import settings
from goodgrid.db import SessionLocal, transaction, utcnow
from goodgrid.errors import (
    DuplicateSubmission, GatewayUnavailable, InvalidTransition, NotEligible, NotFound,
    TaskUnavailable, TransactionFailed,
)
from goodgrid.models.ledger import RewardDistribution
from goodgrid.models.review import VerificationQueueItem
from goodgrid.models.submission import SubmissionStatus, TaskSubmission
from goodgrid.models.task import Task, TaskStatus, WorkHistory
from goodgrid.schemas.verification import FeedbackReport, FraudAssessment, HistoryEntry, VerificationResult
from goodgrid.services.dispatch import Dispatcher
from goodgrid.services.leveling import history_quality
from goodgrid.services.notifications import NotificationEvent, Notifier, notify_safely
from goodgrid.services.review_queue import enqueue_for_review
from goodgrid.services.rewards import apply_rewards, unlock_zones_safely
from goodgrid.services.submission_states import transition
from goodgrid.services.verification_gateway import VerificationGateway
from goodgrid.services.verification_policy import (
    GATEWAY_FAILURE_PRIORITY, HISTORY_WINDOW, Action, Decision, decide,
)

log = structlog.get_logger()


def _attachments(items: Iterable[Any] | None) -> list[dict]:
    out = []
    for a in items or []:
        out.append(a.model_dump(mode="json") if hasattr(a, "model_dump") else dict(a))
    return out


class SubmissionService:
    """
    Owns the submission lifecycle: submit/resubmit, automated verification,
    and the approve / revise / reject status writes the review queue delegates to.
    """

    def __init__(
        self,
        *,
        gateway: VerificationGateway,
        notifier: Notifier,
        dispatcher: Dispatcher,
        session_factory: async_sessionmaker[AsyncSession] = SessionLocal,
        gateway_timeout: float = settings.verification_timeout_seconds,
    ):
        self.gateway = gateway
        self.notifier = notifier
        self.dispatcher = dispatcher
        self.session_factory = session_factory
        self.gateway_timeout = gateway_timeout

    # ---------- user-facing ----------

    async def submit(self, task_id: UUID, user_id: UUID, text: str | None, attachments: Iterable[Any] | None = None) -> TaskSubmission:
        async with transaction(self.session_factory) as session:
            task = await session.get(Task, task_id)
            if task is None or task.status != TaskStatus.IN_PROGRESS:
                raise TaskUnavailable(f"task {task_id} not found or not accepting submissions")

            existing = await session.scalar(
                select(TaskSubmission.id).where(TaskSubmission.task_id == task_id, TaskSubmission.user_id == user_id)
            )
            if existing:
                raise DuplicateSubmission(f"user {user_id} already submitted for task {task_id}")

            submission = TaskSubmission(
                task_id=task_id,
                user_id=user_id,
                submission_text=text,
                file_attachments=_attachments(attachments),
                status=SubmissionStatus.PENDING,
                manual_review_required=False,
                revision_count=0,
                submitted_at=utcnow(),
            )
            session.add(submission)
            try:
                await session.flush()
            except IntegrityError as e:
                # lost a race against a concurrent submit for the same (task, user)
                raise DuplicateSubmission(f"user {user_id} already submitted for task {task_id}") from e

        log.info("submission_created", submission_id=str(submission.id), task_id=str(task_id), user_id=str(user_id))
        self._dispatch(submission.id)
        return submission

    async def resubmit(self, submission_id: UUID, user_id: UUID, text: str | None, attachments: Iterable[Any] | None = None) -> TaskSubmission:
        async with transaction(self.session_factory) as session:
            s = await session.get(TaskSubmission, submission_id)
            if s is None or s.user_id != user_id or s.status != SubmissionStatus.NEEDS_REVISION:
                raise NotEligible("submission not found or not available for revision")
            try:
                await transition(
                    session, submission_id, SubmissionStatus.PENDING,
                    expected=SubmissionStatus.NEEDS_REVISION,
                    submission_text=text,
                    file_attachments=_attachments(attachments),
                    feedback=None,
                    ai_verification_result=None,
                    manual_review_required=False,
                    submitted_at=utcnow(),
                )
            except InvalidTransition as e:
                raise NotEligible("submission not found or not available for revision") from e
            await session.refresh(s)

        log.info("submission_resubmitted", submission_id=str(submission_id), revision_count=s.revision_count)
        self._dispatch(submission_id)
        return s

    async def get_submission(self, submission_id: UUID) -> TaskSubmission | None:
        async with self.session_factory() as session:
            return await session.get(TaskSubmission, submission_id)

    async def list_user_submissions(self, user_id: UUID, limit: int = 20, offset: int = 0) -> list[TaskSubmission]:
        async with self.session_factory() as session:
            return (await session.execute(
                select(TaskSubmission)
                .where(TaskSubmission.user_id == user_id)
                .order_by(TaskSubmission.submitted_at.desc())
                .limit(limit)
                .offset(offset)
            )).scalars().all()

    # ---------- automated verification ----------

    async def process_verification(self, submission_id: UUID) -> Decision | None:
        """
        Background step. Returns the routing decision, or None when the submission
        was no longer PENDING (already picked up by another worker, or resolved).
        """
        bound = log.bind(submission_id=str(submission_id))
        try:
            async with transaction(self.session_factory) as session:
                await transition(session, submission_id, SubmissionStatus.UNDER_REVIEW, expected=SubmissionStatus.PENDING)
                submission = await session.get(TaskSubmission, submission_id, populate_existing=True)
                task = await session.get(Task, submission.task_id)
                history = await self._recent_history(session, submission)
        except (InvalidTransition, NotFound) as e:
            bound.info("verification_skipped", reason=str(e))
            return None

        try:
            result = await self._call_gateway(self.gateway.verify(submission, task))
            fraud = await self._call_gateway(self.gateway.detect_fraud(submission, task, history))
        except GatewayUnavailable as e:
            bound.error("verification_gateway_failed", error=str(e))
            return await self.escalate(submission_id, GATEWAY_FAILURE_PRIORITY, "gateway_unavailable")

        async with transaction(self.session_factory) as session:
            await session.execute(
                update(TaskSubmission)
                .where(TaskSubmission.id == submission_id)
                .values(ai_verification_result=self._verification_payload(result, fraud))
                .execution_options(synchronize_session=False)
            )

        decision = decide(result, fraud)
        bound.info(
            "verification_decided",
            action=decision.action.value,
            reason=decision.reason,
            score=result.score,
            passed=result.passed,
            risk=fraud.risk_level.value,
        )

        if decision.action == Action.MANUAL_REVIEW:
            return await self.escalate(submission_id, decision.priority, decision.reason)

        if decision.action == Action.AUTO_APPROVE:
            try:
                await self.approve(submission_id, task, result)
            except TransactionFailed as e:
                bound.error("auto_approve_failed", error=str(e))
                return await self.escalate(submission_id, GATEWAY_FAILURE_PRIORITY, "auto_approve_failed")
            return decision

        try:
            await self.request_revision(submission_id, result, task=task)
        except GatewayUnavailable as e:
            bound.error("feedback_generation_failed", error=str(e))
            return await self.escalate(submission_id, GATEWAY_FAILURE_PRIORITY, "feedback_unavailable")
        except InvalidTransition as e:
            bound.info("revision_skipped", reason=str(e))
            return None
        return decision

    async def escalate(self, submission_id: UUID, priority: int, reason: str) -> Decision:
        """Hand the submission to a human. Leaves it UNDER_REVIEW with an open queue item."""
        async with transaction(self.session_factory) as session:
            await transition(session, submission_id, SubmissionStatus.UNDER_REVIEW, manual_review_required=True)
            item = await enqueue_for_review(session, submission_id, priority)
        log.warning(
            "escalated_to_manual_review",
            submission_id=str(submission_id),
            queue_item_id=str(item.id),
            priority=priority,
            reason=reason,
        )
        return Decision(Action.MANUAL_REVIEW, reason, priority)

    # ---------- outcomes ----------

    async def approve(self, submission_id: UUID, task: Task, result: VerificationResult) -> RewardDistribution | None:
        """
        UNDER_REVIEW -> APPROVED with rewards, all or nothing.
        A repeated call finds the submission already APPROVED and no-ops (returns None).
        """
        try:
            async with transaction(self.session_factory) as session:
                submission, distribution = await self.approve_in_session(session, submission_id, task, result.score)
        except InvalidTransition as e:
            log.info("approve_skipped", submission_id=str(submission_id), reason=str(e))
            return None
        await self.after_approval(submission, task, distribution, result.score)
        return distribution

    async def approve_in_session(
        self, session: AsyncSession, submission_id: UUID, task: Task, quality_score: float
    ) -> tuple[TaskSubmission, RewardDistribution]:
        now = utcnow()
        await transition(
            session, submission_id, SubmissionStatus.APPROVED,
            expected=SubmissionStatus.UNDER_REVIEW,
            reviewed_at=now,
        )
        submission = await session.get(TaskSubmission, submission_id, populate_existing=True)

        await session.execute(
            update(Task)
            .where(Task.id == task.id)
            .values(status=TaskStatus.COMPLETED, updated_at=now)
            .execution_options(synchronize_session=False)
        )

        distribution = await apply_rewards(
            session,
            user_id=submission.user_id,
            task=task,
            quality_score=quality_score,
            submission_id=submission_id,
        )
        session.add(WorkHistory(
            user_id=submission.user_id,
            task_id=task.id,
            category=task.category,
            completion_date=now,
            quality_score=history_quality(quality_score),
            xp_earned=distribution.xp_awarded,
            trust_score_change=distribution.trust_score_change,
            rwis_earned=distribution.rwis_awarded,
        ))
        await session.flush()
        return submission, distribution

    async def after_approval(self, submission: TaskSubmission, task: Task, distribution: RewardDistribution, quality_score: float) -> None:
        log.info(
            "submission_approved",
            submission_id=str(submission.id),
            user_id=str(submission.user_id),
            quality_score=quality_score,
            xp=distribution.xp_awarded,
        )
        await unlock_zones_safely(submission.user_id, session_factory=self.session_factory, notifier=self.notifier)
        await notify_safely(self.notifier, submission.user_id, NotificationEvent.SUBMISSION_APPROVED, {
            "taskId": str(task.id),
            "taskTitle": task.title,
            "qualityScore": quality_score,
            "xpAwarded": distribution.xp_awarded,
            "trustScoreChange": distribution.trust_score_change,
            "rwisAwarded": distribution.rwis_awarded,
            "badgesAwarded": distribution.badges_awarded,
        })

    async def request_revision(self, submission_id: UUID, result: VerificationResult, *, task: Task | None = None) -> FeedbackReport:
        async with self.session_factory() as session:
            submission = await session.get(TaskSubmission, submission_id)
            if submission is None:
                raise NotFound(f"submission {submission_id} not found")
            if task is None:
                task = await session.get(Task, submission.task_id)

        report = await self._call_gateway(self.gateway.generate_feedback(submission, task, result))

        async with transaction(self.session_factory) as session:
            await self.write_revision(session, submission_id, report.feedback)

        log.info("revision_requested", submission_id=str(submission_id), score=result.score)
        await notify_safely(self.notifier, submission.user_id, NotificationEvent.REVISION_REQUESTED, {
            "submissionId": str(submission_id),
            "taskTitle": task.title,
            "feedback": report.feedback,
            "strengths": report.strengths,
            "areasForImprovement": report.areas_for_improvement,
            "suggestions": report.suggestions,
        })
        return report

    async def write_revision(self, session: AsyncSession, submission_id: UUID, feedback: str) -> None:
        await transition(
            session, submission_id, SubmissionStatus.NEEDS_REVISION,
            expected=SubmissionStatus.UNDER_REVIEW,
            feedback=feedback,
            revision_count=TaskSubmission.revision_count + 1,
            reviewed_at=utcnow(),
        )

    async def write_rejection(self, session: AsyncSession, submission_id: UUID, feedback: str) -> None:
        await transition(
            session, submission_id, SubmissionStatus.REJECTED,
            expected=SubmissionStatus.UNDER_REVIEW,
            feedback=feedback,
            reviewed_at=utcnow(),
        )

    # ---------- maintenance ----------

    async def recover_stranded(self, grace_minutes: int = settings.stranded_grace_minutes) -> list[UUID]:
        """
        Re-dispatch PENDING submissions whose verification was never started
        (crash between commit and enqueue), and escalate UNDER_REVIEW ones that
        were left without a queue item.
        """
        cutoff = utcnow() - timedelta(minutes=grace_minutes)
        open_items = select(VerificationQueueItem.submission_id).where(VerificationQueueItem.completed_at.is_(None))
        async with self.session_factory() as session:
            never_verified = (await session.execute(
                select(TaskSubmission.id).where(
                    TaskSubmission.status == SubmissionStatus.PENDING,
                    TaskSubmission.submitted_at < cutoff,
                    TaskSubmission.ai_verification_result.is_(None),
                    TaskSubmission.id.not_in(open_items),
                )
            )).scalars().all()
            orphaned = (await session.execute(
                select(TaskSubmission.id).where(
                    TaskSubmission.status == SubmissionStatus.UNDER_REVIEW,
                    TaskSubmission.submitted_at < cutoff,
                    TaskSubmission.id.not_in(open_items),
                )
            )).scalars().all()

        for submission_id in never_verified:
            self._dispatch(submission_id)
        for submission_id in orphaned:
            try:
                await self.escalate(submission_id, GATEWAY_FAILURE_PRIORITY, "stranded_under_review")
            except (InvalidTransition, TransactionFailed) as e:
                log.error("stranded_escalation_failed", submission_id=str(submission_id), error=str(e))

        if never_verified or orphaned:
            log.warning("stranded_submissions_recovered", redispatched=len(never_verified), escalated=len(orphaned))
        return [*never_verified, *orphaned]

    # ---------- helpers ----------

    def _dispatch(self, submission_id: UUID) -> None:
        # runs after commit; a failed enqueue is picked up by recover_stranded
        try:
            self.dispatcher.dispatch(submission_id)
        except Exception as e:
            log.error("verification_dispatch_failed", submission_id=str(submission_id), error=str(e))

    async def _call_gateway(self, coro):
        try:
            return await asyncio.wait_for(coro, timeout=self.gateway_timeout)
        except GatewayUnavailable:
            raise
        except asyncio.TimeoutError as e:
            raise GatewayUnavailable(f"timed out after {self.gateway_timeout}s") from e
        except Exception as e:
            raise GatewayUnavailable(str(e)) from e

    async def _recent_history(self, session: AsyncSession, submission: TaskSubmission) -> list[HistoryEntry]:
        rows = (await session.execute(
            select(TaskSubmission, Task.title, Task.category)
            .join(Task, Task.id == TaskSubmission.task_id)
            .where(TaskSubmission.user_id == submission.user_id, TaskSubmission.id != submission.id)
            .order_by(TaskSubmission.submitted_at.desc())
            .limit(HISTORY_WINDOW)
        )).all()
        return [
            HistoryEntry(
                submission_id=str(s.id),
                task_id=str(s.task_id),
                task_title=title,
                category=category.value,
                status=s.status.value,
                submitted_at=s.submitted_at.isoformat(),
                submission_text=s.submission_text,
            )
            for (s, title, category) in rows
        ]

    @staticmethod
    def _verification_payload(result: VerificationResult, fraud: FraudAssessment) -> dict:
        payload = result.model_dump(mode="json", by_alias=True)
        payload["fraud"] = fraud.model_dump(mode="json", by_alias=True)
        return payload
