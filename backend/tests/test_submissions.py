from __future__ import annotations
import asyncio
import uuid
from datetime import timedelta
import pytest
from sqlalchemy import func, select, update

from goodgrid.db import transaction, utcnow
from goodgrid.errors import DuplicateSubmission, NotEligible, TaskUnavailable
from goodgrid.models.ledger import RewardDistribution
from goodgrid.models.review import VerificationQueueItem
from goodgrid.models.stats import UserStats
from goodgrid.models.submission import SubmissionStatus, TaskSubmission
from goodgrid.models.task import Task, TaskStatus, WorkHistory
from goodgrid.schemas.verification import FraudAssessment, RiskLevel, VerificationResult
from goodgrid.services.notifications import NotificationEvent
from goodgrid.services.submissions import SubmissionService
from goodgrid.services.verification_policy import Action


async def _load(session_factory, submission_id) -> TaskSubmission:
    async with session_factory() as session:
        return await session.get(TaskSubmission, submission_id)


async def _open_items(session_factory, submission_id) -> list[VerificationQueueItem]:
    async with session_factory() as session:
        return (await session.execute(
            select(VerificationQueueItem).where(
                VerificationQueueItem.submission_id == submission_id,
                VerificationQueueItem.completed_at.is_(None),
            )
        )).scalars().all()


@pytest.mark.asyncio
async def test_submit_creates_pending_and_dispatches(submissions, dispatcher, make_task):
    task = await make_task()
    user = uuid.uuid4()
    s = await submissions.submit(task.id, user, "Collected 3 bags of litter", [
        {"filename": "before.jpg", "url": "https://cdn.example/before.jpg"},
    ])
    assert s.status == SubmissionStatus.PENDING
    assert s.revision_count == 0
    assert s.manual_review_required is False
    assert s.file_attachments[0]["filename"] == "before.jpg"
    assert dispatcher.dispatched == [s.id]


@pytest.mark.asyncio
async def test_one_submission_per_task_and_user(submissions, make_task):
    task = await make_task()
    user = uuid.uuid4()
    await submissions.submit(task.id, user, "first")
    with pytest.raises(DuplicateSubmission):
        await submissions.submit(task.id, user, "second")
    # a different user is fine
    await submissions.submit(task.id, uuid.uuid4(), "other user")


@pytest.mark.asyncio
async def test_submit_requires_task_in_progress(submissions, make_task):
    task = await make_task(status=TaskStatus.OPEN)
    with pytest.raises(TaskUnavailable):
        await submissions.submit(task.id, uuid.uuid4(), "too early")
    with pytest.raises(TaskUnavailable):
        await submissions.submit(uuid.uuid4(), uuid.uuid4(), "no such task")


@pytest.mark.asyncio
async def test_dispatch_failure_keeps_submission(submissions, dispatcher, session_factory, make_task):
    task = await make_task()
    dispatcher.fail = True
    s = await submissions.submit(task.id, uuid.uuid4(), "text")
    stored = await _load(session_factory, s.id)
    assert stored.status == SubmissionStatus.PENDING


@pytest.mark.asyncio
async def test_auto_approve_applies_rewards(submissions, gateway, notifier, session_factory, make_task):
    task = await make_task()
    user = uuid.uuid4()
    s = await submissions.submit(task.id, user, "done")
    gateway.result = VerificationResult(passed=True, score=90)

    decision = await submissions.process_verification(s.id)

    assert decision.action == Action.AUTO_APPROVE
    stored = await _load(session_factory, s.id)
    assert stored.status == SubmissionStatus.APPROVED
    assert stored.reviewed_at is not None
    assert stored.ai_verification_result["score"] == 90
    assert stored.ai_verification_result["fraud"]["riskLevel"] == "LOW"
    async with session_factory() as session:
        stats = await session.get(UserStats, user)
        dist = await session.scalar(select(RewardDistribution).where(RewardDistribution.submission_id == s.id))
        t = await session.get(Task, task.id)
        history = await session.scalar(select(WorkHistory).where(WorkHistory.user_id == user))
    # multiplier 1.4
    assert (dist.xp_awarded, dist.trust_score_change, dist.rwis_awarded) == (140, 7, 14)
    assert (stats.xp_points, stats.trust_score, stats.rwis_score, stats.current_level) == (140, 7, 14, 2)
    assert stats.category_stats["community"]["tasksCompleted"] == 1
    assert t.status == TaskStatus.COMPLETED
    assert history.quality_score == 5 and history.xp_earned == 140
    assert NotificationEvent.SUBMISSION_APPROVED in notifier.events()


@pytest.mark.asyncio
async def test_gateway_failure_escalates_at_high_priority(submissions, gateway, session_factory, make_task):
    task = await make_task()
    s = await submissions.submit(task.id, uuid.uuid4(), "done")
    gateway.fail_on = {"verify"}

    decision = await submissions.process_verification(s.id)

    assert decision.action == Action.MANUAL_REVIEW
    stored = await _load(session_factory, s.id)
    assert stored.status == SubmissionStatus.UNDER_REVIEW
    assert stored.manual_review_required is True
    items = await _open_items(session_factory, s.id)
    assert len(items) == 1 and items[0].priority == 4
    async with session_factory() as session:
        assert await session.scalar(select(func.count()).select_from(RewardDistribution)) == 0


@pytest.mark.asyncio
async def test_unexpected_gateway_error_is_treated_as_unavailable(submissions, gateway, session_factory, make_task):
    task = await make_task()
    s = await submissions.submit(task.id, uuid.uuid4(), "done")
    gateway.fail_on = {"detect_fraud"}

    await submissions.process_verification(s.id)

    stored = await _load(session_factory, s.id)
    assert stored.status == SubmissionStatus.UNDER_REVIEW
    assert (await _open_items(session_factory, s.id))[0].priority == 4


@pytest.mark.asyncio
async def test_fraud_risk_sets_queue_priority(submissions, gateway, session_factory, make_task):
    task = await make_task()
    s = await submissions.submit(task.id, uuid.uuid4(), "done")
    gateway.result = VerificationResult(passed=True, score=95)
    gateway.fraud = FraudAssessment(is_fraudulent=False, risk_level=RiskLevel.HIGH)

    decision = await submissions.process_verification(s.id)

    assert decision.reason == "high_fraud_risk"
    stored = await _load(session_factory, s.id)
    assert stored.status == SubmissionStatus.UNDER_REVIEW
    assert stored.ai_verification_result["fraud"]["riskLevel"] == "HIGH"
    assert (await _open_items(session_factory, s.id))[0].priority == 4


@pytest.mark.asyncio
async def test_low_score_goes_to_manual_review(submissions, gateway, session_factory, make_task):
    task = await make_task()
    s = await submissions.submit(task.id, uuid.uuid4(), "meh")
    gateway.result = VerificationResult(passed=False, score=55)

    decision = await submissions.process_verification(s.id)

    assert decision.reason == "low_quality_score"
    assert (await _open_items(session_factory, s.id))[0].priority == 1


@pytest.mark.asyncio
async def test_middling_score_requests_revision(submissions, gateway, notifier, session_factory, make_task):
    task = await make_task()
    s = await submissions.submit(task.id, uuid.uuid4(), "almost")
    gateway.result = VerificationResult(passed=True, score=75)

    decision = await submissions.process_verification(s.id)

    assert decision.action == Action.REQUEST_REVISION
    stored = await _load(session_factory, s.id)
    assert stored.status == SubmissionStatus.NEEDS_REVISION
    assert stored.revision_count == 1
    assert stored.feedback == "Add more detail"
    _, event, payload = notifier.sent[-1]
    assert event == NotificationEvent.REVISION_REQUESTED
    assert payload["areasForImprovement"] == ["depth"]


@pytest.mark.asyncio
async def test_feedback_failure_escalates(submissions, gateway, session_factory, make_task):
    task = await make_task()
    s = await submissions.submit(task.id, uuid.uuid4(), "almost")
    gateway.result = VerificationResult(passed=True, score=75)
    gateway.fail_on = {"generate_feedback"}

    decision = await submissions.process_verification(s.id)

    assert decision.action == Action.MANUAL_REVIEW
    stored = await _load(session_factory, s.id)
    assert stored.status == SubmissionStatus.UNDER_REVIEW
    assert stored.revision_count == 0
    assert (await _open_items(session_factory, s.id))[0].priority == 4


@pytest.mark.asyncio
async def test_slow_gateway_times_out_and_escalates(gateway, notifier, dispatcher, session_factory, make_task):
    service = SubmissionService(
        gateway=gateway,
        notifier=notifier,
        dispatcher=dispatcher,
        session_factory=session_factory,
        gateway_timeout=0.05,
    )
    task = await make_task()
    s = await service.submit(task.id, uuid.uuid4(), "done")
    gateway.delay = 1.0

    decision = await service.process_verification(s.id)

    assert decision.action == Action.MANUAL_REVIEW
    assert decision.reason == "gateway_unavailable"
    stored = await _load(session_factory, s.id)
    assert stored.status == SubmissionStatus.UNDER_REVIEW
    assert stored.manual_review_required is True
    items = await _open_items(session_factory, s.id)
    assert len(items) == 1 and items[0].priority == 4
    assert "detect_fraud" not in gateway.calls


@pytest.mark.asyncio
async def test_revision_skipped_when_decided_during_feedback(submissions, gateway, notifier, session_factory, make_task, monkeypatch):
    task = await make_task()
    s = await submissions.submit(task.id, uuid.uuid4(), "almost")
    gateway.result = VerificationResult(passed=True, score=75)

    async def decided_meanwhile(submission, task, result):
        async with transaction(session_factory) as session:
            await submissions.write_rejection(session, submission.id, "rejected by a reviewer")
        return gateway.feedback

    monkeypatch.setattr(gateway, "generate_feedback", decided_meanwhile)

    assert await submissions.process_verification(s.id) is None
    stored = await _load(session_factory, s.id)
    assert stored.status == SubmissionStatus.REJECTED
    assert stored.revision_count == 0
    assert NotificationEvent.REVISION_REQUESTED not in notifier.events()


@pytest.mark.asyncio
async def test_verification_runs_once(submissions, gateway, make_task):
    task = await make_task()
    s = await submissions.submit(task.id, uuid.uuid4(), "done")
    assert await submissions.process_verification(s.id) is not None
    assert await submissions.process_verification(s.id) is None
    assert gateway.calls.count("verify") == 1


@pytest.mark.asyncio
async def test_fraud_history_excludes_current_submission(submissions, gateway, make_task):
    user = uuid.uuid4()
    first = await submissions.submit((await make_task()).id, user, "one")
    second = await submissions.submit((await make_task()).id, user, "two")

    await submissions.process_verification(second.id)

    assert [h.submission_id for h in gateway.history_seen] == [str(first.id)]


@pytest.mark.asyncio
async def test_approve_is_idempotent(submissions, gateway, session_factory, make_task):
    task = await make_task()
    s = await submissions.submit(task.id, uuid.uuid4(), "done")
    gateway.result = VerificationResult(passed=True, score=90)
    await submissions.process_verification(s.id)

    assert await submissions.approve(s.id, task, gateway.result) is None
    async with session_factory() as session:
        assert await session.scalar(select(func.count()).select_from(RewardDistribution)) == 1


@pytest.mark.asyncio
async def test_concurrent_approve_rewards_once(submissions, notifier, session_factory, make_task):
    task = await make_task()
    s = await submissions.submit(task.id, uuid.uuid4(), "done")
    await submissions.escalate(s.id, 1, "test")
    result = VerificationResult(passed=True, score=90)

    outcomes = await asyncio.gather(*(submissions.approve(s.id, task, result) for _ in range(3)))

    assert sum(1 for o in outcomes if isinstance(o, RewardDistribution)) == 1
    assert sum(1 for o in outcomes if o is None) == 2
    async with session_factory() as session:
        assert await session.scalar(select(func.count()).select_from(RewardDistribution)) == 1
        assert await session.scalar(select(func.count()).select_from(WorkHistory)) == 1
    assert (await _load(session_factory, s.id)).status == SubmissionStatus.APPROVED
    assert notifier.events().count(NotificationEvent.SUBMISSION_APPROVED) == 1


@pytest.mark.asyncio
async def test_resubmit_after_revision(submissions, gateway, dispatcher, session_factory, make_task):
    task = await make_task()
    user = uuid.uuid4()
    s = await submissions.submit(task.id, user, "almost")
    gateway.result = VerificationResult(passed=True, score=75)
    await submissions.process_verification(s.id)

    with pytest.raises(NotEligible):
        await submissions.resubmit(s.id, uuid.uuid4(), "not mine")

    again = await submissions.resubmit(s.id, user, "now with photos")

    assert again.status == SubmissionStatus.PENDING
    assert again.submission_text == "now with photos"
    assert again.feedback is None
    assert again.ai_verification_result is None
    assert again.revision_count == 1
    assert dispatcher.dispatched == [s.id, s.id]

    with pytest.raises(NotEligible):
        await submissions.resubmit(s.id, user, "twice")

    # second cycle can auto-approve
    gateway.result = VerificationResult(passed=True, score=85)
    await submissions.process_verification(s.id)
    assert (await _load(session_factory, s.id)).status == SubmissionStatus.APPROVED


@pytest.mark.asyncio
async def test_list_user_submissions(submissions, make_task):
    user = uuid.uuid4()
    a = await submissions.submit((await make_task()).id, user, "a")
    b = await submissions.submit((await make_task()).id, user, "b")
    await submissions.submit((await make_task()).id, uuid.uuid4(), "someone else")

    rows = await submissions.list_user_submissions(user)
    assert {r.id for r in rows} == {a.id, b.id}
    assert await submissions.get_submission(uuid.uuid4()) is None


@pytest.mark.asyncio
async def test_recover_stranded(submissions, dispatcher, session_factory, make_task):
    dispatcher.fail = True
    lost = await submissions.submit((await make_task()).id, uuid.uuid4(), "lost enqueue")
    orphan = await submissions.submit((await make_task()).id, uuid.uuid4(), "worker died")
    fresh = await submissions.submit((await make_task()).id, uuid.uuid4(), "just now")
    dispatcher.fail = False

    long_ago = utcnow() - timedelta(hours=1)
    async with session_factory() as session:
        await session.execute(
            update(TaskSubmission).where(TaskSubmission.id.in_([lost.id, orphan.id])).values(submitted_at=long_ago)
        )
        await session.execute(
            update(TaskSubmission).where(TaskSubmission.id == orphan.id).values(status=SubmissionStatus.UNDER_REVIEW)
        )
        await session.commit()

    recovered = await submissions.recover_stranded(grace_minutes=15)

    assert set(recovered) == {lost.id, orphan.id}
    assert dispatcher.dispatched == [lost.id]
    assert fresh.id not in recovered
    items = await _open_items(session_factory, orphan.id)
    assert len(items) == 1 and items[0].priority == 4
    assert (await _load(session_factory, orphan.id)).manual_review_required is True

    # the orphan now has a queue item; the lost one is still waiting on a worker
    dispatcher.dispatched.clear()
    assert await submissions.recover_stranded(grace_minutes=15) == [lost.id]
