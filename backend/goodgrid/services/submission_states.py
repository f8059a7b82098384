from __future__ import annotations
from uuid import UUID
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from goodgrid.errors import InvalidTransition, NotFound
from goodgrid.models.submission import SubmissionStatus, TaskSubmission

S = SubmissionStatus

# Legal moves. APPROVED and REJECTED are terminal.
# UNDER_REVIEW -> UNDER_REVIEW covers escalation of an item already being reviewed.
TRANSITIONS: dict[SubmissionStatus, frozenset[SubmissionStatus]] = {
    S.PENDING: frozenset({S.UNDER_REVIEW}),
    S.UNDER_REVIEW: frozenset({S.UNDER_REVIEW, S.APPROVED, S.REJECTED, S.NEEDS_REVISION}),
    S.NEEDS_REVISION: frozenset({S.PENDING}),
    S.APPROVED: frozenset(),
    S.REJECTED: frozenset(),
}


def can_transition(current: SubmissionStatus, target: SubmissionStatus) -> bool:
    return target in TRANSITIONS[current]


def predecessors(target: SubmissionStatus) -> list[SubmissionStatus]:
    return [src for src, targets in TRANSITIONS.items() if target in targets]


async def transition(
    session: AsyncSession,
    submission_id: UUID,
    target: SubmissionStatus,
    *,
    expected: SubmissionStatus | None = None,
    **values,
) -> None:
    """
    Move a submission to `target` with a single conditional UPDATE.
    The WHERE clause only admits legal predecessors (or exactly `expected` when given),
    so two concurrent writers cannot both win. Raises InvalidTransition / NotFound otherwise.
    Loaded instances are not synchronized; refresh them if their fields are read afterwards.
    """
    allowed = [expected] if expected is not None else predecessors(target)
    if expected is not None and not can_transition(expected, target):
        raise InvalidTransition(submission_id, expected.value, target.value)

    result = await session.execute(
        update(TaskSubmission)
        .where(TaskSubmission.id == submission_id, TaskSubmission.status.in_(allowed))
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return

    current = await session.scalar(select(TaskSubmission.status).where(TaskSubmission.id == submission_id))
    if current is None:
        raise NotFound(f"submission {submission_id} not found")
    raise InvalidTransition(submission_id, current.value, target.value)
